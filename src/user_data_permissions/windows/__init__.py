# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

# This assertion short-circuits mypy from type checking this module on platforms other than Windows
# https://mypy.readthedocs.io/en/stable/common_issues.html#python-version-and-system-platform-checks
import sys

assert sys.platform == "win32"

from .privileges import (
    OWNERSHIP_PRIVILEGES,
    enable_privileges,
)
from .win_security import WindowsSecurityProvider

__all__ = [
    "enable_privileges",
    "OWNERSHIP_PRIVILEGES",
    "WindowsSecurityProvider",
]

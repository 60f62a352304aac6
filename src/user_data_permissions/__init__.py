# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

"""Resets the owner and permissions of user data directories"""

from ._version import __version__  # noqa
from .startup.config import Configuration
from .startup.entrypoint import entrypoint
from .walker import PermissionsWalker, WalkSummary

__all__ = ["entrypoint", "Configuration", "PermissionsWalker", "WalkSummary"]

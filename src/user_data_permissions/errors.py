# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class UserDataPermissionsError(Exception):
    """Base class for errors that end a run. ``exit_code`` is the process exit status."""

    exit_code: int = 1


class ConfigurationError(UserDataPermissionsError):
    """An exception raised when an error is encountered loading configuration"""

    pass


class ConfigurationNotFoundError(ConfigurationError):
    """The configuration file does not exist"""

    exit_code = -30


class RootDirectoryNotFoundError(ConfigurationError):
    """The configured user data root does not exist or is not a directory"""

    exit_code = -10


class DomainNotSetError(ConfigurationError):
    """No domain was configured to resolve the user directory names against"""

    exit_code = -40


class PrincipalNotMappedError(UserDataPermissionsError):
    """One or more principals of the root policy could not be resolved"""

    exit_code = -20

    def __init__(self, principals: Sequence[str]) -> None:
        self.principals = list(principals)
        super().__init__(
            "Did not find users or groups in your system: %s. Maybe your OS uses a different"
            " language, please adjust user or group names." % ", ".join(self.principals)
        )


class PrivilegeError(UserDataPermissionsError):
    """The process could not acquire the privileges needed to change ownership"""

    exit_code = -50


class SecurityRewriteError(UserDataPermissionsError):
    """The security descriptor of a single file system node could not be rewritten"""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{reason} [{path}]")

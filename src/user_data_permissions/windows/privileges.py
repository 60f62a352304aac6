# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

# This assertion short-circuits mypy from type checking this module on platforms other than Windows
# https://mypy.readthedocs.io/en/stable/common_issues.html#python-version-and-system-platform-checks
import sys

assert sys.platform == "win32"

from logging import getLogger

import pywintypes
import win32api
import win32security
import winerror

from ..errors import PrivilegeError

logger = getLogger(__name__)

# SeRestorePrivilege allows setting any account as the owner of an object, SeTakeOwnershipPrivilege
# allows opening objects we have no access to for writing the owner, and SeBackupPrivilege
# allows reading the security descriptor of such objects.
OWNERSHIP_PRIVILEGES = [
    win32security.SE_RESTORE_NAME,
    win32security.SE_TAKE_OWNERSHIP_NAME,
    win32security.SE_BACKUP_NAME,
]


def enable_privileges(privilege_constants: list[str]) -> None:
    """
    Enables the given privileges in the token of THIS PROCESS.

    Args:
        privilege_constants: List of the privilege constants to enable.
            See: https://learn.microsoft.com/en-us/windows/win32/secauthz/privilege-constants

    Raises:
        PrivilegeError - If the token could not be adjusted, or if it does not hold
            one of the privileges (for example when not running as an Administrator).
    """
    try:
        proc_token = win32security.OpenProcessToken(
            win32api.GetCurrentProcess(),
            win32security.TOKEN_ADJUST_PRIVILEGES | win32security.TOKEN_QUERY,
        )
    except pywintypes.error as e:
        raise PrivilegeError(f"Could not retrieve process token. Error: {e.strerror}") from e

    try:
        new_state = []
        for name in privilege_constants:
            try:
                luid = win32security.LookupPrivilegeValue(None, name)
            except pywintypes.error as e:
                raise PrivilegeError(f"Could not find privilege {name}. Error: {e.strerror}") from e
            new_state.append((luid, win32security.SE_PRIVILEGE_ENABLED))

        try:
            win32security.AdjustTokenPrivileges(proc_token, False, new_state)
        except pywintypes.error as e:
            raise PrivilegeError(
                f"Could not assign privileges {', '.join(privilege_constants)}. Error: {e.strerror}"
            ) from e

        # AdjustTokenPrivileges succeeds even when the token lacks some of the privileges
        if win32api.GetLastError() == winerror.ERROR_NOT_ALL_ASSIGNED:
            raise PrivilegeError(
                f"Could not assign privileges {', '.join(privilege_constants)}. Please ensure"
                " that this program is running as a user that is an Administrator."
            )
    finally:
        proc_token.Close()

    logger.debug(f"Enabled privileges: {', '.join(privilege_constants)}")

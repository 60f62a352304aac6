# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

# This assertion short-circuits mypy from type checking this module on platforms other than Windows
# https://mypy.readthedocs.io/en/stable/common_issues.html#python-version-and-system-platform-checks
import sys

assert sys.platform == "win32"

import errno
from logging import getLogger
from pathlib import Path
from typing import Optional

import pywintypes
import win32security
import winerror

from ..access_policy import (
    AccessControlType,
    AccessDescriptor,
    FileSystemRights,
    InheritanceFlags,
    PropagationFlags,
    RightsGrant,
)
from ..errors import SecurityRewriteError
from ..principals import CanonicalIdentity, Principal, ResolveResult, Unresolvable
from ..security import SecurityProvider
from .privileges import OWNERSHIP_PRIVILEGES, enable_privileges

logger = getLogger(__name__)

# Paths of this length or longer need the extended-length prefix
MAX_PATH = 260

_READ_INFORMATION = (
    win32security.OWNER_SECURITY_INFORMATION | win32security.DACL_SECURITY_INFORMATION
)

_ACE_TYPES = {
    win32security.ACCESS_ALLOWED_ACE_TYPE: AccessControlType.ALLOW,
    win32security.ACCESS_DENIED_ACE_TYPE: AccessControlType.DENY,
}


class WindowsSecurityProvider(SecurityProvider):
    """SecurityProvider backed by the Win32 security API through pywin32"""

    def __init__(self) -> None:
        self._privileges_enabled = False

    def lookup_account(self, principal: Principal) -> ResolveResult:
        try:
            sid, _, _ = win32security.LookupAccountName(None, principal.account_name)
        except pywintypes.error as e:
            if e.winerror == winerror.ERROR_NONE_MAPPED:
                return Unresolvable(principal=principal)
            return Unresolvable(principal=principal, reason=e.strerror)
        return CanonicalIdentity(
            sid=win32security.ConvertSidToStringSid(sid),
            display_name=principal.account_name,
        )

    def read_descriptor(self, path: Path) -> AccessDescriptor:
        try:
            sd = win32security.GetNamedSecurityInfo(
                _native_path(path), win32security.SE_FILE_OBJECT, _READ_INFORMATION
            )
        except pywintypes.error as e:
            raise _translate_error(path, e) from e

        control, _ = sd.GetSecurityDescriptorControl()
        owner_sid = sd.GetSecurityDescriptorOwner()
        descriptor = AccessDescriptor(
            owner=_identity(owner_sid) if owner_sid is not None else None,
            protected=bool(control & win32security.SE_DACL_PROTECTED),
        )

        dacl = sd.GetSecurityDescriptorDacl()
        if dacl is None:
            # A NULL DACL grants everyone full access. Rewriting replaces it with a real one.
            return descriptor

        for i in range(dacl.GetAceCount()):
            grant = _grant_from_ace(dacl.GetAce(i))
            if grant is None:
                logger.debug(f"Ignoring unsupported ACE #{i} of {path}")
                continue
            # Grants are appended as-is; equal entries are not merged when reading
            descriptor.grants.append(grant)
        return descriptor

    def write_descriptor(
        self, path: Path, descriptor: AccessDescriptor, *, write_owner: bool = True
    ) -> None:
        dacl = win32security.ACL()
        explicit = descriptor.explicit_grants
        # Canonical order: explicit deny entries precede explicit allow entries
        ordered = [g for g in explicit if g.access_type == AccessControlType.DENY] + [
            g for g in explicit if g.access_type == AccessControlType.ALLOW
        ]
        try:
            for grant in ordered:
                sid = win32security.ConvertStringSidToSid(grant.principal.sid)
                if grant.access_type == AccessControlType.DENY:
                    dacl.AddAccessDeniedAceEx(
                        win32security.ACL_REVISION, _ace_flags(grant), int(grant.rights), sid
                    )
                else:
                    dacl.AddAccessAllowedAceEx(
                        win32security.ACL_REVISION, _ace_flags(grant), int(grant.rights), sid
                    )

            security_info = win32security.DACL_SECURITY_INFORMATION
            if descriptor.protected:
                security_info |= win32security.PROTECTED_DACL_SECURITY_INFORMATION
            else:
                security_info |= win32security.UNPROTECTED_DACL_SECURITY_INFORMATION

            owner = None
            if write_owner and descriptor.owner is not None:
                security_info |= win32security.OWNER_SECURITY_INFORMATION
                owner = win32security.ConvertStringSidToSid(descriptor.owner.sid)

            win32security.SetNamedSecurityInfo(
                _native_path(path),
                win32security.SE_FILE_OBJECT,
                security_info,
                owner,
                None,
                dacl,
                None,
            )
        except pywintypes.error as e:
            raise _translate_error(path, e) from e

    def enable_ownership_privileges(self) -> None:
        if self._privileges_enabled:
            return
        enable_privileges(OWNERSHIP_PRIVILEGES)
        self._privileges_enabled = True


def _native_path(path: Path) -> str:
    """Returns the path in the form the Win32 API accepts, using the extended-length
    prefix for paths that are too long for the classic form."""
    full_path = str(path.absolute())
    if len(full_path) < MAX_PATH or full_path.startswith("\\\\?\\"):
        return full_path
    if full_path.startswith("\\\\"):
        return "\\\\?\\UNC\\" + full_path[2:]
    return "\\\\?\\" + full_path


def _identity(sid) -> CanonicalIdentity:
    return CanonicalIdentity(sid=win32security.ConvertSidToStringSid(sid))


def _grant_from_ace(ace: tuple) -> Optional[RightsGrant]:
    # Standard ACEs are ((AceType, AceFlags), Mask, Sid). Object ACEs have more members.
    (ace_type, ace_flags), mask = ace[0], ace[1]
    access_type = _ACE_TYPES.get(ace_type)
    if access_type is None or len(ace) != 3:
        return None

    inheritance = InheritanceFlags.NONE
    if ace_flags & win32security.CONTAINER_INHERIT_ACE:
        inheritance |= InheritanceFlags.CONTAINER_INHERIT
    if ace_flags & win32security.OBJECT_INHERIT_ACE:
        inheritance |= InheritanceFlags.OBJECT_INHERIT

    propagation = PropagationFlags.NONE
    if ace_flags & win32security.NO_PROPAGATE_INHERIT_ACE:
        propagation |= PropagationFlags.NO_PROPAGATE_INHERIT
    if ace_flags & win32security.INHERIT_ONLY_ACE:
        propagation |= PropagationFlags.INHERIT_ONLY

    return RightsGrant(
        principal=_identity(ace[2]),
        rights=FileSystemRights(mask & 0xFFFFFFFF),
        inheritance=inheritance,
        propagation=propagation,
        access_type=access_type,
        inherited=bool(ace_flags & win32security.INHERITED_ACE),
    )


def _ace_flags(grant: RightsGrant) -> int:
    flags = 0
    if grant.inheritance & InheritanceFlags.CONTAINER_INHERIT:
        flags |= win32security.CONTAINER_INHERIT_ACE
    if grant.inheritance & InheritanceFlags.OBJECT_INHERIT:
        flags |= win32security.OBJECT_INHERIT_ACE
    if grant.propagation & PropagationFlags.NO_PROPAGATE_INHERIT:
        flags |= win32security.NO_PROPAGATE_INHERIT_ACE
    if grant.propagation & PropagationFlags.INHERIT_ONLY:
        flags |= win32security.INHERIT_ONLY_ACE
    return flags


def _translate_error(path: Path, error: pywintypes.error) -> Exception:
    if error.winerror in (winerror.ERROR_FILE_NOT_FOUND, winerror.ERROR_PATH_NOT_FOUND):
        return FileNotFoundError(errno.ENOENT, error.strerror, str(path))
    return SecurityRewriteError(path, f"{error.funcname} failed: {error.strerror}")

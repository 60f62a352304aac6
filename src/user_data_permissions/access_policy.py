# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

"""Access rights, grants and the access descriptor of a single file system node"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, IntFlag
from typing import Iterable, Optional, Sequence

from .principals import CanonicalIdentity


class FileSystemRights(IntFlag):
    """File and directory access rights. The values are the Windows access mask bits."""

    NONE = 0
    READ_DATA = 0x1
    LIST_DIRECTORY = 0x1
    WRITE_DATA = 0x2
    CREATE_FILES = 0x2
    APPEND_DATA = 0x4
    CREATE_DIRECTORIES = 0x4
    READ_EXTENDED_ATTRIBUTES = 0x8
    WRITE_EXTENDED_ATTRIBUTES = 0x10
    EXECUTE_FILE = 0x20
    TRAVERSE = 0x20
    DELETE_SUBDIRECTORIES_AND_FILES = 0x40
    READ_ATTRIBUTES = 0x80
    WRITE_ATTRIBUTES = 0x100
    DELETE = 0x10000
    READ_PERMISSIONS = 0x20000
    CHANGE_PERMISSIONS = 0x40000
    TAKE_OWNERSHIP = 0x80000
    SYNCHRONIZE = 0x100000
    FULL_CONTROL = 0x1F01FF


class InheritanceFlags(IntFlag):
    """Which kinds of child objects inherit a grant"""

    NONE = 0
    CONTAINER_INHERIT = 0x1
    OBJECT_INHERIT = 0x2


class PropagationFlags(IntFlag):
    """How an inheritable grant is propagated"""

    NONE = 0
    NO_PROPAGATE_INHERIT = 0x1
    INHERIT_ONLY = 0x2


class AccessControlType(str, Enum):
    ALLOW = "Allow"
    DENY = "Deny"


# Rights that let ordinary users see the root and create their own directory in it, but not
# read the contents of anyone else's directory.
ROOT_TRAVERSE_RIGHTS = (
    FileSystemRights.LIST_DIRECTORY
    | FileSystemRights.CREATE_DIRECTORIES
    | FileSystemRights.READ_ATTRIBUTES
    | FileSystemRights.READ_EXTENDED_ATTRIBUTES
    | FileSystemRights.READ_PERMISSIONS
)

INHERIT_TO_ALL = InheritanceFlags.CONTAINER_INHERIT | InheritanceFlags.OBJECT_INHERIT


@dataclass(frozen=True)
class RightsGrant:
    """One access control entry"""

    principal: CanonicalIdentity
    rights: FileSystemRights
    inheritance: InheritanceFlags = InheritanceFlags.NONE
    propagation: PropagationFlags = PropagationFlags.NONE
    access_type: AccessControlType = AccessControlType.ALLOW
    inherited: bool = False
    """True when the entry was inherited from an ancestor rather than set on the node itself"""

    @property
    def is_explicit(self) -> bool:
        return not self.inherited

    def merges_with(self, other: RightsGrant) -> bool:
        return (
            self.principal == other.principal
            and self.inheritance == other.inheritance
            and self.propagation == other.propagation
            and self.access_type == other.access_type
            and self.inherited == other.inherited
        )

    def __str__(self) -> str:
        return "%s %s %s (inheritance=%s, propagation=%s%s)" % (
            self.access_type.value,
            self.principal,
            repr(self.rights),
            repr(self.inheritance),
            repr(self.propagation),
            ", inherited" if self.inherited else "",
        )


@dataclass
class AccessDescriptor:
    """The owner, grants and inheritance protection of one file system node"""

    grants: list[RightsGrant] = field(default_factory=list)
    owner: Optional[CanonicalIdentity] = None
    protected: bool = False
    """True when the node does not inherit grants from its parent"""

    @property
    def explicit_grants(self) -> list[RightsGrant]:
        return [grant for grant in self.grants if grant.is_explicit]

    @property
    def inherited_grants(self) -> list[RightsGrant]:
        return [grant for grant in self.grants if grant.inherited]

    def remove_explicit_grants(self) -> None:
        self.grants = self.inherited_grants

    def set_protection(self, protect: bool) -> None:
        """Turns inheritance protection on or off.

        Protecting a node discards the grants it inherited. Unprotecting it keeps whatever
        inherited grants are present; the OS recomputes them from the parent when the
        descriptor is written.
        """
        if protect:
            self.grants = self.explicit_grants
        self.protected = protect

    def add_grant(self, grant: RightsGrant) -> None:
        """Adds an explicit grant, merging its rights into a matching existing grant"""
        for i, existing in enumerate(self.grants):
            if existing.merges_with(grant):
                self.grants[i] = replace(existing, rights=existing.rights | grant.rights)
                return
        self.grants.append(grant)

    def add_grants(self, grants: Iterable[RightsGrant]) -> None:
        for grant in grants:
            self.add_grant(grant)

    def copy(self) -> AccessDescriptor:
        return AccessDescriptor(
            grants=list(self.grants), owner=self.owner, protected=self.protected
        )


def build_root_policy(
    *,
    full_access: Sequence[CanonicalIdentity],
    default_group: CanonicalIdentity,
    owners_group: CanonicalIdentity,
) -> AccessDescriptor:
    """Builds the access descriptor for the user data root.

    Args:
        full_access: Principals with full control of the root and everything below it.
        default_group: Principal allowed to list the root and create directories in it. The
            grant applies to the root only.
        owners_group: Principal with full control of everything below the root, but not the
            root itself. With ``CREATOR OWNER`` this gives every user full control of the
            directory they own.

    Returns:
        A protected descriptor with no owner holding the grants in the order listed above.
    """
    descriptor = AccessDescriptor(protected=True)
    for principal in full_access:
        descriptor.add_grant(
            RightsGrant(
                principal=principal,
                rights=FileSystemRights.FULL_CONTROL,
                inheritance=INHERIT_TO_ALL,
            )
        )
    descriptor.add_grant(
        RightsGrant(
            principal=default_group,
            rights=ROOT_TRAVERSE_RIGHTS,
        )
    )
    descriptor.add_grant(
        RightsGrant(
            principal=owners_group,
            rights=FileSystemRights.FULL_CONTROL,
            inheritance=INHERIT_TO_ALL,
            propagation=PropagationFlags.INHERIT_ONLY,
        )
    )
    return descriptor

# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

"""Security principals and the result of resolving them"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class NamedPrincipal:
    """A literal account or group name, such as ``BUILTIN\\Administrators`` or ``CREATOR OWNER``.

    The name is handed to the OS identity layer as-is.
    """

    name: str

    @property
    def account_name(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class AccountPrincipal:
    """An account identified by its short name within a realm (domain)"""

    realm: str
    name: str

    @property
    def account_name(self) -> str:
        return f"{self.realm}\\{self.name}"

    def __str__(self) -> str:
        return self.account_name


Principal = Union[NamedPrincipal, AccountPrincipal]


@dataclass(frozen=True)
class CanonicalIdentity:
    """A resolved security identity.

    Two identities are equal when their SIDs are equal, regardless of how they were spelled
    when they were looked up.
    """

    sid: str
    display_name: str = field(default="", compare=False)

    def __str__(self) -> str:
        return self.display_name or self.sid


@dataclass(frozen=True)
class Unresolvable:
    """The outcome of resolving a principal that does not map to any identity"""

    principal: Principal
    reason: str = "not found"

    def __str__(self) -> str:
        return f"{self.principal} ({self.reason})"


ResolveResult = Union[CanonicalIdentity, Unresolvable]

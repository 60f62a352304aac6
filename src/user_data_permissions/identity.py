# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

from __future__ import annotations

from logging import getLogger
from typing import Sequence

from .log_messages import IdentityLogEvent, IdentityLogEventOp
from .principals import (
    AccountPrincipal,
    CanonicalIdentity,
    NamedPrincipal,
    Principal,
    ResolveResult,
    Unresolvable,
)
from .security import SecurityProvider

logger = getLogger(__name__)


class IdentityResolver:
    """Resolves principals into canonical identities using a SecurityProvider"""

    _provider: SecurityProvider

    def __init__(self, provider: SecurityProvider) -> None:
        self._provider = provider

    def resolve(self, realm: str, name: str) -> ResolveResult:
        """Resolves the account ``name`` within ``realm``.

        Raises:
            ValueError: If ``realm`` is empty. Short names are only meaningful within a realm.
        """
        if not realm:
            raise ValueError(f"A realm is required to resolve the account {name!r}")
        return self.resolve_principal(AccountPrincipal(realm=realm, name=name))

    def resolve_principal(self, principal: Principal) -> ResolveResult:
        result = self._provider.lookup_account(principal)
        realm = principal.realm if isinstance(principal, AccountPrincipal) else None
        if isinstance(result, CanonicalIdentity):
            logger.debug(
                IdentityLogEvent(
                    op=IdentityLogEventOp.RESOLVE,
                    account=principal.name,
                    realm=realm,
                    message=f"Resolved to {result.sid}.",
                )
            )
        else:
            logger.debug(
                IdentityLogEvent(
                    op=IdentityLogEventOp.NOT_FOUND,
                    account=principal.name,
                    realm=realm,
                    message=f"Could not be resolved: {result.reason}.",
                )
            )
        return result

    def resolve_all(
        self, principals: Sequence[Principal]
    ) -> tuple[list[CanonicalIdentity], list[Unresolvable]]:
        """Resolves every principal, returning the identities and the misses separately"""
        resolved: list[CanonicalIdentity] = []
        missing: list[Unresolvable] = []
        for principal in principals:
            result = self.resolve_principal(principal)
            if isinstance(result, Unresolvable):
                missing.append(result)
            else:
                resolved.append(result)
        return resolved, missing


def parse_principal(value: str) -> NamedPrincipal:
    """Returns the principal for a configured account or group name"""
    value = value.strip()
    if not value:
        raise ValueError("Account and group names must not be empty")
    return NamedPrincipal(name=value)

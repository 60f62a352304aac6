# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

from .access_policy import AccessDescriptor, RightsGrant
from .principals import CanonicalIdentity
from .security import SecurityProvider


class SecurityRewriter:
    """Replaces the explicit grants, inheritance protection and owner of file system nodes"""

    _provider: SecurityProvider

    def __init__(self, provider: SecurityProvider) -> None:
        self._provider = provider

    def rewrite(
        self,
        path: Path,
        *,
        new_owner: Optional[CanonicalIdentity],
        protect: bool,
        explicit_grants: Sequence[RightsGrant] = (),
    ) -> AccessDescriptor:
        """Rewrites the security descriptor of a file or directory.

        Every explicit grant currently on the node is removed before ``explicit_grants`` are
        added, so rewriting a node twice with the same arguments leaves it as rewriting it once.

        Parameters
        ----------
        path : Path
            The file or directory to rewrite
        new_owner : Optional[CanonicalIdentity]
            The new owner of the node. The owner is left as-is when this is None.
        protect : bool
            True to stop the node inheriting grants from its parent (and drop the ones it
            currently inherits), False to make it inherit again.
        explicit_grants : Sequence[RightsGrant]
            Grants to add to the node, in order

        Returns
        -------
        AccessDescriptor
            The descriptor that was written

        Raises
        ------
        FileNotFoundError
            If the node does not exist
        SecurityRewriteError
            If the descriptor could not be read or written
        """
        descriptor = self._provider.read_descriptor(path)
        descriptor.remove_explicit_grants()
        descriptor.set_protection(protect)
        descriptor.add_grants(explicit_grants)
        if new_owner is not None:
            descriptor.owner = new_owner
        self._provider.write_descriptor(path, descriptor, write_owner=new_owner is not None)
        return descriptor

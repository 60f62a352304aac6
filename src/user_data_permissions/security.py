# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from .access_policy import AccessDescriptor
from .principals import Principal, ResolveResult


class SecurityProvider(ABC):
    """Abstract base class for the OS services that the permission walk is built on"""

    @abstractmethod
    def lookup_account(self, principal: Principal) -> ResolveResult:
        """Translates a principal into its canonical identity.

        Returns an ``Unresolvable`` when the name does not map to an identity. This must not
        raise for unknown names.
        """
        raise NotImplementedError

    @abstractmethod
    def read_descriptor(self, path: Path) -> AccessDescriptor:
        """Reads the owner, grants and inheritance protection of a file or directory.

        Raises:
            FileNotFoundError: If the node does not exist.
            SecurityRewriteError: If the descriptor cannot be read.
        """
        raise NotImplementedError

    @abstractmethod
    def write_descriptor(
        self, path: Path, descriptor: AccessDescriptor, *, write_owner: bool = True
    ) -> None:
        """Writes the explicit grants and inheritance protection of the descriptor to the node,
        and its owner when ``write_owner`` is True.

        Raises:
            FileNotFoundError: If the node does not exist.
            SecurityRewriteError: If the descriptor cannot be written.
        """
        raise NotImplementedError

    @abstractmethod
    def enable_ownership_privileges(self) -> None:
        """Enables the privileges this process needs to set the owner of objects it does not own.

        Calling this more than once has no further effect.

        Raises:
            PrivilegeError: If the privileges cannot be enabled.
        """
        raise NotImplementedError

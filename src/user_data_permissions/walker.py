# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

"""Walks the user data root and resets the owner and permissions of every user directory"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from .access_policy import build_root_policy
from .errors import (
    DomainNotSetError,
    PrincipalNotMappedError,
    RootDirectoryNotFoundError,
    SecurityRewriteError,
)
from .identity import IdentityResolver, parse_principal
from .log_messages import (
    FilesystemLogEvent,
    FilesystemLogEventOp,
    IdentityLogEvent,
    IdentityLogEventOp,
)
from .principals import CanonicalIdentity, Unresolvable
from .rewriter import SecurityRewriter
from .security import SecurityProvider

if TYPE_CHECKING:
    from .startup.config import Configuration

logger = logging.getLogger(__name__)


@dataclass
class WalkSummary:
    """Counters describing what a run did"""

    identities_processed: int = 0
    identities_skipped: int = 0
    """User directories excluded by configuration"""
    identities_not_reached: int = 0
    """User directories before the one the run was configured to start from"""
    identities_unresolved: int = 0
    directories_rewritten: int = 0
    files_rewritten: int = 0
    files_vanished: int = 0
    failures: int = 0

    def log(self, level: int = logging.INFO) -> None:
        for f in fields(self):
            logger.log(level, f"{f.name}={getattr(self, f.name)}")


class PermissionsWalker:
    """Resets ownership and permissions below the user data root.

    The root gets a fixed policy. Every directory directly below the root is named after an
    account; that account becomes the owner of the directory and of everything in it, and
    all of those nodes go back to inheriting their permissions from the root.

    Parameters
    ----------
    config : Configuration
        The effective configuration of the run
    provider : SecurityProvider
        Access to the OS identity and security descriptor services
    """

    _config: Configuration
    _provider: SecurityProvider
    _resolver: IdentityResolver
    _rewriter: SecurityRewriter
    _summary: WalkSummary
    _unlisted: set[str]

    def __init__(self, *, config: Configuration, provider: SecurityProvider) -> None:
        self._config = config
        self._provider = provider
        self._resolver = IdentityResolver(provider)
        self._rewriter = SecurityRewriter(provider)
        self._summary = WalkSummary()
        self._unlisted = set()

    @property
    def summary(self) -> WalkSummary:
        return self._summary

    def run(self) -> WalkSummary:
        """Processes the configured root once.

        Raises:
            RootDirectoryNotFoundError: If the root does not exist.
            DomainNotSetError: If no domain is configured.
            PrincipalNotMappedError: If a principal of the root policy cannot be resolved.
            SecurityRewriteError: If the root policy cannot be written.
            PrivilegeError: If the process cannot be allowed to change owners.
        """
        self._summary = WalkSummary()
        self._unlisted = set()
        self._validate()

        root = self._config.path_user_data
        if self._config.skip_parent_permissions:
            logger.info("Skipping parent permissions.")
        else:
            logger.info(f"{root}: Setting parent permissions")
            self._apply_root_policy(root)

        logger.info("Giving executing user restore privileges")
        self._provider.enable_ownership_privileges()

        start_from = self._config.start_from
        start_from_reached = not start_from
        for user_dir in self._user_directories(root):
            logger.info(str(user_dir))

            if user_dir.name in self._config.exceptions:
                logger.info(
                    FilesystemLogEvent(
                        op=FilesystemLogEventOp.SKIP,
                        filepath=user_dir,
                        message="Skipping exception",
                    )
                )
                self._summary.identities_skipped += 1
                continue

            if user_dir.name == start_from:
                start_from_reached = True

            if not start_from_reached:
                logger.info(
                    FilesystemLogEvent(
                        op=FilesystemLogEventOp.SKIP,
                        filepath=user_dir,
                        message=f"Skipping (looking for {start_from} to start from)",
                    )
                )
                self._summary.identities_not_reached += 1
                continue

            self._process_user_directory(user_dir)

        if start_from and not start_from_reached:
            logger.warning(f"The directory {start_from} to start from was not found in {root}")

        logger.info("Done")
        self._summary.log()
        return self._summary

    def _validate(self) -> None:
        root = self._config.path_user_data
        if not root.is_dir():
            raise RootDirectoryNotFoundError(f"Dir does not exist: {root}")
        if not self._config.domain:
            raise DomainNotSetError("Please set your domain name in the config file.")

    def _apply_root_policy(self, root: Path) -> None:
        full_access = [parse_principal(name) for name in self._config.full_access_users]
        default_group = parse_principal(self._config.default_group)
        owners_group = parse_principal(self._config.owners_group)

        resolved, missing = self._resolver.resolve_all(
            [*full_access, default_group, owners_group]
        )
        if missing:
            for miss in missing:
                logger.error(
                    IdentityLogEvent(
                        op=IdentityLogEventOp.NOT_FOUND,
                        account=str(miss.principal),
                        message=f"Did not find user or group ({miss.reason}).",
                    )
                )
            raise PrincipalNotMappedError([str(miss.principal) for miss in missing])

        policy = build_root_policy(
            full_access=resolved[: len(full_access)],
            default_group=resolved[-2],
            owners_group=resolved[-1],
        )
        for grant in policy.grants:
            logger.debug(f"Root grant: {grant}")
        self._rewriter.rewrite(
            root,
            new_owner=None,
            protect=True,
            explicit_grants=policy.grants,
        )

    def _process_user_directory(self, user_dir: Path) -> None:
        result = self._resolver.resolve(self._config.domain, user_dir.name)
        if isinstance(result, Unresolvable):
            logger.warning(
                IdentityLogEvent(
                    op=IdentityLogEventOp.NOT_FOUND,
                    account=user_dir.name,
                    realm=self._config.domain,
                    message=f"User {user_dir.name} not found in domain {self._config.domain}",
                )
            )
            self._summary.identities_unresolved += 1
            return

        try:
            self._rewrite_node(user_dir, result)
        except (SecurityRewriteError, OSError) as e:
            self._log_failure(user_dir, "Error processing user directory", e)
            return
        self._summary.identities_processed += 1

        logger.info("  Processing subdirs")
        for subdir in self._descendant_directories(user_dir):
            try:
                self._rewrite_node(subdir, result)
            except (SecurityRewriteError, OSError) as e:
                self._log_failure(subdir, "Error processing directory", e)
                continue
            self._summary.directories_rewritten += 1

        logger.info("  Processing subfiles")
        for file in self._descendant_files(user_dir):
            try:
                self._rewrite_node(file, result)
            except FileNotFoundError:
                # Removed since the directory was listed
                self._summary.files_vanished += 1
                continue
            except (SecurityRewriteError, OSError) as e:
                self._log_failure(file, "Error processing file (path might be too long)", e)
                continue
            self._summary.files_rewritten += 1

    def _rewrite_node(self, path: Path, owner: CanonicalIdentity) -> None:
        if self._config.debug:
            logger.debug(
                FilesystemLogEvent(
                    op=FilesystemLogEventOp.REWRITE,
                    filepath=path,
                    message=f"Owner {owner}",
                )
            )
        self._rewriter.rewrite(path, new_owner=owner, protect=False)

    def _log_failure(self, path: Path, message: str, error: Exception) -> None:
        self._summary.failures += 1
        reason = error.reason if isinstance(error, SecurityRewriteError) else str(error)
        logger.error(
            FilesystemLogEvent(
                op=FilesystemLogEventOp.REWRITE,
                filepath=path,
                message=f"{message}: {reason}",
            )
        )

    def _user_directories(self, root: Path) -> list[Path]:
        """Returns the directories directly below the root, sorted by name"""
        return sorted((child for child in root.iterdir() if child.is_dir()), key=lambda p: p.name)

    def _walk(self, top: Path) -> Iterator[tuple[Path, list[str], list[str]]]:
        def on_error(error: OSError) -> None:
            # Both passes list the same directories
            key = str(error.filename or top)
            if key in self._unlisted:
                return
            self._unlisted.add(key)
            self._summary.failures += 1
            logger.error(
                FilesystemLogEvent(
                    op=FilesystemLogEventOp.ENUMERATE,
                    filepath=error.filename or top,
                    message=f"Could not list directory: {error.strerror or error}",
                )
            )

        for dirpath, dirnames, filenames in os.walk(top, onerror=on_error):
            # Sorting in place also fixes the order os.walk descends in
            dirnames.sort()
            yield Path(dirpath), dirnames, sorted(filenames)

    def _descendant_directories(self, top: Path) -> Iterator[Path]:
        # Each directory is rewritten before os.walk lists its contents
        for dirpath, dirnames, _ in self._walk(top):
            for name in dirnames:
                yield dirpath / name

    def _descendant_files(self, top: Path) -> Iterator[Path]:
        for dirpath, _, filenames in self._walk(top):
            for name in filenames:
                yield dirpath / name

# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

"""Tests for the PermissionsWalker"""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path
from typing import Callable
from unittest.mock import patch

import pytest

from user_data_permissions.access_policy import (
    FileSystemRights,
    INHERIT_TO_ALL,
    PropagationFlags,
    ROOT_TRAVERSE_RIGHTS,
    RightsGrant,
)
from user_data_permissions.errors import (
    DomainNotSetError,
    PrincipalNotMappedError,
    PrivilegeError,
    RootDirectoryNotFoundError,
)
from user_data_permissions.log_messages import (
    FilesystemLogEvent,
    FilesystemLogEventOp,
    IdentityLogEvent,
)
from user_data_permissions.principals import CanonicalIdentity
from user_data_permissions.startup.config import Configuration
from user_data_permissions import walker as walker_mod
from user_data_permissions.walker import PermissionsWalker, WalkSummary

from security_fakes import (
    ADMINISTRATORS,
    CREATOR_OWNER,
    LEGACY_OWNER,
    SYSTEM,
    USER_DIRECTORIES,
    USER_FILES,
    USER_NAMES,
    USERS,
    InMemorySecurityProvider,
)


def user_tree(user_dir: Path) -> list[Path]:
    return [
        user_dir,
        *(user_dir / rel for rel in USER_DIRECTORIES),
        *(user_dir / rel for rel in USER_FILES),
    ]


def run_walker(config: Configuration, provider: InMemorySecurityProvider) -> WalkSummary:
    return PermissionsWalker(config=config, provider=provider).run()


class TestRootPolicy:
    def test_root_policy_composition(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config()

        # WHEN
        run_walker(config, provider)

        # THEN
        root = provider.descriptors[user_data_root]
        assert root.protected
        assert root.grants == [
            RightsGrant(
                principal=ADMINISTRATORS,
                rights=FileSystemRights.FULL_CONTROL,
                inheritance=INHERIT_TO_ALL,
            ),
            RightsGrant(
                principal=SYSTEM,
                rights=FileSystemRights.FULL_CONTROL,
                inheritance=INHERIT_TO_ALL,
            ),
            RightsGrant(
                principal=USERS,
                rights=ROOT_TRAVERSE_RIGHTS,
            ),
            RightsGrant(
                principal=CREATOR_OWNER,
                rights=FileSystemRights.FULL_CONTROL,
                inheritance=INHERIT_TO_ALL,
                propagation=PropagationFlags.INHERIT_ONLY,
            ),
        ]
        # The owner of the root is left as it was
        assert root.owner == LEGACY_OWNER

    def test_root_written_before_user_directories(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config()

        # WHEN
        run_walker(config, provider)

        # THEN
        assert provider.writes[0] == user_data_root
        assert provider.writes.count(user_data_root) == 1

    def test_skip_parent_permissions(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config(skipParentPermissions=True)

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert user_data_root not in provider.writes
        assert summary.identities_processed == len(USER_NAMES)

    def test_skip_parent_permissions_does_not_resolve_root_principals(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
    ) -> None:
        # GIVEN
        config = make_config(skipParentPermissions=True, defaultGroup="BUILTIN\\Benutzer")

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert summary.identities_processed == len(USER_NAMES)

    def test_unresolvable_root_principal_is_fatal(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # GIVEN
        config = make_config(
            fullAccessUsers=["BUILTIN\\Administratoren", SYSTEM.display_name],
            defaultGroup="BUILTIN\\Benutzer",
        )

        # WHEN
        with pytest.raises(PrincipalNotMappedError) as raised:
            run_walker(config, provider)

        # THEN
        assert raised.value.exit_code == -20
        assert raised.value.principals == ["BUILTIN\\Administratoren", "BUILTIN\\Benutzer"]
        assert "BUILTIN\\Administratoren" in str(raised.value)
        assert provider.writes == []
        assert provider.privilege_calls == 0
        not_found = [
            record.msg
            for record in caplog.records
            if record.levelno == logging.ERROR and isinstance(record.msg, IdentityLogEvent)
        ]
        assert [event.account for event in not_found] == [
            "BUILTIN\\Administratoren",
            "BUILTIN\\Benutzer",
        ]

    def test_duplicate_full_access_users_are_merged(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config(fullAccessUsers=[ADMINISTRATORS.display_name] * 2)

        # WHEN
        run_walker(config, provider)

        # THEN
        grants = provider.descriptors[user_data_root].grants
        assert [grant.principal for grant in grants] == [ADMINISTRATORS, USERS, CREATOR_OWNER]


class TestFatalErrors:
    def test_missing_root(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        tmp_path: Path,
    ) -> None:
        # GIVEN
        config = make_config(pathUserData=str(tmp_path / "does-not-exist"))

        # WHEN
        with pytest.raises(RootDirectoryNotFoundError) as raised:
            run_walker(config, provider)

        # THEN
        assert raised.value.exit_code == -10
        assert provider.writes == []

    def test_root_is_a_file(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config(pathUserData=str(user_data_root / "readme.txt"))

        # WHEN / THEN
        with pytest.raises(RootDirectoryNotFoundError):
            run_walker(config, provider)

    @pytest.mark.parametrize("domain_value", ["", "   "])
    def test_empty_domain(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        domain_value: str,
    ) -> None:
        # GIVEN
        config = make_config(domain=domain_value)

        # WHEN
        with pytest.raises(DomainNotSetError) as raised:
            run_walker(config, provider)

        # THEN
        assert raised.value.exit_code == -40
        assert provider.writes == []

    def test_missing_root_checked_before_domain(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        tmp_path: Path,
    ) -> None:
        # GIVEN
        config = make_config(pathUserData=str(tmp_path / "does-not-exist"), domain="")

        # WHEN / THEN
        with pytest.raises(RootDirectoryNotFoundError):
            run_walker(config, provider)

    def test_privilege_failure(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config()
        provider.privilege_error = PrivilegeError("SeRestorePrivilege is not held")

        # WHEN
        with pytest.raises(PrivilegeError):
            run_walker(config, provider)

        # THEN
        assert provider.writes == [user_data_root]


class TestUserDirectories:
    def test_every_node_owned_by_its_user(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
        user_sids: dict[str, str],
    ) -> None:
        # GIVEN
        config = make_config()

        # WHEN
        run_walker(config, provider)

        # THEN
        for name in USER_NAMES:
            for path in user_tree(user_data_root / name):
                descriptor = provider.descriptors[path]
                assert descriptor.owner == CanonicalIdentity(sid=user_sids[name]), path
                assert not descriptor.protected, path
                assert descriptor.explicit_grants == [], path
                assert descriptor.inherited_grants != [], path

    def test_summary(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
    ) -> None:
        # GIVEN
        config = make_config()

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert summary == WalkSummary(
            identities_processed=len(USER_NAMES),
            directories_rewritten=len(USER_NAMES) * len(USER_DIRECTORIES),
            files_rewritten=len(USER_NAMES) * len(USER_FILES),
        )

    def test_files_directly_below_root_are_ignored(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config()

        # WHEN
        run_walker(config, provider)

        # THEN
        assert user_data_root / "readme.txt" not in provider.writes

    def test_user_directories_processed_in_name_order(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config()

        # WHEN
        run_walker(config, provider)

        # THEN
        user_dirs = [path for path in provider.writes if path.parent == user_data_root]
        assert user_dirs == [user_data_root / name for name in sorted(USER_NAMES)]

    def test_directories_rewritten_before_files(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config()
        user_dir = user_data_root / "alice"

        # WHEN
        run_walker(config, provider)

        # THEN
        assert provider.written_below(user_dir) == [
            user_dir,
            user_dir / "Documents",
            user_dir / "Documents" / "Archive",
            user_dir / "notes.txt",
            user_dir / "Documents" / "report.txt",
            user_dir / "Documents" / "summary.txt",
            user_dir / "Documents" / "Archive" / "old.txt",
        ]

    def test_idempotent(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
    ) -> None:
        # GIVEN
        config = make_config()
        run_walker(config, provider)
        after_first_run = provider.snapshot()

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert provider.snapshot() == after_first_run
        assert summary.failures == 0

    def test_privileges_enabled_once_before_user_directories(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
    ) -> None:
        # GIVEN
        config = make_config()

        # WHEN
        run_walker(config, provider)

        # THEN
        assert provider.privilege_calls == 1

    def test_debug_logs_every_node(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # GIVEN
        caplog.set_level(logging.DEBUG)
        config = make_config(debug=True)

        # WHEN
        run_walker(config, provider)

        # THEN
        logged = {
            record.msg.filepath
            for record in caplog.records
            if isinstance(record.msg, FilesystemLogEvent)
        }
        assert logged == {
            str(path) for name in USER_NAMES for path in user_tree(user_data_root / name)
        }


class TestSkipAndResume:
    def test_exceptions_are_skipped(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config(exceptions=["bob"])

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert provider.written_below(user_data_root / "bob") == []
        assert provider.descriptors.get(user_data_root / "bob") is None
        assert summary.identities_skipped == 1
        assert summary.identities_processed == len(USER_NAMES) - 1

    def test_start_from(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config(startFrom="carol")

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert provider.written_below(user_data_root / "alice") == []
        assert provider.written_below(user_data_root / "bob") == []
        assert provider.written_below(user_data_root / "carol") != []
        assert provider.written_below(user_data_root / "dave") != []
        assert summary.identities_not_reached == 2
        assert summary.identities_processed == 2

    def test_start_from_on_the_command_line(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config(["--start-from", "dave"], startFrom="bob")

        # WHEN
        run_walker(config, provider)

        # THEN
        user_dirs = [path for path in provider.writes if path.parent == user_data_root]
        assert user_dirs == [user_data_root / "dave"]

    def test_start_from_and_exceptions(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config(startFrom="bob", exceptions=["alice", "carol"])

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        user_dirs = [path for path in provider.writes if path.parent == user_data_root]
        assert user_dirs == [user_data_root / "bob", user_data_root / "dave"]
        assert summary.identities_skipped == 2
        assert summary.identities_not_reached == 0

    def test_start_from_not_found(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # GIVEN
        config = make_config(startFrom="zoe")

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert provider.writes == [user_data_root]
        assert summary.identities_not_reached == len(USER_NAMES)
        assert any(
            record.levelno == logging.WARNING and "zoe" in record.getMessage()
            for record in caplog.records
        )


class TestFailureIsolation:
    def test_failed_file_does_not_stop_the_run(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # GIVEN
        config = make_config()
        failing = user_data_root / "bob" / "Documents" / "report.txt"
        provider.failing_paths.add(failing)

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert failing not in provider.descriptors
        for name in USER_NAMES:
            for path in user_tree(user_data_root / name):
                if path != failing:
                    assert path in provider.descriptors, path
        assert summary.failures == 1
        assert summary.files_rewritten == len(USER_NAMES) * len(USER_FILES) - 1
        errors = [record for record in caplog.records if record.levelno == logging.ERROR]
        assert len(errors) == 1
        assert isinstance(errors[0].msg, FilesystemLogEvent)
        assert errors[0].msg.filepath == str(failing)
        assert "path might be too long" in errors[0].getMessage()

    def test_failed_directory_does_not_stop_the_run(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config()
        failing = user_data_root / "alice" / "Documents"
        provider.failing_paths.add(failing)

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert failing not in provider.descriptors
        assert user_data_root / "alice" / "Documents" / "Archive" in provider.descriptors
        assert user_data_root / "alice" / "Documents" / "report.txt" in provider.descriptors
        assert summary.failures == 1

    def test_failed_user_directory_abandons_that_user(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
    ) -> None:
        # GIVEN
        config = make_config()
        provider.failing_paths.add(user_data_root / "bob")

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert provider.written_below(user_data_root / "bob") == []
        assert provider.written_below(user_data_root / "carol") != []
        assert summary.identities_processed == len(USER_NAMES) - 1
        assert summary.failures == 1

    def test_unresolvable_user(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # GIVEN
        ghost = user_data_root / "ghost"
        (ghost / "Documents").mkdir(parents=True)
        (ghost / "Documents" / "left-behind.txt").write_text("boo")
        config = make_config()

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert provider.written_below(ghost) == []
        assert summary.identities_unresolved == 1
        assert summary.identities_processed == len(USER_NAMES)
        warnings = [
            record.msg
            for record in caplog.records
            if record.levelno == logging.WARNING and isinstance(record.msg, IdentityLogEvent)
        ]
        assert len(warnings) == 1
        assert warnings[0].account == "ghost"
        assert warnings[0].realm == "CORP"
        assert "ghost" in warnings[0].getMessage()

    def test_file_removed_after_listing(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # GIVEN
        config = make_config()
        user_dir = user_data_root / "carol"
        removed = user_dir / "Documents" / "summary.txt"
        # Both files are listed together; the second one is gone by the time it is reached
        provider.delete_after_write[user_dir / "Documents" / "report.txt"] = removed

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert removed not in provider.descriptors
        assert user_dir / "Documents" / "Archive" / "old.txt" in provider.descriptors
        assert summary.files_vanished == 1
        assert summary.failures == 0
        assert [record for record in caplog.records if record.levelno >= logging.ERROR] == []

    def test_file_removed_while_rewriting(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # GIVEN
        config = make_config()
        removed = user_data_root / "dave" / "notes.txt"
        provider.vanish_on_read.add(removed)

        # WHEN
        summary = run_walker(config, provider)

        # THEN
        assert removed not in provider.descriptors
        assert summary.files_vanished == 1
        assert summary.failures == 0
        assert [record for record in caplog.records if record.levelno >= logging.ERROR] == []

    def test_file_with_long_path_is_rewritten(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
        user_sids: dict[str, str],
    ) -> None:
        # GIVEN
        config = make_config()
        long_file = user_data_root / "bob" / "Documents" / ("%s.txt" % ("x" * 200))
        long_file.write_text("long")
        path_exists = Path.exists

        def exists_without_long_paths(self: Path, *args, **kwargs) -> bool:
            # Short path APIs do not see paths of MAX_PATH characters or more
            if self == long_file:
                return False
            return path_exists(self, *args, **kwargs)

        # WHEN
        with patch.object(Path, "exists", new=exists_without_long_paths):
            summary = run_walker(config, provider)

        # THEN
        assert long_file in provider.descriptors
        assert provider.descriptor_of(long_file).owner == CanonicalIdentity(sid=user_sids["bob"])
        assert summary.files_vanished == 0
        assert summary.files_rewritten == len(USER_NAMES) * len(USER_FILES) + 1

    def test_unlistable_directory_is_reported_once(
        self,
        make_config: Callable[..., Configuration],
        provider: InMemorySecurityProvider,
        user_data_root: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # GIVEN
        config = make_config()
        unlistable = user_data_root / "alice" / "Documents" / "Archive"

        def walk(top, onerror=None):
            for dirpath, dirnames, filenames in os.walk(top, onerror=onerror):
                if Path(dirpath) == unlistable:
                    onerror(PermissionError(errno.EACCES, "Access is denied", str(unlistable)))
                    continue
                yield dirpath, dirnames, filenames

        # WHEN
        with patch.object(walker_mod, "os") as os_mock:
            os_mock.walk.side_effect = walk
            summary = run_walker(config, provider)

        # THEN
        assert unlistable in provider.descriptors
        assert unlistable / "old.txt" not in provider.descriptors
        assert user_data_root / "bob" / "Documents" / "Archive" / "old.txt" in provider.descriptors
        assert summary.failures == 1
        errors = [record for record in caplog.records if record.levelno == logging.ERROR]
        assert len(errors) == 1
        assert isinstance(errors[0].msg, FilesystemLogEvent)
        assert errors[0].msg.subtype == FilesystemLogEventOp.ENUMERATE.value
        assert errors[0].msg.filepath == str(unlistable)

# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from user_data_permissions.startup.config import Configuration
from user_data_permissions.startup.config_file import CONFIG_PATH_OVERRIDE_ENV_VAR

from security_fakes import (
    ADMINISTRATORS,
    CREATOR_OWNER,
    SYSTEM,
    USER_DIRECTORIES,
    USER_FILES,
    USER_NAMES,
    USERS,
    InMemorySecurityProvider,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keeps settings from the environment of the test run out of the tests"""
    for name in list(os.environ):
        if name.upper().startswith("USER_DATA_PERMISSIONS_"):
            monkeypatch.delenv(name)


@pytest.fixture
def domain() -> str:
    return "CORP"


@pytest.fixture
def user_sids() -> dict[str, str]:
    return {name: f"S-1-5-21-1000-{1101 + i}" for i, name in enumerate(USER_NAMES)}


@pytest.fixture
def accounts(domain: str, user_sids: dict[str, str]) -> dict[str, str]:
    names = {
        ADMINISTRATORS.display_name: ADMINISTRATORS.sid,
        SYSTEM.display_name: SYSTEM.sid,
        USERS.display_name: USERS.sid,
        CREATOR_OWNER.display_name: CREATOR_OWNER.sid,
    }
    names.update({f"{domain}\\{name}": sid for name, sid in user_sids.items()})
    return names


@pytest.fixture
def provider(accounts: dict[str, str]) -> InMemorySecurityProvider:
    return InMemorySecurityProvider(accounts)


@pytest.fixture
def user_data_root(tmp_path: Path) -> Path:
    """A user data root holding one directory tree per user, plus a stray file"""
    root = tmp_path / "UserData"
    root.mkdir()
    (root / "readme.txt").write_text("not a user")
    for name in USER_NAMES:
        user_dir = root / name
        for rel in USER_DIRECTORIES:
            (user_dir / rel).mkdir(parents=True)
        for rel in USER_FILES:
            (user_dir / rel).write_text(f"{name}: {rel}")
    return root


@pytest.fixture
def config_values(user_data_root: Path, domain: str) -> dict[str, Any]:
    return {
        "pathUserData": str(user_data_root),
        "domain": domain,
        "fullAccessUsers": [ADMINISTRATORS.display_name, SYSTEM.display_name],
        "defaultGroup": USERS.display_name,
        "ownersGroup": CREATOR_OWNER.display_name,
    }


@pytest.fixture
def write_config(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Callable[[dict[str, Any]], Path]:
    """Returns a function that writes a configuration file and points the tool at it"""

    def write(values: dict[str, Any]) -> Path:
        config_path = tmp_path / "config.toml"
        # JSON strings, arrays and booleans are also valid TOML values
        lines = [f"{key} = {json.dumps(value)}" for key, value in values.items()]
        config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        monkeypatch.setenv(CONFIG_PATH_OVERRIDE_ENV_VAR, str(config_path))
        return config_path

    return write


@pytest.fixture
def make_config(
    config_values: dict[str, Any],
    write_config: Callable[[dict[str, Any]], Path],
) -> Callable[..., Configuration]:
    """Returns a function that loads a Configuration from a file holding the default values with
    the given keys replaced. A value of None removes the key."""

    def make(cli_args: Optional[list[str]] = None, **overrides: Any) -> Configuration:
        values = {**config_values, **overrides}
        write_config({key: value for key, value in values.items() if value is not None})
        return Configuration.load(cli_args or [])

    return make

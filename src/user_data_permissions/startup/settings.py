# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Tuple, Type

from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .config_file import ConfigFile

# Principals of the root policy when none are configured. These are the built-in English
# names; systems in another language name them differently.
DEFAULT_FULL_ACCESS_USERS = ["BUILTIN\\Administrators", "NT AUTHORITY\\SYSTEM"]
DEFAULT_GROUP = "BUILTIN\\Users"
DEFAULT_OWNERS_GROUP = "CREATOR OWNER"


class ConfigFileSettingsSource(PydanticBaseSettingsSource):
    """Settings source returning the values of the configuration file"""

    def __init__(self, settings_cls: Type[BaseSettings], config_file: ConfigFile) -> None:
        super().__init__(settings_cls)
        self._values = config_file.as_settings()

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self._values.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return dict(self._values)


class PermissionSettings(BaseSettings):
    """Model class for the settings. This defines all of the fields and their validation as
    well as the settings sources and their priority order of:

    1. command-line arguments
    2. environment variables (USER_DATA_PERMISSIONS_<FIELD NAME>)
    3. config file

    Parameters
    ----------
    path_user_data : Path
        The user data root. Every directory directly below it is named after an account.
    domain : str
        The domain that the names of the user directories are looked up in
    full_access_users : list[str]
        Users and groups with full control of the root and everything below it
    default_group : str
        Group allowed to list the root and create directories in it
    owners_group : str
        Principal with full control of everything below the root, but not the root itself
    skip_parent_permissions : bool
        If true, then the permissions of the root are left as they are
    exceptions : list[str]
        Names of user directories that are not processed
    start_from : str
        If set, user directories sorted before this one are not processed
    debug : bool
        Whether to log every file and directory that is processed
    logs_dir : Path
        If set, the log is also written to a daily rotated file in this directory
    """

    model_config = SettingsConfigDict(env_prefix="USER_DATA_PERMISSIONS_")

    path_user_data: Path
    domain: str = ""
    full_access_users: list[str] = Field(default_factory=lambda: list(DEFAULT_FULL_ACCESS_USERS))
    default_group: str = Field(min_length=1, default=DEFAULT_GROUP)
    owners_group: str = Field(min_length=1, default=DEFAULT_OWNERS_GROUP)
    skip_parent_permissions: bool = False
    exceptions: list[str] = Field(default_factory=list)
    start_from: Optional[str] = None
    debug: bool = False
    logs_dir: Optional[Path] = None

    @field_validator("full_access_users", "exceptions")
    @classmethod
    def _no_blank_names(cls, value: list[str]) -> list[str]:
        if any(not name.strip() for name in value):
            raise ValueError("names must not be empty")
        return value

    @field_validator("default_group", "owners_group")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """This function is called by pydantic to determine the settings sources used and their
        priority order.

        Below, we define the order as:

            1. Command-line arguments (passed in via the construct)
            2. Environment variables
            3. Configuration file

        Raises
        ------
        ConfigurationError
            If the configuration file does not exist or is not valid
        """
        return (
            init_settings,
            env_settings,
            ConfigFileSettingsSource(settings_cls, ConfigFile.load()),
        )

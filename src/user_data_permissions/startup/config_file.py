# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

from __future__ import annotations
from pathlib import Path
from typing import Any, Optional
import sys
import os

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

try:
    from tomllib import load as load_toml, TOMLDecodeError
except ModuleNotFoundError:
    from tomli import load as load_toml, TOMLDecodeError

from ..errors import ConfigurationError, ConfigurationNotFoundError

# Environment variable that overrides the configuration file path
CONFIG_PATH_OVERRIDE_ENV_VAR = "USER_DATA_PERMISSIONS_CONFIG"

# Default path for the configuration file keyed on the value of sys.platform
DEFAULT_CONFIG_PATH: dict[str, Path] = {
    "darwin": Path("/etc/user-data-permissions/config.toml"),
    "linux": Path("/etc/user-data-permissions/config.toml"),
    "win32": Path(os.path.expandvars(r"%PROGRAMDATA%/UserDataPermissions/config.toml")),
}


class ConfigFile(BaseModel):
    """The configuration file. It is a flat TOML table with camelCase keys
    (``pathUserData``, ``fullAccessUsers``, ...)."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    path_user_data: Optional[Path] = Field(alias="pathUserData", default=None)
    domain: Optional[str] = None
    full_access_users: Optional[list[str]] = Field(alias="fullAccessUsers", default=None)
    default_group: Optional[str] = Field(alias="defaultGroup", default=None)
    owners_group: Optional[str] = Field(alias="ownersGroup", default=None)
    skip_parent_permissions: Optional[bool] = Field(alias="skipParentPermissions", default=None)
    exceptions: Optional[list[str]] = None
    start_from: Optional[str] = Field(alias="startFrom", default=None)
    debug: Optional[bool] = None
    logs_dir: Optional[Path] = Field(alias="logsDir", default=None)

    @field_validator("full_access_users", "exceptions")
    @classmethod
    def _no_blank_names(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is not None and any(not name.strip() for name in value):
            raise ValueError("names must not be empty")
        return value

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> ConfigFile:
        if not config_path:
            config_path = cls.get_config_path()

        try:
            # File must be open in binary mode for tomli to ensure the file is utf-8
            with config_path.open(mode="rb") as fh:
                toml_doc = load_toml(fh)
        except FileNotFoundError as e:
            raise ConfigurationNotFoundError(
                f"Configuration file ({config_path}) does not exist"
            ) from e
        except TOMLDecodeError as toml_error:
            raise ConfigurationError(
                f"Configuration file ({config_path}) is not valid TOML: {toml_error}"
            ) from toml_error

        try:
            return cls.model_validate(toml_doc)
        except ValidationError as pydantic_error:
            raise ConfigurationError(
                f"Parsing errors loading configuration file ({config_path}):\n{str(pydantic_error)}"
            ) from pydantic_error

    @classmethod
    def get_config_path(cls) -> Path:
        override = os.environ.get(CONFIG_PATH_OVERRIDE_ENV_VAR)
        if override:
            return Path(override)
        try:
            return DEFAULT_CONFIG_PATH[sys.platform]
        except KeyError:
            raise NotImplementedError(f"Unsupported platform {sys.platform}") from None

    def as_settings(self) -> dict[str, Any]:
        """Returns the values set in the file, keyed by settings field name"""
        return self.model_dump(exclude_none=True)

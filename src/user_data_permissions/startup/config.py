# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

from __future__ import annotations

import logging as _logging
from pathlib import Path
from typing import Any, Optional, Sequence, cast

from pydantic import ValidationError

from ..errors import ConfigurationError, ConfigurationNotFoundError
from .cli_args import ParsedCommandLineArguments, get_argument_parser
from .config_file import CONFIG_PATH_OVERRIDE_ENV_VAR, ConfigFile
from .settings import PermissionSettings

_logger = _logging.getLogger(__name__)


class Configuration:
    """The effective configuration of a run

    Parameters
    ----------
    parsed_cli_args: ParsedCommandLineArguments
        The parsed command-line arguments
    """

    path_user_data: Path
    """The user data root"""
    domain: str
    """The domain that user directory names are looked up in"""
    full_access_users: list[str]
    default_group: str
    owners_group: str
    skip_parent_permissions: bool
    exceptions: frozenset[str]
    """Names of user directories that are not processed"""
    start_from: Optional[str]
    """Name of the user directory to start from"""
    debug: bool
    logs_dir: Optional[Path]
    """Directory of the log file, or None to log to the console only"""

    # Used to optimize the memory allocation and attribute lookup speed. Tells python to not create a dict
    # for the attributes.
    __slots__ = (
        "path_user_data",
        "domain",
        "full_access_users",
        "default_group",
        "owners_group",
        "skip_parent_permissions",
        "exceptions",
        "start_from",
        "debug",
        "logs_dir",
    )

    def __init__(
        self,
        parsed_cli_args: ParsedCommandLineArguments,
    ):
        settings_kwargs: dict[str, Any] = {}
        if parsed_cli_args.start_from is not None:
            settings_kwargs["start_from"] = parsed_cli_args.start_from
        if parsed_cli_args.skip_parent_permissions is not None:
            settings_kwargs["skip_parent_permissions"] = parsed_cli_args.skip_parent_permissions
        if parsed_cli_args.debug is not None:
            settings_kwargs["debug"] = parsed_cli_args.debug
        if parsed_cli_args.logs_dir is not None:
            settings_kwargs["logs_dir"] = parsed_cli_args.logs_dir.absolute()

        settings = PermissionSettings(**settings_kwargs)

        self.path_user_data = settings.path_user_data
        self.domain = settings.domain.strip()
        self.full_access_users = [name.strip() for name in settings.full_access_users]
        self.default_group = settings.default_group.strip()
        self.owners_group = settings.owners_group.strip()
        self.skip_parent_permissions = settings.skip_parent_permissions
        self.exceptions = frozenset(settings.exceptions)
        self.start_from = settings.start_from or None
        self.debug = settings.debug
        self.logs_dir = settings.logs_dir

        self._validate()

    def _validate(self) -> None:
        if self.start_from is not None and self.start_from in self.exceptions:
            raise ConfigurationError(
                f"The directory to start from ({self.start_from}) is also configured as an"
                " exception"
            )

    def log(self, logger: Optional[_logging.Logger] = None, level: int = _logging.DEBUG) -> None:
        """Emit logs that represent the effective Configuration.

        Arguments:
            logger: logging.Logger
                An optional logger to log the configuration to. If not specified, this uses
                the `user_data_permissions.startup.config` logger.
            level: int
                The logging level to use. This defaults to `DEBUG`.
        """
        if not logger:
            logger = _logger

        if logger.isEnabledFor(level):
            sep = "=" * 80
            logger.log(level, sep)
            logger.log(level, "Configuration".center(80))
            logger.log(level, sep)
            for key in Configuration.__slots__:
                value = getattr(self, key)
                logger.log(level, f"{key}={value}")
            logger.log(level, sep)

    @classmethod
    def load(
        cls,
        cli_args: Optional[Sequence[str]] = None,
    ) -> Configuration:
        """Loads the configuration.

        Arguments:
            cli_args: Sequence[str]
                The command-line arguments. If not specified, this defaults to
                using `sys.argv[1:]`.

        Returns:
            A `Configuration` object

        Raises:
            ConfigurationNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the configuration is not valid.
        """
        arg_parser = get_argument_parser()
        parsed_cli_args = cast(
            ParsedCommandLineArguments,
            arg_parser.parse_args(cli_args, namespace=ParsedCommandLineArguments()),
        )

        config_path = ConfigFile.get_config_path()
        if not config_path.is_file():
            raise ConfigurationNotFoundError(
                f"Configuration file {config_path} does not exist. Create it, or point the"
                f" {CONFIG_PATH_OVERRIDE_ENV_VAR} environment variable at one."
            )

        try:
            return Configuration(
                parsed_cli_args=parsed_cli_args,
            )
        except ValidationError as validation_error:
            from itertools import groupby

            msg = "Configuration is not valid. Validation errors:\n\n"
            for loc, entries in groupby(validation_error.errors(), lambda err: err["loc"]):
                loc_str = ".".join(str(component) for component in loc)
                msg += f"{loc_str}: "
                msg += ", ".join(entry["msg"] for entry in entries)
                msg += "\n"
            raise ConfigurationError(msg) from validation_error

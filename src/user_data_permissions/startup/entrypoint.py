# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

"""User data permissions entrypoint"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from ..errors import ConfigurationError, UserDataPermissionsError
from ..log_messages import LogRecordStringTranslationFilter, ToolInfoLogEvent
from ..security import SecurityProvider
from ..walker import PermissionsWalker
from .config import Configuration

__all__ = ["entrypoint"]
_logger = logging.getLogger(__name__)

LOG_FILE_NAME = "user-data-permissions.log"


def entrypoint(cli_args: Optional[list[str]] = None) -> None:
    """Entrypoint for the tool. Processes the configured user data root once and exits.

    Parameters
    ----------
    cli_args : Optional[list[str]]
        An optional sequence of command-line arguments to be parsed and applied to the
        configuration
    """
    try:
        config = Configuration.load(cli_args=cli_args)
    except ConfigurationError as e:
        # Logging is not configured yet
        sys.stderr.write(f"ERROR: {e}{os.linesep}")
        sys.exit(e.exit_code)

    try:
        _configure_base_logging(logs_dir=config.logs_dir, debug=config.debug)

        _logger.info("User data permissions starting")
        _logger.info(ToolInfoLogEvent())

        # Log the configuration (logs to DEBUG by default)
        config.log()

        walker = PermissionsWalker(config=config, provider=_get_security_provider())
        walker.run()
    except UserDataPermissionsError as e:
        _logger.critical(f"{e} -> exiting.")
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        _logger.critical("Interrupted -> exiting.")
        sys.exit(1)
    except Exception as e:
        _logger.critical(e, exc_info=True)
        sys.exit(1)
    finally:
        _logger.info("User data permissions exiting")


def _get_security_provider() -> SecurityProvider:
    if sys.platform != "win32":
        raise UserDataPermissionsError(
            f"Changing Windows owners and permissions is not supported on {sys.platform}"
        )
    from ..windows import WindowsSecurityProvider

    return WindowsSecurityProvider()


def _configure_base_logging(logs_dir: Optional[Path], debug: bool) -> None:
    """Configures the logger to write to the console and, optionally, a file"""
    root_logger = logging.getLogger()
    # Set the log level
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    translation_filter = LogRecordStringTranslationFilter()

    # Add quiet stderr output logger
    console_handler: logging.Handler
    try:
        from rich.logging import RichHandler
    except ImportError:
        console_handler = logging.StreamHandler(sys.stderr)
    else:  # pragma: no cover
        console_handler = RichHandler(rich_tracebacks=True, tracebacks_show_locals=debug)

    fmt_str = "[%(asctime)s][%(levelname)-8s] %(desc)s%(message)s"
    console_handler.formatter = logging.Formatter(fmt_str)
    root_logger.addHandler(console_handler)
    console_handler.addFilter(translation_filter)

    if logs_dir is None:
        return

    if not (logs_dir.exists() and logs_dir.is_dir()):
        raise ConfigurationError(f"The configured directory for logs does not exist:\n{logs_dir}")

    # Add rotating file handler with the same output
    rotating_file_handler = TimedRotatingFileHandler(
        logs_dir / LOG_FILE_NAME,
        # Daily rotation
        when="d",
        interval=1,
        encoding="utf-8",
    )
    rotating_file_handler.formatter = logging.Formatter(fmt_str)
    root_logger.addHandler(rotating_file_handler)
    rotating_file_handler.addFilter(translation_filter)

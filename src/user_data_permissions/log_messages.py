# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

"""Typed log events.

Every record the tool logs carries one of these events as its ``msg``. The event knows how to
render itself and contributes a short ``desc`` prefix (icon, type and subtype) that the console
and file formats print in front of the message.
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from getpass import getuser
from pathlib import Path
from types import MethodType
from typing import Any, Optional

from ._version import __version__


class BaseLogEvent:
    ti: Optional[str] = None
    """Icon printed around the type of the event"""
    type: Optional[str] = None
    subtype: Optional[str] = None
    exc_text: Optional[str] = None
    """Formatted traceback of the exception logged with the event, if any"""

    def desc(self) -> str:
        if self.type is None:
            return ""
        label = self.type if self.subtype is None else f"{self.type}.{self.subtype}"
        if self.ti is None:
            return f"{label} "
        return f"{self.ti} {label} {self.ti} "

    def getMessage(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        # Handlers without LogRecordStringTranslationFilter format the event with str()
        return self.getMessage()

    def with_exception(self, message: str) -> str:
        if not self.exc_text:
            return message
        return f"{message}\n{self.exc_text}"


class StringLogEvent(BaseLogEvent):
    """Wraps a plain string passed to one of the logger.<level>() methods"""

    msg: str

    def __init__(self, message: str) -> None:
        self.msg = message

    def getMessage(self) -> str:
        return self.with_exception(self.msg)


class ToolInfoLogEvent(BaseLogEvent):
    """Describes the interpreter, the installation and the account the tool runs under"""

    type = "ToolInfo"

    def asdict(self) -> dict[str, Any]:
        try:
            user = getuser()
        except Exception:
            # Best effort; the account name is informational only
            user = "UNKNOWN"
        return {
            "type": self.type,
            "platform": sys.platform,
            "python": {
                "interpreter": sys.executable,
                "version": sys.version.replace("\n", " - "),
            },
            "tool": {
                "version": __version__,
                "installedAt": str(Path(__file__).resolve().parent.parent),
                "runningAs": user,
            },
        }

    def getMessage(self) -> str:
        info = self.asdict()
        lines = [
            "",
            f"Python Interpreter: {info['python']['interpreter']}",
            f"Python Version: {info['python']['version']}",
            f"Platform: {info['platform']}",
            f"Version: {info['tool']['version']}",
            f"Installed at: {info['tool']['installedAt']}",
            f"Running as user: {info['tool']['runningAs']}",
        ]
        return self.with_exception("\n".join(lines))


class FilesystemLogEventOp(str, Enum):
    REWRITE = "Rewrite"
    SKIP = "Skip"
    ENUMERATE = "Enumerate"


class FilesystemLogEvent(BaseLogEvent):
    """For messages about a single file or directory"""

    ti = "💾"
    type = "FileSystem"
    msg: str
    filepath: str

    def __init__(self, *, op: FilesystemLogEventOp, filepath: str | Path, message: str) -> None:
        self.subtype = op.value
        self.filepath = str(filepath)
        self.msg = message

    def getMessage(self) -> str:
        return self.with_exception(f"{self.msg} [{self.filepath}]")


class IdentityLogEventOp(str, Enum):
    RESOLVE = "Resolve"
    NOT_FOUND = "NotFound"


class IdentityLogEvent(BaseLogEvent):
    """For messages related to looking up accounts and groups"""

    ti = "🔑"
    type = "Identity"
    msg: str
    account: str
    realm: Optional[str]

    def __init__(
        self,
        *,
        op: IdentityLogEventOp,
        account: str,
        realm: Optional[str] = None,
        message: str,
    ) -> None:
        self.subtype = op.value
        self.account = account
        self.realm = realm
        self.msg = message

    def getMessage(self) -> str:
        name = f"{self.realm}/{self.account}" if self.realm else self.account
        return self.with_exception(f"{self.msg} [{name}]")


def _event_message(record: logging.LogRecord) -> str:
    return record.msg.getMessage()


class LogRecordStringTranslationFilter(logging.Filter):
    """Turns every record into one whose ``msg`` is a BaseLogEvent.

    Plain string messages are formatted with their arguments and wrapped in a StringLogEvent.
    The record's getMessage() is redirected to the event, any exception is moved into the event
    and the ``desc`` attribute used by the log format is set.

    The filter modifies the record in place, so every handler that sees the record after the
    filter ran sees the translated record.
    """

    formatter = logging.Formatter()

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = StringLogEvent(record.getMessage())
            record.args = None
        if isinstance(record.msg, BaseLogEvent) and not hasattr(record, "getMessageReplaced"):
            record.getMessageReplaced = True
            record.getMessage = MethodType(_event_message, record)  # type: ignore

        if record.exc_info and record.exc_text is None and isinstance(record.msg, BaseLogEvent):
            record.msg.exc_text = self.formatter.formatException(record.exc_info)
            record.exc_info = None

        if not hasattr(record, "desc"):
            record.desc = record.msg.desc() if isinstance(record.msg, BaseLogEvent) else ""
        return True

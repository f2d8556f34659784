"""
Error handling for the sartwc control plane.

Every failure the IPC protocol reports to a client is raised internally as a
ControlError subclass and rendered into a single ``ERROR <reason>`` line by
the command dispatcher.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """
    Error codes for the control plane.

    Protocol errors (100-199):
    - malformed or oversized input, unknown commands

    Encoding errors (200-299):
    - percent-decoding failures

    Workspace errors (300-399):
    - rejected registry mutations

    Action errors (400-499):
    - unknown actions, missing arguments, failed execution
    """

    # Protocol errors (100-199)
    INVALID_COMMAND = 100
    USAGE = 101
    LINE_TOO_LONG = 102
    INTERNAL_ERROR = 199

    # Encoding errors (200-299)
    INVALID_PERCENT_ENCODING = 200

    # Workspace errors (300-399)
    INVALID_NAME = 300
    INVALID_INDEX = 301
    LAST_WORKSPACE = 302
    WORKSPACE_NOT_FOUND = 303

    # Action errors (400-499)
    UNKNOWN_ACTION = 400
    MISSING_ARGUMENT = 401
    ACTION_FAILED = 402


class ControlError(Exception):
    """Base exception for control plane errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize control error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable reason, sent to clients verbatim
            context: Additional context for logging
        """
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_line(self) -> str:
        """Render the error as a protocol response line."""
        return f"ERROR {self.message}\n"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for structured logging."""
        result: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.context:
            result["context"] = self.context
        return result


class ProtocolError(ControlError):
    """Malformed request line."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_COMMAND):
        super().__init__(code=code, message=message)


class EncodingError(ControlError):
    """Truncated or invalid %XX escape in client input."""

    def __init__(self, value: str, position: int):
        """
        Initialize encoding error.

        Args:
            value: The offending encoded text
            position: Offset of the bad escape
        """
        super().__init__(
            code=ErrorCode.INVALID_PERCENT_ENCODING,
            message="invalid percent-encoding",
            context={"value": value, "position": position}
        )
        self.position = position


class WorkspaceError(ControlError):
    """A registry mutation was rejected; nothing changed."""


class ActionNotFoundError(ControlError):
    """Action name is not known to the action executor."""

    def __init__(self, name: str):
        super().__init__(
            code=ErrorCode.UNKNOWN_ACTION,
            message="unknown action",
            context={"action": name}
        )


class MissingArgumentError(ControlError):
    """Action is known but a required argument was not supplied."""

    def __init__(self, name: str, argument: str):
        super().__init__(
            code=ErrorCode.MISSING_ARGUMENT,
            message="missing required argument",
            context={"action": name, "argument": argument}
        )

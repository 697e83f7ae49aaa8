"""
Error Handling Module
---------------------
Typed errors for the plan -> validate -> authorize -> execute pipeline.

Every failure the core can produce is an AgentError subclass carrying an
ErrorCategory. The step executor converts them to per-step strings; the
macro runner and the planner let them propagate.
"""

from enum import Enum, auto
from typing import Iterable, List, Optional
import logging


class ErrorCategory(Enum):
    """Categories of errors for handling decisions."""
    UNKNOWN_TOOL = auto()         # Step references an unregistered tool
    VALIDATION_ERROR = auto()     # Input or output failed its schema
    PATH_DENIED = auto()          # Path under a deny root
    PATH_NOT_ALLOWED = auto()     # Path outside every allow root
    CAPABILITIES_DENIED = auto()  # Tool needs capabilities the policy withholds
    CONFIRMATION_REJECTED = auto()
    PLAN_PARSE_ERROR = auto()     # Model output held no recoverable plan
    HANDLER_ERROR = auto()        # Tool implementation or spawned process failed
    NOT_FOUND = auto()            # Stored entity missing


class AgentError(Exception):
    """Base class for all pipeline errors."""

    category: ErrorCategory = ErrorCategory.HANDLER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.category.name}: {self.message})"


class UnknownTool(AgentError):
    category = ErrorCategory.UNKNOWN_TOOL

    def __init__(self, tool_name: str, where: str = ""):
        suffix = f" {where}" if where else ""
        super().__init__(f"Unknown tool{suffix}: {tool_name}")
        self.tool_name = tool_name


class ValidationError(AgentError):
    """
    Schema validation failure.

    Carries every violation found, not just the first. The message joins
    them so a single failed call surfaces the complete defect list.
    """
    category = ErrorCategory.VALIDATION_ERROR

    def __init__(self, violations: Iterable):
        self.violations = list(violations)
        message = "; ".join(str(v) for v in self.violations) or "Invalid input"
        super().__init__(message)


class PathDenied(AgentError):
    category = ErrorCategory.PATH_DENIED

    def __init__(self, path: str):
        super().__init__(f"Denied path: {path}")
        self.path = path


class PathNotAllowed(AgentError):
    category = ErrorCategory.PATH_NOT_ALLOWED

    def __init__(self, path: str):
        super().__init__(f"Path not allowed: {path}")
        self.path = path


class CapabilitiesDenied(AgentError):
    category = ErrorCategory.CAPABILITIES_DENIED

    def __init__(self, missing: Iterable[str]):
        self.missing: List[str] = sorted(str(c) for c in missing)
        super().__init__(f"Capabilities not allowed: {','.join(self.missing)}")


class ConfirmationRejected(AgentError):
    category = ErrorCategory.CONFIRMATION_REJECTED

    def __init__(self, tool_name: str, reason: str = "User rejected mutation."):
        super().__init__(reason)
        self.tool_name = tool_name


class PlanParseError(AgentError):
    category = ErrorCategory.PLAN_PARSE_ERROR

    def __init__(self, message: str = "Failed to parse plan JSON", raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class HandlerError(AgentError):
    category = ErrorCategory.HANDLER_ERROR

    def __init__(self, message: str, tool_name: str = ""):
        super().__init__(message)
        self.tool_name = tool_name


class MacroNotFound(AgentError):
    category = ErrorCategory.NOT_FOUND

    def __init__(self, name: str):
        super().__init__(f"Macro not found: {name}")
        self.name = name


_USER_MESSAGES = {
    ErrorCategory.UNKNOWN_TOOL: "The plan asked for a tool that doesn't exist.",
    ErrorCategory.VALIDATION_ERROR: "A step had malformed input or output.",
    ErrorCategory.PATH_DENIED: "That path is blocked by policy.",
    ErrorCategory.PATH_NOT_ALLOWED: "That path is outside the allowed folders.",
    ErrorCategory.CAPABILITIES_DENIED: "The policy doesn't grant the permissions that step needs.",
    ErrorCategory.CONFIRMATION_REJECTED: "The change was not confirmed, so nothing was done.",
    ErrorCategory.PLAN_PARSE_ERROR: "I couldn't understand the model's plan. Please try rephrasing.",
    ErrorCategory.HANDLER_ERROR: "The command couldn't be completed.",
    ErrorCategory.NOT_FOUND: "Nothing is stored under that name.",
}

_LOG_LEVELS = {
    ErrorCategory.VALIDATION_ERROR: logging.WARNING,
    ErrorCategory.PATH_DENIED: logging.WARNING,
    ErrorCategory.PATH_NOT_ALLOWED: logging.WARNING,
    ErrorCategory.CAPABILITIES_DENIED: logging.WARNING,
    ErrorCategory.CONFIRMATION_REJECTED: logging.INFO,
    ErrorCategory.PLAN_PARSE_ERROR: logging.WARNING,
}


def user_message(error: BaseException) -> str:
    """Generate a user-friendly message for an error."""
    if isinstance(error, AgentError):
        return _USER_MESSAGES.get(error.category, "An error occurred.")
    return "An unexpected error occurred."


def log_level_for(error: BaseException) -> int:
    """Severity to log an error at: denials are recoverable, failures are not."""
    if isinstance(error, AgentError):
        return _LOG_LEVELS.get(error.category, logging.ERROR)
    return logging.ERROR

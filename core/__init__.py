# Core module - data model, error kinds, policy engine and runtime
# Policy is enforced per invocation; nothing is cached between calls

from .errors import (
    AgentError, ErrorCategory, UnknownTool, ValidationError, PathDenied,
    PathNotAllowed, CapabilitiesDenied, ConfirmationRejected, PlanParseError,
    HandlerError, MacroNotFound, user_message,
)
from .types import (
    Capability, Platform, Policy, ExecutionContext, PlannedStep, Plan,
    StepResult, PlanResult, MacroStep, Macro, parse_capabilities,
)
from .policy import authorize_paths, authorize_tool

__all__ = [
    # Errors
    "AgentError", "ErrorCategory", "UnknownTool", "ValidationError",
    "PathDenied", "PathNotAllowed", "CapabilitiesDenied",
    "ConfirmationRejected", "PlanParseError", "HandlerError",
    "MacroNotFound", "user_message",
    # Types
    "Capability", "Platform", "Policy", "ExecutionContext", "PlannedStep",
    "Plan", "StepResult", "PlanResult", "MacroStep", "Macro",
    "parse_capabilities",
    # Policy
    "authorize_paths", "authorize_tool",
]

# Tools module - Tool registry, validation and execution
# Each tool: name, input/output schema, capabilities, mutate flag, handler
# This registry is the firewall between LLM and system

from .registry import ToolRegistry, ToolDescriptor, ToolInfo
from .validators import SchemaViolation, validate, is_valid, collect_violations
from .executor import ToolExecutor
from .macros import MacroRunner, register_macro_tools, run_shell_command

__all__ = [
    "ToolRegistry",
    "ToolDescriptor",
    "ToolInfo",
    "SchemaViolation",
    "validate",
    "is_valid",
    "collect_violations",
    "ToolExecutor",
    "MacroRunner",
    "register_macro_tools",
    "run_shell_command",
]

# Built-in tools - filesystem, search, OS integration and macros
# Store-backed tools are only registered when a store is given

from typing import Optional

from infra.store import Store

from ..executor import ToolExecutor
from ..macros import MacroRunner, register_macro_tools
from ..registry import ToolRegistry
from .filesystem import format_bytes, register_filesystem_tools
from .search import register_search_tools
from .system import register_system_tools


def register_builtin_tools(registry: ToolRegistry, store: Optional[Store] = None) -> ToolRegistry:
    """Populate a registry with every built-in tool and return it."""
    register_filesystem_tools(registry)
    register_system_tools(registry, store)
    if store is not None:
        register_search_tools(registry, store)
        register_macro_tools(registry, store, MacroRunner(ToolExecutor(registry)))
    return registry


__all__ = ["register_builtin_tools", "format_bytes"]

"""
Tool Registry
-------------
Capability-tagged catalogue of every operation a plan may invoke.
Each tool is unit-testable without the LLM.

This registry is the firewall between LLM and system: the planner only
sees what list() exposes, and the executor only runs what get() returns.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging
import threading

from core.types import ExecutionContext, parse_capabilities

ToolHandler = Callable[[Any, ExecutionContext], Any]

OPEN_OBJECT_SCHEMA: Dict[str, Any] = {"type": "object"}


@dataclass
class ToolDescriptor:
    """
    Tool definition with schemas and handler.

    Each tool defines:
    - Name and description
    - Input and output schemas
    - Capability tags and mutation flag
    - Handler taking (input, context)
    """
    name: str
    description: str
    handler: ToolHandler
    input_schema: Dict[str, Any] = field(default_factory=lambda: dict(OPEN_OBJECT_SCHEMA))
    output_schema: Dict[str, Any] = field(default_factory=lambda: dict(OPEN_OBJECT_SCHEMA))
    mutate: bool = False
    capabilities: frozenset = field(default_factory=frozenset)

    def __post_init__(self):
        self.mutate = bool(self.mutate)
        self.capabilities = parse_capabilities(self.capabilities)

    def info(self) -> "ToolInfo":
        return ToolInfo(
            name=self.name,
            description=self.description,
            mutate=self.mutate,
            capabilities=sorted(c.value for c in self.capabilities),
            input_schema=self.input_schema,
            output_schema=self.output_schema,
        )

    def __repr__(self) -> str:
        caps = ",".join(sorted(c.value for c in self.capabilities))
        return f"ToolDescriptor(name={self.name}, mutate={self.mutate}, caps=[{caps}])"


@dataclass(frozen=True)
class ToolInfo:
    """Registry metadata for one tool, without its handler."""
    name: str
    description: str
    mutate: bool
    capabilities: List[str]
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "mutate": self.mutate,
            "capabilities": list(self.capabilities),
            "inputSchema": self.input_schema,
            "outputSchema": self.output_schema,
        }


class ToolRegistry:
    """
    Registry for all available tools.

    Owned by the application root and passed to the planner and executor.
    Registration happens at startup; lookups are safe from any thread.
    """

    def __init__(self):
        self._tools: Dict[str, ToolDescriptor] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger("followme.tools.registry")

    def register(self, tool: ToolDescriptor) -> None:
        """Register a tool. An existing tool with the same name is replaced."""
        with self._lock:
            if tool.name in self._tools:
                self._logger.warning(f"Overwriting existing tool: {tool.name}")
            self._tools[tool.name] = tool
        self._logger.debug(f"Registered tool: {tool!r}")

    def tool(
        self,
        name: str,
        description: str,
        input_schema: Optional[Dict[str, Any]] = None,
        output_schema: Optional[Dict[str, Any]] = None,
        mutate: bool = False,
        capabilities: Iterable[str] = (),
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator registering a handler function as a tool."""
        def decorator(handler: ToolHandler) -> ToolHandler:
            self.register(ToolDescriptor(
                name=name,
                description=description,
                handler=handler,
                input_schema=input_schema or dict(OPEN_OBJECT_SCHEMA),
                output_schema=output_schema or dict(OPEN_OBJECT_SCHEMA),
                mutate=mutate,
                capabilities=capabilities,
            ))
            return handler
        return decorator

    def get(self, name: str) -> Optional[ToolDescriptor]:
        """Get a tool by name, or None."""
        return self._tools.get(name)

    def list(self) -> List[ToolInfo]:
        """Snapshot of all registered tools, handlers omitted."""
        return [t.info() for t in list(self._tools.values())]

    def names(self) -> List[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

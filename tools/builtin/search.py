"""
Index Search Tool
-----------------
Ranked full-text lookup against the store's document index.
"""

from typing import Any, Dict

from core.errors import HandlerError
from core.types import ExecutionContext
from infra.store import Store, StoreError

from ..registry import ToolDescriptor, ToolRegistry


def register_search_tools(registry: ToolRegistry, store: Store) -> None:

    def search_index(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        try:
            hits = store.search_documents(tool_input["query"], tool_input.get("limit", 50))
        except StoreError as e:
            raise HandlerError(e.args[0] if e.args else str(e), tool_name="search_index") from e
        context.log(f"search_index: {len(hits)} hits")
        return {"hits": hits}

    registry.register(ToolDescriptor(
        name="search_index",
        description="Search the local full-text index.",
        handler=search_index,
        capabilities=["search.read"],
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 1},
                "limit": {"type": "integer", "minimum": 1, "maximum": 200},
            },
            "required": ["query"],
            "additionalProperties": False,
        },
        output_schema={
            "type": "object",
            "properties": {
                "hits": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "path": {"type": "string"},
                            "snippet": {"type": "string"},
                        },
                        "required": ["path"],
                    },
                },
            },
            "required": ["hits"],
        },
    ))

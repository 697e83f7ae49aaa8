"""
OS Integration Tools
--------------------
Hotkeys, background services and file tags.

Hotkeys and services need a platform backend that is not wired up yet;
their handlers record the request and answer {"status": "pending_backend"}.
Tags are kept in the store when one is available.
"""

from typing import Any, Dict, Optional
import logging

from core.policy import authorize_paths
from core.types import ExecutionContext

from ..registry import ToolDescriptor, ToolRegistry

PENDING = {"status": "pending_backend"}

_STATUS_SCHEMA = {
    "type": "object",
    "properties": {"status": {"type": "string"}},
    "required": ["status"],
}

_logger = logging.getLogger("followme.tools.system")


def create_hotkey(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    context.log(
        f"Hotkey requested: {tool_input['combo']} -> {tool_input['action']}",
        backend=tool_input.get("backend", "auto"),
    )
    return dict(PENDING)


def create_service(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
    cwd = tool_input.get("cwd")
    if cwd:
        authorize_paths([cwd], context)
    context.log(f"Service requested: {tool_input['name']} ({tool_input['command']})")
    return dict(PENDING)


def register_system_tools(registry: ToolRegistry, store: Optional[Any] = None) -> None:

    registry.register(ToolDescriptor(
        name="create_hotkey",
        description="Register a global hotkey that triggers an action.",
        handler=create_hotkey,
        mutate=True,
        capabilities=["hotkeys.manage", "process.exec"],
        input_schema={
            "type": "object",
            "properties": {
                "combo": {"type": "string", "minLength": 1},
                "action": {"type": "string", "minLength": 1},
                "backend": {"type": "string", "enum": ["auto", "autohotkey", "skhd", "xbindkeys"]},
            },
            "required": ["combo", "action"],
            "additionalProperties": False,
        },
        output_schema=_STATUS_SCHEMA,
    ))

    registry.register(ToolDescriptor(
        name="create_service",
        description="Create a background service or startup task.",
        handler=create_service,
        mutate=True,
        capabilities=["services.manage", "process.exec"],
        input_schema={
            "type": "object",
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "command": {"type": "string", "minLength": 1},
                "args": {"type": "array", "items": {"type": "string"}},
                "runAtStartup": {"type": "boolean"},
                "cwd": {"type": "string", "nullable": True},
                "env": {"type": "object", "additionalProperties": {"type": "string"}},
            },
            "required": ["name", "command"],
            "additionalProperties": False,
        },
        output_schema=_STATUS_SCHEMA,
    ))

    @registry.tool(
        "tag_file",
        "Attach a tag to a file.",
        input_schema={
            "type": "object",
            "properties": {
                "file": {"type": "string", "minLength": 1},
                "tag": {"type": "string", "minLength": 1},
            },
            "required": ["file", "tag"],
            "additionalProperties": False,
        },
        output_schema=_STATUS_SCHEMA,
        mutate=True,
        capabilities=["tags.manage", "files.write"],
    )
    def tag_file(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        authorize_paths([tool_input["file"]], context)
        if store is None:
            _logger.debug("No store configured; tag not persisted")
            return dict(PENDING)
        store.add_tag(tool_input["file"], tool_input["tag"])
        return {"status": "ok"}

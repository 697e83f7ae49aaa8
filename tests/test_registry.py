"""
Tool Registry Tests
-------------------
Tests cover:
- Registration and lookup
- list() round-trip of metadata
- Re-registration replaces in place
- Capabilities are a closed set checked at registration
"""

import pytest

from core.types import Capability
from tools.registry import ToolDescriptor, ToolRegistry


def _noop(tool_input, context):
    return {}


class TestRegistration:
    """Tests for register/get."""

    def test_get_registered_tool(self, registry):
        """A registered tool is returned by get()."""
        tool = ToolDescriptor(name="echo", description="Echo", handler=_noop)
        registry.register(tool)

        assert registry.get("echo") is tool
        assert "echo" in registry
        assert len(registry) == 1

    def test_get_missing_returns_none(self, registry):
        assert registry.get("missing") is None

    def test_unknown_capability_rejected(self):
        """Typos in capability names fail at registration, not at policy time."""
        with pytest.raises(ValueError, match="Unknown capability"):
            ToolDescriptor(name="bad", description="", handler=_noop, capabilities=["files.reed"])

    def test_capabilities_coerced_to_enum(self):
        tool = ToolDescriptor(name="t", description="", handler=_noop, capabilities=["files.read"])
        assert tool.capabilities == frozenset({Capability.FILES_READ})

    def test_decorator_registers_handler(self, registry):
        @registry.tool("greet", "Say hello", mutate=True, capabilities=["process.exec"])
        def greet(tool_input, context):
            return {"greeting": "hello"}

        tool = registry.get("greet")
        assert tool.handler is greet
        assert tool.mutate is True
        assert tool.input_schema == {"type": "object"}


class TestList:
    """Tests for list() snapshots."""

    def test_list_round_trip(self, registry):
        """list() reports name, mutate and capabilities as registered."""
        registry.register(ToolDescriptor(
            name="mover",
            description="Move things",
            handler=_noop,
            mutate=True,
            capabilities=["files.write", "files.read"],
        ))

        [info] = [i for i in registry.list() if i.name == "mover"]
        assert info.mutate is True
        assert info.capabilities == ["files.read", "files.write"]

    def test_capabilities_default_empty(self, registry):
        registry.register(ToolDescriptor(name="plain", description="", handler=_noop))

        [info] = registry.list()
        assert info.capabilities == []
        assert info.mutate is False

    def test_list_omits_handler(self, registry):
        registry.register(ToolDescriptor(name="plain", description="d", handler=_noop))

        data = registry.list()[0].to_dict()
        assert "handler" not in data
        assert data["inputSchema"] == {"type": "object"}

    def test_reregistration_replaces(self, registry):
        """Registering the same name twice leaves one entry with the later fields."""
        registry.register(ToolDescriptor(name="dup", description="first", handler=_noop))
        registry.register(ToolDescriptor(
            name="dup", description="second", handler=_noop, mutate=True, capabilities=["tags.manage"],
        ))

        infos = [i for i in registry.list() if i.name == "dup"]
        assert len(infos) == 1
        assert infos[0].description == "second"
        assert infos[0].mutate is True
        assert infos[0].capabilities == ["tags.manage"]

"""
Policy Engine Tests
-------------------
Tests cover:
- Deny wins over allow
- Open by default (no policy, or empty lists)
- Component-boundary path matching
- Capability checks
- Confirmation of mutating tools
"""

import pytest

from core.errors import (
    CapabilitiesDenied, ConfirmationRejected, PathDenied, PathNotAllowed
)
from core.policy import authorize_paths, authorize_tool, is_under
from core.types import ExecutionContext
from tools.registry import ToolDescriptor


def _tool(mutate=False, capabilities=()):
    return ToolDescriptor(
        name="t", description="", handler=lambda i, c: {}, mutate=mutate, capabilities=capabilities,
    )


class TestPathAuthorization:

    def test_deny_wins_over_allow(self, make_context, tmp_path):
        """The same root in both lists denies paths under it."""
        root = str(tmp_path / "data")
        context = make_context(allow_paths=[root], deny_paths=[root])

        with pytest.raises(PathDenied):
            authorize_paths([str(tmp_path / "data" / "file.txt")], context)

    def test_empty_lists_are_open(self, make_context):
        context = make_context()
        authorize_paths(["/etc/hosts", "relative/file", "~/anything"], context)

    def test_no_policy_is_open(self, context):
        assert context.policy is None
        authorize_paths(["/etc/shadow"], context)

    def test_outside_allow_roots(self, make_context, tmp_path):
        context = make_context(allow_paths=[str(tmp_path / "docs")])

        authorize_paths([str(tmp_path / "docs" / "a.pdf")], context)
        with pytest.raises(PathNotAllowed):
            authorize_paths([str(tmp_path / "other" / "a.pdf")], context)

    def test_relative_paths_resolve_against_cwd(self, make_context, tmp_path):
        context = make_context(deny_paths=[str(tmp_path / "secret")])

        with pytest.raises(PathDenied):
            authorize_paths(["secret/key.pem"], context)

    def test_sibling_prefix_is_not_nested(self, tmp_path):
        """/data2 is not under /data."""
        assert not is_under(str(tmp_path / "data2" / "x"), str(tmp_path / "data"))
        assert is_under(str(tmp_path / "data" / "x"), str(tmp_path / "data"))
        assert is_under(str(tmp_path / "data"), str(tmp_path / "data"))

    def test_dotdot_cannot_escape_deny(self, make_context, tmp_path):
        context = make_context(deny_paths=[str(tmp_path / "secret")])

        with pytest.raises(PathDenied):
            authorize_paths([str(tmp_path / "public" / ".." / "secret" / "k")], context)


class TestCapabilities:

    def test_missing_capabilities_reported(self, make_context):
        context = make_context(allowed_capabilities=["files.read"])
        tool = _tool(capabilities=["files.read", "files.write", "files.delete"])

        with pytest.raises(CapabilitiesDenied) as exc_info:
            authorize_tool(tool, context)

        assert exc_info.value.missing == ["files.delete", "files.write"]
        assert exc_info.value.message == "Capabilities not allowed: files.delete,files.write"

    def test_subset_granted(self, make_context):
        context = make_context(allowed_capabilities=["files.read", "search.read"])
        authorize_tool(_tool(capabilities=["files.read"]), context)

    def test_empty_allowed_set_is_open(self, make_context):
        authorize_tool(_tool(capabilities=["process.exec"]), make_context())


class TestConfirmation:

    def test_rejected_confirmation(self, make_context):
        context = make_context(confirmer=lambda prompt, meta: False, require_confirmation=True)

        with pytest.raises(ConfirmationRejected):
            authorize_tool(_tool(mutate=True), context)

    def test_missing_confirmer_denies(self, make_context):
        context = make_context(require_confirmation=True)

        with pytest.raises(ConfirmationRejected):
            authorize_tool(_tool(mutate=True), context)

    def test_confirmer_error_denies(self, make_context):
        def broken(prompt, meta):
            raise RuntimeError("terminal closed")

        context = make_context(confirmer=broken, require_confirmation=True)

        with pytest.raises(ConfirmationRejected) as exc_info:
            authorize_tool(_tool(mutate=True), context)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_confirmer_receives_tool_metadata(self, make_context):
        calls = []

        def confirmer(prompt, meta):
            calls.append((prompt, meta))
            return True

        context = make_context(confirmer=confirmer, require_confirmation=True)
        authorize_tool(_tool(mutate=True, capabilities=["files.write"]), context)

        assert calls == [(
            "Execute mutating tool: t?",
            {"tool": "t", "capabilities": ["files.write"], "run_id": "test-run"},
        )]

    def test_read_only_tool_not_confirmed(self, make_context):
        def confirmer(prompt, meta):
            raise AssertionError("should not be asked")

        context = make_context(confirmer=confirmer, require_confirmation=True)
        authorize_tool(_tool(mutate=False), context)

    def test_confirmation_not_required(self, tmp_path):
        context = ExecutionContext(cwd=str(tmp_path))
        authorize_tool(_tool(mutate=True), context)

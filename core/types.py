"""
Core Types
----------
Data model shared by the registry, policy engine, planner and executor.

- Capability: closed set of permission tags a tool may declare
- Policy: allow/deny/confirmation rules for one execution
- ExecutionContext: ambient state threaded through every invocation
- Plan / PlannedStep / StepResult / PlanResult: unit of work and its outcome
- MacroStep / Macro: stored, replayable step sequences
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging
import os
import sys

from .errors import PlanParseError


class Capability(str, Enum):
    """Permission tags a tool declares and a policy may grant."""
    FILES_READ = "files.read"
    FILES_WRITE = "files.write"
    FILES_DELETE = "files.delete"
    PROCESS_EXEC = "process.exec"
    HOTKEYS_MANAGE = "hotkeys.manage"
    SERVICES_MANAGE = "services.manage"
    TAGS_MANAGE = "tags.manage"
    MACROS_MANAGE = "macros.manage"
    ARCHIVE_MANAGE = "archive.manage"
    SEARCH_READ = "search.read"

    def __str__(self) -> str:
        return self.value


ALL_CAPABILITIES = frozenset(Capability)


class Platform(str, Enum):
    WIN32 = "win32"
    DARWIN = "darwin"
    LINUX = "linux"

    @classmethod
    def current(cls) -> "Platform":
        if sys.platform.startswith("win"):
            return cls.WIN32
        if sys.platform == "darwin":
            return cls.DARWIN
        return cls.LINUX


def parse_capabilities(values) -> frozenset:
    """
    Coerce capability names to Capability members.

    Raises ValueError on an unknown name so a typo fails fast instead of
    silently matching nothing.
    """
    result = set()
    for value in values or ():
        try:
            result.add(Capability(value))
        except ValueError:
            raise ValueError(f"Unknown capability: {value!r}") from None
    return frozenset(result)


@dataclass
class Policy:
    """
    Authorization configuration for one context.

    Deny always wins over allow. An empty list means "no restriction from
    that list", not "deny all".
    """
    allow_paths: List[str] = field(default_factory=list)
    deny_paths: List[str] = field(default_factory=list)
    allowed_capabilities: frozenset = field(default_factory=frozenset)
    require_confirmation: bool = False

    def __post_init__(self):
        self.allowed_capabilities = parse_capabilities(self.allowed_capabilities)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Policy":
        """Build from camelCase wire names or snake_case keys."""
        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        return cls(
            allow_paths=list(pick("allow_paths", "allowPaths", default=[])),
            deny_paths=list(pick("deny_paths", "denyPaths", default=[])),
            allowed_capabilities=pick("allowed_capabilities", "allowedCapabilities", default=[]),
            require_confirmation=bool(pick("require_confirmation", "requireConfirmation", default=False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowPaths": list(self.allow_paths),
            "denyPaths": list(self.deny_paths),
            "allowedCapabilities": sorted(c.value for c in self.allowed_capabilities),
            "requireConfirmation": self.require_confirmation,
        }


Logger = Callable[..., None]
Confirmer = Callable[[str, Dict[str, Any]], bool]

_module_logger = logging.getLogger("followme.core.context")


def _default_logger(message: str, meta: Optional[Dict[str, Any]] = None) -> None:
    _module_logger.info(message)


@dataclass
class ExecutionContext:
    """
    Ambient state for one top-level request.

    Shared read-mostly across all steps of one plan; never persisted.
    """
    cwd: str = field(default_factory=os.getcwd)
    platform: Platform = field(default_factory=Platform.current)
    logger: Logger = _default_logger
    confirmer: Optional[Confirmer] = None
    policy: Optional[Policy] = None
    user_prompt: Optional[str] = None
    run_id: Optional[str] = None

    def log(self, message: str, **meta: Any) -> None:
        """Forward a progress message to the sink. Sink failures are not fatal."""
        try:
            self.logger(message, meta or None)
        except Exception as e:
            _module_logger.warning(f"Context logger failed: {e}")


@dataclass
class PlannedStep:
    """One tool invocation inside a plan."""
    tool: str
    input: Any = field(default_factory=dict)
    rationale: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "PlannedStep":
        if not isinstance(data, dict):
            raise PlanParseError(f"Plan step must be an object, got {type(data).__name__}")
        tool = data.get("tool")
        return cls(
            tool=tool if isinstance(tool, str) else str(tool),
            input=data.get("input", {}),
            rationale=data.get("rationale"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {"tool": self.tool, "input": self.input}
        if self.rationale is not None:
            out["rationale"] = self.rationale
        return out


@dataclass
class Plan:
    """Ordered tool invocations. Order is execution order; may be empty."""
    summary: str = ""
    steps: List[PlannedStep] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "Plan":
        if not isinstance(data, dict):
            raise PlanParseError(f"Plan must be a JSON object, got {type(data).__name__}")
        steps = data.get("steps") or []
        if not isinstance(steps, list):
            raise PlanParseError("Plan 'steps' must be an array")
        summary = data.get("summary", "")
        return cls(
            summary=summary if isinstance(summary, str) else str(summary),
            steps=[PlannedStep.from_dict(s) for s in steps],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"summary": self.summary, "steps": [s.to_dict() for s in self.steps]}


@dataclass
class StepResult:
    """Outcome of one step: output on success, error on failure."""
    step: Any
    output: Any = None
    error: Optional[str] = None
    execution_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        step = self.step.to_dict() if hasattr(self.step, "to_dict") else self.step
        if self.success:
            return {"step": step, "output": self.output}
        return {"step": step, "error": self.error}

    def __repr__(self) -> str:
        status = "✓" if self.success else "✗"
        name = getattr(self.step, "tool", None) or getattr(self.step, "command", "?")
        return f"StepResult({status} {name}: {self.output if self.success else self.error})"


@dataclass
class PlanResult:
    """A plan and one result per step, in step order."""
    plan: Plan
    results: List[StepResult] = field(default_factory=list)

    @property
    def failed(self) -> List[StepResult]:
        return [r for r in self.results if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class MacroStep:
    """
    Stored macro step: a tool invocation or a raw shell command.

    kind == "tool"  uses tool + input
    kind == "shell" uses command + optional cwd
    """
    kind: str
    tool: Optional[str] = None
    input: Any = None
    command: Optional[str] = None
    cwd: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MacroStep":
        kind = data.get("kind")
        if kind == "tool":
            return cls(kind="tool", tool=data["tool"], input=data.get("input", {}))
        if kind == "shell":
            return cls(kind="shell", command=data["command"], cwd=data.get("cwd"))
        raise ValueError(f"Unknown macro step kind: {kind!r}")

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == "tool":
            return {"kind": "tool", "tool": self.tool, "input": self.input}
        out = {"kind": "shell", "command": self.command}
        if self.cwd is not None:
            out["cwd"] = self.cwd
        return out


@dataclass
class Macro:
    """A named, persisted, replayable step sequence."""
    name: str
    steps: List[MacroStep] = field(default_factory=list)
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "steps": [s.to_dict() for s in self.steps],
            "updated_at": self.updated_at.isoformat(),
        }

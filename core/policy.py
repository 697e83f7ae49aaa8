"""
Policy Engine
-------------
Per-invocation authorization of path access and tool invocation.

Rules:
- No policy on the context means no restriction
- Deny paths are checked before allow paths; deny always wins
- An empty list imposes no restriction (open by default)
- Mutating tools need a confirmer answer when the policy demands it
- Nothing is cached; every call is a pure function of its inputs
"""

from pathlib import Path
from typing import Iterable, Optional
import logging
import os

from .errors import (
    CapabilitiesDenied, ConfirmationRejected, PathDenied, PathNotAllowed
)
from .types import ExecutionContext

_logger = logging.getLogger("followme.core.policy")


def resolve_path(path: str, base: Optional[str] = None) -> str:
    """Absolute, normalized form of a path, relative paths taken from base."""
    p = Path(os.path.expanduser(str(path)))
    if not p.is_absolute():
        p = Path(base or os.getcwd()) / p
    return os.path.normpath(str(p.resolve()))


def is_under(path: str, root: str, base: Optional[str] = None) -> bool:
    """
    True if path equals root or is nested under it.

    Matching is on whole path components, so /data2 is not under /data.
    """
    p = resolve_path(path, base)
    r = resolve_path(root, base)
    if p == r:
        return True
    prefix = r if r.endswith(os.sep) else r + os.sep
    return p.startswith(prefix)


def authorize_paths(targets: Iterable[str], context: ExecutionContext) -> None:
    """
    Check every target path against the context policy.

    Raises PathDenied if a target is under a deny root, PathNotAllowed if
    allow roots are configured and the target is under none of them.
    """
    policy = context.policy
    if policy is None:
        return

    for target in targets:
        if any(is_under(target, root, context.cwd) for root in policy.deny_paths):
            _logger.warning(f"Path denied: {target} | run_id={context.run_id or 'N/A'}")
            raise PathDenied(str(target))

        if policy.allow_paths and not any(
            is_under(target, root, context.cwd) for root in policy.allow_paths
        ):
            _logger.warning(f"Path not allowed: {target} | run_id={context.run_id or 'N/A'}")
            raise PathNotAllowed(str(target))


def authorize_tool(tool, context: ExecutionContext) -> None:
    """
    Authorize one tool invocation.

    1. Every declared capability must be in the allowed set (if one is set).
    2. A mutating tool under require_confirmation must be confirmed.
       The confirmer is awaited before the handler runs; no confirmer
       means the mutation is denied.
    """
    policy = context.policy
    if policy is None:
        return

    if policy.allowed_capabilities:
        missing = set(tool.capabilities) - set(policy.allowed_capabilities)
        if missing:
            error = CapabilitiesDenied(missing)
            _logger.warning(
                f"Authority decision: CAPABILITIES_DENIED | tool={tool.name} | "
                f"missing={','.join(error.missing)} | run_id={context.run_id or 'N/A'}"
            )
            raise error

    if tool.mutate and policy.require_confirmation:
        _confirm(tool, context)

    _logger.info(
        f"Authority decision: GRANTED | tool={tool.name} | run_id={context.run_id or 'N/A'}"
    )


def _confirm(tool, context: ExecutionContext) -> None:
    if context.confirmer is None:
        _logger.warning(f"No confirmer available for mutating tool {tool.name}")
        raise ConfirmationRejected(tool.name, "Confirmation required but no confirmer is available.")

    prompt = f"Execute mutating tool: {tool.name}?"
    meta = {
        "tool": tool.name,
        "capabilities": sorted(c.value for c in tool.capabilities),
        "run_id": context.run_id,
    }
    _logger.info(f"Requesting confirmation for {tool.name}")

    try:
        approved = context.confirmer(prompt, meta)
    except Exception as e:
        _logger.error(f"Confirmation callback error: {e}")
        raise ConfirmationRejected(tool.name, f"Confirmation failed: {e}") from e

    if not approved:
        _logger.info(f"User denied {tool.name}")
        raise ConfirmationRejected(tool.name)

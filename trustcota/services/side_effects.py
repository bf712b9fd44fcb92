"""
trustcota/services/side_effects.py

Best-effort side effects (AI analysis, e-mail notifications).

A side effect runs after the primary state change has been persisted. Its
failure is logged and reported in its own SideEffectResult; it never raises
into the caller and never rolls back the primary operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class SideEffectResult:
    name: str
    ok: bool
    value: Any = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"name": self.name, "ok": self.ok, "error": self.error}


@dataclass
class TransitionResult:
    """Outcome of a lifecycle transition: the persisted entity plus side-effect reports."""

    entity: Any
    side_effects: List[SideEffectResult] = field(default_factory=list)

    @property
    def failed_side_effects(self) -> List[SideEffectResult]:
        return [r for r in self.side_effects if not r.ok]


def run_best_effort(name: str, task: Callable[..., Any], *args: Any, **kwargs: Any) -> SideEffectResult:
    """Run task(*args, **kwargs); any exception becomes a failed result."""
    try:
        value = task(*args, **kwargs)
    except Exception as exc:  # side-effect boundary: failures are reported, not raised
        logger.warning("Side effect %s failed: %s", name, exc, exc_info=True)
        return SideEffectResult(name=name, ok=False, error=str(exc) or exc.__class__.__name__)
    return SideEffectResult(name=name, ok=True, value=value)

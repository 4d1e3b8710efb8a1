# services/side_effects.py
"""
Best-effort downstream actions (notification, snapshot, verification token).

A side effect gets exactly one attempt. Its failure is logged and reported
in the returned result as a SideEffectWarning; it never propagates to the
primary operation and never rolls back the financial record that triggered it.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from errors import SideEffectWarning

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SideEffectResult:
     name: str
     ok: bool
     value: Any = None
     warning: Optional[SideEffectWarning] = None


def fire_and_forget(name: str, fn: Callable[..., Any], *args, **kwargs) -> SideEffectResult:
     """Run `fn` once; return its outcome instead of raising."""
     try:
          value = fn(*args, **kwargs)
     except Exception as exc:  # any collaborator failure is non-fatal here
          warning = SideEffectWarning(f"{name} failed: {type(exc).__name__}: {exc}")
          logger.warning("%s", warning)
          return SideEffectResult(name=name, ok=False, warning=warning)
     return SideEffectResult(name=name, ok=True, value=value)

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Dict[str, Any]], None]


class Progress:
    """
    Thin wrapper over an optional user callback. Events are dicts:
    {"phase": str, "pct": int, "msg": str, ...extra}.
    """
    def __init__(self, callback: Optional[ProgressCallback] = None) -> None:
        self._cb = callback

    def emit(self, phase: str, pct: float = 0, msg: str = "", **extra: Any) -> None:
        if self._cb is None:
            return
        evt: Dict[str, Any] = {"phase": phase, "pct": int(max(0, min(100, pct))), "msg": msg}
        evt.update(extra)
        try:
            self._cb(evt)
        except Exception:
            # callback errors are logged, never raised
            logger.warning("progress callback failed for %s", phase, exc_info=True)

    def step(self, phase: str, done: int, total: int, msg: str = "", **extra: Any) -> None:
        pct = 100 if total <= 0 else (done * 100) // total
        self.emit(phase, pct, msg, done=done, total=total, **extra)

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

EventSink = Callable[[Dict[str, Any]], None]


@dataclass(frozen=True)
class EventLog:
    """Append-only JSON-lines event file."""

    path: Path

    @classmethod
    def at(cls, path: str | Path) -> "EventLog":
        return cls(path=Path(path).expanduser())

    def log(self, event: Dict[str, Any]) -> None:
        event = dict(event)
        event.setdefault("ts", time.time())
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event, sort_keys=True) + "\n")


def event(
    *,
    action: str,
    ok: bool,
    details: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    e: Dict[str, Any] = {"action": action, "ok": ok}
    if details:
        e["details"] = details
    if error:
        e["error"] = error
    return e


def emit(
    sink: Optional[EventSink],
    *,
    action: str,
    ok: bool = True,
    details: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
) -> None:
    """Send one structured event to the sink and mirror it to logging."""

    e = event(action=action, ok=ok, details=details, error=error)
    if ok:
        logger.debug("EVENT %s %s", action, details or {})
    else:
        logger.error("%s failed: %s", action, error)
    if sink is not None:
        sink(e)

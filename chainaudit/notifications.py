"""
Progress-subscription channel.

Fire-and-forget, at-most-once delivery of progress snapshots to the run
owner.  Losing a notification is acceptable because progress can always be
reconstructed from persisted state, so delivery failures are logged and
never propagate into the orchestrator.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from chainaudit.orchestrator.progress import RunProgress

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressChannel(Protocol):
    def notify(self, owner: str, run_id: str, snapshot: "RunProgress") -> None:
        ...


class LoggingProgressChannel:
    """Writes every snapshot to the log; the default channel."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def notify(self, owner: str, run_id: str, snapshot: "RunProgress") -> None:
        logger.log(
            self.level,
            "Run %s [%s] %s: %d%% - %s",
            run_id, owner, snapshot.status, snapshot.overall_progress, snapshot.current_step,
        )


class CallbackProgressChannel:
    """Adapts a plain ``callback(owner, run_id, snapshot)`` (websocket push, SSE, ...)."""

    def __init__(self, callback: Callable[[str, str, "RunProgress"], None]) -> None:
        self._callback = callback

    def notify(self, owner: str, run_id: str, snapshot: "RunProgress") -> None:
        self._callback(owner, run_id, snapshot)


def safe_notify(
    channel: Optional[ProgressChannel],
    owner: str,
    run_id: str,
    snapshot: "RunProgress",
) -> bool:
    """Deliver *snapshot*; returns False (and logs) when delivery failed."""
    if channel is None:
        return False
    try:
        channel.notify(owner, run_id, snapshot)
    except Exception as exc:
        logger.warning("Progress notification for run %s failed: %s", run_id, exc)
        return False
    return True


__all__ = [
    "CallbackProgressChannel",
    "LoggingProgressChannel",
    "ProgressChannel",
    "safe_notify",
]

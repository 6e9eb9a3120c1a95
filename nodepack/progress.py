"""Per-artifact pipeline state tracking."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

import structlog

from nodepack.models.artifact import ArtifactState

log = structlog.get_logger(__name__)


@dataclass
class PhaseProgress:
    state: ArtifactState
    status: str = "running"  # "running" | "completed" | "failed" | "skipped"
    start_time: float | None = None
    end_time: float | None = None
    detail: str = ""
    error: str | None = None

    @property
    def duration(self) -> float | None:
        if self.start_time is not None and self.end_time is not None:
            return round(self.end_time - self.start_time, 3)
        return None


class ProgressTracker:
    """Walks one artifact through :class:`ArtifactState`.

    ``advance`` completes the running phase and opens the next one, so the
    recorded phases always reflect the order the pipeline actually took.
    """

    def __init__(self, artifact: str) -> None:
        self.artifact = artifact
        self.state = ArtifactState.IDLE
        self.phases: list[PhaseProgress] = []
        self.callbacks: list[Callable[[str, PhaseProgress], None]] = []
        self._current: PhaseProgress | None = None

    def advance(self, state: ArtifactState, detail: str = "") -> None:
        self._close("completed")
        self.state = state
        self._current = PhaseProgress(state=state, start_time=time.monotonic(), detail=detail)
        self.phases.append(self._current)
        self._notify(self._current)

    def skip(self, state: ArtifactState, reason: str) -> None:
        p = PhaseProgress(state=state, status="skipped", detail=reason)
        self.phases.append(p)
        self._notify(p)

    def finish(self, detail: str = "") -> None:
        self._close("completed")
        self.state = ArtifactState.DONE
        p = PhaseProgress(state=ArtifactState.DONE, status="completed", detail=detail)
        self.phases.append(p)
        self._notify(p)

    def fail(self, error: str) -> None:
        failed_in = self._current
        self._close("failed", error)
        self.state = ArtifactState.FAILED
        where = failed_in.state.value if failed_in else "idle"
        p = PhaseProgress(state=ArtifactState.FAILED, status="failed", detail=f"in {where}", error=error)
        self.phases.append(p)
        self._notify(p)

    def get_summary(self) -> dict[str, Any]:
        total_duration = sum(p.duration or 0 for p in self.phases)
        return {
            "artifact": self.artifact,
            "state": self.state.value,
            "phases": [
                {
                    "phase": p.state.value,
                    "status": p.status,
                    "duration": p.duration,
                    "detail": p.detail,
                    "error": p.error,
                }
                for p in self.phases
            ],
            "total_duration": round(total_duration, 3),
        }

    def _close(self, status: str, error: str | None = None) -> None:
        if self._current is None:
            return
        self._current.status = status
        self._current.end_time = time.monotonic()
        self._current.error = error
        self._current = None

    def _notify(self, p: PhaseProgress) -> None:
        for cb in self.callbacks:
            try:
                cb(self.artifact, p)
            except Exception:
                log.debug("progress.callback_error", phase=p.state.value, exc_info=True)

"""Tests for ProgressTracker."""

from __future__ import annotations

import time

from nodepack.models.artifact import ArtifactState
from nodepack.progress import ProgressTracker


class TestProgressTracker:
    def test_basic_flow(self):
        tracker = ProgressTracker("handler")
        tracker.advance(ArtifactState.RESOLVING)
        tracker.advance(ArtifactState.VALIDATING)
        tracker.finish("2 modules")

        summary = tracker.get_summary()
        assert summary["artifact"] == "handler"
        assert summary["state"] == "done"
        assert [p["phase"] for p in summary["phases"]] == ["resolving", "validating", "done"]
        assert all(p["status"] == "completed" for p in summary["phases"])
        assert summary["phases"][-1]["detail"] == "2 modules"

    def test_fail_records_failed_state(self):
        tracker = ProgressTracker("handler")
        tracker.advance(ArtifactState.INSTALLING)
        tracker.fail("npm install failed")

        summary = tracker.get_summary()
        assert tracker.state is ArtifactState.FAILED
        assert summary["phases"][0]["status"] == "failed"
        assert summary["phases"][0]["error"] == "npm install failed"
        assert summary["phases"][1]["detail"] == "in installing"

    def test_fail_before_start(self):
        tracker = ProgressTracker("handler")
        tracker.fail("boom")
        assert tracker.get_summary()["phases"][0]["detail"] == "in idle"

    def test_skip(self):
        tracker = ProgressTracker("handler")
        tracker.skip(ArtifactState.COPYING, "yarn installs in place")

        summary = tracker.get_summary()
        assert summary["phases"][0]["status"] == "skipped"
        assert tracker.state is ArtifactState.IDLE

    def test_duration(self):
        tracker = ProgressTracker("handler")
        tracker.advance(ArtifactState.INSTALLING)
        time.sleep(0.01)
        tracker.finish()

        p = tracker.phases[0]
        assert p.duration is not None
        assert p.duration >= 0.01

    def test_callback(self):
        events = []
        tracker = ProgressTracker("handler")
        tracker.callbacks.append(lambda artifact, p: events.append((artifact, p.state.value, p.status)))

        tracker.advance(ArtifactState.RESOLVING)
        tracker.finish()

        assert events == [("handler", "resolving", "running"), ("handler", "done", "completed")]

    def test_callback_error_is_swallowed(self):
        tracker = ProgressTracker("handler")

        def broken(artifact, p):
            raise RuntimeError("callback failed")

        tracker.callbacks.append(broken)
        tracker.advance(ArtifactState.RESOLVING)
        tracker.finish()
        assert tracker.state is ArtifactState.DONE

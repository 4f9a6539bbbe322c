"""Tests for stage timing."""

from __future__ import annotations

import time

import pytest

from tagserve.ml.timing import StageTimings, timed, to_milliseconds


class TestTimed:
    def test_returns_value_and_elapsed(self) -> None:
        value, elapsed = timed("sleep", lambda: (time.sleep(0.02), "done")[1])
        assert value == "done"
        assert elapsed >= 0.02

    def test_passes_arguments(self) -> None:
        value, elapsed = timed("add", lambda a, b=0: a + b, 2, b=3)
        assert value == 5
        assert elapsed >= 0.0

    def test_exception_propagates(self) -> None:
        def boom() -> None:
            raise ValueError("nope")

        with pytest.raises(ValueError, match="nope"):
            timed("boom", boom)


class TestStageTimings:
    def test_defaults_are_zero(self) -> None:
        assert StageTimings().as_milliseconds() == {
            "time_url_fetch": 0,
            "time_image_load": 0,
            "time_image_resize": 0,
            "time_session_run": 0,
        }

    def test_with_stage_returns_copy(self) -> None:
        base = StageTimings(resize=0.5)
        updated = base.with_stage("url_fetch", 1.25)
        assert base.url_fetch == 0.0
        assert updated.url_fetch == 1.25
        assert updated.resize == 0.5

    def test_milliseconds_truncate(self) -> None:
        assert to_milliseconds(0.0129) == 12
        assert StageTimings(session_run=0.0999).as_milliseconds()["time_session_run"] == 99

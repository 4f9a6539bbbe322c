"""Per-stage timing for the classification pipeline.

Stages do not mutate shared timers. Each one is wrapped by :func:`timed`,
which returns ``(value, elapsed_seconds)``, and the pipeline folds the
elapsed values into an immutable :class:`StageTimings`.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, ParamSpec, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


@dataclass(frozen=True)
class StageTimings:
    """Elapsed seconds per pipeline stage (0.0 when a stage was skipped)."""

    url_fetch: float = 0.0
    image_load: float = 0.0
    resize: float = 0.0
    session_run: float = 0.0

    def with_stage(self, stage: str, seconds: float) -> StageTimings:
        """Return a copy with one stage duration replaced."""
        return dataclasses.replace(self, **{stage: seconds})

    def as_milliseconds(self) -> dict[str, int]:
        """Return wire-format durations, truncated to whole milliseconds."""
        return {
            "time_url_fetch": to_milliseconds(self.url_fetch),
            "time_image_load": to_milliseconds(self.image_load),
            "time_image_resize": to_milliseconds(self.resize),
            "time_session_run": to_milliseconds(self.session_run),
        }


def to_milliseconds(seconds: float) -> int:
    """Convert a duration in seconds to whole milliseconds."""
    return int(seconds * 1000)


def timed(name: str, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> tuple[T, float]:
    """Run ``func`` and return its result with the elapsed monotonic time.

    Exceptions propagate unchanged; nothing is recorded for a failed stage.
    """
    logger.debug("%s: starting", name)
    start = time.perf_counter()
    value = func(*args, **kwargs)
    elapsed = time.perf_counter() - start
    logger.debug("%s duration: %d msec", name, to_milliseconds(elapsed))
    return value, elapsed

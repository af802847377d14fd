"""Run named scenarios concurrently and aggregate their outcomes."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor

from aumai_meshenv.core import ScenarioFailuresError
from aumai_meshenv.models import ScenarioStatus

logger = logging.getLogger(__name__)

Scenario = Callable[[], BaseException | None]


def _run_one(name: str, scenario: Scenario) -> ScenarioStatus:
    start = time.monotonic()
    try:
        error = scenario()
    except Exception as exc:  # noqa: BLE001
        error = exc
    elapsed = time.monotonic() - start
    if error is not None:
        logger.error("Scenario %r failed after %.2fs: %s", name, elapsed, error)
    else:
        logger.info("Scenario %r passed in %.2fs", name, elapsed)
    return ScenarioStatus(name=name, error=error, duration_seconds=elapsed)


def run_parallel(scenarios: Mapping[str, Scenario]) -> list[ScenarioStatus]:
    """Start every scenario on its own thread and wait for all of them.

    A scenario fails by raising or by returning an exception; returning
    ``None`` is success. There is no timeout: a hung scenario hangs the
    call. Statuses come back in the order of *scenarios*.
    """
    if not scenarios:
        return []
    with ThreadPoolExecutor(max_workers=len(scenarios), thread_name_prefix="scenario") as pool:
        futures = {name: pool.submit(_run_one, name, fn) for name, fn in scenarios.items()}
        return [futures[name].result() for name in scenarios]


def parallel(scenarios: Mapping[str, Scenario]) -> None:
    """Run *scenarios* concurrently; raise if any of them failed.

    Raises:
        ScenarioFailuresError: naming every failed scenario with its cause.
    """
    failures = {
        status.name: status.error
        for status in run_parallel(scenarios)
        if status.error is not None
    }
    if failures:
        raise ScenarioFailuresError(failures)


__all__ = ["Scenario", "parallel", "run_parallel"]

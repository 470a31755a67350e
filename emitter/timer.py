"""Periodic execution of an action on a background thread."""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger("emitter.timer")


def _safe(action: Callable[[], object]) -> None:
    try:
        action()
    except Exception:  # noqa: BLE001 - a failing action must not stop the timer
        logger.exception("async: panic recovered")


def repeat(interval: float, action: Callable[[], object]) -> Callable[[], None]:
    """Run ``action`` now, then every ``interval`` seconds until cancelled.

    Exceptions raised by the action are logged and swallowed. The returned
    callable stops the repetition.
    """
    stop = threading.Event()
    _safe(action)

    def loop() -> None:
        while not stop.wait(interval):
            _safe(action)

    threading.Thread(target=loop, name="emitter-repeat", daemon=True).start()
    return stop.set
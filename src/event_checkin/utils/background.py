from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

Dispatcher = Callable[[Callable[[], None], str], None]


def _guarded(job: Callable[[], None], description: str) -> None:
    try:
        job()
    except Exception:
        logger.exception("Background job failed: %s", description)


def run_detached(job: Callable[[], None], description: str = "background job") -> None:
    """Run ``job`` on a daemon thread; failures are logged and never propagate."""

    thread = threading.Thread(
        target=_guarded,
        args=(job, description),
        name=f"checkin-{description}",
        daemon=True,
    )
    thread.start()


def run_inline(job: Callable[[], None], description: str = "inline job") -> None:
    """Synchronous dispatcher with the same failure isolation as run_detached."""

    _guarded(job, description)

"""Run cancellation — in-process registry of ``asyncio.Event`` signals.

The coordinator registers an event when a run starts and races every wave of
node executions against it.  Any caller holding the run id (an API handler,
a test, another task) can signal cancellation:

    run_cancel.mark_cancelled(run_id)

The coordinator then cancels the in-flight node tasks and finishes the run
with ``Cancelled``.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger("agentflow.run_cancel")

_events: dict[str, asyncio.Event] = {}


def register(run_id: str) -> asyncio.Event:
    """Create a fresh (unset) cancellation event for *run_id* and return it.

    A signal sent before the run registered (``mark_cancelled`` on an unknown
    id) is not remembered.
    """
    event = asyncio.Event()
    _events[run_id] = event
    logger.debug("Cancel registry: registered run %s", run_id)
    return event


def get_event(run_id: str) -> asyncio.Event | None:
    return _events.get(run_id)


def mark_cancelled(run_id: str) -> bool:
    """Signal cancellation for *run_id*.  Returns False if the run is not registered."""
    event = _events.get(run_id)
    if event is not None:
        event.set()
        logger.info("Cancel registry: signalled run %s", run_id)
        return True
    logger.debug("Cancel registry: run %s not in registry (already finished?)", run_id)
    return False


def is_cancelled(run_id: str) -> bool:
    """Return True if a cancellation signal has been set for *run_id*."""
    event = _events.get(run_id)
    return event is not None and event.is_set()


def active_runs() -> list[str]:
    return sorted(_events)


def deregister(run_id: str) -> None:
    """Remove the event for *run_id* (call in the finally block of a run)."""
    _events.pop(run_id, None)
    logger.debug("Cancel registry: deregistered run %s", run_id)

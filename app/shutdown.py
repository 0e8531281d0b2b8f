"""
app/shutdown.py

Process-wide shutdown flag for cooperative cancellation.
main.py and the pipeline CLI set it on SIGINT/SIGTERM; the orchestrator
polls it between reports. A threading.Event is used because sync runs
execute in worker threads, not on the event loop.
"""

import threading

_shutdown_event = threading.Event()


def set_shutdown():
    """Signal that the process is shutting down."""
    _shutdown_event.set()


def is_shutting_down() -> bool:
    """Check if the process is shutting down. Polled by the orchestrator."""
    return _shutdown_event.is_set()


def clear_shutdown():
    """Reset the flag (tests and long-lived CLI runs)."""
    _shutdown_event.clear()

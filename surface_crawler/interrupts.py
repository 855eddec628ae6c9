"""
Interrupt Controller
====================
Cooperative cancellation for a crawl.

A ``CancellationToken`` is created by the caller and passed into
``Crawler.crawl()``.  It carries the "interrupted" flag plus an ordered
registry of zero-argument cleanup callbacks.  The crawl loop polls
``is_interrupted`` between pages; nothing is preempted mid-fetch.

``install_signal_handlers`` wires SIGINT/SIGTERM to a token:

- first signal: set the flag, run the callbacks (errors logged, never raised)
- second signal: exit the process immediately with status 130
"""

from __future__ import annotations

import logging
import os
import signal
from typing import Callable, List, Sequence

logger = logging.getLogger(__name__)

INTERRUPT_EXIT_CODE = 130

InterruptHandler = Callable[[], None]


class CancellationToken:
    """Interrupt flag plus cleanup callbacks for one crawl invocation."""

    def __init__(self, exit_func: Callable[[int], None] = os._exit):
        """
        Args:
            exit_func: Called with ``130`` on a second signal.  Defaults to
                ``os._exit`` so cleanup is bypassed.
        """
        self._interrupted = False
        self._handlers: List[InterruptHandler] = []
        self._exit_func = exit_func

    @property
    def is_interrupted(self) -> bool:
        return self._interrupted

    def on_interrupt(self, handler: InterruptHandler) -> None:
        self._handlers.append(handler)

    def remove_interrupt_handler(self, handler: InterruptHandler) -> None:
        try:
            self._handlers.remove(handler)
        except ValueError:
            pass

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def interrupt(self) -> None:
        """Set the flag and run every registered callback in order."""
        if self._interrupted:
            return
        self._interrupted = True
        logger.warning("[INTERRUPT] Interrupt signal received. Shutting down gracefully...")
        for handler in list(self._handlers):
            try:
                handler()
            except Exception as e:
                logger.error(f"[INTERRUPT] Error in interrupt handler: {e}")

    def handle_signal(self, signum, frame=None) -> None:
        """Signal entry point: first call interrupts, second call exits."""
        if self._interrupted:
            logger.warning("[INTERRUPT] Second interrupt received, forcing exit")
            self._exit_func(INTERRUPT_EXIT_CODE)
            return
        self.interrupt()

    def reset(self) -> None:
        """Clear the flag and all callbacks."""
        self._interrupted = False
        self._handlers.clear()


def install_signal_handlers(
    token: CancellationToken,
    signals: Sequence[int] = (signal.SIGINT, signal.SIGTERM),
) -> Callable[[], None]:
    """
    Route *signals* to ``token.handle_signal``.

    Returns:
        A callable that restores the previously installed handlers.
    """
    previous = {}
    for signum in signals:
        previous[signum] = signal.getsignal(signum)
        signal.signal(signum, token.handle_signal)

    def restore() -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return restore

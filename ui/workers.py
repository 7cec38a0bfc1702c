from __future__ import annotations
from typing import Any, Callable

from PySide6.QtCore import QObject, QRunnable, Signal


class JobSignals(QObject):
    finished = Signal(int, object)
    failed = Signal(int, object)


class TicketJob(QRunnable):
    """
    Runs a pure function on the thread pool and reports back with its ticket.
    Results are delivered on the GUI thread through queued signals; the
    receiver drops results whose ticket is stale.
    """

    def __init__(self, ticket: int, fn: Callable[..., Any], *args: Any):
        super().__init__()
        self.ticket = ticket
        self._fn = fn
        self._args = args
        self.signals = JobSignals()

    def run(self) -> None:
        try:
            result = self._fn(*self._args)
        except Exception as e:  # reported through failed
            self.signals.failed.emit(self.ticket, e)
            return
        self.signals.finished.emit(self.ticket, result)

"""A restartable background thread running a work loop."""

from __future__ import annotations

import signal
import threading
from abc import ABC, abstractmethod
from enum import Enum

from phiminer.log import warn

__all__ = ["WorkerState", "Worker"]


class WorkerState(Enum):
    """Lifecycle states of a worker thread."""

    STARTING = "starting"
    STARTED = "started"
    STOPPING = "stopping"
    STOPPED = "stopped"
    KILLING = "killing"


class Worker(ABC):
    """Runs ``work_loop`` on its own thread; the thread survives stops and restarts."""

    def __init__(self, name: str, exit_on_error: bool = False) -> None:
        self._name = name
        self.exit_on_error = exit_on_error
        self._work_lock = threading.Lock()
        self._cond = threading.Condition()
        self._state = WorkerState.STARTING
        self._thread: threading.Thread | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> WorkerState:
        with self._cond:
            return self._state

    def _compare_exchange(self, expected: WorkerState, new: WorkerState) -> bool:
        with self._cond:
            if self._state is not expected:
                return False
            self._state = new
            self._cond.notify_all()
            return True

    def _exchange(self, new: WorkerState) -> WorkerState:
        with self._cond:
            old = self._state
            self._state = new
            self._cond.notify_all()
            return old

    def _run(self) -> None:
        from phiminer.log import set_thread_name

        set_thread_name(self._name)
        while self.state is not WorkerState.KILLING:
            self._compare_exchange(WorkerState.STARTING, WorkerState.STARTED)
            try:
                self.work_loop()
            except Exception as error:  # noqa: BLE001 - the thread must survive
                warn("Exception thrown in Worker thread: ", error)
                if self.exit_on_error:
                    warn("Terminating due to --exit")
                    signal.raise_signal(signal.SIGTERM)

            previous = self._exchange(WorkerState.STOPPED)
            if previous in (WorkerState.KILLING, WorkerState.STARTING):
                self._exchange(previous)

            with self._cond:
                self._cond.wait_for(lambda: self._state is not WorkerState.STOPPED)

    def start_working(self) -> None:
        """Start (or restart) the thread and wait until it has left STARTING."""
        with self._work_lock:
            if self._thread is not None:
                self._compare_exchange(WorkerState.STOPPED, WorkerState.STARTING)
            else:
                self._exchange(WorkerState.STARTING)
                self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                self._thread.start()
        with self._cond:
            self._cond.wait_for(lambda: self._state is not WorkerState.STARTING)

    def trigger_stop_working(self) -> None:
        """Ask the work loop to stop without waiting for it."""
        with self._work_lock:
            if self._thread is not None:
                self._compare_exchange(WorkerState.STARTED, WorkerState.STOPPING)

    def stop_working(self) -> None:
        """Ask the work loop to stop and wait until it has."""
        with self._work_lock:
            if self._thread is not None:
                self._compare_exchange(WorkerState.STARTED, WorkerState.STOPPING)
                with self._cond:
                    self._cond.wait_for(lambda: self._state is WorkerState.STOPPED)

    def should_stop(self) -> bool:
        """Return True when the work loop ought to return."""
        return self.state is not WorkerState.STARTED

    @abstractmethod
    def work_loop(self) -> None:
        """Do the work; return once should_stop() becomes true."""

    def close(self) -> None:
        """Terminate the thread for good and join it."""
        with self._work_lock:
            if self._thread is not None:
                self._exchange(WorkerState.KILLING)
                self._thread.join()
                self._thread = None

    def __enter__(self) -> Worker:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
"""Background periodic job runner built on the ``schedule`` library."""

import logging
import threading
from typing import Callable, List, Optional

import schedule

logger = logging.getLogger(__name__)


class PeriodicScheduler:
    """Runs interval jobs on a dedicated daemon thread.

    Each instance owns a private ``schedule.Scheduler`` so independent
    schedulers (health probing, cleanup) never see each other's jobs.
    """

    def __init__(self, name: str, poll_interval: float = 1.0):
        self.name = name
        self.poll_interval = poll_interval
        self._scheduler = schedule.Scheduler()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.running = False

    def every(self, seconds: float, job: Callable[[], object], label: Optional[str] = None) -> schedule.Job:
        """Register a job that runs every ``seconds``.

        Exceptions raised by the job are logged and do not stop the scheduler.
        """
        label = label or getattr(job, '__name__', 'job')

        def run_guarded() -> None:
            try:
                job()
            except Exception as e:
                logger.error(f"Scheduled job '{label}' on {self.name} failed: {e}")

        scheduled = self._scheduler.every(seconds).seconds.do(run_guarded)
        scheduled.tag(label)
        logger.debug(f"Scheduled '{label}' every {seconds}s on {self.name}")
        return scheduled

    @property
    def jobs(self) -> List[schedule.Job]:
        return list(self._scheduler.jobs)

    def run_pending(self) -> None:
        self._scheduler.run_pending()

    def start(self) -> None:
        """Start the background scheduler thread."""
        if self.running:
            logger.warning(f"Scheduler {self.name} is already running")
            return

        self.running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_scheduler, daemon=True, name=self.name)
        self._thread.start()
        logger.info(f"Scheduler {self.name} started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the background scheduler thread."""
        if not self.running:
            return

        self.running = False
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._scheduler.clear()
        logger.info(f"Scheduler {self.name} stopped")

    def _run_scheduler(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._scheduler.run_pending()
            except Exception as e:
                logger.error(f"Scheduler {self.name} error: {e}")
            self._stop_event.wait(self.poll_interval)

"""Periodic trigger for queue drains."""

import logging
import threading
from typing import Optional

from .orchestrator import LoginManagementOrchestrator

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs the orchestrator in a background thread at a fixed interval."""

    def __init__(self, orchestrator: LoginManagementOrchestrator, interval_seconds: int = 300):
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self):
        """Start the scheduler in a background thread."""
        if self.running:
            logger.warning("Scheduler is already running")
            return

        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run, name="login-engine-scheduler", daemon=True)
        self.thread.start()
        logger.info(f"Scheduler started (interval: {self.interval_seconds}s)")

    def stop(self, timeout: float = 10.0):
        """
        Stop the scheduler.

        Setting the stop event also cancels the pacing wait of a drain in
        progress, so the drain ends after its current item.
        """
        if not self.running:
            return

        self.running = False
        self._stop_event.set()
        if self.thread:
            self.thread.join(timeout=timeout)
        logger.info("Scheduler stopped")

    def _run(self):
        """Main scheduler loop."""
        logger.info("Scheduler thread started")

        while not self._stop_event.is_set():
            try:
                result = self.orchestrator.run(self._stop_event)
                if result.total_items:
                    logger.info(
                        f"Scheduled run: {result.success_count} success, {result.error_count} errors"
                    )
            except Exception as e:
                logger.error(f"Scheduled run failed: {e}", exc_info=True)

            self._stop_event.wait(self.interval_seconds)

        logger.info("Scheduler thread stopped")

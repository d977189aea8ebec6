"""Periodic re-authentication and reflection for daemon mode."""
import time
import logging
from threading import Event
from typing import Any, Callable, Optional

from ..domains.errors import AuthenticationError
from ..domains.status import StatusGauge
from .reflect import ReflectionResult

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_AUTHENTICATING = "authenticating"
STATE_REFLECTING = "reflecting"


class RefreshLoop:
    """
    Run (authenticate, reflect) cycles on a fixed interval.

    The first cycle starts immediately. Cycles never overlap: a cycle that
    takes longer than ``interval`` pushes the next one back instead of
    queueing another. Each cycle's outcome is written to ``status``.
    """

    def __init__(
        self,
        authenticate: Callable[[], Any],
        reflect: Callable[[], ReflectionResult],
        status: StatusGauge,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Any]] = None,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.authenticate = authenticate
        self.reflect = reflect
        self.status = status
        self.interval = interval
        self.clock = clock
        self._stopped = Event()
        self.sleep = sleep or self._stopped.wait
        self.state = STATE_IDLE
        self.cycles = 0

    def run_cycle(self) -> bool:
        """Run one cycle and record its outcome. Returns True on full success."""
        try:
            self.state = STATE_AUTHENTICATING
            try:
                self.authenticate()
            except AuthenticationError as e:
                logger.error(f"Error setting vault token: {e}")
                self.status.set_failure()
                return False

            self.state = STATE_REFLECTING
            result = self.reflect()
            if not result.succeeded:
                logger.error(f"Error reflecting vault values into kubernetes: {len(result.failures)} mapping(s) failed")
                self.status.set_failure()
                return False

            self.status.set_success()
            return True
        except Exception:
            logger.exception("Unexpected error during refresh cycle")
            self.status.set_failure()
            return False
        finally:
            self.state = STATE_IDLE
            self.cycles += 1

    def run(self, max_cycles: Optional[int] = None) -> int:
        """
        Run cycles until stopped or ``max_cycles`` have completed.

        Returns:
            Number of cycles run
        """
        logger.info(f"Refreshing every {self.interval}s")
        ran = 0
        next_tick = self.clock()
        while not self._stopped.is_set():
            if max_cycles is not None and ran >= max_cycles:
                break

            delay = next_tick - self.clock()
            if delay > 0:
                self.sleep(delay)
                if self._stopped.is_set():
                    break

            self.run_cycle()
            ran += 1
            next_tick = max(next_tick + self.interval, self.clock())

        logger.info(f"Refresh loop stopped after {ran} cycle(s)")
        return ran

    def stop(self) -> None:
        """Stop scheduling cycles. A cycle already in flight completes."""
        self._stopped.set()

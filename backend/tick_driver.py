"""
Periodic cadence update driver
"""

import logging
import threading
from typing import Callable, Optional

from cadence_processor import CadenceProcessor
from config import TICK_INTERVAL_SECONDS
from models import CadenceReading
from utils import monotonic_ms

logger = logging.getLogger(__name__)


class TickDriver:
    """
    Calls CadenceProcessor.on_tick on a fixed period.
    Runs in a separate thread; stop() prevents any further ticks.
    """

    def __init__(
        self,
        processor: CadenceProcessor,
        interval: float = TICK_INTERVAL_SECONDS,
        clock: Callable[[], float] = monotonic_ms
    ):
        if interval <= 0:
            raise ValueError(f"Tick interval must be > 0, got {interval}")
        self.processor = processor
        self.interval = interval
        self.clock = clock
        self.is_running = False
        self.tick_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        # Callback for the presentation layer
        self.on_tick_callback: Optional[Callable[[CadenceReading], None]] = None

    def tick(self) -> CadenceReading:
        """Run a single update and notify the callback"""
        reading = self.processor.on_tick(self.clock())
        if self.on_tick_callback:
            self.on_tick_callback(reading)
        return reading

    def _tick_loop(self):
        """Main tick loop - runs in separate thread"""
        while not self._stop_event.wait(self.interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Cadence tick failed")

    def start(self):
        """Start the background tick thread"""
        if self.is_running:
            logger.info("Tick driver already running")
            return

        self._stop_event.clear()
        self.is_running = True
        self.tick_thread = threading.Thread(target=self._tick_loop, daemon=True)
        self.tick_thread.start()
        logger.info(f"Tick driver started ({self.interval:.2f}s interval)")

    def stop(self):
        """Stop the background tick thread"""
        self.is_running = False
        self._stop_event.set()

        if self.tick_thread:
            self.tick_thread.join(timeout=2)
            self.tick_thread = None
        logger.info("Tick driver stopped")

    def set_callback(self, callback: Callable[[CadenceReading], None]):
        """Set callback function to be called with each tick's reading"""
        self.on_tick_callback = callback

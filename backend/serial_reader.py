"""
Serial port reader for live accelerometer data
"""

import logging
import serial
import threading
import time
from typing import Optional, Callable, List, Tuple

from config import SERIAL_PORT, BAUD_RATE
from models import AccelSample
from utils import monotonic_ms

logger = logging.getLogger(__name__)

# (sample, arrival time in monotonic ms)
TimedSample = Tuple[AccelSample, float]


class SerialReader:
    """
    Reads CSV acceleration data from a microcontroller via serial port.
    Runs in a separate thread to avoid blocking the main application.
    """

    def __init__(
        self,
        port: str = SERIAL_PORT,
        baud_rate: int = BAUD_RATE,
        clock: Callable[[], float] = monotonic_ms
    ):
        self.port = port
        self.baud_rate = baud_rate
        self.clock = clock
        self.serial_connection: Optional[serial.Serial] = None
        self.is_running = False
        self.read_thread: Optional[threading.Thread] = None
        self.last_error: Optional[str] = None

        # Callback for real-time processing
        self.on_sample_callback: Optional[Callable[[AccelSample, float], None]] = None

        # Buffer for recent samples
        self.recent_samples: List[TimedSample] = []
        self.max_recent_samples = 100

    def connect(self) -> bool:
        """
        Establish connection to the serial port.
        Returns True if successful, False otherwise.
        """
        try:
            self.serial_connection = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                timeout=1
            )
            logger.info(f"Connected to {self.port} at {self.baud_rate} baud")

            # Wait for the board to reset after connection
            time.sleep(2)

            # Clear any startup messages
            self.serial_connection.reset_input_buffer()

            self.last_error = None
            return True

        except serial.SerialException as e:
            self.last_error = str(e)
            logger.warning(f"Accelerometer unavailable on {self.port}: {e}")
            return False

    def disconnect(self):
        """Close the serial connection"""
        if self.serial_connection and self.serial_connection.is_open:
            self.serial_connection.close()
            logger.info(f"Disconnected from {self.port}")

    def parse_csv_line(self, line: str) -> Optional[AccelSample]:
        """
        Parse a CSV line from the board.
        Expected format: x,y,z (m/s², acceleration including gravity)
        Example: 0.12,-0.40,9.81
        An empty field means the axis was not reported.
        """
        line = line.strip()

        # Skip blank, header and comment lines
        if not line or line.startswith("#") or line.lower().startswith("x,"):
            return None

        parts = line.split(",")
        if len(parts) != 3:
            return None

        try:
            x, y, z = (float(p) if p.strip() else None for p in parts)
        except ValueError:
            # Invalid line format - skip it
            return None

        return AccelSample(x=x, y=y, z=z)

    def handle_line(self, line: str) -> Optional[AccelSample]:
        """Parse one line, timestamp it on arrival and hand it to the callback"""
        sample = self.parse_csv_line(line)
        if sample is None:
            return None

        now = self.clock()

        # Store in recent samples buffer
        self.recent_samples.append((sample, now))
        if len(self.recent_samples) > self.max_recent_samples:
            self.recent_samples.pop(0)

        # Call callback if registered
        if self.on_sample_callback:
            self.on_sample_callback(sample, now)
        return sample

    def _read_loop(self):
        """Main reading loop - runs in separate thread"""
        logger.info("Serial reading started")

        while self.is_running:
            try:
                if self.serial_connection and self.serial_connection.in_waiting > 0:
                    line = self.serial_connection.readline().decode('utf-8', errors='ignore')
                    self.handle_line(line)
                else:
                    # Small delay to prevent busy waiting
                    time.sleep(0.005)

            except serial.SerialException as e:
                # Device went away; stay stopped until an explicit reconnect
                self.last_error = str(e)
                logger.error(f"Serial connection lost: {e}")
                self.is_running = False
            except Exception:
                logger.exception("Error reading from serial")
                time.sleep(0.5)

        logger.info("Serial reading stopped")

    def start_reading(self):
        """Start the background reading thread"""
        if self.is_running:
            logger.info("Already reading")
            return

        if not self.serial_connection or not self.serial_connection.is_open:
            if not self.connect():
                logger.warning("Failed to connect. Cannot start reading.")
                return

        self.is_running = True
        self.read_thread = threading.Thread(target=self._read_loop, daemon=True)
        self.read_thread.start()

    def stop_reading(self):
        """Stop the background reading thread"""
        self.is_running = False

        if self.read_thread:
            self.read_thread.join(timeout=2)
            self.read_thread = None

        self.disconnect()

    def get_recent_samples(self, count: int = 50) -> List[TimedSample]:
        """Get the most recent samples"""
        return self.recent_samples[-count:]

    def set_callback(self, callback: Callable[[AccelSample, float], None]):
        """Set callback function to be called for each new sample"""
        self.on_sample_callback = callback


# Singleton instance for global access
_serial_reader: Optional[SerialReader] = None


def get_serial_reader() -> SerialReader:
    """Get or create the global serial reader instance"""
    global _serial_reader
    if _serial_reader is None:
        _serial_reader = SerialReader()
    return _serial_reader


if __name__ == "__main__":
    # Test the serial reader
    logging.basicConfig(level=logging.INFO)
    reader = SerialReader()

    def on_sample(sample: AccelSample, now: float):
        print(f"Received at {now:.0f}ms | x: {sample.x} | y: {sample.y} | z: {sample.z}")

    reader.set_callback(on_sample)

    if reader.connect():
        reader.start_reading()

        try:
            print("Reading from serial port. Press Ctrl+C to stop...")
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            print("\nStopping...")
        finally:
            reader.stop_reading()

"""
FastAPI Backend for Cadence Tracker
Main application with REST API endpoints
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Optional
from contextlib import asynccontextmanager
import logging
import time

from config import API_HOST, API_PORT, LOG_LEVEL, TICK_INTERVAL_SECONDS
from models import (
    AccelSample, SampleBatch, SampleIngestResult, CadenceReading,
    CadenceStats, ClassificationBand, HistorySnapshot, StepInjectionResult
)
from cadence_processor import CadenceProcessor
from serial_reader import get_serial_reader, SerialReader
from tick_driver import TickDriver
from utils import monotonic_ms

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


# Global instances
cadence_processor = CadenceProcessor()
tick_driver = TickDriver(cadence_processor, interval=TICK_INTERVAL_SECONDS)
serial_reader: Optional[SerialReader] = None


def process_sample(sample: AccelSample, now: float):
    """
    Callback function to process each sample.
    Called by the serial reader for each new sample.
    """
    step_time = cadence_processor.on_sample(sample, now)
    if step_time is not None:
        logger.debug(f"Step at {step_time:.0f}ms")


def sample_times(batch: SampleBatch, arrival: float) -> List[float]:
    """
    Map a batch onto the server clock, newest sample at arrival.
    Sender timestamps win over interval_ms; times never run backwards.
    """
    samples = batch.samples
    newest_stamp = next(
        (s.timestamp_ms for s in reversed(samples) if s.timestamp_ms is not None),
        None
    )

    times: List[float] = []
    for i, sample in enumerate(samples):
        if sample.timestamp_ms is not None:
            t = arrival - (newest_stamp - sample.timestamp_ms)
        elif batch.interval_ms is not None:
            t = arrival - (len(samples) - 1 - i) * batch.interval_ms
        else:
            t = arrival
        t = min(t, arrival)
        if times:
            t = max(t, times[-1])
        times.append(t)
    return times


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    global serial_reader

    # Startup
    logger.info("Starting Cadence Tracker Backend...")

    # Initialize serial reader
    serial_reader = get_serial_reader()
    serial_reader.set_callback(process_sample)

    # Try to connect to serial port
    if serial_reader.connect():
        serial_reader.start_reading()
        logger.info("Serial reading started successfully!")
    else:
        logger.warning("Could not connect to serial port. Accepting samples over HTTP only.")

    tick_driver.start()

    yield

    # Shutdown
    logger.info("Shutting down...")
    tick_driver.stop()
    if serial_reader:
        serial_reader.stop_reading()


# Create FastAPI app
app = FastAPI(
    title="Cadence Tracker API",
    description="Backend API estimating walking cadence from accelerometer data",
    version="1.0.0",
    lifespan=lifespan
)

# Enable CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== API ENDPOINTS ====================

@app.get("/")
def root():
    """Root endpoint - API status"""
    return {
        "status": "running",
        "name": "Cadence Tracker API",
        "version": "1.0.0",
        "serial_connected": serial_reader.is_running if serial_reader else False,
        "ticking": tick_driver.is_running
    }


@app.get("/api/cadence", response_model=CadenceReading)
def get_cadence():
    """
    Get the current cadence.
    Returns steps per minute and activity state from the latest tick,
    or the uninitialized state before the first tick.
    """
    return cadence_processor.get_current_status()


@app.get("/api/history", response_model=HistorySnapshot)
def get_history():
    """
    Get recent cadence values for charting, oldest first.
    Slots without data are null.
    """
    return HistorySnapshot(
        capacity=cadence_processor.history.capacity,
        tick_interval_seconds=tick_driver.interval,
        values=cadence_processor.get_history()
    )


@app.get("/api/stats", response_model=CadenceStats)
def get_session_stats():
    """
    Get session statistics.
    Returns sample, dropped-sample and step counts since the last reset.
    """
    return cadence_processor.get_session_stats()


@app.get("/api/bands", response_model=List[ClassificationBand])
def get_bands():
    """Get the configured cadence classification bands"""
    return cadence_processor.classifier.bands


@app.post("/api/samples", response_model=SampleIngestResult)
def ingest_samples(batch: SampleBatch):
    """
    Ingest accelerometer samples pushed by a remote sensor (e.g. a phone).
    The newest sample is placed at arrival time and earlier ones are spaced
    back from it by their timestamps or the batch interval; incomplete
    samples are dropped.
    """
    accepted = dropped = steps = 0
    for sample, now in zip(batch.samples, sample_times(batch, monotonic_ms())):
        if not sample.is_complete():
            dropped += 1
        else:
            accepted += 1
        if cadence_processor.on_sample(sample, now) is not None:
            steps += 1

    return SampleIngestResult(accepted=accepted, dropped=dropped, steps_detected=steps)


@app.post("/api/steps/simulate", response_model=StepInjectionResult)
def simulate_step():
    """Inject a step as if one had been detected now"""
    accepted = cadence_processor.inject_step(monotonic_ms())
    return StepInjectionResult(
        accepted=accepted,
        event_count=len(cadence_processor.rate_estimator)
    )


@app.post("/api/reset")
def reset(reset_gravity: Optional[bool] = None):
    """
    Reset steps, history and the current state.
    The gravity estimate is kept unless reset_gravity is true.
    """
    cadence_processor.reset(reset_gravity=reset_gravity)
    return {"message": "Cadence state reset successfully"}


@app.get("/api/sensor/status")
def get_sensor_status():
    """Get serial connection status"""
    if serial_reader:
        return {
            "connected": serial_reader.is_running,
            "port": serial_reader.port,
            "baud_rate": serial_reader.baud_rate,
            "recent_samples_count": len(serial_reader.recent_samples),
            "last_error": serial_reader.last_error
        }
    return {"connected": False, "error": "Serial reader not initialized"}


@app.post("/api/sensor/reconnect")
def reconnect_sensor():
    """Attempt to reconnect to serial port"""
    if serial_reader:
        serial_reader.stop_reading()
        time.sleep(1)

        if serial_reader.connect():
            serial_reader.start_reading()
            return {"success": True, "message": "Reconnected successfully"}
        else:
            return {"success": False, "message": "Failed to reconnect"}

    return {"success": False, "message": "Serial reader not initialized"}


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    print("=" * 50)
    print("Cadence Tracker - Backend Server")
    print("=" * 50)

    uvicorn.run(
        "main:app",
        host=API_HOST,
        port=API_PORT,
        reload=True
    )

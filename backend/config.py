"""
Configuration settings for the Cadence Tracker
"""

# Serial port configuration
SERIAL_PORT = "COM9"
BAUD_RATE = 115200

# Gravity low-pass filter
GRAVITY_ALPHA = 0.8  # higher = slower gravity tracking

# Step (peak) detection
PEAK_THRESHOLD = 1.0            # m/s² - linear acceleration peak must exceed this
PEAK_MIN_PROMINENCE = 0.0       # m/s² - required rise into the peak, 0 = plain local maximum
MIN_STEP_INTERVAL_MS = 250      # refractory interval (caps cadence at ~240 spm)

# Cadence estimation
WINDOW_SECONDS = 5              # sliding window length
RATE_STRATEGY = "density"       # "density" or "span"

# Cadence classification thresholds (steps per minute)
THRESHOLD_STATIONARY = 20       # below = stationary
THRESHOLD_FAST = 110            # at or above = brisk walking

# Display settings
STATE_COLORS = {
    "stationary": "#666",
    "walking": "#5cb85c",
    "brisk_walking": "#d9534f",
    "uninitialized": "#888",
}
STATE_LABELS = {
    "stationary": "Stationary",
    "walking": "Walking",
    "brisk_walking": "Brisk walking",
    "uninitialized": "Initializing",
}

# Periodic update
HISTORY_LENGTH = 60             # chart points (~30s at 0.5s ticks)
TICK_INTERVAL_SECONDS = 0.5

# Reset keeps the gravity estimate (orientation tracking) unless enabled
RESET_GRAVITY_ON_RESET = False

# Logging
LOG_LEVEL = "INFO"

# API settings
API_HOST = "0.0.0.0"
API_PORT = 8000

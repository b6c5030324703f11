"""
System constants that should never change.

These are technical/system limits, not user preferences.
User-configurable values should go in config.yaml instead.
"""

VERBOSE_LOGGING_THRESHOLD = 2  # Standard logging level

# Subprocess timeouts (seconds)
PROBE_TIMEOUT = 30
ENCODER_LIST_TIMEOUT = 10
HARDWARE_TEST_TIMEOUT = 10

# A scratch directory should hold the mezzanine plus two rung outputs
SCRATCH_SPACE_FACTOR = 3

# Clip extraction limits
DEFAULT_CLIP_SECONDS = 5.0
MAX_CLIP_SECONDS = 30.0
CLIP_AUDIO_BITRATE = "128k"

PITCH_SAMPLE_RATE = 44100

ERROR_MESSAGE_TRUNCATE_LENGTH = 100  # Maximum length for error message display

# Written into every delivered artifact so re-runs can recognize it
NORMALIZED_TAG = "sizefit-normalized"

"""
Constants for bookmerge.

These constants are used by various modules for sensible defaults.
Most of them can also be overridden via the config system.
"""

# Title matching
DEFAULT_TITLE_SIMILARITY_THRESHOLD = 0.85

# Weights for the overall score reported by similarity_score()
EXACT_URL_WEIGHT = 0.5
NORMALIZED_URL_WEIGHT = 0.3
TITLE_WEIGHT = 0.2

# URL normalization
DEFAULT_PORTS = {
    'http': 80,
    'https': 443,
}

# Real-time URL checks skip anything shorter than this
MIN_REALTIME_URL_LENGTH = 10

# Group identifiers
GROUP_ID_PREFIX = 'dup-'
GROUP_ID_LENGTH = 12

# Display limits
DEFAULT_TITLE_DISPLAY_WIDTH = 50
DEFAULT_URL_DISPLAY_WIDTH = 60

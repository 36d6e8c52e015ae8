import logging
import os

# Typing measurement
DEFAULT_TARGET_WPM = 60
AVERAGE_WORD_LENGTH = 5  # 5 chars per word
MIN_WPM_ELAPSED_MS = 1000  # WPM reads 0 before one second of active typing

# Rhythm
CONSISTENCY_WINDOW = 100  # most recent intervals used for consistency
CONSISTENCY_OUTLIER_MS = 1000  # longer gaps are pauses, not rhythm
NEUTRAL_CONSISTENCY = 100.0

# Keys
CORRECTION_KEYS = {'Backspace', 'Delete'}
KEY_ALIASES = {
    'Enter': '\n',
    'Tab': '\t',
    'Space': ' ',
    'Spacebar': ' ',
}

# Adaptive difficulty
HISTORY_LIMIT = 50
PERFORMANCE_WINDOW = 10
MIN_SESSIONS_FOR_ADVANCEMENT = 3
TARGET_ACCURACY = 95
TARGET_WPM_MULTIPLIER = 0.8  # 80% of level target WPM to advance
REGRESS_ACCURACY = 85
REGRESS_WPM_MULTIPLIER = 0.5
TREND_DELTA_WPM = 2
TARGET_CONSISTENCY = 70
LOW_WPM_MULTIPLIER = 0.6
MAX_ERROR_PATTERNS = 3
CORRECTION_RATIO_LIMIT = 0.5
CORRECTION_RATIO_SPREAD = 0.25

# Persistence
DB_PATH = os.environ.get('TYPING_COACH_DB_PATH', 'data/typing_coach.db')

LOG_LEVEL = os.environ.get('TYPING_COACH_LOG_LEVEL', 'WARNING')
LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'


def configure_logging(level=None):
    """Apply LOG_LEVEL to the root logger. Never called on import."""
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel((level or LOG_LEVEL).upper())

from typing_coach.adaptive_difficulty import (
    DIFFICULTY_LEVELS,
    PROGRESSION_PHASES,
    AdaptiveDifficulty,
    DifficultyLevel,
)
from typing_coach.metrics_engine import TypingMetrics, TypingMetricsEngine
from typing_coach.records import (
    AccuracyMetrics,
    Keystroke,
    PerformanceRecord,
    Position,
    TypingSession,
)

__version__ = '0.1.0'

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from typing_coach import config
from typing_coach.analyzer import error_pattern
from typing_coach.records import PerformanceRecord
from typing_coach.text_generator import AdaptiveTextGenerator

logger = logging.getLogger(__name__)


@dataclass
class DifficultyMetrics:
    text_complexity: int      # Readability score (1-10)
    keyboard_density: int     # Key pattern difficulty (1-10)
    conceptual_load: int      # Programming concept complexity (1-10)
    time_constraint: int      # Session time pressure (1-10)


@dataclass
class DifficultyLevel:
    id: str
    name: str
    description: str
    metrics: DifficultyMetrics
    target_wpm: float
    target_accuracy: float
    session_duration: int  # minutes


@dataclass
class ProgressionPhase:
    phase: int
    name: str
    description: str
    duration: str
    goals: Dict[str, float]
    drill_types: List[str] = field(default_factory=list)


DIFFICULTY_LEVELS = [
    DifficultyLevel('beginner-1', 'Function Names', 'Basic function names and identifiers',
                    DifficultyMetrics(2, 3, 1, 2), target_wpm=35, target_accuracy=97, session_duration=3),
    DifficultyLevel('beginner-2', 'Simple Patterns', 'Basic syntax patterns and keywords',
                    DifficultyMetrics(3, 4, 2, 3), target_wpm=40, target_accuracy=95, session_duration=4),
    DifficultyLevel('intermediate-1', 'Query Grammar', 'Query patterns and object structures',
                    DifficultyMetrics(4, 5, 4, 4), target_wpm=50, target_accuracy=95, session_duration=4),
    DifficultyLevel('intermediate-2', 'Pipeline Patterns', 'Function composition and chaining',
                    DifficultyMetrics(6, 6, 6, 5), target_wpm=55, target_accuracy=94, session_duration=5),
    DifficultyLevel('advanced-1', 'CRUD Endpoints', 'Complete API endpoint patterns',
                    DifficultyMetrics(7, 7, 7, 6), target_wpm=60, target_accuracy=93, session_duration=6),
    DifficultyLevel('advanced-2', 'Error Handling', 'Complex error handling and edge cases',
                    DifficultyMetrics(8, 8, 8, 7), target_wpm=65, target_accuracy=92, session_duration=7),
    DifficultyLevel('expert-1', 'Full Integration', 'Complete system patterns with caching',
                    DifficultyMetrics(9, 9, 9, 8), target_wpm=70, target_accuracy=91, session_duration=8),
    DifficultyLevel('expert-2', 'Master Level', 'Complex architectural patterns',
                    DifficultyMetrics(10, 10, 10, 10), target_wpm=75, target_accuracy=90, session_duration=10),
]

PROGRESSION_PHASES = [
    ProgressionPhase(1, 'Foundation Building', 'Build muscle memory for basic patterns', '1-2 weeks',
                     {'wpm': 45, 'accuracy': 97}, ['function-names', 'basic-syntax', 'identifiers']),
    ProgressionPhase(2, 'Pattern Recognition', 'Master common programming patterns', '1-2 weeks',
                     {'wpm': 55, 'accuracy': 95}, ['query-grammar', 'object-patterns', 'array-methods']),
    ProgressionPhase(3, 'Pipeline Mastery', 'Fluent function composition', '1-2 weeks',
                     {'wpm': 65, 'accuracy': 94}, ['pipeline-patterns', 'composition', 'async-patterns']),
    ProgressionPhase(4, 'Integration Expertise', 'Complete endpoint implementation', '2-3 weeks',
                     {'wpm': 70, 'accuracy': 92}, ['crud-endpoints', 'error-handling', 'integration-patterns']),
]


class AdaptiveDifficulty:
    """Moves a learner up and down an ordered ladder of difficulty levels.

    Completed sessions go into a bounded rolling history. Each record is
    attributed to the level it was practised at (its drill type when that
    names a level, otherwise the level current when it was added), and only
    the most recent records for the current level drive promotion and
    demotion. With too few of them the level holds.
    """

    def __init__(self, starting_level='beginner-1', levels=None,
                 history_limit=config.HISTORY_LIMIT, text_generator=None):
        self.levels = list(levels) if levels else list(DIFFICULTY_LEVELS)
        index = self._index_of(starting_level)
        self.current_level = self.levels[index if index is not None else 0]
        self.history = deque(maxlen=max(1, int(history_limit)))
        self.text_generator = text_generator or AdaptiveTextGenerator()

    def add_session(self, summary):
        record = PerformanceRecord.from_summary(summary)
        if record is None:
            logger.debug("Ignored unusable session summary %r", summary)
            return

        if record.level_id is None:
            if self._index_of(record.drill_type) is not None:
                record.level_id = record.drill_type
            else:
                record.level_id = self.current_level.id
        self.history.append(record)

    def get_history(self) -> List[PerformanceRecord]:
        return list(self.history)

    def get_current_level(self) -> DifficultyLevel:
        return self.current_level

    def calculate_next_difficulty(self) -> DifficultyLevel:
        sessions = self._recent_sessions_for_level(self.current_level.id)
        if len(sessions) < config.MIN_SESSIONS_FOR_ADVANCEMENT:
            return self.current_level

        performance = self._analyze_recent_performance(sessions)

        if self._should_advance(performance):
            return self._neighbour(1) or self.current_level
        elif self._should_regress(performance):
            return self._neighbour(-1) or self.current_level

        return self.current_level

    def update_current_level(self) -> DifficultyLevel:
        next_level = self.calculate_next_difficulty()
        if next_level.id != self.current_level.id:
            logger.info("Difficulty changed: %s -> %s", self.current_level.id, next_level.id)
        self.current_level = next_level
        return self.current_level

    def get_progression_phase(self) -> Optional[ProgressionPhase]:
        index = self._index_of(self.current_level.id) or 0

        if index <= 1:
            return PROGRESSION_PHASES[0]
        if index <= 3:
            return PROGRESSION_PHASES[1]
        if index <= 5:
            return PROGRESSION_PHASES[2]
        return PROGRESSION_PHASES[3]

    def get_recommendations(self) -> List[str]:
        if not self.history:
            return []

        sessions = self._recent_sessions_for_level(self.current_level.id)
        if not sessions:
            sessions = list(self.history)[-config.PERFORMANCE_WINDOW:]
        performance = self._analyze_recent_performance(sessions)

        recommendations = []

        accuracy = performance['avg_accuracy']
        error_rate = performance['avg_error_rate']
        if (accuracy is not None and accuracy < config.TARGET_ACCURACY) or \
                (error_rate is not None and error_rate > 100 - config.TARGET_ACCURACY):
            recommendations.append('Focus on accuracy before speed. Slow down and aim for 97%+ accuracy.')

        ratios = performance['correction_ratios']
        if ratios and (np.mean(ratios) > config.CORRECTION_RATIO_LIMIT or
                       (len(ratios) > 1 and np.std(ratios) > config.CORRECTION_RATIO_SPREAD)):
            recommendations.append('Slow down and type each character deliberately instead of correcting afterwards.')

        consistency = performance['consistency']
        if consistency is not None and consistency < config.TARGET_CONSISTENCY:
            recommendations.append('Work on typing rhythm. Try to maintain steady keystroke timing.')

        if len(performance['error_patterns']) > config.MAX_ERROR_PATTERNS:
            recommendations.append('Practice your most common error patterns in isolation.')

        wpm = performance['avg_wpm']
        if wpm is not None and wpm < self.current_level.target_wpm * config.LOW_WPM_MULTIPLIER:
            recommendations.append('Consider dropping to an easier level to build confidence.')

        if not recommendations:
            recommendations.append('Great progress! Keep practicing to advance to the next level.')

        return recommendations

    def generate_adaptive_text(self, level=None, weak_patterns=None):
        """Drill text for a level, leading with the learner's worst mistakes"""
        level = level or self.current_level
        if weak_patterns is None:
            sessions = list(self.history)[-config.PERFORMANCE_WINDOW:]
            weak_patterns = self._analyze_recent_performance(sessions)['error_patterns']
        return self.text_generator.generate_text(level, weak_patterns)

    def _analyze_recent_performance(self, sessions):
        wpms = [s.final_wpm for s in sessions if s.final_wpm is not None]
        accuracies = [s.accuracy for s in sessions if s.accuracy is not None]
        error_rates = [s.error_rate for s in sessions if s.error_rate is not None]
        ratios = [s.correction_ratio for s in sessions if s.correction_ratio is not None]
        rhythms = [s.consistency for s in sessions if s.consistency is not None]

        # Prefer recorded keystroke rhythm; fall back to session-to-session WPM spread
        if rhythms:
            consistency = float(np.mean(rhythms))
        elif wpms:
            consistency = max(0.0, 100 - float(np.std(wpms)))
        else:
            consistency = None

        error_patterns = Counter()
        for session in sessions:
            for keystroke in session.keystrokes:
                if keystroke.is_scored and not keystroke.is_correct:
                    error_patterns[error_pattern(keystroke)] += 1

        return {
            'avg_wpm': float(np.mean(wpms)) if wpms else None,
            'avg_accuracy': float(np.mean(accuracies)) if accuracies else None,
            'avg_error_rate': float(np.mean(error_rates)) if error_rates else None,
            'wpm_samples': len(wpms),
            'accuracy_samples': len(accuracies),
            'correction_ratios': ratios,
            'consistency': consistency,
            'error_patterns': error_patterns,
            'trend': self._calculate_trend(wpms),
        }

    def _should_advance(self, performance):
        if performance['wpm_samples'] < config.MIN_SESSIONS_FOR_ADVANCEMENT or \
                performance['accuracy_samples'] < config.MIN_SESSIONS_FOR_ADVANCEMENT:
            return False
        return (
            performance['avg_accuracy'] >= config.TARGET_ACCURACY and
            performance['avg_wpm'] >= self.current_level.target_wpm * config.TARGET_WPM_MULTIPLIER
        )

    def _should_regress(self, performance):
        accuracy = performance['avg_accuracy']
        if performance['accuracy_samples'] >= config.MIN_SESSIONS_FOR_ADVANCEMENT and \
                accuracy < config.REGRESS_ACCURACY:
            return True
        wpm = performance['avg_wpm']
        return (
            wpm is not None and
            wpm < self.current_level.target_wpm * config.REGRESS_WPM_MULTIPLIER and
            performance['trend'] == 'declining'
        )

    def _calculate_trend(self, wpms):
        recent = wpms[-3:]
        older = wpms[-6:-3]
        if len(recent) < 3 or not older:
            return 'stable'

        difference = np.mean(recent) - np.mean(older)
        if difference > config.TREND_DELTA_WPM:
            return 'improving'
        if difference < -config.TREND_DELTA_WPM:
            return 'declining'
        return 'stable'

    def _recent_sessions_for_level(self, level_id):
        return [s for s in self.history if s.level_id == level_id][-config.PERFORMANCE_WINDOW:]

    def _neighbour(self, step):
        index = self._index_of(self.current_level.id)
        if index is None:
            return None
        target = index + step
        if 0 <= target < len(self.levels):
            return self.levels[target]
        return None

    def _index_of(self, level_id):
        for index, level in enumerate(self.levels):
            if level.id == level_id:
                return index
        return None

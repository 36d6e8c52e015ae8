import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from typing_coach import config


def as_number(value) -> Optional[float]:
    """Finite float for numeric input, None for anything else (bools included)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _field(source, *names):
    """First present value among names on a mapping or an object."""
    for name in names:
        if isinstance(source, dict):
            if name in source:
                return source[name]
        else:
            # Arbitrary objects may run property code that raises
            try:
                if hasattr(source, name):
                    return getattr(source, name)
            except Exception:
                return None
    return None


@dataclass
class Position:
    line: int
    column: int

    @classmethod
    def from_value(cls, value) -> Optional['Position']:
        if isinstance(value, Position):
            return value
        if isinstance(value, (tuple, list)) and len(value) == 2:
            line, column = value
        elif value is not None:
            line = _field(value, 'line', 'lineNumber')
            column = _field(value, 'column')
        else:
            return None
        line, column = as_number(line), as_number(column)
        if line is None or column is None:
            return None
        return cls(int(line), int(column))


@dataclass
class Keystroke:
    key: str
    expected: Optional[str]
    position: Optional[Position]
    timestamp: float
    is_correct: bool
    time_delta: Optional[float] = None  # ms since the previous keystroke

    @property
    def is_correction(self) -> bool:
        return self.key in config.CORRECTION_KEYS

    @property
    def is_printable(self) -> bool:
        return len(self.key) == 1

    @property
    def is_scored(self) -> bool:
        # Control keys and keystrokes without a usable expected char are not scored
        return self.is_printable and self.expected is not None

    @classmethod
    def from_value(cls, value) -> Optional['Keystroke']:
        if isinstance(value, Keystroke):
            return value
        key = _field(value, 'key')
        if not isinstance(key, str) or not key:
            return None
        expected = _field(value, 'expected')
        if not isinstance(expected, str):
            expected = None
        is_correct = _field(value, 'is_correct', 'isCorrect')
        if not isinstance(is_correct, bool):
            is_correct = expected is not None and key == expected
        return cls(
            key=key,
            expected=expected,
            position=Position.from_value(_field(value, 'position')),
            timestamp=as_number(_field(value, 'timestamp')) or 0.0,
            is_correct=is_correct,
            time_delta=as_number(_field(value, 'time_delta', 'timeDelta')),
        )


@dataclass
class AccuracyMetrics:
    raw: float = 0.0
    adjusted: float = 0.0
    error_rate: float = 0.0
    correction_ratio: float = 0.0


@dataclass
class KeyHeat:
    key: str
    average_time: float
    frequency: int
    error_rate: float


@dataclass
class SessionStats:
    wpm: float = 0.0
    accuracy: float = 0.0
    consistency: float = 0.0
    error_count: int = 0
    correction_count: int = 0
    corrected_errors: int = 0
    error_patterns: Dict[str, int] = field(default_factory=dict)


@dataclass
class TypingSession:
    id: str
    drill_type: Optional[str]
    target_wpm: float
    start_time: float
    end_time: Optional[float] = None
    paused_intervals: List[list] = field(default_factory=list)
    keystrokes: List[Keystroke] = field(default_factory=list)
    stats: SessionStats = field(default_factory=SessionStats)
    final_wpm: float = 0.0
    accuracy: AccuracyMetrics = field(default_factory=AccuracyMetrics)

    @property
    def is_paused(self) -> bool:
        return bool(self.paused_intervals) and self.paused_intervals[-1][1] is None

    def paused_ms(self, now: float) -> float:
        total = 0.0
        for paused_at, resumed_at in self.paused_intervals:
            end = now if resumed_at is None else resumed_at
            total += max(0.0, end - paused_at)
        return total

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PerformanceRecord:
    """What the adaptive engine keeps of a finished session.

    Every measurement is optional: summaries written by older clients may lack
    fields, and a missing value is left out of aggregates rather than read as 0.
    """
    drill_type: Optional[str] = None
    final_wpm: Optional[float] = None
    accuracy_raw: Optional[float] = None
    accuracy_adjusted: Optional[float] = None
    error_rate: Optional[float] = None
    correction_ratio: Optional[float] = None
    consistency: Optional[float] = None
    keystrokes: List[Keystroke] = field(default_factory=list)
    session_id: Optional[str] = None
    level_id: Optional[str] = None

    @property
    def accuracy(self) -> Optional[float]:
        if self.accuracy_raw is not None:
            return self.accuracy_raw
        if self.accuracy_adjusted is not None:
            return self.accuracy_adjusted
        if self.error_rate is not None:
            return max(0.0, 100.0 - self.error_rate)
        return None

    @classmethod
    def from_summary(cls, summary) -> Optional['PerformanceRecord']:
        if summary is None:
            return None
        if isinstance(summary, PerformanceRecord):
            return summary
        if not isinstance(summary, dict) and not hasattr(summary, '__dict__'):
            return None

        accuracy = _field(summary, 'accuracy')
        if isinstance(accuracy, (dict, AccuracyMetrics)):
            raw = as_number(_field(accuracy, 'raw'))
            adjusted = as_number(_field(accuracy, 'adjusted'))
            error_rate = as_number(_field(accuracy, 'error_rate', 'errorRate'))
            correction_ratio = as_number(_field(accuracy, 'correction_ratio', 'correctionRatio'))
        else:
            # Legacy summaries store a bare percentage
            raw = as_number(accuracy)
            adjusted = error_rate = correction_ratio = None

        stats = _field(summary, 'stats')
        consistency = as_number(_field(summary, 'consistency'))
        if consistency is None and stats is not None:
            consistency = as_number(_field(stats, 'consistency'))

        keystrokes = _field(summary, 'keystrokes')
        parsed = []
        if isinstance(keystrokes, (list, tuple)):
            for item in keystrokes:
                keystroke = Keystroke.from_value(item)
                if keystroke is not None:
                    parsed.append(keystroke)

        drill_type = _field(summary, 'drill_type', 'drillType')
        session_id = _field(summary, 'id', 'session_id', 'sessionId')
        level_id = _field(summary, 'level_id', 'levelId')
        return cls(
            drill_type=drill_type if isinstance(drill_type, str) else None,
            final_wpm=as_number(_field(summary, 'final_wpm', 'finalWPM', 'wpm')),
            accuracy_raw=raw,
            accuracy_adjusted=adjusted,
            error_rate=error_rate,
            correction_ratio=correction_ratio,
            consistency=consistency,
            keystrokes=parsed,
            session_id=session_id if isinstance(session_id, str) else None,
            level_id=level_id if isinstance(level_id, str) else None,
        )

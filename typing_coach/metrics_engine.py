import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from typing_coach import config
from typing_coach.analyzer import KeystrokeTally, TypingAnalyzer
from typing_coach.records import (
    AccuracyMetrics,
    KeyHeat,
    Keystroke,
    Position,
    SessionStats,
    TypingSession,
    as_number,
)

logger = logging.getLogger(__name__)


def monotonic_ms():
    return time.monotonic() * 1000


@dataclass
class TypingMetrics:
    wpm: float = 0.0
    accuracy: float = 0.0
    consistency: float = 0.0
    error_count: int = 0
    correction_count: int = 0
    accuracy_detail: AccuracyMetrics = field(default_factory=AccuracyMetrics)
    keystroke_latency: List[float] = field(default_factory=list)
    error_patterns: Dict[str, int] = field(default_factory=dict)
    heatmap: List[KeyHeat] = field(default_factory=list)


class TypingMetricsEngine:
    """Live metrics for one typing session at a time.

    Every public method is safe to wire straight to UI event handlers: calls
    without an active session, and malformed arguments, are ignored instead
    of raising. Instances share no state, so one engine per widget is fine.
    """

    def __init__(self, analyzer=None, clock: Optional[Callable[[], float]] = None):
        self.analyzer = analyzer or TypingAnalyzer()
        self._clock = clock or monotonic_ms
        self._session: Optional[TypingSession] = None
        self._active = False
        self._tally = KeystrokeTally()
        self._last_keystroke_time = None
        self._observers = []
        self._metrics = TypingMetrics()

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def current_session(self) -> Optional[TypingSession]:
        return self._session

    @property
    def metrics(self) -> TypingMetrics:
        return self._metrics

    @property
    def session_duration(self) -> float:
        """Active milliseconds since the session started, pauses excluded"""
        if self._session is None:
            return 0.0
        return self._active_elapsed(self._clock())

    @property
    def progress_score(self) -> int:
        if self._session is None:
            return 0
        # Combined score: WPM achievement + accuracy
        wpm_score = min(self._metrics.wpm / self._session.target_wpm, 1) * 50
        accuracy_score = (self._metrics.accuracy / 100) * 50
        return round(wpm_score + accuracy_score)

    def subscribe(self, callback):
        """Call `callback(engine)` after every state change; returns an unsubscribe function"""
        self._observers.append(callback)

        def unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)
        return unsubscribe

    def start_session(self, drill_type=None, target_wpm=config.DEFAULT_TARGET_WPM):
        """Begin a new session, replacing any session already in progress"""
        now = self._clock()
        target = as_number(target_wpm)
        if target is None or target <= 0:
            target = float(config.DEFAULT_TARGET_WPM)

        if self._session is not None:
            logger.info("Replacing unfinished session %s", self._session.id)

        self._session = TypingSession(
            id=str(uuid.uuid4()),
            drill_type=drill_type,
            target_wpm=target,
            start_time=now,
        )
        self._active = True
        self._tally = KeystrokeTally()
        self._last_keystroke_time = None
        self._zero_metrics()

        logger.info("Started session %s (drill=%r, target=%s wpm)", self._session.id, drill_type, target)
        self._notify()

    def record_keystroke(self, key, expected, position=None):
        """Log a single keystroke and refresh metrics"""
        if not self._active or self._session is None:
            return
        if not isinstance(key, str) or not key:
            logger.debug("Dropped keystroke with unusable key %r", key)
            return

        now = self._clock()
        key = config.KEY_ALIASES.get(key, key)
        if isinstance(expected, str):
            expected = config.KEY_ALIASES.get(expected, expected)
        else:
            expected = None

        time_delta = None
        if self._last_keystroke_time is not None:
            time_delta = max(0.0, now - self._last_keystroke_time)

        keystroke = Keystroke(
            key=key,
            expected=expected,
            position=Position.from_value(position),
            timestamp=now,
            is_correct=expected is not None and key == expected and key not in config.CORRECTION_KEYS,
            time_delta=time_delta,
        )

        self._session.keystrokes.append(keystroke)
        self._tally.add(keystroke)
        self._last_keystroke_time = now

        self._recompute(now)
        self._notify()

    def pause_session(self):
        if not self._active or self._session is None:
            return
        now = self._clock()
        self._recompute(now)
        self._session.paused_intervals.append([now, None])
        self._active = False
        logger.info("Paused session %s", self._session.id)
        self._notify()

    def resume_session(self):
        if self._active or self._session is None:
            return
        now = self._clock()
        if self._session.is_paused:
            self._session.paused_intervals[-1][1] = now
        if self._last_keystroke_time is not None:
            # Time spent paused is not a keystroke interval
            self._last_keystroke_time = now
        self._active = True
        logger.info("Resumed session %s", self._session.id)
        self._notify()

    def end_session(self) -> Optional[TypingSession]:
        """Finalize the session and hand it back; None if there was none"""
        if self._session is None:
            return None

        now = self._clock()
        session = self._session
        if session.is_paused:
            session.paused_intervals[-1][1] = now
        session.end_time = now

        self._recompute(now)
        session.final_wpm = self._metrics.wpm
        session.accuracy = self._metrics.accuracy_detail

        self._session = None
        self._active = False
        logger.info(
            "Ended session %s: %.1f wpm, %.1f%% accuracy, %d keystrokes",
            session.id, session.final_wpm, session.accuracy.raw, len(session.keystrokes),
        )
        self._notify()
        return session

    def reset_session(self):
        """Drop any session and zero every metric, from any state"""
        if self._session is not None:
            logger.info("Discarded session %s", self._session.id)
        self._session = None
        self._active = False
        self._tally = KeystrokeTally()
        self._last_keystroke_time = None
        self._zero_metrics()
        self._notify()

    def top_error_patterns(self, n=5):
        return self.analyzer.top_error_patterns(self._metrics.error_patterns, n)

    def reconstruct_input(self, session=None):
        session = session or self._session
        if session is None:
            return ''
        return self.analyzer.reconstruct_input(session.keystrokes)

    def _active_elapsed(self, now):
        session = self._session
        return max(0.0, now - session.start_time - session.paused_ms(now))

    def _recompute(self, now):
        if self._session is None:
            return
        tally = self._tally
        try:
            accuracy = self.analyzer.calculate_accuracy(tally)
            metrics = self._metrics
            metrics.wpm = self.analyzer.calculate_wpm(tally.correct, self._active_elapsed(now))
            metrics.accuracy = accuracy.raw
            metrics.accuracy_detail = accuracy
            metrics.consistency = self.analyzer.calculate_consistency(tally.intervals)
            metrics.error_count = tally.errors
            metrics.correction_count = tally.corrections
            metrics.keystroke_latency = list(tally.intervals)
            metrics.error_patterns = dict(tally.error_patterns)
            metrics.heatmap = self.analyzer.analyze_key_performance(tally)
        except (ArithmeticError, ValueError, TypeError):
            logger.warning("Metric recomputation failed; resetting metrics", exc_info=True)
            self._zero_metrics()

        self._session.stats = SessionStats(
            wpm=self._metrics.wpm,
            accuracy=self._metrics.accuracy,
            consistency=self._metrics.consistency,
            error_count=self._metrics.error_count,
            correction_count=self._metrics.correction_count,
            corrected_errors=tally.corrected_errors,
            error_patterns=self._metrics.error_patterns,
        )

    def _zero_metrics(self):
        metrics = self._metrics
        metrics.wpm = 0.0
        metrics.accuracy = 0.0
        metrics.consistency = 0.0
        metrics.error_count = 0
        metrics.correction_count = 0
        metrics.accuracy_detail = AccuracyMetrics()
        metrics.keystroke_latency = []
        metrics.error_patterns = {}
        metrics.heatmap = []

    def _notify(self):
        for callback in list(self._observers):
            try:
                callback(self)
            except Exception:
                logger.exception("Metrics observer %r failed", callback)

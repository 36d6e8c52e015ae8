from collections import Counter, defaultdict

import numpy as np

from typing_coach import config
from typing_coach.records import AccuracyMetrics, KeyHeat


def error_pattern(keystroke):
    return f"{keystroke.expected}->{keystroke.key}"


class KeystrokeTally:
    """Running counters over a keystroke log, updated one keystroke at a time"""

    def __init__(self):
        self.scored = 0
        self.correct = 0
        self.errors = 0
        self.corrections = 0
        self.corrected_errors = 0
        self.intervals = []
        self.error_patterns = Counter()
        self.key_stats = defaultdict(lambda: {'total': 0, 'correct': 0, 'times': []})
        self._last = None

    def add(self, keystroke):
        if keystroke.time_delta is not None:
            self.intervals.append(keystroke.time_delta)

        if keystroke.is_correction:
            self.corrections += 1
            # A correction straight after a miss fixes that miss
            if self._last is not None and self._last.is_scored and not self._last.is_correct:
                self.corrected_errors += 1
        elif keystroke.is_scored:
            self.scored += 1
            stats = self.key_stats[keystroke.expected.lower() or keystroke.key.lower()]
            stats['total'] += 1
            if keystroke.time_delta is not None:
                stats['times'].append(keystroke.time_delta)
            if keystroke.is_correct:
                self.correct += 1
                stats['correct'] += 1
            else:
                self.errors += 1
                self.error_patterns[error_pattern(keystroke)] += 1

        self._last = keystroke


class TypingAnalyzer:
    def __init__(self, word_length=config.AVERAGE_WORD_LENGTH):
        self.word_length = word_length

    def calculate_wpm(self, correct_characters, elapsed_ms):
        """Correct characters per standard word, per active minute"""
        if elapsed_ms is None or elapsed_ms < config.MIN_WPM_ELAPSED_MS:
            return 0.0
        minutes = elapsed_ms / 60000
        wpm = (correct_characters / self.word_length) / minutes
        return round(max(0.0, wpm), 2)

    def calculate_accuracy(self, tally):
        if tally.scored == 0:
            return AccuracyMetrics()

        raw = tally.correct / tally.scored * 100
        adjusted = (tally.correct - tally.corrected_errors) / tally.scored * 100
        return AccuracyMetrics(
            raw=self._clamp(raw),
            adjusted=self._clamp(adjusted),  # Penalize corrections
            error_rate=self._clamp(tally.errors / tally.scored * 100),
            correction_ratio=tally.corrected_errors / tally.errors if tally.errors else 0.0,
        )

    def calculate_consistency(self, intervals):
        """Lower spread in keystroke timing = higher consistency, on 0-100"""
        timings = [t for t in intervals[-config.CONSISTENCY_WINDOW:]
                   if 0 < t < config.CONSISTENCY_OUTLIER_MS]
        if len(timings) < 2:
            return config.NEUTRAL_CONSISTENCY

        mean = np.mean(timings)
        if mean <= 0:
            return config.NEUTRAL_CONSISTENCY
        variation = np.std(timings) / mean
        return self._clamp(float(100 - variation * 100))

    def analyze_key_performance(self, tally, limit=None):
        """Per-key timing and error heat, most error-prone keys first"""
        heat = []
        for key, stats in tally.key_stats.items():
            accuracy = stats['correct'] / stats['total']
            heat.append(KeyHeat(
                key=key,
                average_time=float(np.mean(stats['times'])) if stats['times'] else 0.0,
                frequency=stats['total'],
                error_rate=(1 - accuracy) * 100,
            ))
        heat.sort(key=lambda h: h.error_rate, reverse=True)
        return heat[:limit] if limit else heat

    def top_error_patterns(self, patterns, n=5):
        return Counter(patterns).most_common(n)

    def analyze(self, keystrokes):
        """Batch analysis of a finished keystroke log"""
        tally = KeystrokeTally()
        for keystroke in keystrokes:
            tally.add(keystroke)

        accuracy = self.calculate_accuracy(tally)
        return {
            'overall': {
                'total_keystrokes': len(keystrokes),
                'scored_keystrokes': tally.scored,
                'accuracy': accuracy.raw,
                'error_count': tally.errors,
                'correction_count': tally.corrections,
                'consistency': self.calculate_consistency(tally.intervals),
            },
            'accuracy': accuracy,
            'key_level': self.analyze_key_performance(tally, limit=10),
            'error_patterns': dict(tally.error_patterns),
        }

    def reconstruct_input(self, keystrokes):
        """Rebuild the typed text by replaying keystrokes at their cursor positions"""
        lines = ['']
        line, column = 1, 1
        for keystroke in keystrokes:
            if keystroke.position is not None:
                line, column = keystroke.position.line, keystroke.position.column
            # Cursor stays within the text built so far, at most one past its end
            line = min(max(1, line), len(lines) + 1)
            if line > len(lines):
                lines.append('')
            text = lines[line - 1]
            column = min(max(1, column), len(text) + 1)

            if keystroke.key == 'Backspace':
                if column > 1:
                    lines[line - 1] = text[:column - 2] + text[column - 1:]
                    column -= 1
                elif line > 1:
                    column = len(lines[line - 2]) + 1
                    lines[line - 2] += lines.pop(line - 1)
                    line -= 1
            elif keystroke.key == 'Delete':
                lines[line - 1] = text[:column - 1] + text[column:]
            elif keystroke.key == '\n':
                lines[line - 1] = text[:column - 1]
                lines.insert(line, text[column - 1:])
                line, column = line + 1, 1
            elif keystroke.is_printable:
                lines[line - 1] = text[:column - 1] + keystroke.key + text[column:]
                column += 1

        return '\n'.join(lines)

    def _clamp(self, value, low=0.0, high=100.0):
        return max(low, min(high, value))

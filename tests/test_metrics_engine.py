"""Tests for TypingMetricsEngine."""

import math
from dataclasses import asdict

import pytest

from typing_coach.metrics_engine import TypingMetrics, TypingMetricsEngine
from conftest import FakeClock


class TestSessionLifecycle:
    def test_start_session_creates_empty_session(self, engine, clock):
        engine.start_session('beginner-1', target_wpm=45)

        session = engine.current_session
        assert engine.is_active
        assert session.drill_type == 'beginner-1'
        assert session.target_wpm == 45
        assert session.start_time == clock.now
        assert session.end_time is None
        assert session.keystrokes == []
        assert session.stats.wpm == 0
        assert session.stats.error_count == 0

    def test_start_session_defaults(self, engine):
        engine.start_session()

        assert engine.current_session.drill_type is None
        assert engine.current_session.target_wpm == 60

    @pytest.mark.parametrize('bad_target', [None, 'fast', -5, 0, float('nan')])
    def test_invalid_target_falls_back_to_default(self, engine, bad_target):
        engine.start_session('drill', target_wpm=bad_target)

        assert engine.current_session.target_wpm == 60

    def test_start_replaces_active_session(self, engine, type_text):
        engine.start_session('first')
        first_id = engine.current_session.id
        type_text('abc')

        engine.start_session('second')

        assert engine.current_session.id != first_id
        assert engine.current_session.drill_type == 'second'
        assert engine.current_session.keystrokes == []
        assert engine.metrics.error_count == 0
        assert engine.metrics.wpm == 0

    def test_end_session_returns_completed_session(self, engine, clock, type_text):
        engine.start_session('drill')
        type_text('hello', interval=1200)

        session = engine.end_session()

        assert session is not None
        assert session.end_time == clock.now
        assert session.final_wpm == engine.metrics.wpm
        assert session.accuracy.raw == 100
        assert len(session.keystrokes) == 5
        assert engine.current_session is None
        assert not engine.is_active

    def test_end_session_without_session_returns_none(self, engine):
        assert engine.end_session() is None
        engine.start_session('drill')
        engine.end_session()
        assert engine.end_session() is None

    def test_reset_session_from_any_state(self, engine, type_text):
        engine.reset_session()
        engine.reset_session()

        engine.start_session('drill')
        type_text('abx', target='abc', interval=1000)
        engine.pause_session()
        engine.reset_session()

        assert not engine.is_active
        assert engine.current_session is None
        assert engine.metrics.wpm == 0
        assert engine.metrics.accuracy == 0
        assert engine.metrics.error_patterns == {}
        assert engine.session_duration == 0
        assert engine.progress_score == 0


class TestRecordKeystroke:
    def test_no_active_session_is_ignored(self, engine):
        engine.record_keystroke('a', 'a', {'line': 1, 'column': 1})

        assert engine.current_session is None
        assert asdict(engine.metrics) == asdict(TypingMetrics())

    def test_ended_session_is_ignored(self, engine, type_text):
        engine.start_session('drill')
        type_text('ab')
        session = engine.end_session()
        before = asdict(engine.metrics)

        engine.record_keystroke('c', 'c', {'line': 1, 'column': 3})

        assert len(session.keystrokes) == 2
        assert asdict(engine.metrics) == before

    @pytest.mark.parametrize('key', [None, '', 42, ['a'], {'key': 'a'}])
    def test_unusable_key_is_dropped(self, engine, key):
        engine.start_session('drill')

        engine.record_keystroke(key, 'a', {'line': 1, 'column': 1})

        assert engine.current_session.keystrokes == []

    def test_missing_expected_is_recorded_but_not_scored(self, engine, clock):
        engine.start_session('drill')
        clock.advance(100)

        engine.record_keystroke('a', None, None)

        keystroke = engine.current_session.keystrokes[0]
        assert keystroke.expected is None
        assert keystroke.position is None
        assert not keystroke.is_correct
        assert engine.metrics.error_count == 0
        assert engine.metrics.accuracy == 0

    def test_malformed_position_is_tolerated(self, engine):
        engine.start_session('drill')

        engine.record_keystroke('a', 'a', 'not a position')
        engine.record_keystroke('b', 'b', {'line': 'x', 'column': None})
        engine.record_keystroke('c', 'c', (1, 3))

        positions = [k.position for k in engine.current_session.keystrokes]
        assert positions[0] is None
        assert positions[1] is None
        assert (positions[2].line, positions[2].column) == (1, 3)

    def test_all_correct_keystrokes_give_full_accuracy(self, engine, type_text):
        engine.start_session('drill')
        type_text('the quick brown fox')

        assert engine.metrics.accuracy == 100
        assert engine.metrics.error_count == 0

    def test_accuracy_counts_mismatches(self, engine, type_text):
        engine.start_session('drill')
        type_text('abxd', target='abcd')

        assert engine.metrics.accuracy == pytest.approx(75.0)
        assert engine.metrics.error_count == 1

    def test_typing_past_end_of_text_is_an_error(self, engine, type_text):
        engine.start_session('drill')
        type_text('ab', target='a')

        assert engine.metrics.error_count == 1
        assert engine.metrics.error_patterns == {'->b': 1}

    def test_correction_keys_are_not_scored(self, engine, clock):
        engine.start_session('drill')
        clock.advance(100)
        engine.record_keystroke('a', 'a', {'line': 1, 'column': 1})
        engine.record_keystroke('Backspace', 'b', {'line': 1, 'column': 2})
        engine.record_keystroke('Delete', 'b', {'line': 1, 'column': 1})

        assert engine.metrics.accuracy == 100
        assert engine.metrics.correction_count == 2
        assert engine.metrics.error_count == 0

    def test_named_keys_map_to_characters(self, engine):
        engine.start_session('drill')

        engine.record_keystroke('Enter', '\n', {'line': 1, 'column': 1})
        engine.record_keystroke('Tab', '\t', {'line': 2, 'column': 1})

        assert [k.is_correct for k in engine.current_session.keystrokes] == [True, True]
        assert engine.metrics.accuracy == 100

    def test_retyped_word_after_backspace(self, engine, clock, type_text):
        engine.start_session('drill', target_wpm=60)
        type_text('cat')
        clock.advance(200)
        engine.record_keystroke('Backspace', '', {'line': 1, 'column': 4})
        type_text('cat')

        assert engine.reconstruct_input() == 'cat'
        assert engine.metrics.error_count == 0
        assert engine.metrics.correction_count == 1
        assert engine.current_session.stats.correction_count == 1

    def test_keystrokes_kept_in_arrival_order(self, engine, type_text):
        engine.start_session('drill')
        type_text('abcdef')

        log = engine.current_session.keystrokes
        assert ''.join(k.key for k in log) == 'abcdef'
        assert [k.timestamp for k in log] == sorted(k.timestamp for k in log)
        assert log[0].time_delta is None
        assert all(k.time_delta == 200 for k in log[1:])


class TestWpm:
    def test_wpm_from_correct_characters_and_elapsed_time(self, engine, type_text):
        engine.start_session('drill')
        type_text('abcdefghij', interval=1200)

        # 10 chars = 2 words in 12 seconds
        assert engine.metrics.wpm == pytest.approx(10.0)

    def test_wpm_ignores_incorrect_characters(self, engine, type_text):
        engine.start_session('drill')
        type_text('abcdefghij', target='abcdefghxx', interval=1200)

        assert engine.metrics.wpm == pytest.approx(8.0)

    def test_wpm_is_zero_and_finite_right_after_start(self, engine):
        engine.start_session('drill')
        engine.record_keystroke('a', 'a', {'line': 1, 'column': 1})

        assert engine.metrics.wpm == 0
        assert math.isfinite(engine.metrics.wpm)


class TestConsistency:
    def test_instant_keystrokes_do_not_divide_by_zero(self, engine, type_text):
        engine.start_session('drill')
        type_text('abcdefghij', interval=0)

        assert 0 <= engine.metrics.consistency <= 100
        assert not math.isnan(engine.metrics.consistency)

    def test_single_keystroke_is_neutral(self, engine, type_text):
        engine.start_session('drill')
        type_text('a')

        assert engine.metrics.consistency == 100

    def test_even_rhythm_scores_full(self, engine, type_text):
        engine.start_session('drill')
        type_text('abcdefgh', interval=150)

        assert engine.metrics.consistency == pytest.approx(100.0)

    def test_uneven_rhythm_scores_lower(self, engine, clock):
        engine.start_session('drill')
        engine.record_keystroke('a', 'a', (1, 1))
        for column, gap in enumerate([100, 300, 100, 300], start=2):
            clock.advance(gap)
            engine.record_keystroke('a', 'a', (1, column))

        assert engine.metrics.consistency == pytest.approx(50.0)


class TestErrorPatterns:
    def test_patterns_count_expected_and_typed(self, engine, type_text):
        engine.start_session('drill')
        type_text('xbxy', target='abaz')

        assert engine.metrics.error_patterns == {'a->x': 2, 'z->y': 1}
        assert engine.top_error_patterns(1) == [('a->x', 2)]

    def test_corrected_errors_adjust_accuracy(self, engine, clock):
        engine.start_session('drill')
        clock.advance(100)
        engine.record_keystroke('x', 'a', (1, 1))
        engine.record_keystroke('Backspace', '', (1, 2))
        engine.record_keystroke('a', 'a', (1, 1))

        detail = engine.metrics.accuracy_detail
        assert detail.raw == pytest.approx(50.0)
        assert detail.adjusted == pytest.approx(0.0)
        assert detail.error_rate == pytest.approx(50.0)
        assert detail.correction_ratio == pytest.approx(1.0)

    def test_heatmap_lists_worst_keys_first(self, engine, type_text):
        engine.start_session('drill')
        type_text('aaxb', target='aabb')

        heat = engine.metrics.heatmap
        assert heat[0].key == 'b'
        assert heat[0].frequency == 2
        assert heat[0].error_rate == pytest.approx(50.0)


class TestPauseResume:
    def test_paused_time_is_excluded(self, engine, clock):
        engine.start_session('drill')
        clock.advance(5000)
        engine.pause_session()
        clock.advance(10000)
        engine.resume_session()
        clock.advance(5000)

        assert engine.session_duration == 10000
        assert engine.current_session.paused_intervals == [[6000.0, 16000.0]]

    def test_metrics_freeze_while_paused(self, engine, clock, type_text):
        engine.start_session('drill')
        type_text('abcdefghij', interval=1200)
        engine.pause_session()
        clock.advance(60000)

        engine.record_keystroke('k', 'k', (1, 11))

        assert not engine.is_active
        assert len(engine.current_session.keystrokes) == 10
        assert engine.metrics.wpm == pytest.approx(10.0)
        assert engine.session_duration == 12000

    def test_wpm_after_resume_ignores_pause(self, engine, clock, type_text):
        engine.start_session('drill')
        type_text('abcdefghij', interval=1200)
        engine.pause_session()
        clock.advance(60000)
        engine.resume_session()
        clock.advance(1200)
        engine.record_keystroke('k', 'k', (1, 11))

        assert engine.metrics.wpm == pytest.approx(10.0)
        assert engine.current_session.keystrokes[-1].time_delta == 1200

    def test_end_while_paused_closes_pause(self, engine, clock):
        engine.start_session('drill')
        clock.advance(1000)
        engine.pause_session()
        clock.advance(4000)

        session = engine.end_session()

        assert session.paused_intervals == [[2000.0, 6000.0]]

    def test_pause_and_resume_without_session(self, engine):
        engine.pause_session()
        engine.resume_session()

        assert not engine.is_active
        assert engine.current_session is None

    def test_double_pause_records_one_interval(self, engine, clock):
        engine.start_session('drill')
        engine.pause_session()
        engine.pause_session()
        engine.resume_session()
        engine.resume_session()

        assert len(engine.current_session.paused_intervals) == 1


class TestDerivedFields:
    def test_progress_score_combines_speed_and_accuracy(self, engine, type_text):
        engine.start_session('drill', target_wpm=10)
        type_text('abcdefghij', interval=1200)

        assert engine.progress_score == 100

    def test_progress_score_caps_speed_half(self, engine, type_text):
        engine.start_session('drill', target_wpm=5)
        type_text('abcdefghix', target='abcdefghij', interval=1200)

        assert engine.progress_score == 95

    def test_no_session_scores_zero(self, engine):
        assert engine.progress_score == 0
        assert engine.session_duration == 0


class TestObservers:
    def test_observers_are_notified(self, engine, type_text):
        calls = []
        engine.subscribe(lambda e: calls.append(e.metrics.wpm))

        engine.start_session('drill')
        type_text('ab')
        engine.end_session()

        assert len(calls) == 4

    def test_failing_observer_does_not_break_engine(self, engine, type_text):
        seen = []

        def broken(_engine):
            raise RuntimeError('boom')

        engine.subscribe(broken)
        engine.subscribe(lambda e: seen.append(len(e.current_session.keystrokes)))

        engine.start_session('drill')
        type_text('ab')

        assert seen == [0, 1, 2]

    def test_unsubscribe(self, engine):
        calls = []
        unsubscribe = engine.subscribe(lambda e: calls.append(1))
        engine.start_session('drill')
        unsubscribe()
        unsubscribe()
        engine.reset_session()

        assert calls == [1]


class TestIsolation:
    def test_engines_do_not_share_state(self):
        first = TypingMetricsEngine(clock=FakeClock())
        second = TypingMetricsEngine(clock=FakeClock())

        first.start_session('drill')
        first.record_keystroke('x', 'a', (1, 1))

        assert second.current_session is None
        assert second.metrics.error_patterns == {}
        assert first.metrics.error_patterns == {'a->x': 1}
        assert first.metrics is not second.metrics


class TestOversizedNumbers:
    @pytest.mark.parametrize('position', [
        {'line': 10**400, 'column': 1},
        {'lineNumber': 1, 'column': -10**400},
        (10**400, 10**400),
    ])
    def test_position_too_large_for_float_is_dropped(self, engine, position):
        engine.start_session('drill')

        engine.record_keystroke('a', 'a', position)

        keystroke = engine.current_session.keystrokes[-1]
        assert keystroke.position is None
        assert engine.metrics.accuracy == 100

    @pytest.mark.parametrize('target', [10**400, -10**400])
    def test_target_too_large_for_float_falls_back(self, engine, target):
        engine.start_session('drill', target)

        assert engine.current_session.target_wpm == 60


class TestLatencySnapshot:
    def test_mutating_published_latency_leaves_rhythm_alone(self, engine, type_text):
        engine.start_session('drill')
        type_text('abcd', interval=150)

        engine.metrics.keystroke_latency.extend([10, 900, 10, 900])
        type_text('e', interval=150, start_column=5)

        assert engine.metrics.keystroke_latency == [150, 150, 150, 150]
        assert engine.metrics.consistency == pytest.approx(100.0)

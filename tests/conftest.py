import pytest

from typing_coach.metrics_engine import TypingMetricsEngine


class FakeClock:
    """Millisecond clock that only moves when told to"""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    return TypingMetricsEngine(clock=clock)


@pytest.fixture
def type_text(engine, clock):
    """Feed characters one by one, advancing the clock before each"""

    def _type(typed, target=None, interval=200, line=1, start_column=1):
        target = typed if target is None else target
        for offset, char in enumerate(typed):
            clock.advance(interval)
            expected = target[offset] if offset < len(target) else ''
            engine.record_keystroke(char, expected, {'line': line, 'column': start_column + offset})

    return _type

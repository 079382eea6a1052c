"""
Tests for session classification and transition tracking
"""

from datetime import datetime

import pytest
from apex_engine.config import SessionConfig
from apex_engine.sessions import (
    SessionTracker, SessionType, build_windows, classify_session,
)


@pytest.fixture
def windows():
    return build_windows(SessionConfig())


def at(hour, minute, day=4):
    return datetime(2024, 3, day, hour, minute)


class TestClassification:

    @pytest.mark.parametrize('hour,minute,expected', [
        (18, 0, SessionType.ASIA),
        (23, 59, SessionType.ASIA),
        (0, 0, SessionType.ASIA),
        (1, 59, SessionType.ASIA),
        (2, 0, SessionType.EUROPE),
        (8, 29, SessionType.EUROPE),
        (8, 30, SessionType.NONE),
        (9, 29, SessionType.NONE),
        (9, 30, SessionType.NY),
        (15, 59, SessionType.NY),
        (16, 0, SessionType.NONE),
        (17, 59, SessionType.NONE),
    ])
    def test_default_windows(self, windows, hour, minute, expected):
        assert classify_session(at(hour, minute), windows) == expected

    def test_disabled_session_is_none(self):
        windows = build_windows(SessionConfig(asia=False))
        assert classify_session(at(20, 0), windows) == SessionType.NONE

    def test_sessions_disabled_means_ny(self, windows):
        assert classify_session(at(3, 0), windows, use_sessions=False) == SessionType.NY

    def test_custom_window(self):
        windows = build_windows(SessionConfig(ny_start='08:30', ny_end='15:00'))
        assert classify_session(at(8, 45), windows) == SessionType.NY
        assert classify_session(at(15, 0), windows) == SessionType.NONE

    def test_asia_window_wraps_midnight(self, windows):
        asia = windows[0]
        assert asia.wraps_midnight
        assert not windows[2].wraps_midnight


class TestSessionTracker:

    def test_transition_into_session(self):
        tracker = SessionTracker(SessionConfig())
        assert tracker.update(at(9, 29)) == (SessionType.NONE, False)
        assert tracker.update(at(9, 30)) == (SessionType.NY, True)
        assert tracker.update(at(9, 31)) == (SessionType.NY, False)
        assert tracker.session_start == at(9, 30)

    def test_leaving_session_is_not_transition(self):
        tracker = SessionTracker(SessionConfig())
        tracker.update(at(15, 59))
        session, is_new = tracker.update(at(16, 0))
        assert session == SessionType.NONE
        assert not is_new
        assert not tracker.in_session

    def test_back_to_back_sessions(self):
        tracker = SessionTracker(SessionConfig())
        tracker.update(at(1, 59, day=5))
        session, is_new = tracker.update(at(2, 0, day=5))
        assert session == SessionType.EUROPE
        assert is_new

    def test_minutes_since_start(self):
        tracker = SessionTracker(SessionConfig())
        tracker.update(at(9, 30))
        assert tracker.minutes_since_start(at(9, 45)) == 15.0

"""
Session Classification

Maps exchange-local wall-clock time to a named trading session and detects
session boundaries. The overnight (Asia) window wraps midnight.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time
from enum import Enum
from typing import List, Optional, Tuple

from .config import SessionConfig, parse_clock

logger = logging.getLogger(__name__)


class SessionType(Enum):
    NONE = "NONE"
    ASIA = "ASIA"
    EUROPE = "EUROPE"
    NY = "NY"


@dataclass(frozen=True)
class SessionWindow:
    session: SessionType
    start: time
    end: time

    @property
    def wraps_midnight(self) -> bool:
        return self.start > self.end

    def contains(self, t: time) -> bool:
        if self.wraps_midnight:
            return t >= self.start or t < self.end
        return self.start <= t < self.end


def build_windows(config: SessionConfig) -> List[SessionWindow]:
    """Enabled windows in match order (Asia, Europe, NY)."""
    windows = []
    if config.asia:
        windows.append(SessionWindow(SessionType.ASIA,
                                     parse_clock(config.asia_start), parse_clock(config.asia_end)))
    if config.europe:
        windows.append(SessionWindow(SessionType.EUROPE,
                                     parse_clock(config.europe_start), parse_clock(config.europe_end)))
    if config.ny:
        windows.append(SessionWindow(SessionType.NY,
                                     parse_clock(config.ny_start), parse_clock(config.ny_end)))
    return windows


def classify_session(bar_time: datetime, windows: List[SessionWindow],
                     use_sessions: bool = True) -> SessionType:
    """
    Classify a bar time into a session.

    With use_sessions disabled every bar is treated as NY.
    """
    if not use_sessions:
        return SessionType.NY

    t = bar_time.time()
    for window in windows:
        if window.contains(t):
            return window.session
    return SessionType.NONE


class SessionTracker:
    """
    Tracks the current session and reports transitions.

    A transition is reported when the classification changes to a session
    other than NONE; leaving a session for NONE is not a transition.
    """

    def __init__(self, config: SessionConfig):
        self.config = config
        self.windows = build_windows(config)
        self.current = SessionType.NONE
        self.session_start: Optional[datetime] = None

    def update(self, bar_time: datetime) -> Tuple[SessionType, bool]:
        session = classify_session(bar_time, self.windows, self.config.use_sessions)
        is_new = session != self.current and session != SessionType.NONE
        self.current = session
        if is_new:
            self.session_start = bar_time
            logger.info(f"[Session] {session.value} session start at {bar_time}")
        return session, is_new

    @property
    def in_session(self) -> bool:
        return self.current != SessionType.NONE

    def minutes_since_start(self, bar_time: datetime) -> float:
        if self.session_start is None:
            return 0.0
        return (bar_time - self.session_start).total_seconds() / 60.0

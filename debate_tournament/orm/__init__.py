from .base import Base

# Officials and events
from .user import User, UserRole
from .event import Event
from .team import Team

# Matches and scoring
from .match import Match, MatchAssignment
from .score import Score

# Standings inputs
from .adjustment_logs import VoteLog, WinLog, ScoreDifferentialLog
from .tiebreak_draw import TiebreakDraw

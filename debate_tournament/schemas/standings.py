"""
Pydantic schemas for standings, their audit trace and event statistics
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from debate_tournament.schemas.match import JudgeBreakdownResponse


class TeamStandingResponse(BaseModel):
    rank: int
    team_id: int
    team_name: Optional[str] = None
    school: Optional[str] = None
    wins: int
    losses: int
    ties: int
    win_points: Decimal
    votes: Decimal
    score_differential: Decimal
    opponents_result: Decimal
    total_matches: int
    tiebreak_step: Optional[str] = None


class TraceEntryResponse(BaseModel):
    kind: str
    payload: Dict[str, Any]


class StandingsResponse(BaseModel):
    event_id: int
    standings: List[TeamStandingResponse]
    trace: List[TraceEntryResponse]


class TraceResponse(BaseModel):
    event_id: int
    trace: List[TraceEntryResponse]


class TeamRefResponse(BaseModel):
    id: int
    name: Optional[str] = None
    school: Optional[str] = None


class AssignedJudgeResponse(BaseModel):
    judge_id: int
    judge_name: Optional[str] = None


class MatchResultDetailResponse(BaseModel):
    votes_a: Decimal
    votes_b: Decimal
    score_differential_a: Decimal
    score_differential_b: Decimal
    judges: List[JudgeBreakdownResponse]
    virtual_judge: Optional[JudgeBreakdownResponse] = None


class MatchResultResponse(BaseModel):
    match_id: int
    round_number: int
    status: str
    room: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    team_a: Optional[TeamRefResponse] = None
    team_b: Optional[TeamRefResponse] = None
    winner_id: Optional[int] = None
    uses_two_judge_protocol: bool
    judges: List[AssignedJudgeResponse]
    result: Optional[MatchResultDetailResponse] = None


class RoundResultResponse(BaseModel):
    round_number: int
    total_matches: int
    completed_matches: int
    matches: List[MatchResultResponse]


class EventInfoResponse(BaseModel):
    id: int
    name: str
    status: str
    total_rounds: int
    judge_question_count: int


class EventSummaryResponse(BaseModel):
    total_teams: int
    total_matches: int
    completed_matches: int
    total_rounds: int


class EventStatisticsResponse(BaseModel):
    event: EventInfoResponse
    summary: EventSummaryResponse
    standings: List[TeamStandingResponse]
    round_results: List[RoundResultResponse]
    match_results: List[MatchResultResponse]

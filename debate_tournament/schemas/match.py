"""
Pydantic schemas for match stages, outcomes and score sheets
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, confloat, validator

# NaN and Infinity literals are valid JSON to the parser but not valid points
Points = Optional[confloat(allow_inf_nan=False)]


class StageResponse(BaseModel):
    value: str
    display_name: str
    kind: str


class NextStagesResponse(BaseModel):
    match_id: int
    current_stage: str
    next_stages: List[StageResponse]


class StageTransitionRequest(BaseModel):
    stage: str = Field(..., min_length=1, max_length=40)

    @validator("stage")
    def strip_stage(cls, value):
        return value.strip()


class MatchResponse(BaseModel):
    id: int
    event_id: int
    round_number: int
    team_a_id: Optional[int] = None
    team_b_id: Optional[int] = None
    moderator_id: Optional[int] = None
    status: str
    winner_id: Optional[int] = None

    class Config:
        from_attributes = True


class JudgeBreakdownResponse(BaseModel):
    judge_id: Optional[int] = None
    judge_name: Optional[str] = None
    total_a: Decimal
    total_b: Decimal
    vote_a: Decimal
    vote_b: Decimal
    is_virtual: bool


class MatchOutcomeResponse(BaseModel):
    match_id: int
    team_id: int
    opponent_id: Optional[int] = None
    wins: Decimal
    votes: Decimal
    score_differential: Decimal
    judges: List[JudgeBreakdownResponse] = []
    virtual_judge: Optional[JudgeBreakdownResponse] = None


class CompletionCheckResponse(BaseModel):
    match_id: int
    ready: bool = True


class ScoreDraftRequest(BaseModel):
    criteria_scores: Dict[str, Points] = Field(default_factory=dict)
    comment_scores: List[Points] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=5000)


class ScoreResponse(BaseModel):
    id: int
    match_id: int
    judge_id: int
    team_id: int
    criteria_scores: Dict[str, Any]
    comment_scores: List[Any]
    notes: Optional[str] = None
    is_submitted: bool
    submitted_at: Optional[datetime] = None

    class Config:
        from_attributes = True

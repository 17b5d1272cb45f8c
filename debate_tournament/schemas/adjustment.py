"""
Pydantic schemas for manual standings adjustments
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class VoteAdjustmentRequest(BaseModel):
    team_id: int
    adjustment: Decimal = Field(..., max_digits=10, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=1000)


class WinAdjustmentRequest(BaseModel):
    team_id: int
    wins_adj: int = 0
    losses_adj: int = 0
    ties_adj: int = 0
    reason: Optional[str] = Field(None, max_length=1000)


class ScoreDifferentialAdjustmentRequest(BaseModel):
    team_id: int
    adjustment: Decimal = Field(..., max_digits=12, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=1000)


class AdjustmentLogResponse(BaseModel):
    id: int
    event_id: int
    team_id: int
    admin_name: str
    reason: Optional[str] = None
    created_at: datetime
    adjustment: Optional[Decimal] = None
    wins_adj: Optional[int] = None
    losses_adj: Optional[int] = None
    ties_adj: Optional[int] = None

    class Config:
        from_attributes = True

"""
debate_tournament/routes/standings.py
Event standings, the audit trace of the last computation and event statistics
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from debate_tournament.database import get_db
from debate_tournament.orm.user import User
from debate_tournament.rbac import get_current_user
from debate_tournament.schemas.standings import (
    EventStatisticsResponse, StandingsResponse, TraceResponse
)
from debate_tournament.services.standings_service import (
    compute_standings, get_cached_trace, get_event_statistics
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/events", tags=["Standings"])


@router.get("/{event_id}/standings", response_model=StandingsResponse)
async def get_event_standings(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Ranked standings for an event, recomputed on every request.

    The response carries this computation's own decision trace.
    """
    result = await compute_standings(db, event_id)
    return {
        "event_id": event_id,
        "standings": [s.to_dict() for s in result.standings],
        "trace": [entry.to_dict() for entry in result.trace],
    }


@router.get("/{event_id}/standings/trace", response_model=TraceResponse)
async def get_event_standings_trace(
    event_id: int,
    current_user: User = Depends(get_current_user)
):
    """Trace of the most recent standings computation for the event."""
    trace = get_cached_trace(event_id)
    return {"event_id": event_id, "trace": [entry.to_dict() for entry in trace]}


@router.get("/{event_id}/statistics", response_model=EventStatisticsResponse)
async def event_statistics(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Standings, per-round progress, completed-match results and an event summary."""
    return await get_event_statistics(db, event_id)

"""
debate_tournament/routes/scores.py
Judge score sheets: draft saves and final submission
"""
import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from debate_tournament.database import get_db
from debate_tournament.orm.user import User
from debate_tournament.rbac import get_current_user
from debate_tournament.schemas.match import ScoreDraftRequest, ScoreResponse
from debate_tournament.services.score_service import save_draft_score, submit_judge_scores

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/matches", tags=["Scores"])


@router.put("/{match_id}/scores/{team_id}", response_model=ScoreResponse)
async def save_draft(
    match_id: int,
    team_id: int,
    request: ScoreDraftRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await save_draft_score(
        db,
        match_id,
        team_id,
        current_user,
        criteria_scores=request.criteria_scores,
        comment_scores=request.comment_scores,
        notes=request.notes,
    )


@router.post("/{match_id}/scores/submit", response_model=List[ScoreResponse])
async def submit_scores(
    match_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Finalize the calling judge's sheets for both teams (final scoring only)."""
    return await submit_judge_scores(db, match_id, current_user)

"""
Score Service

Judges save draft score sheets while a match is in its scoring window and
finalize them at final scoring. Submitted sheets can no longer change.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from debate_tournament.errors import (
    ConflictError, ValidationError, PermissionDeniedError, ErrorCode
)
from debate_tournament.orm.score import Score
from debate_tournament.orm.user import User
from debate_tournament.services.match_service import get_match
from debate_tournament.services.score_aggregator import to_fraction
from debate_tournament.state_machines.match_stage import (
    can_submit_scores, is_scoring_window
)

logger = logging.getLogger(__name__)

MAX_SAVE_ATTEMPTS = 2


def _require_assigned_judge(match, judge: User) -> None:
    if not any(a.judge_id == judge.id for a in match.assignments):
        raise PermissionDeniedError(
            f"User {judge.id} is not assigned to judge match {match.id}",
            code=ErrorCode.JUDGE_NOT_ASSIGNED,
            details={"match_id": match.id, "judge_id": judge.id}
        )


def _check_points(criteria_scores: Dict[str, Any], comment_scores: List[Any]) -> None:
    if not isinstance(criteria_scores, dict):
        raise ValidationError("criteria_scores must be an object", code=ErrorCode.INVALID_INPUT)
    if not isinstance(comment_scores, list):
        raise ValidationError("comment_scores must be a list", code=ErrorCode.INVALID_INPUT)
    for value in list(criteria_scores.values()) + comment_scores:
        to_fraction(value)


async def _find_sheet(db: AsyncSession, match_id: int, judge_id: int, team_id: int) -> Optional[Score]:
    result = await db.execute(
        select(Score).where(
            Score.match_id == match_id,
            Score.judge_id == judge_id,
            Score.team_id == team_id,
        )
    )
    return result.scalar_one_or_none()


async def save_draft_score(
    db: AsyncSession,
    match_id: int,
    team_id: int,
    judge: User,
    criteria_scores: Optional[Dict[str, Any]] = None,
    comment_scores: Optional[List[Any]] = None,
    notes: Optional[str] = None
) -> Score:
    """
    Create or update the judge's draft sheet for one team.

    A concurrent first save for the same sheet loses the insert race on
    uq_score_match_judge_team; the loser rolls back and updates the winner's
    row instead.

    Raises:
        ValidationError: stage outside the scoring window, team not in the
            match, non-numeric points, or the sheet is already submitted
        PermissionDeniedError: judge is not assigned to the match
        ConflictError: the sheet kept changing underneath every attempt
    """
    match = await get_match(db, match_id)

    if not is_scoring_window(match.status):
        raise ValidationError(
            f"Scores cannot be saved while the match is in '{match.status}'",
            code=ErrorCode.SCORING_WINDOW_CLOSED,
            details={"match_id": match.id, "stage": match.status}
        )
    _require_assigned_judge(match, judge)
    if match.side_of(team_id) is None:
        raise ValidationError(
            f"Team {team_id} is not playing in match {match.id}",
            code=ErrorCode.INVALID_INPUT,
            details={"match_id": match.id, "team_id": team_id}
        )

    criteria_scores = dict(criteria_scores or {})
    comment_scores = list(comment_scores or [])
    _check_points(criteria_scores, comment_scores)

    # A rollback expires loaded rows, so only plain ids cross attempts
    judge_id = judge.id
    for _ in range(MAX_SAVE_ATTEMPTS):
        score = await _find_sheet(db, match_id, judge_id, team_id)

        if score is None:
            score = Score(match_id=match_id, judge_id=judge_id, team_id=team_id)
            db.add(score)
        elif score.is_submitted:
            raise ValidationError(
                "Submitted scores cannot be changed",
                code=ErrorCode.SCORE_ALREADY_SUBMITTED,
                details={"score_id": score.id}
            )

        score.criteria_scores = criteria_scores
        score.comment_scores = comment_scores
        score.notes = notes
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning(
                f"Concurrent draft save: match {match_id}, judge {judge_id}, team {team_id}; retrying"
            )
            continue

        logger.info(f"Draft score saved: match {match_id}, judge {judge_id}, team {team_id}")
        return score

    raise ConflictError(
        "Score sheet was modified concurrently, please retry",
        details={"match_id": match_id, "judge_id": judge_id, "team_id": team_id}
    )


async def submit_judge_scores(db: AsyncSession, match_id: int, judge: User) -> List[Score]:
    """
    Finalize the judge's sheets for both teams at once.

    Raises:
        ValidationError: not at final scoring, a team has no draft sheet,
            or the sheets were already submitted
        PermissionDeniedError: judge is not assigned to the match
    """
    match = await get_match(db, match_id)

    if not can_submit_scores(match.status):
        raise ValidationError(
            "Scores can only be submitted during final scoring",
            code=ErrorCode.SUBMISSION_WINDOW_CLOSED,
            details={"match_id": match.id, "stage": match.status}
        )
    _require_assigned_judge(match, judge)

    sheets = {s.team_id: s for s in match.scores if s.judge_id == judge.id}
    for side, team_id in (("A", match.team_a_id), ("B", match.team_b_id)):
        if team_id not in sheets:
            raise ValidationError(
                f"Scores for Team {side} must be saved before submitting",
                code=ErrorCode.INCOMPLETE_SCORES,
                details={"match_id": match.id, "judge_id": judge.id, "team_id": team_id, "team_side": side}
            )

    ordered = [sheets[match.team_a_id], sheets[match.team_b_id]]
    if all(s.is_submitted for s in ordered):
        raise ValidationError(
            "Scores already submitted",
            code=ErrorCode.SCORE_ALREADY_SUBMITTED,
            details={"match_id": match.id, "judge_id": judge.id}
        )

    now = datetime.utcnow()
    for sheet in ordered:
        if not sheet.is_submitted:
            sheet.is_submitted = True
            sheet.submitted_at = now
    await db.commit()

    logger.info(f"Scores submitted: match {match.id}, judge {judge.id}")
    return ordered

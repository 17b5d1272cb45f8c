"""
Adjustment Service

Administrators append manual corrections to votes, win/loss/tie records and
score differentials. Logs are never edited; standings sum them on every
computation.
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debate_tournament.errors import (
    NotFoundError, PermissionDeniedError, ValidationError, ErrorCode
)
from debate_tournament.orm.adjustment_logs import VoteLog, WinLog, ScoreDifferentialLog
from debate_tournament.orm.team import Team
from debate_tournament.orm.user import User
from debate_tournament.services.standings_service import fetch_event

logger = logging.getLogger(__name__)


async def _check_target(db: AsyncSession, event_id: int, team_id: int, admin: User) -> None:
    if not admin.is_admin:
        raise PermissionDeniedError(
            "Only administrators can adjust standings",
            details={"user_id": admin.id}
        )
    await fetch_event(db, event_id)
    result = await db.execute(
        select(Team).where(Team.id == team_id, Team.event_id == event_id)
    )
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Team", team_id, code=ErrorCode.TEAM_NOT_FOUND)


async def record_vote_adjustment(
    db: AsyncSession,
    event_id: int,
    team_id: int,
    adjustment: Decimal,
    admin: User,
    reason: Optional[str] = None
) -> VoteLog:
    await _check_target(db, event_id, team_id, admin)
    if adjustment == 0:
        raise ValidationError("Vote adjustment must be non-zero", code=ErrorCode.INVALID_INPUT)

    log = VoteLog(
        event_id=event_id,
        team_id=team_id,
        adjustment=adjustment,
        admin_id=admin.id,
        admin_name=admin.name,
        reason=reason,
    )
    db.add(log)
    await db.commit()

    logger.info(f"Vote adjustment {adjustment:+} for team {team_id} in event {event_id} by {admin.name}")
    return log


async def record_win_adjustment(
    db: AsyncSession,
    event_id: int,
    team_id: int,
    admin: User,
    wins_adj: int = 0,
    losses_adj: int = 0,
    ties_adj: int = 0,
    reason: Optional[str] = None
) -> WinLog:
    await _check_target(db, event_id, team_id, admin)
    if not (wins_adj or losses_adj or ties_adj):
        raise ValidationError(
            "At least one of wins, losses or ties must change",
            code=ErrorCode.INVALID_INPUT
        )

    log = WinLog(
        event_id=event_id,
        team_id=team_id,
        wins_adj=wins_adj,
        losses_adj=losses_adj,
        ties_adj=ties_adj,
        admin_id=admin.id,
        admin_name=admin.name,
        reason=reason,
    )
    db.add(log)
    await db.commit()

    logger.info(
        f"W/L/T adjustment {wins_adj:+}/{losses_adj:+}/{ties_adj:+} for team {team_id} "
        f"in event {event_id} by {admin.name}"
    )
    return log


async def record_score_differential_adjustment(
    db: AsyncSession,
    event_id: int,
    team_id: int,
    adjustment: Decimal,
    admin: User,
    reason: Optional[str] = None
) -> ScoreDifferentialLog:
    await _check_target(db, event_id, team_id, admin)
    if adjustment == 0:
        raise ValidationError("Score differential adjustment must be non-zero", code=ErrorCode.INVALID_INPUT)

    log = ScoreDifferentialLog(
        event_id=event_id,
        team_id=team_id,
        adjustment=adjustment,
        admin_id=admin.id,
        admin_name=admin.name,
        reason=reason,
    )
    db.add(log)
    await db.commit()

    logger.info(
        f"Score differential adjustment {adjustment:+} for team {team_id} in event {event_id} by {admin.name}"
    )
    return log

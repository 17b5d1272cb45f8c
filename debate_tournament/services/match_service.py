"""
Match Service

Stage changes, completion checks and per-team outcomes for single matches.
"""
import logging
from typing import Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from debate_tournament.errors import NotFoundError, ErrorCode
from debate_tournament.orm.match import Match, MatchAssignment
from debate_tournament.orm.user import User
from debate_tournament.services.score_aggregator import (
    MatchOutcome, MatchTally, compute_match_outcome, tally_match, validate_completion
)
from debate_tournament.services.standings_service import fetch_judge_question_count
from debate_tournament.state_machines.match_stage import (
    COMPLETED, ActorRole, MatchStage, StageLike, check_transition,
    next_allowed_stages, parse_stage
)

logger = logging.getLogger(__name__)


async def get_match(db: AsyncSession, match_id: int, for_update: bool = False) -> Match:
    query = (
        select(Match)
        .where(Match.id == match_id)
        .options(
            selectinload(Match.assignments).selectinload(MatchAssignment.judge),
            selectinload(Match.scores),
        )
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    match = result.scalar_one_or_none()
    if not match:
        raise NotFoundError("Match", match_id, code=ErrorCode.MATCH_NOT_FOUND)
    return match


def resolve_actor_role(actor: User, match: Match) -> ActorRole:
    """Actor's standing relative to this match."""
    if actor.is_admin:
        return ActorRole.ADMIN
    if match.moderator_id is not None and actor.id == match.moderator_id:
        return ActorRole.MATCH_MODERATOR
    if any(a.judge_id == actor.id for a in match.assignments):
        return ActorRole.JUDGE
    return ActorRole.OTHER


async def get_next_allowed_stages(db: AsyncSession, match_id: int) -> Tuple[MatchStage, ...]:
    match = await get_match(db, match_id)
    judge_question_count = await fetch_judge_question_count(db, match.event_id)
    return next_allowed_stages(match.status, judge_question_count)


async def validate_match_completion(db: AsyncSession, match_id: int) -> None:
    """
    Raises:
        NotFoundError: unknown match
        ValidationError: a judge is missing a submitted sheet, naming judge and team
    """
    match = await get_match(db, match_id)
    validate_completion(match)


async def request_stage_transition(
    db: AsyncSession,
    match_id: int,
    requested_stage: StageLike,
    actor: User
) -> Match:
    """
    Move a match to a later stage.

    Completing a match first runs completion validation, then records the
    winner from the vote tally (NULL for a tied match).

    Raises:
        NotFoundError: unknown match
        PermissionDeniedError: actor is not the match moderator or an admin
        ValidationError: illegal move or incomplete scores
    """
    match = await get_match(db, match_id, for_update=True)
    judge_question_count = await fetch_judge_question_count(db, match.event_id)
    role = resolve_actor_role(actor, match)

    if not check_transition(match.status, requested_stage, role, judge_question_count):
        return match

    target = parse_stage(requested_stage, judge_question_count)
    previous = match.status

    if target == COMPLETED:
        validate_completion(match)
        match.winner_id = tally_match(match).winner_id

    match.status = target.value
    await db.commit()

    logger.info(
        f"Match {match.id}: {previous} -> {match.status} by user {actor.id} ({role.value})"
    )
    return match


async def get_match_tally(db: AsyncSession, match_id: int) -> MatchTally:
    match = await get_match(db, match_id)
    return tally_match(match)


async def get_match_outcome(db: AsyncSession, match_id: int, team_id: int) -> MatchOutcome:
    match = await get_match(db, match_id)
    if match.side_of(team_id) is None:
        raise NotFoundError(f"Team in match {match_id}", team_id, code=ErrorCode.TEAM_NOT_FOUND)
    return compute_match_outcome(match, team_id)

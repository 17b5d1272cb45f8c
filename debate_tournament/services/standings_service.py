"""
Standings Service

Fetches an event's records once, runs the standings engine in memory and
returns that computation's own standings and trace. The last trace per
event is also kept in an in-process cache for out-of-band audit reads.

Event statistics reuse the same read path: standings plus per-round
progress and the results of every completed match.
"""
import json
import logging
import random
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from debate_tournament.config.feature_flags import FeatureFlags
from debate_tournament.errors import NotFoundError, ErrorCode
from debate_tournament.orm.adjustment_logs import VoteLog, WinLog, ScoreDifferentialLog
from debate_tournament.orm.event import Event
from debate_tournament.orm.match import Match, MatchAssignment
from debate_tournament.orm.team import Team
from debate_tournament.orm.tiebreak_draw import TiebreakDraw
from debate_tournament.services.score_aggregator import JudgeTally, MatchTally, tally_match
from debate_tournament.services.standings_engine import (
    AdjustmentLogs, DrawRecord, StandingsResult, TraceEntry, as_decimal, rank_teams
)
from debate_tournament.state_machines.match_stage import COMPLETED, DEFAULT_JUDGE_QUESTION_COUNT

logger = logging.getLogger(__name__)

MAX_DRAW_ATTEMPTS = 2


# =============================================================================
# Trace cache
# =============================================================================

class TraceCache:
    """Last computed trace per event; last writer wins."""

    def __init__(self):
        self._lock = threading.Lock()
        self._traces: Dict[int, List[TraceEntry]] = {}

    def put(self, event_id: int, trace: List[TraceEntry]) -> None:
        with self._lock:
            self._traces[event_id] = list(trace)

    def get(self, event_id: int) -> Optional[List[TraceEntry]]:
        with self._lock:
            trace = self._traces.get(event_id)
            return list(trace) if trace is not None else None

    def clear(self) -> None:
        with self._lock:
            self._traces.clear()


trace_cache = TraceCache()


def get_cached_trace(event_id: int) -> List[TraceEntry]:
    """
    Raises:
        NotFoundError: if no standings have been computed for the event
    """
    trace = trace_cache.get(event_id)
    if trace is None:
        raise NotFoundError("Standings trace for event", event_id, code=ErrorCode.TRACE_NOT_FOUND)
    return trace


# =============================================================================
# Fetchers
# =============================================================================

async def fetch_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        raise NotFoundError("Event", event_id, code=ErrorCode.EVENT_NOT_FOUND)
    return event


async def fetch_event_teams(db: AsyncSession, event_id: int) -> List[Team]:
    result = await db.execute(
        select(Team).where(Team.event_id == event_id).order_by(Team.id)
    )
    return list(result.scalars().all())


async def fetch_completed_matches(db: AsyncSession, event_id: int) -> List[Match]:
    """Completed matches with assignments (and judges) and score sheets loaded."""
    result = await db.execute(
        select(Match)
        .where(Match.event_id == event_id, Match.status == COMPLETED.value)
        .options(
            selectinload(Match.assignments).selectinload(MatchAssignment.judge),
            selectinload(Match.scores),
        )
        .order_by(Match.round_number, Match.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def fetch_adjustment_logs(db: AsyncSession, event_id: int) -> AdjustmentLogs:
    votes = await db.execute(
        select(VoteLog).where(VoteLog.event_id == event_id).order_by(VoteLog.id)
    )
    wins = await db.execute(
        select(WinLog).where(WinLog.event_id == event_id).order_by(WinLog.id)
    )
    differentials = await db.execute(
        select(ScoreDifferentialLog)
        .where(ScoreDifferentialLog.event_id == event_id)
        .order_by(ScoreDifferentialLog.id)
    )
    return AdjustmentLogs(
        votes=list(votes.scalars().all()),
        win_loss_ties=list(wins.scalars().all()),
        score_differentials=list(differentials.scalars().all()),
    )


def parse_judge_question_count(raw: Optional[str], event_id: Optional[int] = None) -> int:
    """
    Read "commentQuestionsCount" from an event's scoring_criteria JSON.

    Missing, malformed or non-positive values fall back to the default.
    """
    if not raw:
        return DEFAULT_JUDGE_QUESTION_COUNT

    try:
        config = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(
            f"Event {event_id}: unparseable scoring criteria ({e}); "
            f"using {DEFAULT_JUDGE_QUESTION_COUNT} judge questions"
        )
        return DEFAULT_JUDGE_QUESTION_COUNT

    count = config.get("commentQuestionsCount") if isinstance(config, dict) else None
    if count is None:
        return DEFAULT_JUDGE_QUESTION_COUNT
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        logger.warning(
            f"Event {event_id}: invalid commentQuestionsCount {count!r}; "
            f"using {DEFAULT_JUDGE_QUESTION_COUNT}"
        )
        return DEFAULT_JUDGE_QUESTION_COUNT
    return count


async def fetch_judge_question_count(db: AsyncSession, event_id: int) -> int:
    event = await fetch_event(db, event_id)
    return parse_judge_question_count(event.scoring_criteria, event_id)


async def fetch_prior_draws(db: AsyncSession, event_id: int) -> Dict[str, Sequence[int]]:
    result = await db.execute(
        select(TiebreakDraw).where(TiebreakDraw.event_id == event_id)
    )
    draws = {}
    for draw in result.scalars().all():
        if not draw.verify():
            logger.warning(f"Event {event_id}: tie-break draw {draw.team_set_key} failed hash check; ignoring")
            continue
        draws[draw.team_set_key] = list(draw.ordering)
    return draws


async def _persist_draws(db: AsyncSession, event_id: int, draws: List[DrawRecord]) -> bool:
    """Store new draws. False if another request stored one first."""
    if not draws:
        return True
    for draw in draws:
        ordering = list(draw.ordering)
        db.add(TiebreakDraw(
            event_id=event_id,
            team_set_key=draw.team_set_key,
            ordering=ordering,
            draw_hash=TiebreakDraw.compute_hash(event_id, ordering),
        ))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning(f"Event {event_id}: concurrent tie-break draw detected; recomputing")
        return False
    logger.info(f"Event {event_id}: persisted {len(draws)} tie-break draw(s)")
    return True


# =============================================================================
# Entry point
# =============================================================================

async def compute_standings(
    db: AsyncSession,
    event_id: int,
    rng: Optional[random.Random] = None
) -> StandingsResult:
    """
    Rank an event's teams.

    Raises:
        NotFoundError: if the event does not exist
    """
    await fetch_event(db, event_id)

    if rng is None:
        rng = random.Random(FeatureFlags.TIEBREAK_RANDOM_SEED)
    persist = FeatureFlags.persist_draws()

    result = None
    for _ in range(MAX_DRAW_ATTEMPTS):
        # A rollback after a lost draw race expires loaded rows, so refetch
        teams = await fetch_event_teams(db, event_id)
        matches = await fetch_completed_matches(db, event_id)
        adjustments = await fetch_adjustment_logs(db, event_id)
        prior_draws = await fetch_prior_draws(db, event_id) if persist else {}
        result = rank_teams(teams, matches, adjustments, rng=rng, prior_draws=prior_draws)
        if not persist or await _persist_draws(db, event_id, result.new_draws):
            break

    if FeatureFlags.FEATURE_STANDINGS_TRACE_CACHE:
        trace_cache.put(event_id, result.trace)

    logger.info(
        f"Computed standings for event {event_id}: "
        f"{len(result.standings)} ranked team(s), {len(matches)} completed match(es), "
        f"{len(result.draws)} random draw(s)"
    )
    return result


# =============================================================================
# Event statistics
# =============================================================================

def judge_breakdown(judge: JudgeTally) -> Dict[str, Any]:
    """One counted judge's totals and votes, quantized for display."""
    return {
        "judge_id": judge.judge_id,
        "judge_name": judge.judge_name,
        "total_a": as_decimal(judge.total_a),
        "total_b": as_decimal(judge.total_b),
        "vote_a": as_decimal(judge.vote_a),
        "vote_b": as_decimal(judge.vote_b),
        "is_virtual": judge.is_virtual,
    }


def tally_breakdown(tally: MatchTally) -> Dict[str, Any]:
    """Real judges as rows; the virtual judge, if any, reported on its own."""
    virtual = tally.virtual_judge
    return {
        "judges": [judge_breakdown(j) for j in tally.real_judges],
        "virtual_judge": judge_breakdown(virtual) if virtual else None,
    }


async def fetch_event_matches(db: AsyncSession, event_id: int) -> List[Match]:
    """Every match of the event, any stage, with teams, judges and sheets loaded."""
    result = await db.execute(
        select(Match)
        .where(Match.event_id == event_id)
        .options(
            selectinload(Match.team_a),
            selectinload(Match.team_b),
            selectinload(Match.assignments).selectinload(MatchAssignment.judge),
            selectinload(Match.scores),
        )
        .order_by(Match.round_number, Match.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def _team_ref(team: Optional[Team]) -> Optional[Dict[str, Any]]:
    if team is None:
        return None
    return {"id": team.id, "name": team.name, "school": team.school}


def format_match_result(match: Match) -> Dict[str, Any]:
    """
    A match as listed in event statistics. `result` is filled in only for
    completed matches.
    """
    assignments = match.ordered_assignments
    formatted = {
        "match_id": match.id,
        "round_number": match.round_number,
        "status": match.status,
        "room": match.room,
        "scheduled_time": match.scheduled_time,
        "team_a": _team_ref(match.team_a),
        "team_b": _team_ref(match.team_b),
        "winner_id": match.winner_id,
        "uses_two_judge_protocol": len(assignments) == 2,
        "judges": [
            {"judge_id": a.judge_id, "judge_name": a.judge.name if a.judge else None}
            for a in assignments
        ],
        "result": None,
    }
    if match.status != COMPLETED.value:
        return formatted

    tally = tally_match(match)
    formatted["result"] = dict(
        tally_breakdown(tally),
        votes_a=as_decimal(tally.votes_a),
        votes_b=as_decimal(tally.votes_b),
        score_differential_a=as_decimal(tally.differential_a),
        score_differential_b=as_decimal(-tally.differential_a),
    )
    return formatted


def summarize_rounds(matches: Sequence[Match]) -> List[Dict[str, Any]]:
    """Per-round match counts, ascending by round number."""
    rounds: Dict[int, Dict[str, Any]] = {}
    for match in matches:
        summary = rounds.setdefault(match.round_number, {
            "round_number": match.round_number,
            "total_matches": 0,
            "completed_matches": 0,
            "matches": [],
        })
        summary["total_matches"] += 1
        if match.status == COMPLETED.value:
            summary["completed_matches"] += 1
        summary["matches"].append(format_match_result(match))
    return [rounds[number] for number in sorted(rounds)]


def completed_match_results(matches: Sequence[Match]) -> List[Dict[str, Any]]:
    """Completed matches by round, then scheduled time (unscheduled first), then id."""
    completed = [m for m in matches if m.status == COMPLETED.value]
    completed.sort(key=lambda m: (
        m.round_number,
        m.scheduled_time is not None,
        m.scheduled_time or datetime.min,
        m.id,
    ))
    return [format_match_result(m) for m in completed]


async def get_event_statistics(
    db: AsyncSession,
    event_id: int,
    rng: Optional[random.Random] = None
) -> Dict[str, Any]:
    """
    Standings plus round progress, completed-match results and an event
    summary.

    Raises:
        NotFoundError: if the event does not exist
    """
    # Standings first: a lost draw race rolls back and expires loaded rows
    standings = await compute_standings(db, event_id, rng=rng)

    event = await fetch_event(db, event_id)
    teams = await fetch_event_teams(db, event_id)
    matches = await fetch_event_matches(db, event_id)
    completed = sum(1 for m in matches if m.status == COMPLETED.value)

    logger.info(
        f"Event {event_id} statistics: {len(teams)} team(s), "
        f"{completed}/{len(matches)} match(es) completed"
    )
    return {
        "event": {
            "id": event.id,
            "name": event.name,
            "status": event.status,
            "total_rounds": event.total_rounds,
            "judge_question_count": parse_judge_question_count(event.scoring_criteria, event_id),
        },
        "summary": {
            "total_teams": len(teams),
            "total_matches": len(matches),
            "completed_matches": completed,
            "total_rounds": event.total_rounds,
        },
        "standings": [s.to_dict() for s in standings.standings],
        "round_results": summarize_rounds(matches),
        "match_results": completed_match_results(matches),
    }

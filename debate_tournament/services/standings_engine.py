"""
Standings Engine

Ranks an event's teams from completed-match outcomes plus manual
adjustments, and explains every ordering decision in a structured trace.

Pipeline:
    1. Base stats per team (wins in half-point units, exact votes and
       score differential, matches played, opponents faced), adjustments
       summed in. Teams with no matches are dropped.
    2. opponents_result = sum of opponents' wins, once per meeting.
    3. Primary order, descending (wins, votes, opponents_result,
       score_differential).
    4. Tie groups: adjacent runs equal on wins AND matches played.
    5. Cascade inside each group. Sub-groups still tied after a step move
       on to the next one:
         head-to-head wins -> head-to-head differential -> head-to-head votes
         (only when every pair in the group has met)
         -> total votes -> opponents_result -> score differential
         -> random draw
    6. Distinct ranks 1..n.

The engine does no I/O. The caller passes the RNG and any previously
persisted draws, and gets back the draws made in this computation.
"""
import random
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from fractions import Fraction
from itertools import combinations
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from debate_tournament.services.score_aggregator import (
    MatchOutcome, tally_match, to_fraction, ZERO
)
from debate_tournament.state_machines.match_stage import COMPLETED


QUANTIZER_2DP = Decimal("0.01")

# Trace entry kinds
TRACE_BASE_STATS = "base_stats"
TRACE_PRIMARY_ORDER = "primary_order"
TRACE_TIE_GROUP = "tie_group"
TRACE_HEAD_TO_HEAD_SKIPPED = "head_to_head_skipped"
TRACE_STEP = "tiebreak_step"
TRACE_RANDOM_DRAW = "random_draw"
TRACE_FINAL_RANKING = "final_ranking"

# Cascade steps
STEP_H2H_WINS = "head_to_head_wins"
STEP_H2H_DIFFERENTIAL = "head_to_head_score_differential"
STEP_H2H_VOTES = "head_to_head_votes"
STEP_VOTES = "votes"
STEP_OPPONENTS_RESULT = "opponents_result"
STEP_SCORE_DIFFERENTIAL = "score_differential"
STEP_RANDOM_DRAW = "random_draw"

HEAD_TO_HEAD_STEPS = (STEP_H2H_WINS, STEP_H2H_DIFFERENTIAL, STEP_H2H_VOTES)
CASCADE_STEPS = HEAD_TO_HEAD_STEPS + (STEP_VOTES, STEP_OPPONENTS_RESULT, STEP_SCORE_DIFFERENTIAL)

DRAW_SOURCE_RANDOM = "random"
DRAW_SOURCE_PERSISTED = "persisted"


def as_decimal(value: Fraction) -> Decimal:
    """Quantize an exact rational to 2 decimal places for display."""
    return (Decimal(value.numerator) / Decimal(value.denominator)).quantize(
        QUANTIZER_2DP, rounding=ROUND_HALF_UP
    )


def _fmt(value: Fraction) -> str:
    return str(as_decimal(value))


def tied_set_key(team_ids: Iterable[int]) -> str:
    """Canonical key for a set of tied teams: sorted ids, comma separated."""
    return ",".join(str(team_id) for team_id in sorted(set(team_ids)))


# =============================================================================
# Inputs / outputs
# =============================================================================

@dataclass
class AdjustmentLogs:
    """Manual corrections for one event; every list may be empty."""
    votes: List[Any] = field(default_factory=list)
    win_loss_ties: List[Any] = field(default_factory=list)
    score_differentials: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class TraceEntry:
    kind: str
    payload: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "payload": self.payload}


@dataclass(frozen=True)
class DrawRecord:
    team_set_key: str
    ordering: Tuple[int, ...]
    source: str


@dataclass
class TeamRecord:
    """Working statistics for one team during a computation."""
    team_id: int
    team_name: Optional[str] = None
    school: Optional[str] = None
    win_units: int = 0
    votes: Fraction = ZERO
    score_differential: Fraction = ZERO
    total_matches: int = 0
    opponent_ids: List[int] = field(default_factory=list)
    opponents_result_units: int = 0
    meetings: List[MatchOutcome] = field(default_factory=list)

    @property
    def wins(self) -> Fraction:
        return Fraction(self.win_units, 2)

    @property
    def opponents_result(self) -> Fraction:
        return Fraction(self.opponents_result_units, 2)

    def stats_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "wins": _fmt(self.wins),
            "votes": _fmt(self.votes),
            "opponents_result": _fmt(self.opponents_result),
            "score_differential": _fmt(self.score_differential),
            "total_matches": self.total_matches,
        }


@dataclass(frozen=True)
class TeamStanding:
    rank: int
    team_id: int
    team_name: Optional[str]
    school: Optional[str]
    wins: int
    losses: int
    ties: int
    win_points: Fraction
    votes: Fraction
    score_differential: Fraction
    opponents_result: Fraction
    total_matches: int
    tiebreak_step: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "team_id": self.team_id,
            "team_name": self.team_name,
            "school": self.school,
            "wins": self.wins,
            "losses": self.losses,
            "ties": self.ties,
            "win_points": as_decimal(self.win_points),
            "votes": as_decimal(self.votes),
            "score_differential": as_decimal(self.score_differential),
            "opponents_result": as_decimal(self.opponents_result),
            "total_matches": self.total_matches,
            "tiebreak_step": self.tiebreak_step,
        }


@dataclass
class StandingsResult:
    standings: List[TeamStanding]
    trace: List[TraceEntry]
    draws: List[DrawRecord] = field(default_factory=list)

    @property
    def new_draws(self) -> List[DrawRecord]:
        return [d for d in self.draws if d.source == DRAW_SOURCE_RANDOM]


# =============================================================================
# Engine
# =============================================================================

class StandingsEngine:
    """
    One instance per computation.

    Args:
        rng: source of the random draw; defaults to a fresh random.Random()
        prior_draws: team_set_key -> ordering persisted by earlier runs
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        prior_draws: Optional[Dict[str, Sequence[int]]] = None
    ):
        self.rng = rng if rng is not None else random.Random()
        self.prior_draws = dict(prior_draws or {})
        self.trace: List[TraceEntry] = []
        self.draws: List[DrawRecord] = []

    def _emit(self, kind: str, **payload) -> None:
        self.trace.append(TraceEntry(kind, payload))

    # -------------------------------------------------------------------------
    # Base statistics
    # -------------------------------------------------------------------------

    def _base_records(self, teams, matches, adjustments: AdjustmentLogs) -> Dict[int, TeamRecord]:
        records: Dict[int, TeamRecord] = {
            team.id: TeamRecord(
                team_id=team.id,
                team_name=getattr(team, "name", None),
                school=getattr(team, "school", None),
            )
            for team in teams
        }

        for match in matches:
            if match.status != COMPLETED.value:
                continue
            tally = tally_match(match)
            for team_id in (match.team_a_id, match.team_b_id):
                record = records.get(team_id)
                if record is None:
                    continue
                outcome = tally.outcome_for(team_id)
                record.win_units += outcome.win_units
                record.votes += outcome.votes
                record.score_differential += outcome.score_differential
                record.total_matches += 1
                if outcome.opponent_id is not None:
                    record.opponent_ids.append(outcome.opponent_id)
                    record.meetings.append(outcome)

        for log in adjustments.win_loss_ties:
            record = records.get(log.team_id)
            if record is None:
                continue
            wins_adj = log.wins_adj or 0
            losses_adj = log.losses_adj or 0
            ties_adj = log.ties_adj or 0
            record.win_units += 2 * wins_adj + ties_adj
            record.total_matches += wins_adj + losses_adj + ties_adj

        for log in adjustments.votes:
            record = records.get(log.team_id)
            if record is not None:
                record.votes += to_fraction(log.adjustment)

        for log in adjustments.score_differentials:
            record = records.get(log.team_id)
            if record is not None:
                record.score_differential += to_fraction(log.adjustment)

        for record in records.values():
            record.opponents_result_units = sum(
                records[opponent_id].win_units
                for opponent_id in record.opponent_ids
                if opponent_id in records
            )

        return records

    # -------------------------------------------------------------------------
    # Head-to-head
    # -------------------------------------------------------------------------

    @staticmethod
    def _unplayed_pairs(group: Sequence[TeamRecord]) -> List[List[int]]:
        met = {
            frozenset((record.team_id, outcome.opponent_id))
            for record in group
            for outcome in record.meetings
        }
        return [
            sorted((a.team_id, b.team_id))
            for a, b in combinations(group, 2)
            if frozenset((a.team_id, b.team_id)) not in met
        ]

    @staticmethod
    def _head_to_head(group: Sequence[TeamRecord]) -> Dict[int, Tuple[int, Fraction, Fraction]]:
        """(wins units, differential, votes) over matches among `group` only."""
        members = {record.team_id for record in group}
        stats = {}
        for record in group:
            mutual = [o for o in record.meetings if o.opponent_id in members]
            stats[record.team_id] = (
                sum(o.win_units for o in mutual),
                sum((o.score_differential for o in mutual), ZERO),
                sum((o.votes for o in mutual), ZERO),
            )
        return stats

    def _step_values(self, step: str, group: Sequence[TeamRecord]) -> Dict[int, Any]:
        if step in HEAD_TO_HEAD_STEPS:
            h2h = self._head_to_head(group)
            position = HEAD_TO_HEAD_STEPS.index(step)
            if position == 0:
                return {team_id: Fraction(values[0], 2) for team_id, values in h2h.items()}
            return {team_id: values[position] for team_id, values in h2h.items()}
        getters: Dict[str, Callable[[TeamRecord], Fraction]] = {
            STEP_VOTES: lambda r: r.votes,
            STEP_OPPONENTS_RESULT: lambda r: r.opponents_result,
            STEP_SCORE_DIFFERENTIAL: lambda r: r.score_differential,
        }
        return {record.team_id: getters[step](record) for record in group}

    # -------------------------------------------------------------------------
    # Cascade
    # -------------------------------------------------------------------------

    def _apply_step(self, step: str, group: List[TeamRecord]) -> List[List[TeamRecord]]:
        values = self._step_values(step, group)
        # Stable sort keeps the primary order among equal values
        ordered = sorted(group, key=lambda r: values[r.team_id], reverse=True)
        partitions: List[List[TeamRecord]] = []
        for record in ordered:
            if partitions and values[partitions[-1][0].team_id] == values[record.team_id]:
                partitions[-1].append(record)
            else:
                partitions.append([record])

        # "value" is for display; "exact" is what was compared
        self._emit(
            TRACE_STEP,
            step=step,
            team_ids=[r.team_id for r in group],
            values=[
                {"team_id": r.team_id, "value": _fmt(values[r.team_id]), "exact": str(values[r.team_id])}
                for r in ordered
            ],
            partitions=[[r.team_id for r in part] for part in partitions],
            resolved=len(partitions) > 1,
        )
        return partitions

    def _resolve(self, group: List[TeamRecord], step_index: int) -> List[Tuple[TeamRecord, Optional[str]]]:
        """Order a still-tied group starting at CASCADE_STEPS[step_index]."""
        if step_index >= len(CASCADE_STEPS):
            return self._draw(group)

        step = CASCADE_STEPS[step_index]
        if step == STEP_H2H_WINS:
            unplayed = self._unplayed_pairs(group)
            if unplayed:
                self._emit(
                    TRACE_HEAD_TO_HEAD_SKIPPED,
                    team_ids=[r.team_id for r in group],
                    unplayed_pairs=unplayed,
                )
                return self._resolve(group, CASCADE_STEPS.index(STEP_VOTES))

        placements: List[Tuple[TeamRecord, Optional[str]]] = []
        for part in self._apply_step(step, group):
            if len(part) == 1:
                placements.append((part[0], step))
            else:
                placements.extend(self._resolve(part, step_index + 1))
        return placements

    def _draw(self, group: List[TeamRecord]) -> List[Tuple[TeamRecord, Optional[str]]]:
        by_id = {record.team_id: record for record in group}
        key = tied_set_key(by_id)
        prior = self.prior_draws.get(key)

        if prior is not None and sorted(prior) == sorted(by_id):
            ordering = [int(team_id) for team_id in prior]
            source = DRAW_SOURCE_PERSISTED
        else:
            ordering = sorted(by_id)
            self.rng.shuffle(ordering)
            source = DRAW_SOURCE_RANDOM

        self.draws.append(DrawRecord(team_set_key=key, ordering=tuple(ordering), source=source))
        self._emit(
            TRACE_RANDOM_DRAW,
            team_ids=[r.team_id for r in group],
            team_set_key=key,
            ordering=list(ordering),
            source=source,
        )
        return [(by_id[team_id], STEP_RANDOM_DRAW) for team_id in ordering]

    @staticmethod
    def _tie_groups(ordered: List[TeamRecord]) -> List[List[TeamRecord]]:
        groups: List[List[TeamRecord]] = []
        for record in ordered:
            previous = groups[-1][-1] if groups else None
            if (
                previous is not None
                and previous.win_units == record.win_units
                and previous.total_matches == record.total_matches
            ):
                groups[-1].append(record)
            else:
                groups.append([record])
        return groups

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def compute(self, teams, matches, adjustments: Optional[AdjustmentLogs] = None) -> StandingsResult:
        adjustments = adjustments or AdjustmentLogs()
        records = self._base_records(teams, matches, adjustments)

        ranked_pool = [r for r in records.values() if r.total_matches > 0]
        excluded = sorted(r.team_id for r in records.values() if r.total_matches <= 0)
        self._emit(
            TRACE_BASE_STATS,
            teams=[
                dict(r.stats_dict(), opponent_ids=list(r.opponent_ids))
                for r in sorted(ranked_pool, key=lambda r: r.team_id)
            ],
            excluded_team_ids=excluded,
        )

        ordered = sorted(
            ranked_pool,
            key=lambda r: (
                -r.win_units,
                -r.votes,
                -r.opponents_result_units,
                -r.score_differential,
                r.team_id,
            )
        )
        self._emit(TRACE_PRIMARY_ORDER, order=[r.stats_dict() for r in ordered])

        placements: List[Tuple[TeamRecord, Optional[str]]] = []
        for group in self._tie_groups(ordered):
            if len(group) == 1:
                placements.append((group[0], None))
                continue
            self._emit(
                TRACE_TIE_GROUP,
                team_ids=[r.team_id for r in group],
                wins=_fmt(group[0].wins),
                total_matches=group[0].total_matches,
            )
            placements.extend(self._resolve(group, 0))

        standings = []
        for rank, (record, step) in enumerate(placements, start=1):
            wins = record.win_units // 2
            ties = record.win_units % 2
            standings.append(TeamStanding(
                rank=rank,
                team_id=record.team_id,
                team_name=record.team_name,
                school=record.school,
                wins=wins,
                losses=record.total_matches - wins - ties,
                ties=ties,
                win_points=record.wins,
                votes=record.votes,
                score_differential=record.score_differential,
                opponents_result=record.opponents_result,
                total_matches=record.total_matches,
                tiebreak_step=step,
            ))

        self._emit(
            TRACE_FINAL_RANKING,
            ranking=[
                {"rank": s.rank, "team_id": s.team_id, "tiebreak_step": s.tiebreak_step}
                for s in standings
            ],
        )
        return StandingsResult(standings=standings, trace=list(self.trace), draws=list(self.draws))


def rank_teams(
    teams,
    matches,
    adjustments: Optional[AdjustmentLogs] = None,
    rng: Optional[random.Random] = None,
    prior_draws: Optional[Dict[str, Sequence[int]]] = None
) -> StandingsResult:
    """Convenience wrapper running a fresh engine once."""
    return StandingsEngine(rng=rng, prior_draws=prior_draws).compute(teams, matches, adjustments)

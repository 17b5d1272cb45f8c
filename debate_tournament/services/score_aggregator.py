"""
Score Aggregator

Turns one match's judge score sheets into that match's outcome.

- A judge's total for a team is the sum of criterion points plus the mean
  of the judge-question points (added once, not summed).
- Each judge holding submitted sheets for both teams casts one vote: 1 to
  the higher total, 1/2 each on equal totals.
- With exactly two assigned judges who both submitted for both teams, a
  virtual third judge is synthesized from the mean of their totals and
  casts one more vote. It is never stored and is flagged in breakdowns.

All arithmetic is exact (fractions.Fraction); callers quantize for display.
"""
import math
from dataclasses import dataclass, field
from decimal import Decimal
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Optional, Tuple

from debate_tournament.errors import ValidationError, ErrorCode
from debate_tournament.state_machines.match_stage import COMPLETED, is_scoring_window

ZERO = Fraction(0)
HALF = Fraction(1, 2)
ONE = Fraction(1)

# Win credit in half-point units
WIN_UNITS = 2
TIE_UNITS = 1
LOSS_UNITS = 0


def _is_finite(value) -> bool:
    if isinstance(value, Decimal):
        return value.is_finite()
    return math.isfinite(value)


def to_fraction(value: Any) -> Fraction:
    """Exact rational for a stored point value; null counts as zero."""
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(
            "Score values must be numbers",
            code=ErrorCode.INVALID_INPUT,
            details={"value": value}
        )
    if isinstance(value, Fraction):
        return value
    if isinstance(value, int):
        return Fraction(value)
    if isinstance(value, (float, Decimal)) and not _is_finite(value):
        raise ValidationError(
            f"Score value {value!r} is not a finite number",
            code=ErrorCode.INVALID_INPUT,
            details={"value": repr(value)}
        )
    if isinstance(value, Decimal):
        return Fraction(value)
    if isinstance(value, float):
        # Through str so 7.1 means 71/10, not its binary approximation
        return Fraction(str(value))
    if isinstance(value, str):
        try:
            return Fraction(value.strip())
        except ValueError:
            pass
    raise ValidationError(
        f"Score value {value!r} is not a number",
        code=ErrorCode.INVALID_INPUT,
        details={"value": repr(value)}
    )


def judge_total(criteria_scores: Optional[Dict[str, Any]], comment_scores: Optional[Iterable[Any]]) -> Fraction:
    total = sum((to_fraction(v) for v in (criteria_scores or {}).values()), ZERO)
    questions = [to_fraction(v) for v in (comment_scores or [])]
    if questions:
        total += sum(questions, ZERO) / len(questions)
    return total


def vote_for(own_total: Fraction, other_total: Fraction) -> Fraction:
    if own_total > other_total:
        return ONE
    if own_total == other_total:
        return HALF
    return ZERO


@dataclass(frozen=True)
class JudgeTally:
    """One counted judge's totals for team A and team B."""
    judge_id: Optional[int]
    judge_name: Optional[str]
    total_a: Fraction
    total_b: Fraction
    is_virtual: bool = False

    @property
    def vote_a(self) -> Fraction:
        return vote_for(self.total_a, self.total_b)

    @property
    def vote_b(self) -> Fraction:
        return vote_for(self.total_b, self.total_a)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "judge_id": self.judge_id,
            "judge_name": self.judge_name,
            "total_a": str(self.total_a),
            "total_b": str(self.total_b),
            "vote_a": str(self.vote_a),
            "vote_b": str(self.vote_b),
            "is_virtual": self.is_virtual,
        }


def make_virtual_judge(first: JudgeTally, second: JudgeTally) -> JudgeTally:
    """Synthetic third judge averaging two real judges' totals."""
    return JudgeTally(
        judge_id=None,
        judge_name="Virtual Judge",
        total_a=(first.total_a + second.total_a) / 2,
        total_b=(first.total_b + second.total_b) / 2,
        is_virtual=True,
    )


@dataclass(frozen=True)
class MatchOutcome:
    """A match result seen from one team."""
    team_id: int
    opponent_id: Optional[int]
    win_units: int
    votes: Fraction
    score_differential: Fraction

    @property
    def wins(self) -> Fraction:
        return Fraction(self.win_units, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "opponent_id": self.opponent_id,
            "wins": str(self.wins),
            "votes": str(self.votes),
            "score_differential": str(self.score_differential),
        }


@dataclass(frozen=True)
class MatchTally:
    match_id: Optional[int]
    team_a_id: Optional[int]
    team_b_id: Optional[int]
    judges: Tuple[JudgeTally, ...] = field(default_factory=tuple)

    @property
    def real_judges(self) -> Tuple[JudgeTally, ...]:
        return tuple(j for j in self.judges if not j.is_virtual)

    @property
    def virtual_judge(self) -> Optional[JudgeTally]:
        return next((j for j in self.judges if j.is_virtual), None)

    @property
    def has_virtual_judge(self) -> bool:
        return self.virtual_judge is not None

    @property
    def votes_a(self) -> Fraction:
        return sum((j.vote_a for j in self.judges), ZERO)

    @property
    def votes_b(self) -> Fraction:
        return sum((j.vote_b for j in self.judges), ZERO)

    @property
    def differential_a(self) -> Fraction:
        return sum((j.total_a - j.total_b for j in self.judges), ZERO)

    @property
    def winner_id(self) -> Optional[int]:
        if self.votes_a > self.votes_b:
            return self.team_a_id
        if self.votes_b > self.votes_a:
            return self.team_b_id
        return None

    def outcome_for(self, team_id: int) -> MatchOutcome:
        if team_id == self.team_a_id:
            own_votes, other_votes = self.votes_a, self.votes_b
            differential = self.differential_a
            opponent_id = self.team_b_id
        elif team_id == self.team_b_id:
            own_votes, other_votes = self.votes_b, self.votes_a
            differential = -self.differential_a
            opponent_id = self.team_a_id
        else:
            raise ValidationError(
                f"Team {team_id} did not play in match {self.match_id}",
                code=ErrorCode.INVALID_INPUT,
                details={"match_id": self.match_id, "team_id": team_id}
            )

        if own_votes > other_votes:
            win_units = WIN_UNITS
        elif own_votes == other_votes:
            win_units = TIE_UNITS
        else:
            win_units = LOSS_UNITS

        return MatchOutcome(
            team_id=team_id,
            opponent_id=opponent_id,
            win_units=win_units,
            votes=own_votes,
            score_differential=differential,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_id": self.match_id,
            "team_a_id": self.team_a_id,
            "team_b_id": self.team_b_id,
            "votes_a": str(self.votes_a),
            "votes_b": str(self.votes_b),
            "winner_id": self.winner_id,
            "judges": [j.to_dict() for j in self.real_judges],
            "virtual_judge": self.virtual_judge.to_dict() if self.virtual_judge else None,
        }


def _ordered_assignments(match) -> List[Any]:
    ordered = getattr(match, "ordered_assignments", None)
    if ordered is not None:
        return list(ordered)
    return list(match.assignments or [])


def _submitted_sheets(match) -> Dict[Tuple[int, int], Any]:
    """(judge_id, team_id) -> submitted score sheet."""
    return {
        (score.judge_id, score.team_id): score
        for score in (match.scores or [])
        if score.is_submitted
    }


def _judge_name(assignment) -> Optional[str]:
    judge = getattr(assignment, "judge", None)
    return getattr(judge, "name", None) if judge is not None else None


def tally_match(match) -> MatchTally:
    """
    Count every assigned judge with submitted sheets for both teams, then
    add the virtual judge when the two-judge protocol applies.
    """
    assignments = _ordered_assignments(match)
    sheets = _submitted_sheets(match)

    judges: List[JudgeTally] = []
    seen = set()
    for assignment in assignments:
        if assignment.judge_id in seen:
            continue
        sheet_a = sheets.get((assignment.judge_id, match.team_a_id))
        sheet_b = sheets.get((assignment.judge_id, match.team_b_id))
        if sheet_a is None or sheet_b is None:
            continue
        seen.add(assignment.judge_id)
        judges.append(JudgeTally(
            judge_id=assignment.judge_id,
            judge_name=_judge_name(assignment),
            total_a=judge_total(sheet_a.criteria_scores, sheet_a.comment_scores),
            total_b=judge_total(sheet_b.criteria_scores, sheet_b.comment_scores),
        ))

    if len(assignments) == 2 and len(judges) == 2:
        judges.append(make_virtual_judge(judges[0], judges[1]))

    return MatchTally(
        match_id=match.id,
        team_a_id=match.team_a_id,
        team_b_id=match.team_b_id,
        judges=tuple(judges),
    )


def is_aggregatable(match) -> bool:
    """A match can be tallied once it has left draft."""
    return match.status == COMPLETED.value or is_scoring_window(match.status)


def compute_match_outcome(match, perspective_team_id: int) -> MatchOutcome:
    """Wins, votes and score differential of one team in one match."""
    if not is_aggregatable(match):
        raise ValidationError(
            f"Match {match.id} has not reached a scoreable stage",
            code=ErrorCode.SCORING_WINDOW_CLOSED,
            details={"match_id": match.id, "stage": match.status}
        )
    return tally_match(match).outcome_for(perspective_team_id)


def validate_completion(match) -> None:
    """
    Every assigned judge must hold submitted sheets for both teams.

    Raises:
        ValidationError: naming the first judge and team missing a sheet
    """
    assignments = _ordered_assignments(match)
    if not assignments:
        raise ValidationError(
            "No judges assigned to this match",
            code=ErrorCode.NO_JUDGES_ASSIGNED,
            details={"match_id": match.id}
        )
    if match.team_a_id is None or match.team_b_id is None:
        raise ValidationError(
            "Teams not properly assigned to this match",
            code=ErrorCode.TEAMS_NOT_ASSIGNED,
            details={"match_id": match.id, "team_a_id": match.team_a_id, "team_b_id": match.team_b_id}
        )

    sheets = _submitted_sheets(match)
    for assignment in assignments:
        for side, team_id in (("A", match.team_a_id), ("B", match.team_b_id)):
            if (assignment.judge_id, team_id) in sheets:
                continue
            judge_label = _judge_name(assignment) or f"#{assignment.judge_id}"
            raise ValidationError(
                f"Judge {judge_label} has not submitted scores for Team {side}",
                code=ErrorCode.INCOMPLETE_SCORES,
                details={
                    "match_id": match.id,
                    "judge_id": assignment.judge_id,
                    "judge_name": _judge_name(assignment),
                    "team_id": team_id,
                    "team_side": side,
                }
            )

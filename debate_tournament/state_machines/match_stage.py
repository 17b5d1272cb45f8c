"""
Match Stage Machine

A match walks a fixed script: draft, two argument periods each followed by
Q judge-question stages, final scoring, completed. The stage list is
generated from the judge-question count Q, so Q is free configuration.

Stages are values of MatchStage, a frozen (kind, period, team, index)
record whose canonical string form is what gets stored on Match.status.
Nothing here touches the database.
"""
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Optional, Tuple, Dict, Any, Union

from debate_tournament.errors import ValidationError, PermissionDeniedError, ErrorCode


DEFAULT_JUDGE_QUESTION_COUNT = 3


class StageKind(str, Enum):
    DRAFT = "draft"
    MODERATOR = "moderator"
    CONFERRAL = "conferral"
    PRESENTATION = "presentation"
    COMMENTARY = "commentary"
    RESPONSE = "response"
    JUDGE_QUESTION = "judge_question"
    FINAL_SCORING = "final_scoring"
    COMPLETED = "completed"


class ActorRole(str, Enum):
    """An actor's standing relative to one match."""
    ADMIN = "admin"
    MATCH_MODERATOR = "match_moderator"
    JUDGE = "judge"
    OTHER = "other"


TRANSITION_ROLES = (ActorRole.ADMIN, ActorRole.MATCH_MODERATOR)


@dataclass(frozen=True)
class MatchStage:
    kind: StageKind
    period: Optional[int] = None
    team: Optional[str] = None
    index: Optional[int] = None

    @property
    def value(self) -> str:
        if self.kind == StageKind.MODERATOR:
            return f"moderator_period_{self.period}"
        if self.kind == StageKind.CONFERRAL:
            return f"team_{self.team}_conferral_{self.period}_{self.index}"
        if self.kind in (StageKind.PRESENTATION, StageKind.COMMENTARY, StageKind.RESPONSE):
            return f"team_{self.team}_{self.kind.value}"
        if self.kind == StageKind.JUDGE_QUESTION:
            return f"judge_{self.period}_{self.index}"
        return self.kind.value

    @property
    def display_name(self) -> str:
        if self.kind == StageKind.MODERATOR:
            return f"Moderator Period {self.period}"
        if self.kind == StageKind.CONFERRAL:
            return f"Team {self.team.upper()} Conferral {self.period}.{self.index}"
        if self.kind in (StageKind.PRESENTATION, StageKind.COMMENTARY, StageKind.RESPONSE):
            return f"Team {self.team.upper()} {self.kind.value.title()}"
        if self.kind == StageKind.JUDGE_QUESTION:
            return f"Judge {self.period}.{self.index}"
        return self.kind.value.replace("_", " ").title()

    @property
    def judge_ordinal(self) -> Optional[int]:
        return self.period if self.kind == StageKind.JUDGE_QUESTION else None

    @property
    def question(self) -> Optional[int]:
        return self.index if self.kind == StageKind.JUDGE_QUESTION else None

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "display_name": self.display_name, "kind": self.kind.value}

    def __str__(self):
        return self.value


DRAFT = MatchStage(StageKind.DRAFT)
FINAL_SCORING = MatchStage(StageKind.FINAL_SCORING)
COMPLETED = MatchStage(StageKind.COMPLETED)

StageLike = Union[MatchStage, str]


def _period_stages(period: int) -> Tuple[MatchStage, ...]:
    # Team A leads period 1, team B leads period 2
    lead, other = ("a", "b") if period == 1 else ("b", "a")
    return (
        MatchStage(StageKind.MODERATOR, period=period),
        MatchStage(StageKind.CONFERRAL, period=period, team=lead, index=1),
        MatchStage(StageKind.PRESENTATION, period=period, team=lead),
        MatchStage(StageKind.CONFERRAL, period=period, team=other, index=1),
        MatchStage(StageKind.COMMENTARY, period=period, team=other),
        MatchStage(StageKind.CONFERRAL, period=period, team=lead, index=2),
        MatchStage(StageKind.RESPONSE, period=period, team=lead),
    )


def validate_question_count(judge_question_count: Any) -> int:
    if (
        isinstance(judge_question_count, bool)
        or not isinstance(judge_question_count, int)
        or judge_question_count < 1
    ):
        raise ValidationError(
            f"Judge question count must be a positive integer, got {judge_question_count!r}",
            code=ErrorCode.INVALID_JUDGE_QUESTION_COUNT,
            details={"judge_question_count": repr(judge_question_count)}
        )
    return judge_question_count


@lru_cache(maxsize=32)
def _build_stages(judge_question_count: int) -> Tuple[MatchStage, ...]:
    stages = [DRAFT]
    for period in (1, 2):
        stages.extend(_period_stages(period))
        stages.extend(
            MatchStage(StageKind.JUDGE_QUESTION, period=period, index=question)
            for question in range(1, judge_question_count + 1)
        )
    stages.extend([FINAL_SCORING, COMPLETED])
    return tuple(stages)


def valid_stages(judge_question_count: int = DEFAULT_JUDGE_QUESTION_COUNT) -> Tuple[MatchStage, ...]:
    """Ordered stages for a match with the given number of judge questions."""
    return _build_stages(validate_question_count(judge_question_count))


def parse_stage(value: StageLike, judge_question_count: int = DEFAULT_JUDGE_QUESTION_COUNT) -> MatchStage:
    """
    Resolve a stored/requested stage string against valid_stages(Q).

    Raises:
        ValidationError: if the string names no stage of this script
    """
    stages = valid_stages(judge_question_count)
    if isinstance(value, MatchStage):
        if value in stages:
            return value
        value = value.value
    for stage in stages:
        if stage.value == value:
            return stage
    raise ValidationError(
        f"'{value}' is not a valid stage for {judge_question_count} judge questions",
        code=ErrorCode.UNKNOWN_STAGE,
        details={"stage": str(value), "judge_question_count": judge_question_count}
    )


def stage_position(stage: StageLike, judge_question_count: int = DEFAULT_JUDGE_QUESTION_COUNT) -> int:
    return valid_stages(judge_question_count).index(parse_stage(stage, judge_question_count))


def is_scoring_window(stage: StageLike) -> bool:
    """Drafts may be saved from the first moderator period through final scoring."""
    kind = stage.kind if isinstance(stage, MatchStage) else _kind_of(stage)
    return kind not in (StageKind.DRAFT, StageKind.COMPLETED)


def can_submit_scores(stage: StageLike) -> bool:
    """Scores are finalized only at final scoring; completed matches are frozen."""
    kind = stage.kind if isinstance(stage, MatchStage) else _kind_of(stage)
    return kind == StageKind.FINAL_SCORING


def _kind_of(value: str) -> StageKind:
    if value == DRAFT.value:
        return StageKind.DRAFT
    if value == COMPLETED.value:
        return StageKind.COMPLETED
    if value == FINAL_SCORING.value:
        return StageKind.FINAL_SCORING
    # Any other string is only meaningful against a Q; resolve against the
    # largest script it could belong to.
    parts = value.split("_")
    if value.startswith("judge_") and len(parts) == 3 and parts[2].isdigit():
        return parse_stage(value, max(int(parts[2]), 1)).kind
    return parse_stage(value, DEFAULT_JUDGE_QUESTION_COUNT).kind


def next_allowed_stages(
    current: StageLike,
    judge_question_count: int = DEFAULT_JUDGE_QUESTION_COUNT
) -> Tuple[MatchStage, ...]:
    """
    Stages a moderator may move to from `current`.

    Forward skips are allowed; draft may not jump straight to completed and
    completed has no successors.
    """
    stages = valid_stages(judge_question_count)
    current_stage = parse_stage(current, judge_question_count)
    if current_stage == COMPLETED:
        return ()
    following = stages[stages.index(current_stage) + 1:]
    if current_stage == DRAFT:
        following = tuple(stage for stage in following if stage != COMPLETED)
    return following


def check_transition(
    current: StageLike,
    requested: StageLike,
    actor_role: ActorRole,
    judge_question_count: int = DEFAULT_JUDGE_QUESTION_COUNT
) -> bool:
    """
    Validate a stage change request.

    Completion validation for a move to `completed` is the caller's job.

    Returns:
        True if the stage changes, False for an idempotent same-stage request

    Raises:
        PermissionDeniedError: actor is neither an admin nor the match moderator
        ValidationError: the move breaks an ordering rule
    """
    if actor_role not in TRANSITION_ROLES:
        raise PermissionDeniedError(
            "Only the assigned moderator or an administrator can change the match stage",
            details={"actor_role": getattr(actor_role, "value", actor_role)}
        )

    stages = valid_stages(judge_question_count)
    current_stage = parse_stage(current, judge_question_count)
    requested_stage = parse_stage(requested, judge_question_count)
    rule_details = {"current": current_stage.value, "requested": requested_stage.value}

    if current_stage == COMPLETED:
        raise ValidationError(
            "Match is completed and accepts no further stage changes",
            code=ErrorCode.MATCH_ALREADY_COMPLETED,
            details=rule_details
        )

    if requested_stage == current_stage:
        return False

    if stages.index(requested_stage) < stages.index(current_stage):
        raise ValidationError(
            f"Cannot move backward from {current_stage.display_name} to {requested_stage.display_name}",
            code=ErrorCode.BACKWARD_TRANSITION,
            details=rule_details
        )

    if current_stage == DRAFT and requested_stage == COMPLETED:
        raise ValidationError(
            "A draft match cannot be completed directly",
            code=ErrorCode.DRAFT_TO_COMPLETED,
            details=rule_details
        )

    return True

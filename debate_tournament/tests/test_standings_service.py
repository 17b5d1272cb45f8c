"""
Standings service: database-backed computation, draw persistence, the trace
cache and event configuration parsing.
"""
import logging
import random
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debate_tournament.config.feature_flags import FeatureFlags, DRAW_POLICY_REROLL
from debate_tournament.errors import ErrorCode, NotFoundError
from debate_tournament.orm.tiebreak_draw import TiebreakDraw
from debate_tournament.services.standings_engine import (
    DRAW_SOURCE_PERSISTED, DRAW_SOURCE_RANDOM, STEP_RANDOM_DRAW
)
from debate_tournament.services.standings_service import (
    compute_standings, fetch_judge_question_count, fetch_prior_draws,
    get_cached_trace, get_event_statistics, parse_judge_question_count
)
from debate_tournament.tests.factories import (
    create_completed_match, create_event, create_match, create_teams, create_user,
    scoring_criteria
)


@pytest_asyncio.fixture
async def judges(db: AsyncSession):
    return [await create_user(db, f"Judge {i}") for i in range(3)]


@pytest_asyncio.fixture
async def event(db: AsyncSession):
    return await create_event(db)


async def tied_pair(db, event, judges):
    """Two teams with identical sweeps over the same third team."""
    teams = await create_teams(db, event, 3)
    await create_completed_match(db, event, teams[0], teams[2], judges, [(70, 60)] * 3)
    await create_completed_match(db, event, teams[1], teams[2], judges, [(70, 60)] * 3, round_number=2)
    await db.commit()
    return teams


async def draw_rows(db, event_id):
    result = await db.execute(select(TiebreakDraw).where(TiebreakDraw.event_id == event_id))
    return list(result.scalars().all())


# =============================================================================
# Computation
# =============================================================================

@pytest.mark.asyncio
async def test_unknown_event(db):
    with pytest.raises(NotFoundError) as exc:
        await compute_standings(db, 999)
    assert exc.value.code == ErrorCode.EVENT_NOT_FOUND


@pytest.mark.asyncio
async def test_event_without_matches_ranks_nobody(db, event):
    teams = await create_teams(db, event, 3)
    await db.commit()

    result = await compute_standings(db, event.id)

    assert result.standings == []
    assert result.trace[0].payload["excluded_team_ids"] == [t.id for t in teams]


@pytest.mark.asyncio
async def test_ranks_completed_matches_only(db, event, judges):
    teams = await create_teams(db, event, 3)
    await create_completed_match(db, event, teams[0], teams[1], judges, [(72, 70), (71, 70), (69, 70)])
    await create_completed_match(db, event, teams[0], teams[2], judges, [(70, 60)] * 3, round_number=2)
    await create_match(db, event, teams[2], teams[1], judges, status="final_scoring", round_number=3)
    await db.commit()

    result = await compute_standings(db, event.id)

    assert [s.team_id for s in result.standings][0] == teams[0].id
    leader = result.standings[0]
    assert (leader.wins, leader.losses, leader.total_matches) == (2, 0, 2)
    assert leader.votes == 5
    assert [s.rank for s in result.standings] == [1, 2, 3]


@pytest.mark.asyncio
async def test_trace_cached_per_event(db, event, judges):
    teams = await create_teams(db, event, 2)
    await create_completed_match(db, event, teams[0], teams[1], judges, [(70, 60)] * 3)
    await db.commit()

    result = await compute_standings(db, event.id)

    assert get_cached_trace(event.id) == result.trace
    with pytest.raises(NotFoundError) as exc:
        get_cached_trace(event.id + 1)
    assert exc.value.code == ErrorCode.TRACE_NOT_FOUND


@pytest.mark.asyncio
async def test_trace_cache_can_be_disabled(db, event, monkeypatch):
    monkeypatch.setattr(FeatureFlags, "FEATURE_STANDINGS_TRACE_CACHE", False)

    await compute_standings(db, event.id)

    with pytest.raises(NotFoundError):
        get_cached_trace(event.id)


# =============================================================================
# Random draws
# =============================================================================

@pytest.mark.asyncio
async def test_first_draw_is_persisted_and_reused(db, event, judges):
    teams = await tied_pair(db, event, judges)
    top_two = sorted([teams[0].id, teams[1].id])

    first = await compute_standings(db, event.id, rng=random.Random(5))
    first_order = [s.team_id for s in first.standings[:2]]
    assert sorted(first_order) == top_two
    assert first.draws[0].source == DRAW_SOURCE_RANDOM
    assert all(s.tiebreak_step == STEP_RANDOM_DRAW for s in first.standings[:2])

    rows = await draw_rows(db, event.id)
    assert len(rows) == 1
    assert rows[0].team_set_key == ",".join(str(i) for i in top_two)
    assert rows[0].ordering == first_order
    assert rows[0].verify()

    for seed in range(5):
        again = await compute_standings(db, event.id, rng=random.Random(seed))
        assert [s.team_id for s in again.standings[:2]] == first_order
        assert again.draws[0].source == DRAW_SOURCE_PERSISTED

    assert len(await draw_rows(db, event.id)) == 1


@pytest.mark.asyncio
async def test_reroll_policy_stores_nothing(db, event, judges, monkeypatch):
    monkeypatch.setattr(FeatureFlags, "TIEBREAK_DRAW_POLICY", DRAW_POLICY_REROLL)
    await tied_pair(db, event, judges)

    result = await compute_standings(db, event.id, rng=random.Random(1))

    assert result.draws[0].source == DRAW_SOURCE_RANDOM
    assert await draw_rows(db, event.id) == []


@pytest.mark.asyncio
async def test_seeded_draws_repeat_under_reroll(db, event, judges, monkeypatch):
    monkeypatch.setattr(FeatureFlags, "TIEBREAK_DRAW_POLICY", DRAW_POLICY_REROLL)
    monkeypatch.setattr(FeatureFlags, "TIEBREAK_RANDOM_SEED", 11)
    await tied_pair(db, event, judges)

    first = await compute_standings(db, event.id)
    second = await compute_standings(db, event.id)

    assert [s.team_id for s in first.standings] == [s.team_id for s in second.standings]


@pytest.mark.asyncio
async def test_tampered_draw_ignored(db, event, caplog):
    db.add(TiebreakDraw(event_id=event.id, team_set_key="1,2", ordering=[2, 1], draw_hash="0" * 64))
    await db.commit()

    with caplog.at_level(logging.WARNING):
        draws = await fetch_prior_draws(db, event.id)

    assert draws == {}
    assert "failed hash check" in caplog.text


@pytest.mark.asyncio
async def test_valid_draw_loaded(db, event):
    db.add(TiebreakDraw(
        event_id=event.id,
        team_set_key="1,2",
        ordering=[2, 1],
        draw_hash=TiebreakDraw.compute_hash(event.id, [2, 1]),
    ))
    await db.commit()

    assert await fetch_prior_draws(db, event.id) == {"1,2": [2, 1]}


# =============================================================================
# Judge question count
# =============================================================================

@pytest.mark.asyncio
async def test_question_count_from_event(db):
    event = await create_event(db, scoring_criteria=scoring_criteria(commentQuestionsCount=5))
    await db.commit()
    assert await fetch_judge_question_count(db, event.id) == 5


@pytest.mark.asyncio
async def test_malformed_criteria_fall_back(db, caplog):
    event = await create_event(db, scoring_criteria="{commentQuestionsCount: five")
    await db.commit()

    with caplog.at_level(logging.WARNING):
        count = await fetch_judge_question_count(db, event.id)

    assert count == 3
    assert "unparseable scoring criteria" in caplog.text


@pytest.mark.parametrize("raw,expected", [
    (None, 3),
    ("", 3),
    ('{"rubric": "standard"}', 3),
    ('{"commentQuestionsCount": 0}', 3),
    ('{"commentQuestionsCount": "4"}', 3),
    ('{"commentQuestionsCount": true}', 3),
    ('[1, 2]', 3),
    ('{"commentQuestionsCount": 2}', 2),
])
def test_parse_question_count(raw, expected):
    assert parse_judge_question_count(raw) == expected


def test_invalid_count_logs_warning(caplog):
    with caplog.at_level(logging.WARNING):
        assert parse_judge_question_count('{"commentQuestionsCount": -2}', 7) == 3
    assert "Event 7" in caplog.text


# =============================================================================
# Event statistics
# =============================================================================

@pytest.mark.asyncio
async def test_event_statistics(db, event, judges):
    teams = await create_teams(db, event, 3)
    ids = [t.id for t in teams]
    first = await create_completed_match(db, event, teams[0], teams[1], judges[:2], [(80, 75), (78, 77)])
    pending = await create_match(db, event, teams[1], teams[2], judges, status="final_scoring", round_number=2)
    second = await create_completed_match(
        db, event, teams[0], teams[2], judges, [(70, 60), (70, 60), (60, 70)], round_number=2
    )
    first_id, pending_id, second_id = first.id, pending.id, second.id
    await db.commit()

    stats = await get_event_statistics(db, event.id)

    assert stats["event"]["name"] == "Spring Open"
    assert stats["event"]["judge_question_count"] == 3
    assert stats["summary"] == {
        "total_teams": 3,
        "total_matches": 3,
        "completed_matches": 2,
        "total_rounds": 3,
    }
    assert [row["team_id"] for row in stats["standings"]][0] == ids[0]

    rounds = stats["round_results"]
    assert [(r["round_number"], r["total_matches"], r["completed_matches"]) for r in rounds] == [
        (1, 1, 1), (2, 2, 1)
    ]
    assert [m["match_id"] for m in rounds[1]["matches"]] == [pending_id, second_id]
    assert rounds[1]["matches"][0]["result"] is None

    results = stats["match_results"]
    assert [m["match_id"] for m in results] == [first_id, second_id]

    two_judge = results[0]
    assert two_judge["uses_two_judge_protocol"] is True
    assert two_judge["team_a"] == {"id": ids[0], "name": "Team 1", "school": "School 1"}
    assert [j["judge_name"] for j in two_judge["judges"]] == ["Judge 0", "Judge 1"]
    detail = two_judge["result"]
    assert (detail["votes_a"], detail["votes_b"]) == (Decimal("3.00"), Decimal("0.00"))
    assert (detail["score_differential_a"], detail["score_differential_b"]) == (Decimal("9.00"), Decimal("-9.00"))
    assert [j["judge_id"] for j in detail["judges"]] == [judges[0].id, judges[1].id]
    assert not any(j["is_virtual"] for j in detail["judges"])
    assert detail["virtual_judge"]["total_a"] == Decimal("79.00")

    three_judge = results[1]
    assert three_judge["uses_two_judge_protocol"] is False
    assert three_judge["result"]["votes_a"] == Decimal("2.00")
    assert three_judge["result"]["virtual_judge"] is None


@pytest.mark.asyncio
async def test_statistics_for_unknown_event(db):
    with pytest.raises(NotFoundError) as exc:
        await get_event_statistics(db, 999)
    assert exc.value.code == ErrorCode.EVENT_NOT_FOUND

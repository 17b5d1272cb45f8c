"""
HTTP surface: acting-user resolution, error envelopes and a full match
played through the API into standings.
"""
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from debate_tournament.orm.user import UserRole
from debate_tournament.tests.factories import (
    create_event, create_match, create_teams, create_user
)


def as_user(user):
    return {"X-User-Id": str(user.id)}


@pytest_asyncio.fixture
async def seeded(db: AsyncSession):
    admin = await create_user(db, "Dana Admin", UserRole.admin)
    moderator = await create_user(db, "Morgan Lee", UserRole.moderator)
    judges = [await create_user(db, "Avery Park"), await create_user(db, "Blake Chen")]
    event = await create_event(db)
    team_a, team_b = await create_teams(db, event, 2)
    match = await create_match(db, event, team_a, team_b, judges, moderator=moderator)
    await db.commit()
    return {
        "admin": admin,
        "moderator": moderator,
        "judges": judges,
        "event": event,
        "team_a": team_a,
        "team_b": team_b,
        "match": match,
    }


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_missing_user_header(client, seeded):
    response = await client.get(f"/api/events/{seeded['event'].id}/standings")

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "AUTH_REQUIRED"


@pytest.mark.asyncio
async def test_unknown_user(client, seeded):
    response = await client.get(
        f"/api/events/{seeded['event'].id}/standings", headers={"X-User-Id": "9999"}
    )
    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_INVALID"


@pytest.mark.asyncio
async def test_unknown_event(client, seeded):
    response = await client.get("/api/events/9999/standings", headers=as_user(seeded["admin"]))

    assert response.status_code == 404
    assert response.json()["code"] == "EVENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_trace_before_any_computation(client, seeded):
    response = await client.get(
        f"/api/events/{seeded['event'].id}/standings/trace", headers=as_user(seeded["admin"])
    )
    assert response.status_code == 404
    assert response.json()["code"] == "TRACE_NOT_FOUND"


@pytest.mark.asyncio
async def test_request_validation_envelope(client, seeded):
    response = await client.post(
        f"/api/matches/{seeded['match'].id}/stage",
        json={"stage": ""},
        headers=as_user(seeded["moderator"]),
    )
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_next_stages(client, seeded):
    response = await client.get(
        f"/api/matches/{seeded['match'].id}/stages", headers=as_user(seeded["judges"][0])
    )

    assert response.status_code == 200
    body = response.json()
    assert body["current_stage"] == "draft"
    assert body["next_stages"][0] == {
        "value": "moderator_period_1",
        "display_name": "Moderator Period 1",
        "kind": "moderator",
    }
    assert "completed" not in [s["value"] for s in body["next_stages"]]


@pytest.mark.asyncio
async def test_judge_cannot_change_stage(client, seeded):
    response = await client.post(
        f"/api/matches/{seeded['match'].id}/stage",
        json={"stage": "moderator_period_1"},
        headers=as_user(seeded["judges"][0]),
    )
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_backward_transition_rejected(client, seeded):
    match_url = f"/api/matches/{seeded['match'].id}/stage"
    moderator = as_user(seeded["moderator"])

    assert (await client.post(match_url, json={"stage": "team_a_response"}, headers=moderator)).status_code == 200
    response = await client.post(match_url, json={"stage": "team_a_presentation"}, headers=moderator)

    assert response.status_code == 400
    assert response.json()["code"] == "BACKWARD_TRANSITION"
    assert response.json()["details"] == {
        "current": "team_a_response",
        "requested": "team_a_presentation",
    }


@pytest.mark.asyncio
async def test_adjustments_require_admin(client, seeded):
    url = f"/api/events/{seeded['event'].id}/adjustments/votes"
    payload = {"team_id": seeded["team_a"].id, "adjustment": "1.50", "reason": "Recount"}

    denied = await client.post(url, json=payload, headers=as_user(seeded["moderator"]))
    assert denied.status_code == 403

    created = await client.post(url, json=payload, headers=as_user(seeded["admin"]))
    assert created.status_code == 201
    assert created.json()["admin_name"] == "Dana Admin"
    assert created.json()["reason"] == "Recount"


@pytest.mark.asyncio
async def test_match_played_through_to_standings(client, seeded):
    match_id = seeded["match"].id
    event_id = seeded["event"].id
    team_a, team_b = seeded["team_a"], seeded["team_b"]
    moderator = as_user(seeded["moderator"])
    stage_url = f"/api/matches/{match_id}/stage"

    response = await client.post(stage_url, json={"stage": "moderator_period_1"}, headers=moderator)
    assert response.status_code == 200
    assert response.json()["status"] == "moderator_period_1"

    sheets = [((40, 40), (38, 37)), ((39, 39), (39, 38))]
    for judge, (for_a, for_b) in zip(seeded["judges"], sheets):
        for team, points in ((team_a, for_a), (team_b, for_b)):
            saved = await client.put(
                f"/api/matches/{match_id}/scores/{team.id}",
                json={"criteria_scores": {"content": points[0], "delivery": points[1]}},
                headers=as_user(judge),
            )
            assert saved.status_code == 200
            assert saved.json()["is_submitted"] is False

    early = await client.post(f"/api/matches/{match_id}/scores/submit", headers=as_user(seeded["judges"][0]))
    assert early.status_code == 400
    assert early.json()["code"] == "SUBMISSION_WINDOW_CLOSED"

    response = await client.post(stage_url, json={"stage": "final_scoring"}, headers=moderator)
    assert response.status_code == 200

    blocked = await client.post(stage_url, json={"stage": "completed"}, headers=moderator)
    assert blocked.status_code == 400
    assert blocked.json()["code"] == "INCOMPLETE_SCORES"

    for judge in seeded["judges"]:
        submitted = await client.post(f"/api/matches/{match_id}/scores/submit", headers=as_user(judge))
        assert submitted.status_code == 200
        assert all(sheet["is_submitted"] for sheet in submitted.json())

    ready = await client.post(f"/api/matches/{match_id}/validate-completion", headers=moderator)
    assert ready.json() == {"match_id": match_id, "ready": True}

    completed = await client.post(stage_url, json={"stage": "completed"}, headers=moderator)
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"
    assert completed.json()["winner_id"] == team_a.id

    # Totals 80/75 and 78/77 plus the virtual judge's 79/76
    outcome = await client.get(
        f"/api/matches/{match_id}/outcome", params={"team_id": team_a.id}, headers=moderator
    )
    assert outcome.status_code == 200
    body = outcome.json()
    assert body["votes"] == "3.00"
    assert body["score_differential"] == "9.00"
    assert [j["judge_name"] for j in body["judges"]] == ["Avery Park", "Blake Chen"]
    assert not any(j["is_virtual"] for j in body["judges"])
    assert body["virtual_judge"]["is_virtual"] is True
    assert (body["virtual_judge"]["total_a"], body["virtual_judge"]["total_b"]) == ("79.00", "76.00")

    standings = await client.get(f"/api/events/{event_id}/standings", headers=moderator)
    assert standings.status_code == 200
    table = standings.json()["standings"]
    assert [row["team_id"] for row in table] == [team_a.id, team_b.id]
    assert table[0]["rank"] == 1
    assert (table[0]["wins"], table[0]["losses"], table[0]["ties"]) == (1, 0, 0)
    assert table[1]["votes"] == "0.00"

    trace = await client.get(f"/api/events/{event_id}/standings/trace", headers=moderator)
    assert trace.status_code == 200
    assert trace.json()["trace"] == standings.json()["trace"]

    stats = await client.get(f"/api/events/{event_id}/statistics", headers=moderator)
    assert stats.status_code == 200
    stats_body = stats.json()
    assert stats_body["summary"] == {
        "total_teams": 2, "total_matches": 1, "completed_matches": 1, "total_rounds": 3,
    }
    assert stats_body["standings"] == table
    [result] = stats_body["match_results"]
    assert result["uses_two_judge_protocol"] is True
    assert result["result"]["votes_a"] == "3.00"
    assert len(result["result"]["judges"]) == 2
    assert result["result"]["virtual_judge"]["total_a"] == "79.00"


@pytest.mark.asyncio
@pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
async def test_non_finite_points_rejected(client, seeded, literal):
    response = await client.put(
        f"/api/matches/{seeded['match'].id}/scores/{seeded['team_a'].id}",
        content=f'{{"criteria_scores": {{"argument": {literal}}}}}',
        headers={**as_user(seeded["judges"][0]), "Content-Type": "application/json"},
    )
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert [d["type"] for d in body["details"]] == ["finite_number"]


@pytest.mark.asyncio
async def test_statistics_for_unknown_event(client, seeded):
    response = await client.get("/api/events/9999/statistics", headers=as_user(seeded["admin"]))
    assert response.status_code == 404
    assert response.json()["code"] == "EVENT_NOT_FOUND"

"""HTTP surface: routing, actor headers and error mapping."""
# pylint: disable=redefined-outer-name

import pytest

ADMIN = {"X-Player-Id": "1", "X-Admin": "true"}
MONDAY = "2026-03-09"


@pytest.fixture
def client(engine):
    from app import app

    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def seeded(client):
    """Admin is player 1; Avery is 2, Blake is 3."""
    client.post("/api/players", json={"name": "Parent", "is_admin": True}, headers=ADMIN)
    avery = client.post("/api/players", json={"name": "Avery"}, headers=ADMIN).get_json()
    blake = client.post("/api/players", json={"name": "Blake"}, headers=ADMIN).get_json()
    brush = client.post(
        "/api/templates",
        json={"title": "Brush Teeth", "category": "morning", "points": 150},
        headers=ADMIN,
    ).get_json()
    shoes = client.post(
        "/api/templates",
        json={"title": "Learn to Tie Shoes", "category": "growth", "points": 500},
        headers=ADMIN,
    ).get_json()
    return {"avery": avery, "blake": blake, "brush": brush, "shoes": shoes}


def _as(player):
    return {"X-Player-Id": str(player["id"])}


def test_catalog_requires_admin(client):
    r = client.post("/api/players", json={"name": "Sneaky"})
    assert r.status_code == 403
    assert r.get_json()["kind"] == "Forbidden"


def test_template_validation(client, seeded):
    r = client.post(
        "/api/templates", json={"title": "Too Much", "category": "morning", "points": 2000}, headers=ADMIN
    )
    assert r.status_code == 400
    assert r.get_json()["kind"] == "ValidationError"


def test_fifth_player_rejected(client, seeded):
    client.post("/api/players", json={"name": "Casey"}, headers=ADMIN)
    client.post("/api/players", json={"name": "Dana"}, headers=ADMIN)

    r = client.post("/api/players", json={"name": "Emery"}, headers=ADMIN)

    assert r.status_code == 400


def test_daily_flow(client, seeded):
    avery = seeded["avery"]
    gen = client.post(f"/api/admin/generate?date={MONDAY}", headers=ADMIN).get_json()
    assert gen["created"] == 2

    tasks = client.get(f"/api/players/{avery['id']}/tasks?date={MONDAY}").get_json()
    assert [t["title"] for t in tasks] == ["Brush Teeth"]
    instance_id = tasks[0]["id"]

    r = client.post(f"/api/instances/{instance_id}/begin", headers=_as(avery))
    assert r.status_code == 200
    assert r.get_json()["status"] == "in_progress"

    r = client.post(f"/api/instances/{instance_id}/begin", headers=_as(avery))
    assert r.status_code == 409
    assert r.get_json()["kind"] == "InvalidTransition"

    r = client.post(f"/api/instances/{instance_id}/complete", headers=_as(avery))
    assert r.get_json()["status"] == "pending_approval"

    approvals = client.get("/api/approvals", headers=ADMIN).get_json()
    assert [a["id"] for a in approvals] == [instance_id]

    r = client.post(f"/api/instances/{instance_id}/approve", headers=_as(avery))
    assert r.status_code == 403

    r = client.post(f"/api/instances/{instance_id}/approve", headers=ADMIN)
    assert r.get_json()["points_awarded"] == 150

    score = client.get(f"/api/players/{avery['id']}/score?date={MONDAY}").get_json()
    assert score["points"] == 150
    week = client.get(f"/api/players/{avery['id']}/week?start={MONDAY}").get_json()
    assert week["week_start"] == "2026-03-08"
    assert week["total"] == 150
    assert len(week["days"]) == 7


def test_other_player_cannot_begin(client, seeded):
    client.post(f"/api/admin/generate?date={MONDAY}", headers=ADMIN)
    tasks = client.get(f"/api/players/{seeded['avery']['id']}/tasks?date={MONDAY}").get_json()

    r = client.post(f"/api/instances/{tasks[0]['id']}/begin", headers=_as(seeded["blake"]))

    assert r.status_code == 403


def test_unknown_instance_is_404(client, seeded):
    r = client.post("/api/instances/4242/begin", headers=_as(seeded["avery"]))
    assert r.status_code == 404
    assert r.get_json()["kind"] == "NotFound"


def test_bad_date_is_400(client, seeded):
    r = client.get(f"/api/players/{seeded['avery']['id']}/tasks?date=monday")
    assert r.status_code == 400


def test_growth_flow(client, seeded):
    blake, shoes = seeded["blake"], seeded["shoes"]
    url = f"/api/players/{blake['id']}/growth/{shoes['id']}/complete"

    r = client.post(url, json={"time_spent_seconds": 120}, headers=_as(blake))
    assert r.status_code == 201
    assert r.get_json()["points_awarded"] == 500

    r = client.post(url, json={"time_spent_seconds": 120}, headers=_as(blake))
    assert r.status_code == 409
    assert r.get_json()["kind"] == "AlreadyCompleted"

    assert client.get(f"/api/players/{blake['id']}/growth").get_json() == []
    done = client.get(f"/api/players/{blake['id']}/accomplishments").get_json()
    assert [d["title"] for d in done] == ["Learn to Tie Shoes"]


def test_leaderboard_and_weekly_reset(client, seeded):
    r = client.post("/api/admin/weekly-reset?week_start=2026-03-08", headers=ADMIN)
    assert r.get_json() == {"week_start": "2026-03-08", "created": 2, "existing": 0}
    r = client.post("/api/admin/weekly-reset?week_start=2026-03-08", headers=ADMIN)
    assert r.get_json()["existing"] == 2

    board = client.get("/api/leaderboard?week_start=2026-03-10").get_json()
    assert board["week_start"] == "2026-03-08"
    assert {s["name"] for s in board["scores"]} == {"Avery", "Blake"}

    history = client.get("/api/leaderboard/history").get_json()
    assert history[0]["week_start"] == "2026-03-08"


def test_override_removes_future_generation(client, seeded):
    avery, brush = seeded["avery"], seeded["brush"]
    r = client.put(f"/api/players/{avery['id']}/overrides/{brush['id']}", json={"removed": True}, headers=ADMIN)
    assert r.get_json()["removed"] is True

    gen = client.post(f"/api/admin/generate?date={MONDAY}", headers=ADMIN).get_json()

    assert gen["created"] == 1
    assert gen["skipped_removed"] == 1


def test_template_body_ignores_created_by(client, seeded):
    r = client.post(
        "/api/templates",
        json={"title": "Make Bed", "category": "morning", "points": 100, "created_by": 3},
        headers=ADMIN,
    )
    assert r.status_code == 201


@pytest.mark.parametrize("body", [
    {"title": "Make Bed", "category": "morning", "points": 100, "days": "mon"},
    {"title": "Make Bed", "category": "morning", "points": 100, "days": {"funday": True}},
    {"title": "Make Bed", "category": "morning", "points": 100, "days": {"monday": "yes"}},
    {"title": "Make Bed", "category": "morning", "points": 100, "is_active": "no"},
    {"title": "Make Bed", "category": "morning", "points": 100, "sort_order": "first"},
    {"title": ["Make Bed"], "category": "morning", "points": 100},
    ["Make Bed"],
])
def test_malformed_template_is_400(client, seeded, body):
    r = client.post("/api/templates", json=body, headers=ADMIN)

    assert r.status_code == 400
    assert r.get_json()["kind"] == "ValidationError"


def test_malformed_template_update_is_400(client, seeded):
    url = f"/api/templates/{seeded['brush']['id']}"

    r = client.put(url, json={"is_active": "no"}, headers=ADMIN)
    assert r.status_code == 400
    assert r.get_json()["kind"] == "ValidationError"

    r = client.put(url, json={"days": {"saturday": False, "sunday": False}}, headers=ADMIN)
    assert r.status_code == 200
    assert r.get_json()["days"]["saturday"] is False
    assert r.get_json()["days"]["monday"] is True


def test_override_flags_must_be_booleans(client, seeded):
    avery, brush = seeded["avery"], seeded["brush"]
    url = f"/api/players/{avery['id']}/overrides/{brush['id']}"

    r = client.put(url, json={"auto_approve": "no"}, headers=ADMIN)

    assert r.status_code == 400


def test_growth_completion_body_is_optional(client, seeded):
    blake, shoes = seeded["blake"], seeded["shoes"]

    r = client.post(f"/api/players/{blake['id']}/growth/{shoes['id']}/complete", headers=_as(blake))

    assert r.status_code == 201
    assert r.get_json()["time_spent_seconds"] == 0


@pytest.mark.parametrize("seconds", [12.9, True, "60", -1])
def test_growth_duration_must_be_a_whole_number(client, seeded, seconds):
    blake, shoes = seeded["blake"], seeded["shoes"]
    url = f"/api/players/{blake['id']}/growth/{shoes['id']}/complete"

    r = client.post(url, json={"time_spent_seconds": seconds}, headers=_as(blake))

    assert r.status_code == 400
    assert r.get_json()["kind"] == "ValidationError"
    assert client.get(f"/api/players/{blake['id']}/accomplishments").get_json() == []


@pytest.mark.parametrize("flag", ["1", "true", "Yes", "on"])
def test_admin_header_accepts_config_truthy_values(client, flag):
    r = client.post("/api/players", json={"name": "Parent", "is_admin": True},
                    headers={"X-Player-Id": "1", "X-Admin": flag})

    assert r.status_code == 201

from datetime import date
import logging

import click
from flask import Flask, jsonify, request
from flask_cors import CORS

import config
from actors import Actor
from clock import default_clock, iso_utc, parse_day
from db import SessionLocal, init_db
from errors import EngineError, Forbidden, ValidationError
import catalog
import growth
import lifecycle
import scoring
from generator import generate_for_date
from models import WEEKDAY_FIELDS
from weekly_reset import snapshot_week, week_to_snapshot

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

# Ensure DB tables exist
init_db()


# ---------- Helpers ----------
def current_actor() -> Actor:
    """The session layer in front of us has already authenticated these headers."""
    raw_player = request.headers.get("X-Player-Id")
    raw_admin = request.headers.get("X-Admin", "")
    try:
        player_id = int(raw_player) if raw_player else None
    except ValueError:
        raise ValidationError("X-Player-Id must be an integer")
    return Actor(player_id=player_id, is_admin=config.is_truthy(raw_admin))


def require_admin() -> Actor:
    actor = current_actor()
    if not actor.is_admin:
        raise Forbidden("administrator capability required")
    return actor


def day_arg(name: str) -> date:
    try:
        return parse_day(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)")


def json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


def template_body() -> dict:
    """Flatten the optional `days` object into weekday fields."""
    data = dict(json_body())
    data.pop("created_by", None)
    days = data.pop("days", None)
    if days is not None:
        if not isinstance(days, dict):
            raise ValidationError("days must be an object of weekday flags")
        unknown = set(days) - set(WEEKDAY_FIELDS)
        if unknown:
            raise ValidationError(f"unknown weekdays: {', '.join(sorted(unknown))}")
        data.update(days)
    return data


def player_json(p):
    return {"id": p.id, "name": p.name, "is_admin": p.is_admin, "is_active": p.is_active}


def template_json(t):
    data = {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "category": t.category,
        "points": t.points,
        "sort_order": t.sort_order,
        "is_active": t.is_active,
    }
    if t.category != "growth":
        data["days"] = {name: getattr(t, name) for name in WEEKDAY_FIELDS}
    return data


def instance_json(i):
    return {
        "id": i.id,
        "player_id": i.player_id,
        "template_id": i.template_id,
        "date": i.date.isoformat(),
        "title": i.title,
        "category": i.category,
        "points": i.points,
        "status": i.status,
        "started_at": iso_utc(i.started_at),
        "completed_at": iso_utc(i.completed_at),
        "approved_at": iso_utc(i.approved_at),
        "time_spent_seconds": i.time_spent_seconds,
        "points_awarded": i.points_awarded,
    }


def completion_json(c):
    return {
        "id": c.id,
        "player_id": c.player_id,
        "template_id": c.template_id,
        "title": c.title,
        "completed_date": c.completed_date.isoformat(),
        "completed_at": iso_utc(c.completed_at),
        "time_spent_seconds": c.time_spent_seconds,
        "points_awarded": c.points_awarded,
    }


@app.errorhandler(EngineError)
def engine_error(e: EngineError):
    return jsonify({"error": e.message, "kind": e.kind}), e.status_code


# ---------- Catalog ----------
@app.get("/api/players")
def list_players():
    with SessionLocal() as db:
        return jsonify([player_json(p) for p in catalog.list_players(db)])


@app.post("/api/players")
def create_player():
    require_admin()
    data = json_body()
    with SessionLocal() as db:
        p = catalog.create_player(db, data.get("name"), is_admin=data.get("is_admin", False))
        return jsonify(player_json(p)), 201


@app.get("/api/templates")
def list_templates():
    with SessionLocal() as db:
        rows = catalog.list_templates(db, category=request.args.get("category"))
        return jsonify([template_json(t) for t in rows])


@app.post("/api/templates")
def create_template():
    actor = require_admin()
    data = template_body()
    with SessionLocal() as db:
        t = catalog.create_template(
            db,
            data.pop("title", None),
            data.pop("category", None),
            data.pop("points", None),
            created_by=actor.player_id,
            **data,
        )
        return jsonify(template_json(t)), 201


@app.put("/api/templates/<int:template_id>")
def update_template(template_id: int):
    require_admin()
    data = template_body()
    with SessionLocal() as db:
        t = catalog.update_template(db, template_id, **data)
        return jsonify(template_json(t))


@app.put("/api/players/<int:player_id>/overrides/<int:template_id>")
def set_override(player_id: int, template_id: int):
    require_admin()
    data = json_body()
    with SessionLocal() as db:
        o = catalog.set_override(
            db, player_id, template_id,
            auto_approve=data.get("auto_approve"),
            removed=data.get("removed"),
        )
        return jsonify({"player_id": o.player_id, "template_id": o.template_id,
                        "auto_approve": o.auto_approve, "removed": o.removed})


# ---------- Task lifecycle ----------
@app.get("/api/players/<int:player_id>/tasks")
def player_tasks(player_id: int):
    day = day_arg("date")
    with SessionLocal() as db:
        catalog.get_player(db, player_id)
        return jsonify([instance_json(i) for i in lifecycle.tasks_for_day(db, player_id, day)])


@app.post("/api/instances/<int:instance_id>/begin")
def begin_instance(instance_id: int):
    actor = current_actor()
    with SessionLocal() as db:
        return jsonify(instance_json(lifecycle.begin(db, instance_id, actor)))


@app.post("/api/instances/<int:instance_id>/complete")
def complete_instance(instance_id: int):
    actor = current_actor()
    with SessionLocal() as db:
        return jsonify(instance_json(lifecycle.complete(db, instance_id, actor)))


@app.post("/api/instances/<int:instance_id>/approve")
def approve_instance(instance_id: int):
    actor = current_actor()
    with SessionLocal() as db:
        return jsonify(instance_json(lifecycle.approve(db, instance_id, actor)))


@app.get("/api/approvals")
def list_approvals():
    require_admin()
    with SessionLocal() as db:
        return jsonify([instance_json(i) for i in lifecycle.pending_approvals(db)])


# ---------- Growth ----------
@app.get("/api/players/<int:player_id>/growth")
def available_growth(player_id: int):
    with SessionLocal() as db:
        catalog.get_player(db, player_id)
        return jsonify([template_json(t) for t in growth.available_growth_tasks(db, player_id)])


@app.get("/api/players/<int:player_id>/accomplishments")
def list_accomplishments(player_id: int):
    with SessionLocal() as db:
        catalog.get_player(db, player_id)
        return jsonify([completion_json(c) for c in growth.accomplishments(db, player_id)])


@app.post("/api/players/<int:player_id>/growth/<int:template_id>/complete")
def complete_growth(player_id: int, template_id: int):
    actor = current_actor()
    seconds = json_body().get("time_spent_seconds", 0)
    with SessionLocal() as db:
        row = lifecycle.complete_growth_task(db, player_id, template_id, seconds, actor)
        return jsonify(completion_json(row)), 201


# ---------- Scores ----------
@app.get("/api/players/<int:player_id>/score")
def player_daily_score(player_id: int):
    day = day_arg("date")
    with SessionLocal() as db:
        catalog.get_player(db, player_id)
        return jsonify({"player_id": player_id, "date": day.isoformat(),
                        "points": scoring.daily_score(db, player_id, day)})


@app.get("/api/players/<int:player_id>/week")
def player_week(player_id: int):
    week_start = scoring.week_start_for(day_arg("start"))
    with SessionLocal() as db:
        catalog.get_player(db, player_id)
        days = scoring.weekly_breakdown(db, player_id, week_start)
        return jsonify({
            "player_id": player_id,
            "week_start": week_start.isoformat(),
            "days": [{"date": d.isoformat(), "points": pts} for d, pts in days.items()],
            "total": sum(days.values()),
        })


@app.get("/api/leaderboard")
def leaderboard():
    week_start = scoring.week_start_for(day_arg("week_start"))
    with SessionLocal() as db:
        return jsonify({"week_start": week_start.isoformat(),
                        "scores": scoring.leaderboard(db, week_start)})


@app.get("/api/leaderboard/history")
def leaderboard_history():
    limit = request.args.get("limit", 12, type=int)
    with SessionLocal() as db:
        return jsonify(scoring.leaderboard_history(db, limit=limit))


# ---------- Admin job triggers ----------
@app.post("/api/admin/generate")
def trigger_generation():
    require_admin()
    day = day_arg("date")
    with SessionLocal() as db:
        return jsonify(generate_for_date(db, day).to_dict())


@app.post("/api/admin/weekly-reset")
def trigger_weekly_reset():
    require_admin()
    if request.args.get("week_start"):
        week_start = day_arg("week_start")
    else:
        week_start = week_to_snapshot(default_clock.today())
    with SessionLocal() as db:
        return jsonify(snapshot_week(db, week_start).to_dict())


# ---------- CLI ----------
@app.cli.command("init-db")
def init_db_command():
    """Create missing tables."""
    init_db()
    click.echo("database ready")


@app.cli.command("seed")
def seed_command():
    """Load a starter household: one admin, two players, a few chores."""
    from seed import seed

    seed()
    click.echo("seeded")


@app.cli.command("generate-daily")
@click.option("--date", "day", default=None, help="ISO date, defaults to today in the reference timezone")
def generate_daily_command(day):
    with SessionLocal() as db:
        result = generate_for_date(db, parse_day(day))
    click.echo(result.to_dict())


@app.cli.command("weekly-reset")
@click.option("--week-start", default=None, help="Any day of the week to snapshot; defaults to last week")
def weekly_reset_command(week_start):
    target = parse_day(week_start) if week_start else week_to_snapshot(default_clock.today())
    with SessionLocal() as db:
        result = snapshot_week(db, target)
    click.echo(result.to_dict())


if __name__ == "__main__":
    if config.SCHEDULER_ENABLED:
        from scheduler import JobScheduler

        JobScheduler().start()
    app.run(host="0.0.0.0", port=config.PORT, debug=False)

"""Daily and weekly scores.

Scores are always computed from approved task instances and growth
completions over a date range; there is no running counter to reset.
Weeks run Sunday through Saturday in the reference timezone.
"""
from datetime import date, timedelta

from sqlalchemy import func, select

from generator import active_players
from models import STATUS_APPROVED, GrowthCompletion, Player, TaskInstance, WeeklyScoreSnapshot


def week_start_for(day: date) -> date:
    """Sunday on or before `day`."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def week_days(week_start: date) -> list[date]:
    return [week_start + timedelta(days=i) for i in range(7)]


def daily_scores(db, player_id: int, start: date, end: date) -> dict[date, int]:
    """Points per day over [start, end], every day present."""
    totals = {start + timedelta(days=i): 0 for i in range((end - start).days + 1)}

    instance_rows = db.execute(
        select(TaskInstance.date, func.sum(TaskInstance.points_awarded))
        .where(
            TaskInstance.player_id == player_id,
            TaskInstance.status == STATUS_APPROVED,
            TaskInstance.date >= start,
            TaskInstance.date <= end,
        )
        .group_by(TaskInstance.date)
    ).all()
    growth_rows = db.execute(
        select(GrowthCompletion.completed_date, func.sum(GrowthCompletion.points_awarded))
        .where(
            GrowthCompletion.player_id == player_id,
            GrowthCompletion.completed_date >= start,
            GrowthCompletion.completed_date <= end,
        )
        .group_by(GrowthCompletion.completed_date)
    ).all()

    for day, points in list(instance_rows) + list(growth_rows):
        totals[day] += int(points or 0)
    return totals


def daily_score(db, player_id: int, day: date) -> int:
    return daily_scores(db, player_id, day, day)[day]


def weekly_breakdown(db, player_id: int, week_start: date) -> dict[date, int]:
    return daily_scores(db, player_id, week_start, week_start + timedelta(days=6))


def weekly_score(db, player_id: int, week_start: date) -> int:
    return sum(weekly_breakdown(db, player_id, week_start).values())


def leaderboard(db, week_start: date) -> list[dict]:
    """Active players ranked by points for the week; ties share a rank."""
    rows = [
        {"player_id": p.id, "name": p.name, "points": weekly_score(db, p.id, week_start)}
        for p in active_players(db)
    ]
    rows.sort(key=lambda r: (-r["points"], r["name"]))

    rank = 0
    previous = None
    for position, row in enumerate(rows, start=1):
        if row["points"] != previous:
            rank = position
            previous = row["points"]
        row["rank"] = rank
    return rows


def leaderboard_history(db, limit: int = 12) -> list[dict]:
    """Archived weekly totals, newest week first."""
    weeks = db.execute(
        select(WeeklyScoreSnapshot.week_start)
        .distinct()
        .order_by(WeeklyScoreSnapshot.week_start.desc())
        .limit(limit)
    ).scalars().all()
    if not weeks:
        return []

    rows = db.execute(
        select(WeeklyScoreSnapshot, Player.name)
        .join(Player, Player.id == WeeklyScoreSnapshot.player_id)
        .where(WeeklyScoreSnapshot.week_start.in_(weeks))
        .order_by(WeeklyScoreSnapshot.week_start.desc(),
                  WeeklyScoreSnapshot.total_points.desc(), Player.name)
    ).all()

    history = {week: [] for week in weeks}
    for snap, name in rows:
        history[snap.week_start].append(
            {"player_id": snap.player_id, "name": name, "points": snap.total_points}
        )
    return [{"week_start": week.isoformat(), "scores": history[week]} for week in weeks]

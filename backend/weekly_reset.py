"""Weekly leaderboard archive.

"Reset" is only an archival step: the current-week view rolls forward on
its own because weekly scores are computed from a date range.
"""
from dataclasses import dataclass
from datetime import date, timedelta
import logging

from sqlalchemy.exc import IntegrityError

from generator import active_players
from models import WeeklyScoreSnapshot
from scoring import week_start_for, weekly_score

logger = logging.getLogger(__name__)


@dataclass
class SnapshotResult:
    week_start: date
    created: int = 0
    existing: int = 0

    def to_dict(self) -> dict:
        return {"week_start": self.week_start.isoformat(), "created": self.created, "existing": self.existing}


def week_to_snapshot(run_day: date) -> date:
    """The last week that had fully ended by the start of `run_day`."""
    return week_start_for(run_day) - timedelta(days=7)


def snapshot_week(db, week_start: date) -> SnapshotResult:
    week_start = week_start_for(week_start)
    result = SnapshotResult(week_start=week_start)

    totals = [(p.id, weekly_score(db, p.id, week_start)) for p in active_players(db)]
    db.commit()

    for player_id, total in totals:
        db.add(WeeklyScoreSnapshot(player_id=player_id, week_start=week_start, total_points=total))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            result.existing += 1
            continue
        result.created += 1

    logger.info("weekly snapshot for week of %s: created=%d existing=%d",
                week_start, result.created, result.existing)
    return result

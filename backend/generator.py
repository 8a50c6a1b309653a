"""Nightly expansion of the task catalog into per-player task instances.

Each instance is inserted in its own short transaction and the
(player, template, date) unique constraint decides whether it already
exists, so the job can be re-run for the same day any number of times.
"""
from dataclasses import dataclass
from datetime import date
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from events import INSTANCE_CREATED, Event, bus as default_bus
from models import Player, PlayerTaskOverride, TaskInstance, TaskTemplate

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    day: date
    created: int = 0
    existing: int = 0
    skipped_inactive: int = 0
    skipped_weekday: int = 0
    skipped_removed: int = 0

    def to_dict(self) -> dict:
        return {
            "date": self.day.isoformat(),
            "created": self.created,
            "existing": self.existing,
            "skipped_inactive": self.skipped_inactive,
            "skipped_weekday": self.skipped_weekday,
            "skipped_removed": self.skipped_removed,
        }


def active_players(db) -> list[Player]:
    """Players that receive chores: active and not admin-only."""
    return db.execute(
        select(Player)
        .where(Player.is_active.is_(True), Player.is_admin.is_(False))
        .order_by(Player.id)
    ).scalars().all()


def generate_for_date(db, day: date, *, bus=None) -> GenerationResult:
    bus = bus or default_bus
    result = GenerationResult(day=day)

    templates = db.execute(
        select(TaskTemplate)
        .where(TaskTemplate.category != "growth")
        .order_by(TaskTemplate.sort_order, TaskTemplate.id)
    ).scalars().all()
    players = active_players(db)
    removed = set(
        db.execute(
            select(PlayerTaskOverride.player_id, PlayerTaskOverride.template_id)
            .where(PlayerTaskOverride.removed.is_(True))
        ).tuples().all()
    )
    # end the read transaction before the insert loop
    db.commit()

    for template in templates:
        if not template.is_active:
            result.skipped_inactive += 1
            continue
        if not template.required_on(day):
            result.skipped_weekday += 1
            continue

        for player in players:
            if (player.id, template.id) in removed:
                result.skipped_removed += 1
                continue

            inst = TaskInstance(
                player_id=player.id,
                template_id=template.id,
                date=day,
                title=template.title,
                category=template.category,
                points=template.points,
                sort_order=template.sort_order,
            )
            db.add(inst)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                result.existing += 1
                continue

            result.created += 1
            bus.publish(Event(
                type=INSTANCE_CREATED,
                player_id=player.id,
                date=day,
                payload={"instance_id": inst.id, "template_id": template.id, "title": inst.title},
            ))

    logger.info(
        "generated instances for %s: created=%d existing=%d skipped inactive=%d weekday=%d removed=%d",
        day, result.created, result.existing,
        result.skipped_inactive, result.skipped_weekday, result.skipped_removed,
    )
    return result

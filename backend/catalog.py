"""Players, task templates and per-player overrides.

Catalog edits only ever touch the catalog tables. Generated instances and
growth completions carry their own copies of title and points.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

import config
from errors import NotFound, ValidationError
from models import (
    CATEGORIES,
    MAX_POINTS,
    MIN_POINTS,
    WEEKDAY_FIELDS,
    Player,
    PlayerTaskOverride,
    TaskTemplate,
)

logger = logging.getLogger(__name__)

TEMPLATE_FIELDS = ("title", "description", "points", "sort_order", "is_active") + WEEKDAY_FIELDS
BOOL_FIELDS = ("is_active",) + WEEKDAY_FIELDS


def _check_points(points):
    if isinstance(points, bool) or not isinstance(points, int) or not MIN_POINTS <= points <= MAX_POINTS:
        raise ValidationError(f"points must be an integer between {MIN_POINTS} and {MAX_POINTS}")


def _check_flag(name, value):
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be true or false")


def _check_title(title):
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required")


def _check_fields(fields):
    unknown = set(fields) - set(TEMPLATE_FIELDS)
    if unknown:
        raise ValidationError(f"unknown template fields: {', '.join(sorted(unknown))}")
    for name in BOOL_FIELDS:
        if name in fields:
            _check_flag(name, fields[name])
    if "points" in fields:
        _check_points(fields["points"])
    if "title" in fields:
        _check_title(fields["title"])
    sort_order = fields.get("sort_order", 0)
    if isinstance(sort_order, bool) or not isinstance(sort_order, int):
        raise ValidationError("sort_order must be an integer")
    description = fields.get("description")
    if description is not None and not isinstance(description, str):
        raise ValidationError("description must be a string")


def list_players(db) -> list[Player]:
    return db.execute(select(Player).order_by(Player.id)).scalars().all()


def create_player(db, name: str, is_admin: bool = False) -> Player:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("player name is required")
    _check_flag("is_admin", is_admin)
    name = name.strip()
    if not is_admin:
        count = db.scalar(
            select(func.count(Player.id)).where(Player.is_active.is_(True), Player.is_admin.is_(False))
        )
        if count >= config.MAX_PLAYERS:
            raise ValidationError(f"at most {config.MAX_PLAYERS} players are supported")

    p = Player(name=name, is_admin=is_admin, is_active=True)
    db.add(p)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError(f"player {name!r} already exists") from exc
    logger.info("created %s %s (%s)", "admin" if is_admin else "player", p.id, p.name)
    return p


def get_player(db, player_id: int) -> Player:
    p = db.get(Player, player_id)
    if p is None:
        raise NotFound(f"player {player_id} not found")
    return p


def list_templates(db, category: str | None = None) -> list[TaskTemplate]:
    stmt = select(TaskTemplate).order_by(TaskTemplate.category, TaskTemplate.sort_order, TaskTemplate.id)
    if category:
        stmt = stmt.where(TaskTemplate.category == category)
    return db.execute(stmt).scalars().all()


def create_template(db, title: str, category: str, points: int, *, created_by: int | None = None,
                    **fields) -> TaskTemplate:
    _check_title(title)
    if category not in CATEGORIES:
        raise ValidationError(f"category must be one of {', '.join(CATEGORIES)}")
    _check_fields(dict(fields, points=points))

    t = TaskTemplate(title=title.strip(), category=category, points=points, created_by=created_by)
    for k, v in fields.items():
        setattr(t, k, v)
    db.add(t)
    db.commit()
    logger.info("created %s template %s (%s, %s pts)", category, t.id, t.title, t.points)
    return t


def update_template(db, template_id: int, **fields) -> TaskTemplate:
    """Edit a template in place. Existing instances keep their snapshot."""
    t = db.get(TaskTemplate, template_id)
    if t is None:
        raise NotFound(f"task template {template_id} not found")
    category = fields.pop("category", t.category)
    if category not in CATEGORIES:
        raise ValidationError(f"category must be one of {', '.join(CATEGORIES)}")
    if (category == "growth") != (t.category == "growth"):
        raise ValidationError("a template cannot move between growth and recurring categories")
    _check_fields(fields)

    t.category = category
    for k, v in fields.items():
        setattr(t, k, v)
    db.commit()
    return t


def set_override(db, player_id: int, template_id: int, *, auto_approve: bool | None = None,
                 removed: bool | None = None) -> PlayerTaskOverride:
    if auto_approve is not None:
        _check_flag("auto_approve", auto_approve)
    if removed is not None:
        _check_flag("removed", removed)
    get_player(db, player_id)
    if db.get(TaskTemplate, template_id) is None:
        raise NotFound(f"task template {template_id} not found")

    o = db.scalar(
        select(PlayerTaskOverride).where(
            PlayerTaskOverride.player_id == player_id,
            PlayerTaskOverride.template_id == template_id,
        )
    )
    if o is None:
        o = PlayerTaskOverride(player_id=player_id, template_id=template_id,
                               auto_approve=False, removed=False)
        db.add(o)
    if auto_approve is not None:
        o.auto_approve = auto_approve
    if removed is not None:
        o.removed = removed
    db.commit()
    return o

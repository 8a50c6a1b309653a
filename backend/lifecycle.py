"""Task instance state machine.

    pending --begin--> in_progress --complete--> pending_approval --approve--> approved
                                     \\--complete (auto-approve)-----------------/

Every transition is a compare-and-swap UPDATE guarded by the source status,
so a caller that loses a race gets InvalidTransition instead of overwriting
the winner. Events go out only after the transaction commits.
"""
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from actors import Actor
from clock import default_clock, to_naive_utc
from errors import AlreadyCompleted, Forbidden, InvalidTransition, NotFound, ValidationError
from events import SCORE_CHANGED, Event, bus as default_bus
from models import (
    CATEGORIES,
    STATUS_APPROVED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_PENDING_APPROVAL,
    GrowthCompletion,
    Player,
    PlayerTaskOverride,
    TaskInstance,
    TaskTemplate,
)

logger = logging.getLogger(__name__)


def _load_instance(db, instance_id: int) -> TaskInstance:
    inst = db.get(TaskInstance, instance_id, populate_existing=True)
    if inst is None:
        raise NotFound(f"task instance {instance_id} not found")
    return inst


def _load_own_instance(db, instance_id: int, actor: Actor) -> TaskInstance:
    inst = _load_instance(db, instance_id)
    if not actor.is_player(inst.player_id):
        raise Forbidden(f"task instance {instance_id} belongs to another player")
    return inst


def _swap(db, instance_id: int, source: str, **values):
    """Move the instance out of `source`; InvalidTransition if it already left."""
    result = db.execute(
        update(TaskInstance)
        .where(TaskInstance.id == instance_id, TaskInstance.status == source)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        current = db.scalar(select(TaskInstance.status).where(TaskInstance.id == instance_id))
        logger.info("lost transition on instance %s: %s -> %s (now %s)",
                    instance_id, source, values.get("status"), current)
        raise InvalidTransition(f"task instance {instance_id} is {current}, expected {source}")


def _score_changed(inst: TaskInstance, source: str) -> Event:
    return Event(
        type=SCORE_CHANGED,
        player_id=inst.player_id,
        date=inst.date,
        payload={"instance_id": inst.id, "points": inst.points_awarded, "source": source},
    )


def begin(db, instance_id: int, actor: Actor, *, clock=None) -> TaskInstance:
    clock = clock or default_clock
    inst = _load_own_instance(db, instance_id, actor)
    if inst.status != STATUS_PENDING:
        db.rollback()
        raise InvalidTransition(f"task instance {instance_id} is {inst.status}, expected {STATUS_PENDING}")

    _swap(db, instance_id, STATUS_PENDING,
          status=STATUS_IN_PROGRESS, started_at=to_naive_utc(clock.now()))
    db.commit()
    db.refresh(inst)
    logger.info("player %s began instance %s (%s)", inst.player_id, inst.id, inst.title)
    return inst


def complete(db, instance_id: int, actor: Actor, *, clock=None, bus=None) -> TaskInstance:
    """Finish a started task; time spent is measured from the server's own started_at."""
    clock = clock or default_clock
    bus = bus or default_bus
    inst = _load_own_instance(db, instance_id, actor)
    if inst.status != STATUS_IN_PROGRESS or inst.started_at is None:
        db.rollback()
        raise InvalidTransition(f"task instance {instance_id} is {inst.status}, expected {STATUS_IN_PROGRESS}")

    override = db.scalar(
        select(PlayerTaskOverride).where(
            PlayerTaskOverride.player_id == inst.player_id,
            PlayerTaskOverride.template_id == inst.template_id,
        )
    )
    auto_approve = bool(override and override.auto_approve)

    completed_at = to_naive_utc(clock.now())
    values = {
        "completed_at": completed_at,
        "time_spent_seconds": max(0, int((completed_at - inst.started_at).total_seconds())),
        "status": STATUS_PENDING_APPROVAL,
    }
    if auto_approve:
        values.update(
            status=STATUS_APPROVED,
            approved_at=completed_at,
            points_awarded=TaskInstance.points,
        )

    _swap(db, instance_id, STATUS_IN_PROGRESS, **values)
    db.commit()
    db.refresh(inst)
    logger.info("player %s completed instance %s in %ss -> %s",
                inst.player_id, inst.id, inst.time_spent_seconds, inst.status)

    if auto_approve:
        bus.publish(_score_changed(inst, "auto_approve"))
    return inst


def approve(db, instance_id: int, actor: Actor, *, clock=None, bus=None) -> TaskInstance:
    clock = clock or default_clock
    bus = bus or default_bus
    if not actor.is_admin:
        raise Forbidden("approving tasks requires administrator capability")
    inst = _load_instance(db, instance_id)

    _swap(db, instance_id, STATUS_PENDING_APPROVAL,
          status=STATUS_APPROVED,
          approved_at=to_naive_utc(clock.now()),
          approved_by=actor.player_id,
          points_awarded=TaskInstance.points)
    db.commit()
    db.refresh(inst)
    logger.info("admin %s approved instance %s for player %s (+%s)",
                actor.player_id, inst.id, inst.player_id, inst.points_awarded)

    bus.publish(_score_changed(inst, "approve"))
    return inst


def complete_growth_task(db, player_id: int, template_id: int, time_spent_seconds: int,
                         actor: Actor, *, clock=None, bus=None) -> GrowthCompletion:
    """Record the one and only completion of a growth task for a player.

    No existence check precedes the insert: the (player, template) unique
    constraint decides, so two concurrent callers cannot both win.
    """
    clock = clock or default_clock
    bus = bus or default_bus
    if not actor.is_player(player_id):
        raise Forbidden("growth tasks can only be completed by the player themselves")
    if (isinstance(time_spent_seconds, bool) or not isinstance(time_spent_seconds, int)
            or time_spent_seconds < 0):
        raise ValidationError("time_spent_seconds must be a non-negative integer")

    player = db.get(Player, player_id)
    if player is None or not player.is_active:
        raise NotFound(f"player {player_id} not found")
    template = db.get(TaskTemplate, template_id)
    if template is None or template.category != "growth" or not template.is_active:
        raise NotFound(f"growth task {template_id} not found")
    removed = db.scalar(
        select(PlayerTaskOverride.removed).where(
            PlayerTaskOverride.player_id == player_id,
            PlayerTaskOverride.template_id == template_id,
        )
    )
    if removed:
        raise NotFound(f"growth task {template_id} not found")

    now = clock.now()
    row = GrowthCompletion(
        player_id=player_id,
        template_id=template_id,
        title=template.title,
        completed_date=now.date(),
        completed_at=to_naive_utc(now),
        time_spent_seconds=time_spent_seconds,
        points_awarded=template.points,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AlreadyCompleted(f"player {player_id} already completed growth task {template_id}") from exc

    logger.info("player %s completed growth task %s (+%s)", player_id, template_id, row.points_awarded)
    bus.publish(Event(
        type=SCORE_CHANGED,
        player_id=player_id,
        date=row.completed_date,
        payload={"growth_completion_id": row.id, "points": row.points_awarded, "source": "growth"},
    ))
    return row


def _display_key(inst: TaskInstance):
    return (CATEGORIES.index(inst.category), inst.sort_order, inst.id)


def tasks_for_day(db, player_id: int, day) -> list[TaskInstance]:
    rows = db.execute(
        select(TaskInstance).where(TaskInstance.player_id == player_id, TaskInstance.date == day)
    ).scalars().all()
    return sorted(rows, key=_display_key)


def pending_approvals(db) -> list[TaskInstance]:
    return db.execute(
        select(TaskInstance)
        .where(TaskInstance.status == STATUS_PENDING_APPROVAL)
        .order_by(TaskInstance.completed_at, TaskInstance.id)
    ).scalars().all()

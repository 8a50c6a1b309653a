"""Growth task listings.

A growth task is done at most once per player, ever. The guarantee lives
in the growth_completions unique constraint and lifecycle.complete_growth_task;
this module only answers "what is left" and "what has been achieved".
"""
from sqlalchemy import select

from models import GrowthCompletion, PlayerTaskOverride, TaskTemplate


def available_growth_tasks(db, player_id: int) -> list[TaskTemplate]:
    done = select(GrowthCompletion.template_id).where(GrowthCompletion.player_id == player_id)
    removed = select(PlayerTaskOverride.template_id).where(
        PlayerTaskOverride.player_id == player_id,
        PlayerTaskOverride.removed.is_(True),
    )
    return db.execute(
        select(TaskTemplate)
        .where(
            TaskTemplate.category == "growth",
            TaskTemplate.is_active.is_(True),
            TaskTemplate.id.not_in(done),
            TaskTemplate.id.not_in(removed),
        )
        .order_by(TaskTemplate.sort_order, TaskTemplate.id)
    ).scalars().all()


def accomplishments(db, player_id: int) -> list[GrowthCompletion]:
    return db.execute(
        select(GrowthCompletion)
        .where(GrowthCompletion.player_id == player_id)
        .order_by(GrowthCompletion.completed_date.desc(), GrowthCompletion.completed_at.desc())
    ).scalars().all()

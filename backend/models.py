# models.py
from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, Boolean, ForeignKey,
    CheckConstraint, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from db import Base

CATEGORIES = ("morning", "afternoon", "bedtime", "growth")

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_PENDING_APPROVAL = "pending_approval"
STATUS_APPROVED = "approved"

# indexed by date.weekday()
WEEKDAY_FIELDS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

MIN_POINTS = 1
MAX_POINTS = 1999


class Player(Base):
    __tablename__ = "players"

    id         = Column(Integer, primary_key=True)
    name       = Column(String(80), nullable=False, unique=True)
    is_admin   = Column(Boolean, nullable=False, default=False)  # admin-only account, gets no chores
    is_active  = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    overrides = relationship("PlayerTaskOverride", back_populates="player")


class TaskTemplate(Base):
    __tablename__ = "task_templates"

    id          = Column(Integer, primary_key=True)
    title       = Column(String(255), nullable=False)
    description = Column(Text)
    category    = Column(String(16), nullable=False)  # morning|afternoon|bedtime|growth
    points      = Column(Integer, nullable=False)
    sort_order  = Column(Integer, nullable=False, default=0)
    is_active   = Column(Boolean, nullable=False, default=True)

    # required weekdays; ignored for growth tasks
    monday      = Column(Boolean, nullable=False, default=True)
    tuesday     = Column(Boolean, nullable=False, default=True)
    wednesday   = Column(Boolean, nullable=False, default=True)
    thursday    = Column(Boolean, nullable=False, default=True)
    friday      = Column(Boolean, nullable=False, default=True)
    saturday    = Column(Boolean, nullable=False, default=True)
    sunday      = Column(Boolean, nullable=False, default=True)

    created_by  = Column(Integer, ForeignKey("players.id"), nullable=True)
    created_at  = Column(DateTime, nullable=False, server_default=func.now())
    updated_at  = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    overrides = relationship("PlayerTaskOverride", back_populates="template")

    __table_args__ = (
        CheckConstraint(f"points BETWEEN {MIN_POINTS} AND {MAX_POINTS}", name="ck_template_points"),
        CheckConstraint(
            "category IN ('morning', 'afternoon', 'bedtime', 'growth')", name="ck_template_category"
        ),
    )

    def required_on(self, day) -> bool:
        if self.category == "growth":
            return False
        return bool(getattr(self, WEEKDAY_FIELDS[day.weekday()]))


class PlayerTaskOverride(Base):
    __tablename__ = "player_task_overrides"

    id           = Column(Integer, primary_key=True)
    player_id    = Column(Integer, ForeignKey("players.id"), nullable=False, index=True)
    template_id  = Column(Integer, ForeignKey("task_templates.id"), nullable=False, index=True)
    auto_approve = Column(Boolean, nullable=False, default=False)
    removed      = Column(Boolean, nullable=False, default=False)

    player   = relationship("Player", back_populates="overrides")
    template = relationship("TaskTemplate", back_populates="overrides")

    __table_args__ = (
        UniqueConstraint("player_id", "template_id", name="uq_override_player_template"),
    )


class TaskInstance(Base):
    __tablename__ = "task_instances"

    id          = Column(Integer, primary_key=True)
    player_id   = Column(Integer, ForeignKey("players.id"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("task_templates.id"), nullable=False)
    date        = Column(Date, nullable=False, index=True)

    # denormalized snapshot of the template at generation time
    title       = Column(String(255), nullable=False)
    category    = Column(String(16), nullable=False)
    points      = Column(Integer, nullable=False)
    sort_order  = Column(Integer, nullable=False, default=0)

    status       = Column(String(20), nullable=False, default=STATUS_PENDING)
    started_at   = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    approved_at  = Column(DateTime, nullable=True)
    approved_by  = Column(Integer, ForeignKey("players.id"), nullable=True)
    time_spent_seconds = Column(Integer, nullable=True)
    points_awarded     = Column(Integer, nullable=False, default=0)

    created_at  = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("player_id", "template_id", "date", name="uq_instance_player_template_date"),
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'pending_approval', 'approved')",
            name="ck_instance_status",
        ),
    )


class GrowthCompletion(Base):
    __tablename__ = "growth_completions"

    id             = Column(Integer, primary_key=True)
    player_id      = Column(Integer, ForeignKey("players.id"), nullable=False, index=True)
    template_id    = Column(Integer, ForeignKey("task_templates.id"), nullable=False)
    title          = Column(String(255), nullable=False)  # snapshot at completion
    completed_date = Column(Date, nullable=False, index=True)
    completed_at   = Column(DateTime, nullable=False)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    points_awarded = Column(Integer, nullable=False)

    # the sole enforcement of "at most once per player"
    __table_args__ = (
        UniqueConstraint("player_id", "template_id", name="uq_growth_player_template"),
    )


class WeeklyScoreSnapshot(Base):
    __tablename__ = "weekly_score_snapshots"

    id           = Column(Integer, primary_key=True)
    player_id    = Column(Integer, ForeignKey("players.id"), nullable=False, index=True)
    week_start   = Column(Date, nullable=False, index=True)
    total_points = Column(Integer, nullable=False, default=0)
    created_at   = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("player_id", "week_start", name="uq_snapshot_player_week"),
    )


class JobLock(Base):
    __tablename__ = "job_locks"

    id          = Column(Integer, primary_key=True)
    job_name    = Column(String(64), nullable=False)
    run_key     = Column(String(32), nullable=False)  # ISO date the run is for
    holder      = Column(String(128), nullable=False)
    status      = Column(String(16), nullable=False, default="running")  # running|done|failed
    acquired_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    error       = Column(Text)

    __table_args__ = (
        UniqueConstraint("job_name", "run_key", name="uq_job_lock_run"),
    )

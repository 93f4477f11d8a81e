"""Pure schedule timing rules.

A schedule is due when it is active and its ``next_run_at`` is not in the
future.  Firing a recurring schedule advances ``next_run_at`` by whole
intervals from the previous value until it lies after ``now``, so missed
windows collapse into one firing and the cadence never drifts.  Firing a
``once`` schedule pauses it.  Firing something that is not due is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from ..models import ScheduleMode, ScheduleStatus
from ..schemas.schedules import ScheduleDefinition
from .exceptions import ConfigurationError


@dataclass(frozen=True)
class ScheduleTransition:
    """Result of applying a clock rule to a schedule."""

    fired: bool
    status: ScheduleStatus
    next_run_at: datetime | None
    last_run_at: datetime | None

    def changes(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "next_run_at": self.next_run_at,
            "last_run_at": self.last_run_at,
        }


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def interval_of(schedule: ScheduleDefinition) -> timedelta:
    hours = schedule.interval_hours
    if hours is None or hours <= 0:
        raise ConfigurationError(f"Schedule {schedule.id} has no positive interval")
    return timedelta(hours=hours)


def is_due(schedule: ScheduleDefinition, now: datetime) -> bool:
    if schedule.status is not ScheduleStatus.ACTIVE:
        return False
    next_run_at = as_utc(schedule.next_run_at)
    return next_run_at is None or next_run_at <= as_utc(now)


def _unchanged(schedule: ScheduleDefinition) -> ScheduleTransition:
    return ScheduleTransition(
        fired=False,
        status=schedule.status,
        next_run_at=schedule.next_run_at,
        last_run_at=schedule.last_run_at,
    )


def fire(schedule: ScheduleDefinition, now: datetime) -> ScheduleTransition:
    """Apply one firing at ``now``, or nothing if the schedule is not due."""

    now = as_utc(now)  # type: ignore[assignment]
    if not is_due(schedule, now):
        return _unchanged(schedule)

    if schedule.mode is ScheduleMode.ONCE:
        return ScheduleTransition(
            fired=True,
            status=ScheduleStatus.PAUSED,
            next_run_at=schedule.next_run_at,
            last_run_at=now,
        )

    step = interval_of(schedule)
    base = as_utc(schedule.next_run_at) or now
    missed = (now - base) // step
    return ScheduleTransition(
        fired=True,
        status=ScheduleStatus.ACTIVE,
        next_run_at=base + (missed + 1) * step,
        last_run_at=now,
    )


def manual_fire(schedule: ScheduleDefinition, now: datetime) -> ScheduleTransition:
    """Record an explicit run requested outside the schedule's cadence.

    Due schedules fire normally.  Otherwise ``last_run_at`` is stamped and a
    ``once`` schedule is paused, but a recurring ``next_run_at`` is left alone.
    """

    transition = fire(schedule, now)
    if transition.fired:
        return transition
    status = ScheduleStatus.PAUSED if schedule.mode is ScheduleMode.ONCE else schedule.status
    return ScheduleTransition(
        fired=True,
        status=status,
        next_run_at=schedule.next_run_at,
        last_run_at=as_utc(now),
    )


def pause(schedule: ScheduleDefinition) -> ScheduleTransition:
    return ScheduleTransition(
        fired=False,
        status=ScheduleStatus.PAUSED,
        next_run_at=schedule.next_run_at,
        last_run_at=schedule.last_run_at,
    )


def resume(schedule: ScheduleDefinition, now: datetime) -> ScheduleTransition:
    """Reactivate a paused schedule; a past ``next_run_at`` becomes ``now``."""

    now = as_utc(now)  # type: ignore[assignment]
    next_run_at = as_utc(schedule.next_run_at)
    if next_run_at is None or next_run_at < now:
        next_run_at = now
    return ScheduleTransition(
        fired=False,
        status=ScheduleStatus.ACTIVE,
        next_run_at=next_run_at,
        last_run_at=schedule.last_run_at,
    )


def first_run_at(now: datetime, start_at: datetime | None = None) -> datetime:
    return as_utc(start_at) or as_utc(now)  # type: ignore[return-value]


def due_schedules(
    schedules: Iterable[ScheduleDefinition],
    now: datetime,
    limit: int | None = None,
) -> list[ScheduleDefinition]:
    """Due schedules ordered by how overdue they are, capped at ``limit``."""

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    due = sorted(
        (schedule for schedule in schedules if is_due(schedule, now)),
        key=lambda schedule: as_utc(schedule.next_run_at) or epoch,
    )
    return due if limit is None else due[:limit]


__all__ = [
    "ScheduleTransition",
    "as_utc",
    "due_schedules",
    "fire",
    "first_run_at",
    "interval_of",
    "is_due",
    "manual_fire",
    "pause",
    "resume",
]

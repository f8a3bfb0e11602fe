"""Meal log service."""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Protocol
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from meal_tracker.domain.drafts import MealImage, MealSlot
from meal_tracker.domain.logs import DailyMealLogs, MealLog
from meal_tracker.services.drafts import UNTITLED_MEAL, Clock, utcnow

logger = logging.getLogger(__name__)


class MealLogRepository(Protocol):
    """Persistence interface for meal logs."""

    def create_log(self, log: MealLog) -> None:
        """Insert a meal log."""

    def get_log(self, owner_id: UUID, log_id: UUID) -> MealLog | None:
        """Return a meal log by id."""

    def list_logs(self, owner_id: UUID, limit: int) -> list[MealLog]:
        """Return an owner's most recent meal logs."""

    def list_logs_between(
        self, owner_id: UUID, start: datetime, end: datetime
    ) -> list[MealLog]:
        """Return meal logs created in ``[start, end)``, newest first."""


@dataclass
class MealLogService:
    """Service for the append-only meal log."""

    repository: MealLogRepository
    clock: Clock = utcnow

    def log_meal(
        self,
        owner_id: UUID,
        name: str,
        slot: MealSlot,
        image: MealImage | None = None,
        source_file_name: str | None = None,
    ) -> MealLog:
        """Log a meal directly, without a draft or analysis."""
        now = self.clock()
        log = MealLog(
            id=uuid4(),
            owner_id=owner_id,
            name=name.strip() or UNTITLED_MEAL,
            slot=slot.normalized(),
            image=image,
            source_file_name=source_file_name,
            analysis=None,
            is_estimated=False,
            source_draft_id=None,
            created_at=now,
            updated_at=now,
        )
        self.repository.create_log(log)
        logger.info(
            "Meal logged directly",
            extra={"owner_id": str(owner_id), "log_id": str(log.id)},
        )
        return log

    def get_log(self, owner_id: UUID, log_id: UUID) -> MealLog | None:
        """Return a meal log by id."""
        return self.repository.get_log(owner_id, log_id)

    def list_logs(self, owner_id: UUID, limit: int = 50) -> list[MealLog]:
        """Return recent meal logs."""
        return self.repository.list_logs(owner_id, limit)

    def list_logs_for_day(
        self, owner_id: UUID, day: date, timezone_name: str = "UTC"
    ) -> DailyMealLogs:
        """Return the meals logged on a calendar day in the user's timezone."""
        tz = ZoneInfo(timezone_name)
        start = datetime(day.year, day.month, day.day, tzinfo=tz)
        end = start + timedelta(days=1)
        logs = self.repository.list_logs_between(
            owner_id, start.astimezone(UTC), end.astimezone(UTC)
        )
        analyses = [log.analysis for log in logs if log.analysis is not None]
        return DailyMealLogs(
            day=day,
            timezone=timezone_name,
            logs=logs,
            calories=sum(analysis.calories for analysis in analyses),
            protein=sum(analysis.macros.protein for analysis in analyses),
            carbs=sum(analysis.macros.carbs for analysis in analyses),
            fat=sum(analysis.macros.fat for analysis in analyses),
        )

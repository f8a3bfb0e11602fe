"""Shared test fixtures."""

import asyncio
import copy
import threading
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from meal_tracker.config import Settings
from meal_tracker.containers import AppContainer
from meal_tracker.domain.analysis import MealAnalysis
from meal_tracker.domain.drafts import DraftError, DraftStatus, MealDraft
from meal_tracker.domain.errors import BlobNotFoundError
from meal_tracker.domain.logs import MealLog
from meal_tracker.services.analysis import AnalysisClient, AnalysisService
from meal_tracker.services.drafts import DraftLifecycleService, DraftRepository
from meal_tracker.services.meal_slots import MealSlotRepository, MealSlotService
from meal_tracker.services.meals import MealLogRepository, MealLogService
from meal_tracker.services.scheduler import AutoPromotionScheduler

START_TIME = datetime(2025, 3, 14, 12, 0, tzinfo=UTC)

SAMPLE_ANALYSIS: dict[str, object] = {
    "calories": 450,
    "macros": {"protein": 30, "carbs": 40, "fat": 15},
    "items": [{"name": "Chicken salad", "quantity": 1, "unit": "bowl"}],
}


@dataclass
class FakeClock:
    """Manually advanced clock."""

    now: datetime = START_TIME

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class InMemoryMealLogRepository(MealLogRepository):
    """In-memory meal log repository for tests."""

    logs: dict[UUID, MealLog] = field(default_factory=dict)

    def create_log(self, log: MealLog) -> None:
        self.logs[log.id] = log

    def get_log(self, owner_id: UUID, log_id: UUID) -> MealLog | None:
        log = self.logs.get(log_id)
        if log is None or log.owner_id != owner_id:
            return None
        return log

    def list_logs(self, owner_id: UUID, limit: int) -> list[MealLog]:
        owned = [log for log in self.logs.values() if log.owner_id == owner_id]
        return sorted(owned, key=lambda log: log.created_at, reverse=True)[:limit]

    def list_logs_between(
        self, owner_id: UUID, start: datetime, end: datetime
    ) -> list[MealLog]:
        owned = [
            log
            for log in self.logs.values()
            if log.owner_id == owner_id and start <= log.created_at < end
        ]
        return sorted(owned, key=lambda log: log.created_at, reverse=True)


@dataclass
class InMemoryMealSlotRepository(MealSlotRepository):
    """In-memory meal slot settings keyed by owner."""

    rows: dict[UUID, list[dict[str, object]]] = field(default_factory=dict)
    saved_at: dict[UUID, datetime] = field(default_factory=dict)

    def get_slots(self, owner_id: UUID) -> list[dict[str, object]] | None:
        slots = self.rows.get(owner_id)
        return copy.deepcopy(slots) if slots is not None else None

    def save_slots(
        self, owner_id: UUID, slots: list[dict[str, object]], updated_at: datetime
    ) -> None:
        self.rows[owner_id] = copy.deepcopy(slots)
        self.saved_at[owner_id] = updated_at


@dataclass
class InMemoryDraftRepository(DraftRepository):
    """In-memory draft repository sharing a lock with the log store."""

    log_repository: InMemoryMealLogRepository = field(
        default_factory=InMemoryMealLogRepository
    )
    drafts: dict[UUID, MealDraft] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def create_draft(self, draft: MealDraft) -> None:
        with self.lock:
            self.drafts[draft.id] = draft

    def get_draft(self, owner_id: UUID, draft_id: UUID) -> MealDraft | None:
        draft = self.drafts.get(draft_id)
        if draft is None or draft.owner_id != owner_id:
            return None
        return draft

    def list_drafts(self, owner_id: UUID) -> list[MealDraft]:
        owned = [draft for draft in self.drafts.values() if draft.owner_id == owner_id]
        return sorted(owned, key=lambda draft: draft.created_at, reverse=True)

    def claim_for_analysis(
        self, owner_id: UUID, draft_id: UUID, started_at: datetime
    ) -> MealDraft | None:
        return self._transition(
            owner_id,
            draft_id,
            DraftStatus.PENDING,
            status=DraftStatus.PROCESSING,
            analysis_started_at=started_at,
            updated_at=started_at,
        )

    def mark_ready(
        self,
        owner_id: UUID,
        draft_id: UUID,
        analysis: MealAnalysis,
        completed_at: datetime,
    ) -> MealDraft | None:
        return self._transition(
            owner_id,
            draft_id,
            DraftStatus.PROCESSING,
            status=DraftStatus.READY,
            analysis=analysis,
            error=None,
            analysis_completed_at=completed_at,
            updated_at=completed_at,
        )

    def mark_failed(
        self, owner_id: UUID, draft_id: UUID, error: DraftError, failed_at: datetime
    ) -> MealDraft | None:
        return self._transition(
            owner_id,
            draft_id,
            DraftStatus.PROCESSING,
            status=DraftStatus.ERROR,
            analysis=None,
            error=error,
            analysis_completed_at=None,
            updated_at=failed_at,
        )

    def reset_for_retry(
        self, owner_id: UUID, draft_id: UUID, reset_at: datetime
    ) -> MealDraft | None:
        return self._transition(
            owner_id,
            draft_id,
            DraftStatus.ERROR,
            status=DraftStatus.PENDING,
            analysis=None,
            error=None,
            analysis_started_at=None,
            analysis_completed_at=None,
            updated_at=reset_at,
        )

    def commit_promotion(
        self,
        owner_id: UUID,
        draft_id: UUID,
        expected_status: DraftStatus,
        log: MealLog,
    ) -> bool:
        with self.lock:
            current = self.get_draft(owner_id, draft_id)
            if current is None or current.status is not expected_status:
                return False
            self.log_repository.create_log(log)
            del self.drafts[draft_id]
            return True

    def list_due_drafts(self, now: datetime, limit: int) -> list[MealDraft]:
        due = [
            draft
            for draft in self.drafts.values()
            if draft.auto_promote_at is not None and draft.auto_promote_at <= now
        ]
        return sorted(due, key=lambda draft: draft.auto_promote_at)[:limit]

    def list_stale_processing(
        self, started_before: datetime, limit: int
    ) -> list[MealDraft]:
        stale = [
            draft
            for draft in self.drafts.values()
            if draft.status is DraftStatus.PROCESSING
            and draft.analysis_started_at is not None
            and draft.analysis_started_at < started_before
        ]
        return sorted(stale, key=lambda draft: draft.analysis_started_at)[:limit]

    def _transition(
        self,
        owner_id: UUID,
        draft_id: UUID,
        expected: DraftStatus,
        **changes: object,
    ) -> MealDraft | None:
        with self.lock:
            current = self.get_draft(owner_id, draft_id)
            if current is None or current.status is not expected:
                return None
            updated = replace(current, **changes)
            self.drafts[draft_id] = updated
            return updated


@dataclass
class FakeBlobStore:
    """Blob store serving bytes from memory, with injectable failures."""

    objects: dict[str, bytes] = field(default_factory=dict)
    failures: list[Exception] = field(default_factory=list)
    downloads: list[str] = field(default_factory=list)

    async def download(self, storage_path: str) -> bytes:
        self.downloads.append(storage_path)
        if self.failures:
            raise self.failures.pop(0)
        if storage_path not in self.objects:
            raise BlobNotFoundError(storage_path)
        return self.objects[storage_path]

    def public_url(self, storage_path: str) -> str:
        return f"https://storage.test/public/{storage_path}"


@dataclass
class FakeAnalysisClient(AnalysisClient):
    """Analysis engine returning a fixed payload and recording calls."""

    payload: object = field(default_factory=lambda: copy.deepcopy(SAMPLE_ANALYSIS))
    error: Exception | None = None
    calls: list[tuple[bytes | None, str | None]] = field(default_factory=list)

    async def analyze(
        self, *, image_bytes: bytes | None, label: str | None
    ) -> dict[str, object]:
        self.calls.append((image_bytes, label))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.payload)


@dataclass
class FakeTokenVerifier:
    """Token verifier backed by a static token table."""

    tokens: dict[str, UUID] = field(default_factory=dict)

    def verify(self, token: str) -> UUID | None:
        return self.tokens.get(token)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key=(
            "eyJhbGciOiJIUzI1NiJ9.eyJyb2xlIjoic2VydmljZV9yb2xlIn0.signature"
        ),
        webhook_secret="webhook-secret",
        environment="test",
    )


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def log_repository() -> InMemoryMealLogRepository:
    return InMemoryMealLogRepository()


@pytest.fixture
def draft_repository(
    log_repository: InMemoryMealLogRepository,
) -> InMemoryDraftRepository:
    return InMemoryDraftRepository(log_repository=log_repository)


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore(objects={"meals/lunch.jpg": b"\xff\xd8\xffjpeg-bytes"})


@pytest.fixture
def analysis_client() -> FakeAnalysisClient:
    return FakeAnalysisClient()


@pytest.fixture
def draft_service(
    draft_repository: InMemoryDraftRepository,
    blob_store: FakeBlobStore,
    analysis_client: FakeAnalysisClient,
    clock: FakeClock,
) -> DraftLifecycleService:
    return DraftLifecycleService(
        repository=draft_repository,
        blob_store=blob_store,
        analysis_service=AnalysisService(analysis_client),
        clock=clock,
        download_retry_delay_seconds=0,
    )


@pytest.fixture
def meal_log_service(
    log_repository: InMemoryMealLogRepository, clock: FakeClock
) -> MealLogService:
    return MealLogService(log_repository, clock=clock)


@pytest.fixture
def meal_slot_repository() -> InMemoryMealSlotRepository:
    return InMemoryMealSlotRepository()


@pytest.fixture
def meal_slot_service(
    meal_slot_repository: InMemoryMealSlotRepository, clock: FakeClock
) -> MealSlotService:
    return MealSlotService(meal_slot_repository, clock=clock)


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    owner_id: UUID,
    clock: FakeClock,
    draft_repository: InMemoryDraftRepository,
    blob_store: FakeBlobStore,
    draft_service: DraftLifecycleService,
    meal_log_service: MealLogService,
    meal_slot_service: MealSlotService,
) -> AppContainer:
    scheduler = AutoPromotionScheduler(
        repository=draft_repository, promoter=draft_service, clock=clock
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        token_verifier=FakeTokenVerifier({"user-token": owner_id}),
        blob_store=blob_store,
        analysis_service=draft_service.analysis_service,
        draft_service=draft_service,
        meal_log_service=meal_log_service,
        meal_slot_service=meal_slot_service,
        scheduler=scheduler,
        close_resources=close_resources,
    )

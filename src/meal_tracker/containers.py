"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from meal_tracker.adapters.openai_analysis_client import OpenAIAnalysisClient
from meal_tracker.adapters.stub_analysis_client import StubAnalysisClient
from meal_tracker.adapters.supabase_auth import SupabaseTokenVerifier, TokenVerifier
from meal_tracker.adapters.supabase_blob_store import BlobStore, HttpxSupabaseBlobStore
from meal_tracker.adapters.supabase_draft_repository import SupabaseDraftRepository
from meal_tracker.adapters.supabase_meal_log_repository import (
    SupabaseMealLogRepository,
)
from meal_tracker.adapters.supabase_meal_slot_repository import (
    SupabaseMealSlotRepository,
)
from meal_tracker.config import Settings
from meal_tracker.services.analysis import AnalysisClient, AnalysisService
from meal_tracker.services.drafts import DraftLifecycleService
from meal_tracker.services.meal_slots import MealSlotService
from meal_tracker.services.meals import MealLogService
from meal_tracker.services.scheduler import AutoPromotionScheduler


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    token_verifier: TokenVerifier
    blob_store: BlobStore
    analysis_service: AnalysisService
    draft_service: DraftLifecycleService
    meal_log_service: MealLogService
    meal_slot_service: MealSlotService
    scheduler: AutoPromotionScheduler
    close_resources: Callable[[], Awaitable[None]]


def build_analysis_client(
    settings: Settings,
) -> tuple[AnalysisClient, Callable[[], Awaitable[None]] | None]:
    """Create the configured analysis engine and its close hook."""
    engine = settings.analysis_engine.lower()
    if engine == "stub":
        return StubAnalysisClient(
            latency_seconds=settings.stub_analysis_latency_seconds
        ), None
    if engine == "openai":
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required for the openai engine")
        client = OpenAIAnalysisClient.create(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            reasoning_effort=settings.openai_reasoning_effort,
            store=settings.openai_store,
        )
        return client, client.close
    raise ValueError(f"Unknown analysis engine: {settings.analysis_engine}")


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    draft_repository = SupabaseDraftRepository(supabase_client)
    meal_log_repository = SupabaseMealLogRepository(supabase_client)
    blob_store = HttpxSupabaseBlobStore.create(
        base_url=resolved_settings.supabase_url,
        service_key=resolved_settings.supabase_service_key,
        bucket=resolved_settings.storage_bucket,
    )
    analysis_client, close_analysis_client = build_analysis_client(resolved_settings)
    analysis_service = AnalysisService(analysis_client)
    scheduler = AutoPromotionScheduler(
        repository=draft_repository,
        sweep_batch_size=resolved_settings.auto_promote_sweep_batch_size,
    )
    draft_service = DraftLifecycleService(
        repository=draft_repository,
        blob_store=blob_store,
        analysis_service=analysis_service,
        default_auto_promote_delay_minutes=(
            resolved_settings.default_auto_promote_delay_minutes
        ),
        timers=scheduler,
        stale_analysis_minutes=resolved_settings.stale_analysis_timeout_minutes,
    )
    scheduler.promoter = draft_service
    meal_log_service = MealLogService(meal_log_repository)
    meal_slot_service = MealSlotService(SupabaseMealSlotRepository(supabase_client))

    async def close_resources() -> None:
        await scheduler.close()
        await blob_store.close()
        if close_analysis_client is not None:
            await close_analysis_client()

    return AppContainer(
        settings=resolved_settings,
        token_verifier=SupabaseTokenVerifier(supabase_client),
        blob_store=blob_store,
        analysis_service=analysis_service,
        draft_service=draft_service,
        meal_log_service=meal_log_service,
        meal_slot_service=meal_slot_service,
        scheduler=scheduler,
        close_resources=close_resources,
    )

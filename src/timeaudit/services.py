"""Builds the queue, remote store, user lookup and synchronizer from Settings."""
import logging
from datetime import timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from timeaudit.config import Settings, get_settings
from timeaudit.db.engine import get_engine, get_remote_engine
from timeaudit.remote.base import StaticUserProvider
from timeaudit.remote.sql_store import SqlActivityStore
from timeaudit.remote.supabase import SupabaseActivityStore, SupabaseUserProvider
from timeaudit.storage.pending_queue import PendingActivityQueue
from timeaudit.storage.slots import SqlSlotStore
from timeaudit.sync.synchronizer import ActivitySynchronizer

logger = logging.getLogger(__name__)


def get_timezone(settings: Optional[Settings] = None) -> ZoneInfo:
    return ZoneInfo((settings or get_settings()).timezone)


def build_queue(settings: Optional[Settings] = None, engine=None) -> PendingActivityQueue:
    settings = settings or get_settings()
    return PendingActivityQueue(
        SqlSlotStore(engine or get_engine()),
        settings.queue_slot_name,
        max_retries=settings.max_retries,
        retention=timedelta(hours=settings.confirmed_retention_hours),
    )


def build_store(settings: Optional[Settings] = None):
    settings = settings or get_settings()
    if settings.remote_backend == "sql":
        return SqlActivityStore(get_remote_engine(settings.remote_database_url))
    if settings.remote_backend == "supabase":
        if not settings.supabase_url:
            raise ValueError("TIMEAUDIT_SUPABASE_URL is required for the supabase backend")
        return SupabaseActivityStore(
            settings.supabase_url,
            settings.supabase_key,
            access_token=settings.access_token or None,
            table=settings.supabase_table,
            timeout=settings.request_timeout_seconds,
        )
    raise ValueError(f"Unknown remote backend: {settings.remote_backend!r}")


def build_user_provider(settings: Optional[Settings] = None, engine=None):
    settings = settings or get_settings()
    if settings.remote_backend == "supabase" and settings.access_token:
        return SupabaseUserProvider(
            settings.supabase_url,
            settings.supabase_key,
            settings.access_token,
            timeout=settings.request_timeout_seconds,
            slots=SqlSlotStore(engine or get_engine()),
        )
    if not settings.owner_id:
        logger.info("No owner configured; entries can be viewed but not synced")
    return StaticUserProvider(settings.owner_id)


def build_synchronizer(settings: Optional[Settings] = None) -> ActivitySynchronizer:
    settings = settings or get_settings()
    engine = get_engine()
    return ActivitySynchronizer(
        queue=build_queue(settings, engine),
        store=build_store(settings),
        users=build_user_provider(settings, engine),
        engine=engine,
    )

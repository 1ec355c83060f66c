"""
Dependency injection for the price-sync context.

Provides FastAPI dependency functions that wire infrastructure
adapters into the pipeline and scheduler via constructor injection.
These are the composition root for the price-sync context.

The scheduler holds live triggers, so it and its collaborators are
process-wide singletons (cached on first use).
"""

import logging
from functools import lru_cache
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from pricesync.application.market.alerts import AlertDispatcher
from pricesync.application.market.closing_sequence import ClosingSequenceCoordinator
from pricesync.application.market.price_update_job import PriceUpdateJob
from pricesync.application.market.scheduler import JobScheduler, default_job_definitions
from pricesync.core.config import settings
from pricesync.domain.market.ports import AlertNotifier
from pricesync.domain.market.selection import SelectionPolicy, StaleSinceStartOfDay, select_all
from pricesync.infrastructure.market.alert_notifiers import (
    SmtpAlertNotifier,
    WebhookAlertNotifier,
)
from pricesync.infrastructure.market.apscheduler_trigger import (
    ApschedulerTriggerPort,
    build_scheduler,
)
from pricesync.infrastructure.market.instrument_repository import SqlInstrumentRepository
from pricesync.infrastructure.market.portfolio_valuation_adapter import (
    SqlPortfolioValuationAdapter,
)
from pricesync.infrastructure.market.tradingview_provider import TradingViewPriceProvider

logger = logging.getLogger(__name__)


@lru_cache
def get_db_engine() -> Engine:
    """Build a SQLAlchemy engine from application settings."""
    return create_engine(settings.database_url, pool_pre_ping=True)


def _build_notifier() -> Optional[AlertNotifier]:
    channel = settings.alert_channel.lower()
    if channel == "smtp":
        return SmtpAlertNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_sender,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.alert_timeout_seconds,
        )
    if channel == "webhook" and settings.alert_webhook_url:
        return WebhookAlertNotifier(
            settings.alert_webhook_url, timeout=settings.alert_timeout_seconds
        )
    if channel != "none":
        logger.warning("Alert channel %r is not usable; alerts disabled", channel)
    return None


def _closing_selection() -> SelectionPolicy:
    if settings.closing_selection == "stale_since_start_of_day":
        return StaleSinceStartOfDay(settings.closing_selection_timezone)
    return select_all


@lru_cache
def get_alert_dispatcher() -> AlertDispatcher:
    """Build the shared alert dispatcher."""
    return AlertDispatcher(_build_notifier(), settings.alert_recipients)


@lru_cache
def get_trigger_port() -> ApschedulerTriggerPort:
    """Build the APScheduler clock. Started in the application lifespan."""
    return ApschedulerTriggerPort(build_scheduler(settings.scheduler_timezone))


@lru_cache
def get_job_scheduler() -> JobScheduler:
    """Build the JobScheduler with all its infrastructure dependencies."""
    engine = get_db_engine()
    repository = SqlInstrumentRepository(engine)
    alerts = get_alert_dispatcher()

    price_job = PriceUpdateJob(
        repository=repository,
        provider=TradingViewPriceProvider(
            settings.provider_base_url,
            screener=settings.provider_screener,
            timeout=settings.provider_timeout_seconds,
        ),
        alerts=alerts,
        batch_size=settings.batch_size,
        batch_delay_ms=settings.batch_delay_ms,
        max_retries=settings.fetch_max_retries,
        retry_delay_ms=settings.fetch_retry_delay_ms,
        closing_selection=_closing_selection(),
    )
    closing_sequence = ClosingSequenceCoordinator(
        price_job=price_job,
        valuation=SqlPortfolioValuationAdapter(engine),
        alerts=alerts,
        max_retries=settings.sequence_max_retries,
        retry_delay_ms=settings.sequence_retry_delay_ms,
    )
    definitions = default_job_definitions(
        settings.scheduler_timezone,
        hourly_cron=settings.hourly_cron,
        morning_cron=settings.morning_cron,
        afternoon_cron=settings.afternoon_cron,
        closing_cron=settings.closing_cron,
    )
    return JobScheduler(
        triggers=get_trigger_port(),
        repository=repository,
        price_job=price_job,
        closing_sequence=closing_sequence,
        definitions=definitions,
        alerts=alerts,
    )

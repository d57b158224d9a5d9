"""Celery application for periodic maintenance.

Redis is both broker and result backend. Beat runs the cleanup tasks in
``smartcommerce.workers.cleanup``.

Usage:
    # Start worker
    celery -A smartcommerce.workers.celery_app worker --loglevel=info

    # Start the scheduler
    celery -A smartcommerce.workers.celery_app beat --loglevel=info
"""

import os

import sentry_sdk
from celery import Celery, signals
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.redis import RedisIntegration

from smartcommerce.config import get_config
from smartcommerce.logging_config import configure_logging

HOUR = 60 * 60
DAY = 24 * HOUR


def _init_sentry() -> None:
    """Initialize Sentry SDK for Celery workers."""
    sentry_dsn = os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        return

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=os.getenv("ENVIRONMENT", "development"),
        release=os.getenv("RELEASE_VERSION"),
        integrations=[
            CeleryIntegration(monitor_beat_tasks=True),
            RedisIntegration(),
        ],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
        send_default_pii=False,
    )


# Initialize Sentry before creating Celery app
_init_sentry()

# memory:// disables Redis for the API only; the broker always needs a server
_redis_url = get_config().redis.url
BROKER_URL = os.environ.get(
    "CELERY_BROKER_URL",
    _redis_url if _redis_url.startswith("redis") else "redis://localhost:6379/0",
)

celery_app = Celery(
    "smartcommerce",
    broker=BROKER_URL,
    backend=BROKER_URL,
    include=["smartcommerce.workers.cleanup"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    # Cleanup tasks are short; anything longer is stuck
    task_soft_time_limit=600,
    task_time_limit=900,
    result_expires=DAY,
    beat_schedule={
        "cleanup-expired-sessions-hourly": {
            "task": "smartcommerce.workers.cleanup.cleanup_expired_sessions_task",
            "schedule": HOUR,
        },
        "cleanup-remember-me-tokens-daily": {
            "task": "smartcommerce.workers.cleanup.cleanup_remember_me_tokens_task",
            "schedule": DAY,
        },
        "cleanup-expired-otps-hourly": {
            "task": "smartcommerce.workers.cleanup.cleanup_expired_otps_task",
            "schedule": HOUR,
        },
        "cleanup-email-tokens-hourly": {
            "task": "smartcommerce.workers.cleanup.cleanup_email_tokens_task",
            "schedule": HOUR,
        },
        "cleanup-login-security-daily": {
            "task": "smartcommerce.workers.cleanup.cleanup_login_security_task",
            "schedule": DAY,
        },
    },
)


@signals.worker_process_init.connect
def _configure_worker_logging(**kwargs) -> None:
    settings = get_config().logging
    configure_logging(
        level=settings.level,
        json_output=settings.format == "json",
        log_file=settings.file,
    )

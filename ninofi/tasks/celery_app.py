from celery import Celery
from celery.schedules import crontab

from ninofi.config import settings

app = Celery(
    "ninofi",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "ninofi.tasks.checkin_tasks.*": {"queue": "checkins"},
        "ninofi.tasks.escrow_tasks.*": {"queue": "escrow"},
    },
    beat_schedule={
        "close-stale-checkins": {
            "task": "ninofi.tasks.checkin_tasks.close_stale_checkins",
            "schedule": crontab(minute="*/30"),  # every 30 minutes
        },
        "audit-ledger-invariants": {
            "task": "ninofi.tasks.escrow_tasks.audit_ledger_invariants",
            "schedule": crontab(minute=0),  # every hour
        },
    },
)

app.autodiscover_tasks(
    [
        "ninofi.tasks.checkin_tasks",
        "ninofi.tasks.escrow_tasks",
    ]
)

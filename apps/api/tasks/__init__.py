"""
Celery application for out-of-band fitness work.

The API enqueues (backtest, baseline sync); the worker in apps/worker
executes. Backtests are long and CPU-bound, so they get their own queue
and one task per worker process at a time.
"""
from celery import Celery
from core.config import settings

celery_app = Celery(
    "fitness_engine",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,
    task_soft_time_limit=25 * 60,
    worker_prefetch_multiplier=1,
    task_routes={
        "tasks.run_vdot_backtest": {"queue": "backtest"},
        "tasks.sync_vdot_baseline": {"queue": "default"},
    },
    task_default_queue="default",
)

# Register tasks
from . import vdot_tasks  # noqa: E402

__all__ = ["celery_app"]

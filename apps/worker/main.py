"""
Celery worker entry point.

Run with:
    celery -A main worker -Q default,backtest --loglevel=INFO

The task code lives in the API package; API_PATH points at it when the
worker runs from a different checkout layout.
"""
import os
import sys

API_PATH = os.environ.get("API_PATH", os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "api"))
sys.path.insert(0, API_PATH)

from core.logging import setup_logging  # noqa: E402
from tasks import celery_app  # noqa: E402

setup_logging()
celery_app.autodiscover_tasks(["tasks"])


@celery_app.task(name="worker.health_check")
def health_check():
    """Round-trip check for the broker and result backend."""
    return {"status": "ok"}

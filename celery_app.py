import os
import logging
from celery import Celery
from celery.signals import task_failure, task_retry, worker_ready

broker_url = os.environ.get("CELERY_BROKER_URL", "memory://")
backend_url = os.environ.get("CELERY_RESULT_BACKEND", "cache+memory://")
sweep_interval = int(os.environ.get("SWEEP_INTERVAL", 6 * 3600))

celery_app = Celery("cartapi", broker=broker_url, backend=backend_url, include=["cartapi.tasks.sessions"])
celery_app.conf.task_always_eager = os.environ.get("CELERY_TASK_ALWAYS_EAGER", "0") == "1"
celery_app.conf.task_eager_propagates = True
celery_app.conf.task_store_eager_result = False
celery_app.conf.beat_schedule = {
    "sweep-expired-carts": {
        "task": "cartapi.tasks.sessions.sweep_expired_carts_task",
        "schedule": float(sweep_interval),
    },
}

logger = logging.getLogger(__name__)

@task_failure.connect
def _log_failure(sender=None, task_id=None, exception=None, **kwargs):
    logger.error("Task %s failed: %s", getattr(sender, 'name', task_id), exception)

@task_retry.connect
def _log_retry(sender=None, request=None, reason=None, **kwargs):
    logger.warning("Task %s retry due to: %s", getattr(sender, 'name', ''), reason)

@worker_ready.connect
def _transfer_on_start(sender=None, **kwargs):
    # One-shot; the task itself returns early once the transfer is recorded as done.
    celery_app.send_task("cartapi.tasks.sessions.transfer_sessions_task")

"""
Celery workers module.

Periodic indexing tasks: threshold polling, scheduled core rebuilds and
build-job queue drains.

Dependencies: celery, deltasearch.configs
System role: Background task processing
"""

from celery import Celery

from deltasearch.configs import get_settings
from deltasearch.configs.worker import WorkerSettings

settings = get_settings()
celery_config = settings.celery


def build_beat_schedule(worker: WorkerSettings) -> dict:
    """
    Derive the beat schedule from worker settings.

    Each cadence left unset is omitted from the schedule.

    Args:
        worker: Worker settings

    Returns:
        dict: Celery beat_schedule mapping
    """
    schedule = {}
    if worker.threshold_poll_interval:
        schedule["poll-threshold-indexes"] = {
            "task": "deltasearch.workers.tasks.indexing.poll_threshold_indexes",
            "schedule": worker.threshold_poll_interval,
        }
    if worker.core_rebuild_interval:
        schedule["rebuild-core-indexes"] = {
            "task": "deltasearch.workers.tasks.indexing.rebuild_core_indexes",
            "schedule": worker.core_rebuild_interval,
        }
    if worker.drain_interval:
        schedule["drain-index-jobs"] = {
            "task": "deltasearch.workers.tasks.indexing.drain_index_jobs",
            "schedule": worker.drain_interval,
        }
    return schedule


celery_app = Celery(
    "deltasearch",
    broker=celery_config.broker_url,
    backend=celery_config.result_backend_url,
    include=["deltasearch.workers.tasks.indexing"],
)

celery_app.conf.update(
    task_serializer=celery_config.task_serializer,
    result_serializer=celery_config.result_serializer,
    accept_content=celery_config.accept_content,
    timezone=celery_config.timezone,
    task_always_eager=celery_config.always_eager,
    beat_schedule=build_beat_schedule(settings.worker),
)

"""
Lumio — One-shot job scheduling.

Promotions, reminders, the transient notice and the slot monitor all run as
date jobs on one shared APScheduler AsyncIOScheduler. Job ids are stable per
purpose (e.g. "promotion:<task id>"), so scheduling again with
`replace_existing=True` replaces the previous job instead of stacking a
second one.
"""

from __future__ import annotations

import logging
from datetime import tzinfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler

logger = logging.getLogger(__name__)

JOB_DEFAULTS = {"coalesce": True, "misfire_grace_time": 60}


def create_job_scheduler(timezone: tzinfo) -> AsyncIOScheduler:
    """Build the shared scheduler. The caller starts and shuts it down."""
    return AsyncIOScheduler(timezone=timezone, job_defaults=JOB_DEFAULTS)


def cancel_job(jobs: BaseScheduler, job_id: str) -> bool:
    """Remove a job if it is still scheduled. False when it already ran or never existed."""
    try:
        jobs.remove_job(job_id)
    except JobLookupError:
        return False
    logger.debug("Cancelled job %s", job_id)
    return True


def keys_with_prefix(jobs: BaseScheduler, prefix: str) -> list[str]:
    """Return the ids of scheduled jobs under `prefix`, with the prefix stripped."""
    return [job.id[len(prefix):] for job in jobs.get_jobs() if job.id.startswith(prefix)]

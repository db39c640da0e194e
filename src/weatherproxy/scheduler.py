from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from .settings import AppSettings
from .storage.cache import ResultCache

LOGGER = logging.getLogger(__name__)


def run_cache_prune_job(cache: ResultCache) -> int:
    evicted = cache.prune_expired_entries()
    if evicted:
        LOGGER.info("Cache prune job evicted %d expired entr%s", evicted, "y" if evicted == 1 else "ies")
    else:
        LOGGER.debug("Cache prune job found no expired entries")
    return evicted


def build_scheduler(settings: AppSettings, cache: ResultCache) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_cache_prune_job,
        "interval",
        kwargs={"cache": cache},
        seconds=settings.yaml.cache.prune_interval_seconds,
        id="cache_prune_job",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    return scheduler

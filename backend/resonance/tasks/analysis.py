"""
Celery tasks for catalog analysis.

The re-analysis pass is async (it awaits ffmpeg); the task drives it in a
private event loop and tears the engine down before the loop closes.
"""
import asyncio

import structlog

from resonance.tasks.celery_app import celery_app

log = structlog.get_logger()


def _run_async(coro):
    """Run async code from a synchronous Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _reanalyze() -> dict:
    from resonance.config import settings
    from resonance.core.analysis import AudioAnalyzer
    from resonance.core.catalog import TrackCatalog
    from resonance.core.process import ProcessRunner
    from resonance.core.reanalysis import reanalyze_catalog
    from resonance.core.storage import get_storage
    from resonance.db import dispose_engine, get_session_factory

    analyzer = AudioAnalyzer(ProcessRunner(), settings.FFMPEG_BIN, settings.ANALYSIS_TIMEOUT_SEC)
    try:
        async with get_session_factory()() as db:
            summary = await reanalyze_catalog(TrackCatalog(db), analyzer, get_storage())
        return summary.as_dict()
    finally:
        await dispose_engine()


@celery_app.task(bind=True, name="resonance.tasks.analysis.reanalyze_catalog")
def reanalyze_catalog_task(self):
    """Analyze every track that has no energy value yet."""
    log.info("reanalysis_task_start", task_id=self.request.id)
    result = _run_async(_reanalyze())
    log.info("reanalysis_task_complete", task_id=self.request.id, **result)
    return result

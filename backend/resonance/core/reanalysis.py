"""
Batch analysis for tracks that predate Radio mode (energy IS NULL).

Rows are processed one at a time and committed individually, so the pass can
be interrupted and re-run. A row whose energy could not be measured stays
selectable and is counted as failed.
"""
from dataclasses import dataclass, asdict

import structlog
from sqlalchemy.exc import SQLAlchemyError

from resonance.core.analysis import AudioAnalyzer
from resonance.core.catalog import TrackCatalog
from resonance.core.errors import StorageError
from resonance.core.storage import LocalStorage

log = structlog.get_logger()


@dataclass
class ReanalysisSummary:
    analyzed: int = 0
    failed: int = 0
    total: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


async def reanalyze_catalog(
    catalog: TrackCatalog,
    analyzer: AudioAnalyzer,
    storage: LocalStorage,
) -> ReanalysisSummary:
    summary = ReanalysisSummary(total=await catalog.count())
    # ids only: a rollback below expires every loaded row
    pending = [(t.id, t.stored_path) for t in await catalog.missing_energy()]
    log.info("reanalysis_start", pending=len(pending), total=summary.total)

    for track_id, stored_path in pending:
        try:
            path = storage.resolve(stored_path)
            if not path.exists():
                raise StorageError(f"Missing file {stored_path}")

            result = await analyzer.analyze(path)
            track = await catalog.get(track_id)
            if track is None:
                # deleted while the pass was running
                continue
            await catalog.update_analysis(track, result.bpm, result.key, result.energy)

            if result.energy is None:
                summary.failed += 1
                log.warning("reanalysis_no_energy", track_id=str(track_id))
            else:
                summary.analyzed += 1
        except StorageError as e:
            summary.failed += 1
            log.warning("reanalysis_track_failed", track_id=str(track_id), error=e.message)
        except SQLAlchemyError as e:
            summary.failed += 1
            log.warning("reanalysis_track_failed", track_id=str(track_id), error=str(e))
            await catalog.rollback()

    log.info("reanalysis_complete", **summary.as_dict())
    return summary

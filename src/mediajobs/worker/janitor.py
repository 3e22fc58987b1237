import logging
import os
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from mediajobs.errors import JobAlreadyTerminalError, JobNotFoundError
from mediajobs.models import ACTIVE_STATUSES, JobStatus, utcnow
from mediajobs.store import JobStore

logger = logging.getLogger(__name__)


class Janitor:
    """
    Fails jobs that have sat in pending/loading longer than the staleness
    threshold, e.g. because the process polling them died. Meant to be called
    on a schedule; a second run over the same data changes nothing.
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        threshold_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store or JobStore()
        self.threshold_minutes = int(
            threshold_minutes
            if threshold_minutes is not None
            else os.environ.get("JANITOR_THRESHOLD_MINUTES", "20")
        )
        self.clock = clock

    def sweep(self, threshold_minutes: Optional[int] = None) -> Dict[str, Any]:
        minutes = int(threshold_minutes if threshold_minutes is not None else self.threshold_minutes)
        cutoff = self.clock() - timedelta(minutes=minutes)
        stale_jobs = self.store.find_stale(ACTIVE_STATUSES, older_than=cutoff)

        swept = []
        for job in stale_jobs:
            try:
                self.store.update(
                    job.job_id,
                    status=JobStatus.FAILED,
                    error=f"Timed out after {minutes} minutes",
                )
            except (JobAlreadyTerminalError, JobNotFoundError) as e:
                # Finished (or vanished) between the scan and the write
                logger.info("[Janitor] Skipping job %s: %s", job.job_id, e)
                continue
            except (BotoCoreError, ClientError):
                logger.exception("[Janitor] Could not time out job %s, leaving it for the next run", job.job_id)
                continue

            swept.append({
                "id": job.job_id,
                "kind": job.kind.value,
                "last_update": job.updated_at.isoformat(),
            })

        if swept:
            logger.info(
                "[Janitor] Timed out %d stale jobs: %s",
                len(swept),
                ", ".join(f"{j['id']} ({j['kind']})" for j in swept),
            )

        return {"count": len(swept), "jobs": swept}

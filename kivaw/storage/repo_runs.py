"""Repository for the ingestion run log."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kivaw.storage.json_utils import safe_json_dumps
from kivaw.storage.models import IngestionRun


class RunsRepo:
    """Repository for job run records."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def start_run(self, job_name: str) -> IngestionRun:
        run = IngestionRun(
            job_name=job_name,
            status="running",
            started_at=datetime.now(timezone.utc),
        )
        self.session.add(run)
        await self.session.commit()
        return run

    async def finish_run(
        self,
        run: IngestionRun,
        status: str,
        details: dict[str, Any] | None = None,
    ) -> IngestionRun:
        """Close a run with its final status (ok, partial or failed)."""
        run.status = status
        run.finished_at = datetime.now(timezone.utc)
        run.details_json = safe_json_dumps(details or {})
        await self.session.commit()
        return run

    async def recent_runs(self, job_name: str | None = None, limit: int = 20) -> list[IngestionRun]:
        stmt = select(IngestionRun).order_by(IngestionRun.started_at.desc()).limit(limit)
        if job_name:
            stmt = stmt.where(IngestionRun.job_name == job_name)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

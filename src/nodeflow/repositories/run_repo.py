"""Pipeline run repository."""

from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from nodeflow.models.run import PipelineRun


class RunRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> PipelineRun:
        run = PipelineRun(**kwargs)
        self.session.add(run)
        await self.session.commit()
        await self.session.refresh(run)
        return run

    async def get_by_id(self, id: str) -> PipelineRun | None:
        result = await self.session.execute(
            select(PipelineRun)
            .where(PipelineRun.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_by_pipeline(self, pipeline_id: str, limit: int = 20) -> list[PipelineRun]:
        result = await self.session.execute(
            select(PipelineRun)
            .where(PipelineRun.pipeline_id == pipeline_id)
            .order_by(PipelineRun.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_recent(self, limit: int = 20) -> list[PipelineRun]:
        result = await self.session.execute(
            select(PipelineRun).order_by(PipelineRun.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_status(self, statuses: Iterable[str]) -> list[PipelineRun]:
        result = await self.session.execute(
            select(PipelineRun)
            .where(PipelineRun.status.in_(list(statuses)))
            .order_by(PipelineRun.created_at)
        )
        return list(result.scalars().all())

    async def transition(self, id: str, from_states: Iterable[str], **values) -> PipelineRun | None:
        """Apply ``values`` only while the run is in one of ``from_states``.

        Returns the refreshed run, or None when the guard did not match.
        """
        result = await self.session.execute(
            update(PipelineRun)
            .where(PipelineRun.id == id, PipelineRun.status.in_(list(from_states)))
            .values({getattr(PipelineRun, key): value for key, value in values.items()})
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        if result.rowcount == 0:
            return None
        return await self.get_by_id(id)

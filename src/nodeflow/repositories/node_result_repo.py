"""Node result repository."""

import uuid
from datetime import datetime
from typing import Iterable

from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from nodeflow.models.node_result import NodeResult, NodeResultStatus
from nodeflow.models.pipeline import utcnow


class NodeResultRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_missing(self, run_id: str, node_ids: list[str]) -> None:
        """Insert pending results for ``node_ids``, leaving existing (run, node) rows alone."""
        rows = [
            {
                "id": str(uuid.uuid4()),
                "pipeline_run_id": run_id,
                "node_id": node_id,
                "status": NodeResultStatus.PENDING.value,
                "input_data": {},
                "output_data": {},
                "metadata": {},
                "created_at": utcnow(),
            }
            for node_id in node_ids
        ]
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            stmt = sqlite.insert(NodeResult.__table__).on_conflict_do_nothing(
                index_elements=["pipeline_run_id", "node_id"]
            )
        elif dialect == "postgresql":
            stmt = postgresql.insert(NodeResult.__table__).on_conflict_do_nothing(
                index_elements=["pipeline_run_id", "node_id"]
            )
        else:
            stmt = insert(NodeResult.__table__)
        await self.session.execute(stmt, rows)
        await self.session.commit()

    async def get_by_id(self, id: str) -> NodeResult | None:
        result = await self.session.execute(
            select(NodeResult)
            .where(NodeResult.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_node(self, run_id: str, node_id: str) -> NodeResult | None:
        result = await self.session.execute(
            select(NodeResult)
            .where(NodeResult.pipeline_run_id == run_id, NodeResult.node_id == node_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_by_run(self, run_id: str) -> list[NodeResult]:
        result = await self.session.execute(
            select(NodeResult)
            .where(NodeResult.pipeline_run_id == run_id)
            .order_by(NodeResult.created_at, NodeResult.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def transition(self, id: str, from_states: Iterable[str], **values) -> NodeResult | None:
        """Apply ``values`` only while the result is in one of ``from_states``."""
        result = await self.session.execute(
            update(NodeResult)
            .where(NodeResult.id == id, NodeResult.status.in_(list(from_states)))
            .values({getattr(NodeResult, key): value for key, value in values.items()})
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        if result.rowcount == 0:
            return None
        return await self.get_by_id(id)

    async def count_for_node(self, node_id: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(NodeResult).where(NodeResult.node_id == node_id)
        )
        return result.scalar_one()

    async def claim_dispatch(self, id: str, when: datetime, stale_before: datetime | None = None) -> bool:
        """Set ``dispatched_at`` on a pending result that is unclaimed, or whose
        claim is older than ``stale_before``."""
        claimable = NodeResult.dispatched_at.is_(None)
        if stale_before is not None:
            claimable = or_(claimable, NodeResult.dispatched_at < stale_before)
        result = await self.session.execute(
            update(NodeResult)
            .where(
                NodeResult.id == id,
                NodeResult.status == NodeResultStatus.PENDING.value,
                claimable,
            )
            .values(dispatched_at=when)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount == 1

    async def release_dispatch(self, id: str) -> bool:
        result = await self.session.execute(
            update(NodeResult)
            .where(NodeResult.id == id, NodeResult.status == NodeResultStatus.PENDING.value)
            .values(dispatched_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount == 1

    async def update(self, node_result: NodeResult, **kwargs) -> NodeResult:
        for key, value in kwargs.items():
            if value is not None:
                setattr(node_result, key, value)
        await self.session.commit()
        await self.session.refresh(node_result)
        return node_result

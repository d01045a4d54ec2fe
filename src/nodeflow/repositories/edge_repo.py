"""Edge repository."""

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from nodeflow.models.edge import Edge


class EdgeRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Edge:
        edge = Edge(**kwargs)
        self.session.add(edge)
        await self.session.commit()
        await self.session.refresh(edge)
        return edge

    async def get_by_id(self, id: str) -> Edge | None:
        result = await self.session.execute(select(Edge).where(Edge.id == id))
        return result.scalar_one_or_none()

    async def list_by_pipeline(self, pipeline_id: str) -> list[Edge]:
        """Edges in creation order."""
        result = await self.session.execute(
            select(Edge)
            .where(Edge.pipeline_id == pipeline_id)
            .order_by(Edge.created_at, Edge.id)
        )
        return list(result.scalars().all())

    async def list_by_target(self, target_node_id: str) -> list[Edge]:
        """All edges pointing at a node, in creation order."""
        result = await self.session.execute(
            select(Edge)
            .where(Edge.target_node_id == target_node_id)
            .order_by(Edge.created_at, Edge.id)
        )
        return list(result.scalars().all())

    async def find(
        self,
        source_node_id: str,
        target_node_id: str,
        source_handle: str | None = None,
        target_handle: str | None = None,
    ) -> Edge | None:
        # NULL handles never collide in a UNIQUE index, compare them explicitly
        result = await self.session.execute(
            select(Edge).where(
                Edge.source_node_id == source_node_id,
                Edge.target_node_id == target_node_id,
                Edge.source_handle.is_(None) if source_handle is None else Edge.source_handle == source_handle,
                Edge.target_handle.is_(None) if target_handle is None else Edge.target_handle == target_handle,
            )
        )
        return result.scalars().first()

    async def list_touching(self, node_id: str) -> list[Edge]:
        result = await self.session.execute(
            select(Edge).where(or_(Edge.source_node_id == node_id, Edge.target_node_id == node_id))
        )
        return list(result.scalars().all())

    async def delete(self, edge: Edge) -> None:
        await self.session.delete(edge)
        await self.session.commit()

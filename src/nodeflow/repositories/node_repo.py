"""Node repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from nodeflow.models.node import Node


class NodeRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Node:
        node = Node(**kwargs)
        self.session.add(node)
        await self.session.commit()
        await self.session.refresh(node)
        return node

    async def get_by_id(self, id: str) -> Node | None:
        result = await self.session.execute(select(Node).where(Node.id == id))
        return result.scalar_one_or_none()

    async def list_by_pipeline(self, pipeline_id: str) -> list[Node]:
        """Nodes in creation order."""
        result = await self.session.execute(
            select(Node)
            .where(Node.pipeline_id == pipeline_id)
            .order_by(Node.created_at, Node.id)
        )
        return list(result.scalars().all())

    async def update(self, node: Node, **kwargs) -> Node:
        for key, value in kwargs.items():
            if value is not None:
                setattr(node, key, value)
        await self.session.commit()
        await self.session.refresh(node)
        return node

    async def delete(self, node: Node) -> None:
        await self.session.delete(node)
        await self.session.commit()

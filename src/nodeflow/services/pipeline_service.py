"""Pipeline service — business logic for pipelines, their nodes and edges."""

from __future__ import annotations
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.dag.resolver import CycleError, DAGResolver
from nodeflow.engine.errors import InvalidDefinitionError, InvalidTransitionError, NotFoundError
from nodeflow.models.edge import Edge
from nodeflow.models.node import Node, NodeKind
from nodeflow.models.pipeline import Pipeline, PipelineStatus
from nodeflow.nodes.base import UnknownNodeTypeError
from nodeflow.nodes.registry import NodeTypeRegistry, default_registry
from nodeflow.repositories.edge_repo import EdgeRepository
from nodeflow.repositories.node_repo import NodeRepository
from nodeflow.repositories.node_result_repo import NodeResultRepository
from nodeflow.repositories.pipeline_repo import PipelineRepository

logger = logging.getLogger("nodeflow.pipelines")


class PipelineService:
    def __init__(self, session: AsyncSession, registry: NodeTypeRegistry | None = None):
        self.repo = PipelineRepository(session)
        self.nodes = NodeRepository(session)
        self.edges = EdgeRepository(session)
        self.results = NodeResultRepository(session)
        self.registry = registry or default_registry()

    # ─── Pipelines ───

    async def create(
        self, name: str, description: str | None = None, metadata: dict | None = None
    ) -> Pipeline:
        pipeline = await self.repo.create(name=name, description=description, metadata_=metadata or {})
        logger.info(f"Created pipeline '{name}' ({pipeline.id})")
        return pipeline

    async def get(self, pipeline_id: str) -> Pipeline:
        pipeline = await self.repo.get_by_id(pipeline_id)
        if pipeline is None:
            raise NotFoundError("Pipeline", pipeline_id)
        return pipeline

    async def list_all(self) -> list[Pipeline]:
        return await self.repo.list_all()

    async def update(
        self,
        pipeline_id: str,
        name: str | None = None,
        description: str | None = None,
        metadata: dict | None = None,
    ) -> Pipeline:
        pipeline = await self.get(pipeline_id)
        return await self.repo.update(pipeline, name=name, description=description, metadata_=metadata)

    async def publish(self, pipeline_id: str) -> Pipeline:
        pipeline = await self.get(pipeline_id)
        if pipeline.status == PipelineStatus.ARCHIVED.value:
            raise InvalidTransitionError("pipeline", "publish", pipeline.status)
        return await self.repo.update(pipeline, status=PipelineStatus.ACTIVE.value)

    async def archive(self, pipeline_id: str) -> Pipeline:
        pipeline = await self.get(pipeline_id)
        return await self.repo.update(pipeline, status=PipelineStatus.ARCHIVED.value)

    async def delete(self, pipeline_id: str) -> str:
        """Delete a pipeline, or archive it when runs still reference it.

        Returns ``"deleted"`` or ``"archived"``.
        """
        pipeline = await self.get(pipeline_id)
        if await self.repo.count_runs(pipeline.id):
            await self.repo.update(pipeline, status=PipelineStatus.ARCHIVED.value)
            logger.info(f"Pipeline {pipeline_id} has runs, archived instead of deleted")
            return "archived"
        await self.repo.delete(pipeline)
        logger.info(f"Deleted pipeline {pipeline_id}")
        return "deleted"

    # ─── Nodes ───

    def _check_config(self, node_type: str, config: dict | None) -> None:
        # condition/transform are declared kinds without an implementation yet
        if self.registry.has(node_type):
            self.registry.validate_config(node_type, config)

    async def get_node(self, node_id: str) -> Node:
        node = await self.nodes.get_by_id(node_id)
        if node is None:
            raise NotFoundError("Node", node_id)
        return node

    async def list_nodes(self, pipeline_id: str) -> list[Node]:
        await self.get(pipeline_id)
        return await self.nodes.list_by_pipeline(pipeline_id)

    async def add_node(
        self,
        pipeline_id: str,
        name: str,
        type: str,
        config: dict | None = None,
        position: dict | None = None,
        metadata: dict | None = None,
    ) -> Node:
        await self.get(pipeline_id)
        try:
            node_type = NodeKind(type).value
        except ValueError:
            raise UnknownNodeTypeError(str(type)) from None
        self._check_config(node_type, config)
        return await self.nodes.create(
            pipeline_id=pipeline_id,
            name=name,
            type=node_type,
            config=config or {},
            position=position or {"x": 0, "y": 0},
            metadata_=metadata or {},
        )

    async def update_node(
        self,
        node_id: str,
        name: str | None = None,
        config: dict | None = None,
        position: dict | None = None,
        metadata: dict | None = None,
    ) -> Node:
        node = await self.get_node(node_id)
        if config is not None:
            self._check_config(node.type, config)
        return await self.nodes.update(
            node, name=name, config=config, position=position, metadata_=metadata
        )

    async def remove_node(self, node_id: str) -> None:
        """Delete a node and its edges. Nodes that already ran are kept so
        their runs stay readable."""
        node = await self.get_node(node_id)
        if await self.results.count_for_node(node.id):
            raise InvalidDefinitionError(
                f"Node '{node.name}' has results in past runs and cannot be removed"
            )
        await self.nodes.delete(node)

    # ─── Edges ───

    async def list_edges(self, pipeline_id: str) -> list[Edge]:
        await self.get(pipeline_id)
        return await self.edges.list_by_pipeline(pipeline_id)

    async def add_edge(
        self,
        pipeline_id: str,
        source_node_id: str,
        target_node_id: str,
        source_handle: str | None = None,
        target_handle: str | None = None,
        metadata: dict | None = None,
    ) -> Edge:
        """Connect two nodes of a pipeline. Rejects self-loops, duplicates and cycles."""
        await self.get(pipeline_id)
        if source_node_id == target_node_id:
            raise InvalidDefinitionError("Source and target nodes must be different")

        source = await self.get_node(source_node_id)
        target = await self.get_node(target_node_id)
        if source.pipeline_id != pipeline_id or target.pipeline_id != pipeline_id:
            raise InvalidDefinitionError("Source and target nodes must belong to the same pipeline")

        if await self.edges.find(source_node_id, target_node_id, source_handle, target_handle):
            raise InvalidDefinitionError(
                f"Edge from '{source.name}' to '{target.name}' already exists"
            )

        nodes = await self.nodes.list_by_pipeline(pipeline_id)
        edges = await self.edges.list_by_pipeline(pipeline_id)
        dag = DAGResolver.from_edges([n.id for n in nodes], edges)
        cycle = dag.would_create_cycle(source_node_id, target_node_id)
        if cycle:
            names = {n.id: n.name for n in nodes}
            raise CycleError([names.get(node_id, node_id) for node_id in cycle])

        return await self.edges.create(
            pipeline_id=pipeline_id,
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            source_handle=source_handle,
            target_handle=target_handle,
            metadata_=metadata or {},
        )

    async def remove_edge(self, edge_id: str) -> None:
        edge = await self.edges.get_by_id(edge_id)
        if edge is None:
            raise NotFoundError("Edge", edge_id)
        await self.edges.delete(edge)

    async def graph(self, pipeline_id: str) -> tuple[Pipeline, list[Node], list[Edge], list[list[str]]]:
        """The pipeline's nodes, edges and parallel execution groups."""
        pipeline = await self.get(pipeline_id)
        nodes = await self.nodes.list_by_pipeline(pipeline_id)
        edges = await self.edges.list_by_pipeline(pipeline_id)
        groups = DAGResolver.from_edges([n.id for n in nodes], edges).parallel_groups()
        return pipeline, nodes, edges, groups

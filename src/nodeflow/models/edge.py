"""Edge model — a directed data dependency between two nodes."""

import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from nodeflow.core.database import Base
from nodeflow.models.pipeline import utcnow


class Edge(Base):
    """Defines a dependency in the pipeline DAG: source → target."""
    __tablename__ = "edges"
    __table_args__ = (
        UniqueConstraint(
            "source_node_id", "target_node_id", "source_handle", "target_handle",
            name="uq_edges_source_target_handles",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    pipeline_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pipelines.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_node_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("nodes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_node_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("nodes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_handle: Mapped[str | None] = mapped_column(String(100), nullable=True)  # multi-output nodes
    target_handle: Mapped[str | None] = mapped_column(String(100), nullable=True)  # multi-input nodes
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    pipeline: Mapped["Pipeline"] = relationship(back_populates="edges")


from nodeflow.models.pipeline import Pipeline  # noqa: E402

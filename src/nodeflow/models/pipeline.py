"""Pipeline SQLAlchemy models."""

import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Text, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from nodeflow.core.database import Base
import enum


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class PipelineStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class Pipeline(Base):
    """A named container of nodes and edges forming a DAG."""
    __tablename__ = "pipelines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=PipelineStatus.DRAFT.value, index=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    nodes: Mapped[list["Node"]] = relationship(
        back_populates="pipeline",
        cascade="all, delete-orphan",
        order_by="Node.created_at",
    )
    edges: Mapped[list["Edge"]] = relationship(
        back_populates="pipeline",
        cascade="all, delete-orphan",
        order_by="Edge.created_at",
    )
    runs: Mapped[list["PipelineRun"]] = relationship(
        back_populates="pipeline",
        cascade="all, delete-orphan",
    )


from nodeflow.models.node import Node  # noqa: E402
from nodeflow.models.edge import Edge  # noqa: E402
from nodeflow.models.run import PipelineRun  # noqa: E402

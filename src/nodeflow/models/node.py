"""Node model — a single typed step of a pipeline."""

import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from nodeflow.core.database import Base
from nodeflow.models.pipeline import utcnow
import enum


class NodeKind(str, enum.Enum):
    TEXT = "text"
    HTTP_REQUEST = "http_request"
    LLM = "llm"
    # Declared extension points without an implementation yet
    CONDITION = "condition"
    TRANSFORM = "transform"


class Node(Base):
    __tablename__ = "nodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    pipeline_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pipelines.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    config: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    position: Mapped[dict | None] = mapped_column(JSON, default=lambda: {"x": 0, "y": 0})
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    pipeline: Mapped["Pipeline"] = relationship(back_populates="nodes")


from nodeflow.models.pipeline import Pipeline  # noqa: E402

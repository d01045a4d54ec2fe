"""Node result model — the execution record of one node within one run."""

import uuid
from datetime import datetime
from sqlalchemy import String, Text, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from nodeflow.core.database import Base
from nodeflow.models.pipeline import utcnow
from nodeflow.models.run import duration_ms
import enum


class NodeResultStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_NODE_STATUSES = frozenset(
    {NodeResultStatus.COMPLETED.value, NodeResultStatus.FAILED.value, NodeResultStatus.SKIPPED.value}
)


class NodeResult(Base):
    __tablename__ = "node_results"
    __table_args__ = (
        UniqueConstraint("pipeline_run_id", "node_id", name="uq_node_results_run_node"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    pipeline_run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pipeline_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    node_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("nodes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), default=NodeResultStatus.PENDING.value, index=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    input_data: Mapped[dict | None] = mapped_column(JSON, default=dict)
    output_data: Mapped[dict | None] = mapped_column(JSON, default=dict)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)  # duration, retries, tokens
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_NODE_STATUSES

    @property
    def duration_ms(self) -> int | None:
        return duration_ms(self.started_at, self.completed_at)

    @property
    def retry_count(self) -> int:
        return (self.metadata_ or {}).get("retry_count", 0)

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.common import TimestampMixin, UUIDPrimaryKeyMixin


class JobRow(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "job_rows"
    __table_args__ = (UniqueConstraint("job_id", "row_index", name="uq_job_rows_job_id_row_index"),)

    job_id: Mapped[str] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="pending", nullable=False, index=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claim_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    text_model_id: Mapped[str] = mapped_column(String(128), nullable=False)
    image_model_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    post_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    media_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    input_data: Mapped[str] = mapped_column(Text, nullable=False)

    job = relationship("Job", back_populates="rows")

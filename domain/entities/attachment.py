"""Модель вложения (квитанции об оплате)."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base


class Attachment(Base):
    """Файл, уже сохранённый во внешнем хранилище; здесь только ссылка и метаданные."""

    __tablename__ = "attachments"

    id = Column(Integer, primary_key=True, index=True)
    coverage_id = Column(Integer, ForeignKey("coverages.id", ondelete="SET NULL"), nullable=True, index=True)
    uploaded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    url = Column(String(1024), nullable=False)
    original_name = Column(String(255), nullable=False)
    size = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    coverage = relationship("Coverage", back_populates="attachments")
    uploader = relationship("User", foreign_keys=[uploaded_by])

    def __repr__(self) -> str:
        return f"<Attachment(id={self.id}, coverage_id={self.coverage_id}, name='{self.original_name}')>"

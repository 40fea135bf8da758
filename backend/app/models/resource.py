import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class ResourceType(str, Enum):
    ROOM = "ROOM"
    VIRTUAL = "VIRTUAL"


class Resource(Base):
    __tablename__ = "resources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    branch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    resource_type: Mapped[ResourceType] = mapped_column(SAEnum(ResourceType, name="resource_type"), nullable=False)
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

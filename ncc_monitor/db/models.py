"""SQLAlchemy database models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class SearchType(str, Enum):
    """Which search sub-queries a scan issues."""
    ALL = "all"
    MARKETPLACE = "marketplace"
    GENERAL = "general"


class SourceType(str, Enum):
    """Which sub-query produced a result."""
    GENERAL = "general"
    MARKETPLACE = "marketplace"


class DetectionStatus(str, Enum):
    """User-driven detection lifecycle."""
    NEW = "new"
    PROCESSED = "processed"
    IGNORED = "ignored"


class ScanType(str, Enum):
    """Scan type recorded in the scan log."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    MARKETPLACE = "marketplace"


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TrackedSerial(Base):
    """NCC certification serial registered by a user for monitoring."""

    __tablename__ = "tracked_serials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    serial_number: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_scan_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_marketplace_scan_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Detection(Base):
    """URL found referencing a tracked serial."""

    __tablename__ = "detections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Cleanup on serial deletion is done by the storage adapter
    serial_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    source_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    page_title: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    snippet: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_type: Mapped[str] = mapped_column(
        String(16), default=SourceType.GENERAL.value, nullable=False
    )
    is_marketplace: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    shop_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    product_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    shop_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), default=DetectionStatus.NEW.value, nullable=False
    )
    detected_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("serial_id", "source_url", name="uq_detection_serial_url"),
    )

    # Owning serial, loaded with every detection for list views
    serial: Mapped[Optional["TrackedSerial"]] = relationship(
        "TrackedSerial",
        primaryjoin="foreign(Detection.serial_id) == TrackedSerial.id",
        lazy="joined",
        viewonly=True,
    )

    @property
    def serial_name(self) -> Optional[str]:
        return self.serial.name if self.serial is not None else None

    @property
    def serial_number(self) -> Optional[str]:
        return self.serial.serial_number if self.serial is not None else None


class ScanLog(Base):
    """One completed scan run for a serial."""

    __tablename__ = "scan_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    serial_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    scan_type: Mapped[str] = mapped_column(
        String(16), default=ScanType.MANUAL.value, nullable=False
    )
    results_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    new_detections: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    marketplace_detections: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

"""SQLAlchemy-backed storage adapter."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ncc_monitor.db.models import (
    Detection,
    DetectionStatus,
    ScanLog,
    TrackedSerial,
)
from ncc_monitor.db.session import create_engine, create_session_factory, init_models
from ncc_monitor.errors import DuplicateDetectionError, PersistenceError
from ncc_monitor.storage.base import DashboardStats, Storage

logger = logging.getLogger(__name__)


class DatabaseStorage(Storage):
    """Storage over an async SQLAlchemy engine (PostgreSQL via asyncpg or SQLite via aiosqlite)."""

    def __init__(self, database_url: str, engine: AsyncEngine | None = None):
        self.database_url = database_url
        self.engine = engine or create_engine(database_url)
        self._session_factory = create_session_factory(self.engine)

    async def initialize(self) -> None:
        try:
            await init_models(self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to initialize database: {e}") from e
        logger.info(f"Database storage ready ({self.engine.url.get_backend_name()})")

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Open a session, converting driver errors to PersistenceError."""
        async with self._session_factory() as db:
            try:
                yield db
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"Database operation failed: {e}")
                raise PersistenceError(str(e)) from e

    # Tracked serials

    async def create_serial(
        self, owner_id: int, name: str, serial_number: str, is_active: bool = True
    ) -> TrackedSerial:
        async with self._session() as db:
            serial = TrackedSerial(
                owner_id=owner_id,
                name=name,
                serial_number=serial_number,
                is_active=is_active,
            )
            db.add(serial)
            await db.commit()
            await db.refresh(serial)
            return serial

    async def get_serial(
        self, serial_id: int, owner_id: Optional[int] = None
    ) -> Optional[TrackedSerial]:
        async with self._session() as db:
            query = select(TrackedSerial).where(TrackedSerial.id == serial_id)
            if owner_id is not None:
                query = query.where(TrackedSerial.owner_id == owner_id)
            result = await db.execute(query)
            return result.scalar_one_or_none()

    async def list_serials(self, owner_id: int) -> list[TrackedSerial]:
        async with self._session() as db:
            query = (
                select(TrackedSerial)
                .where(TrackedSerial.owner_id == owner_id)
                .order_by(TrackedSerial.id)
            )
            result = await db.execute(query)
            return list(result.scalars().all())

    async def list_active_serials(self, owner_id: Optional[int] = None) -> list[TrackedSerial]:
        async with self._session() as db:
            query = (
                select(TrackedSerial)
                .where(TrackedSerial.is_active == True)  # noqa: E712
                .order_by(TrackedSerial.id)
            )
            if owner_id is not None:
                query = query.where(TrackedSerial.owner_id == owner_id)
            result = await db.execute(query)
            return list(result.scalars().all())

    async def update_serial(
        self, serial_id: int, owner_id: int, **fields
    ) -> Optional[TrackedSerial]:
        async with self._session() as db:
            result = await db.execute(
                select(TrackedSerial).where(
                    TrackedSerial.id == serial_id,
                    TrackedSerial.owner_id == owner_id,
                )
            )
            serial = result.scalar_one_or_none()
            if serial is None:
                return None
            for key, value in fields.items():
                setattr(serial, key, value)
            serial.updated_at = datetime.utcnow()
            await db.commit()
            await db.refresh(serial)
            return serial

    async def delete_serial(self, serial_id: int, owner_id: int) -> bool:
        async with self._session() as db:
            result = await db.execute(
                select(TrackedSerial.id).where(
                    TrackedSerial.id == serial_id,
                    TrackedSerial.owner_id == owner_id,
                )
            )
            if result.scalar_one_or_none() is None:
                return False

            await db.execute(delete(Detection).where(Detection.serial_id == serial_id))
            await db.execute(delete(ScanLog).where(ScanLog.serial_id == serial_id))
            await db.execute(delete(TrackedSerial).where(TrackedSerial.id == serial_id))
            await db.commit()
            return True

    async def mark_serial_scanned(
        self, serial_id: int, general: bool, marketplace: bool, scanned_at: datetime
    ) -> None:
        values = {"updated_at": scanned_at}
        if general:
            values["last_scan_at"] = scanned_at
        if marketplace:
            values["last_marketplace_scan_at"] = scanned_at

        async with self._session() as db:
            await db.execute(
                update(TrackedSerial).where(TrackedSerial.id == serial_id).values(**values)
            )
            await db.commit()

    # Detections

    async def detection_exists(self, serial_id: int, source_url: str) -> bool:
        async with self._session() as db:
            result = await db.execute(
                select(Detection.id)
                .where(Detection.serial_id == serial_id, Detection.source_url == source_url)
                .limit(1)
            )
            return result.first() is not None

    async def create_detection(
        self,
        *,
        serial_id: int,
        source_url: str,
        page_title: Optional[str],
        snippet: Optional[str],
        source_type: str,
        is_marketplace: bool,
        shop_id: Optional[str] = None,
        product_id: Optional[str] = None,
        shop_name: Optional[str] = None,
    ) -> int:
        async with self._session() as db:
            detection = Detection(
                serial_id=serial_id,
                source_url=source_url,
                page_title=page_title,
                snippet=snippet,
                source_type=source_type,
                is_marketplace=is_marketplace,
                shop_id=shop_id,
                product_id=product_id,
                shop_name=shop_name,
                status=DetectionStatus.NEW.value,
            )
            db.add(detection)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                integrity_error = e
            else:
                return detection.id

        # Only the (serial_id, source_url) key means "already recorded"
        if await self.detection_exists(serial_id, source_url):
            raise DuplicateDetectionError(serial_id, source_url) from integrity_error
        logger.error(f"Detection insert rejected for serial {serial_id}: {integrity_error}")
        raise PersistenceError(str(integrity_error)) from integrity_error

    async def get_detection(self, detection_id: int) -> Optional[Detection]:
        async with self._session() as db:
            return await db.get(Detection, detection_id)

    async def list_detections(
        self,
        owner_id: int,
        is_marketplace: Optional[bool] = None,
        source_type: Optional[str] = None,
    ) -> list[Detection]:
        query = (
            select(Detection)
            .join(TrackedSerial, Detection.serial_id == TrackedSerial.id)
            .where(TrackedSerial.owner_id == owner_id)
        )
        if is_marketplace is not None:
            query = query.where(Detection.is_marketplace == is_marketplace)
        if source_type is not None:
            query = query.where(Detection.source_type == source_type)
        query = query.order_by(Detection.detected_at.desc(), Detection.id.desc())

        async with self._session() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def list_detections_by_serial(self, serial_id: int) -> list[Detection]:
        async with self._session() as db:
            result = await db.execute(
                select(Detection)
                .where(Detection.serial_id == serial_id)
                .order_by(Detection.detected_at.desc(), Detection.id.desc())
            )
            return list(result.scalars().all())

    async def update_detection_status(self, detection_id: int, status: str) -> bool:
        async with self._session() as db:
            result = await db.execute(
                update(Detection).where(Detection.id == detection_id).values(status=status)
            )
            await db.commit()
            return result.rowcount > 0

    async def count_new_detections(self, owner_id: int) -> int:
        async with self._session() as db:
            result = await db.execute(
                select(func.count(Detection.id))
                .join(TrackedSerial, Detection.serial_id == TrackedSerial.id)
                .where(
                    TrackedSerial.owner_id == owner_id,
                    Detection.status == DetectionStatus.NEW.value,
                )
            )
            return result.scalar() or 0

    # Scan logs

    async def create_scan_log(
        self,
        *,
        serial_id: int,
        scan_type: str,
        results_count: int,
        new_detections: int,
        marketplace_detections: int,
    ) -> int:
        async with self._session() as db:
            log = ScanLog(
                serial_id=serial_id,
                scan_type=scan_type,
                results_count=results_count,
                new_detections=new_detections,
                marketplace_detections=marketplace_detections,
            )
            db.add(log)
            await db.commit()
            return log.id

    async def recent_scan_logs(self, serial_id: int, limit: int = 10) -> list[ScanLog]:
        async with self._session() as db:
            result = await db.execute(
                select(ScanLog)
                .where(ScanLog.serial_id == serial_id)
                .order_by(ScanLog.completed_at.desc(), ScanLog.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def dashboard_stats(self, owner_id: int) -> DashboardStats:
        is_new = Detection.status == DetectionStatus.NEW.value
        async with self._session() as db:
            serial_row = (
                await db.execute(
                    select(
                        func.count(TrackedSerial.id),
                        func.sum(case((TrackedSerial.is_active == True, 1), else_=0)),  # noqa: E712
                    ).where(TrackedSerial.owner_id == owner_id)
                )
            ).one()

            detection_row = (
                await db.execute(
                    select(
                        func.count(Detection.id),
                        func.sum(case((is_new, 1), else_=0)),
                        func.sum(case((Detection.is_marketplace == True, 1), else_=0)),  # noqa: E712
                        func.sum(
                            case(((Detection.is_marketplace == True) & is_new, 1), else_=0)  # noqa: E712
                        ),
                    )
                    .join(TrackedSerial, Detection.serial_id == TrackedSerial.id)
                    .where(TrackedSerial.owner_id == owner_id)
                )
            ).one()

        return DashboardStats(
            total_serials=serial_row[0] or 0,
            active_serials=int(serial_row[1] or 0),
            total_detections=detection_row[0] or 0,
            new_detections=int(detection_row[1] or 0),
            marketplace_detections=int(detection_row[2] or 0),
            new_marketplace_detections=int(detection_row[3] or 0),
        )

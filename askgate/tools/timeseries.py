"""
Time-series lookup tool backed by a relational database.

This is the router's default tool: any tool name without a dedicated
executor is treated as the name of a KPI series. The model supplies the
``ini`` and ``end`` bounds as RFC 3339 timestamps and the tool renders every
point of the series inside that window, oldest first.

Storage uses SQLAlchemy's async engine, so any async driver works; the
default URL points at a local SQLite file through aiosqlite.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import Column, DateTime, Float, Integer, String, make_url, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from askgate.config.logging import get_logger
from askgate.tools.base import Tool, ToolError

logger = get_logger(__name__)

RFC3339 = "%Y-%m-%dT%H:%M:%S%z"
RFC3339_NANO = "%Y-%m-%dT%H:%M:%S.%f%z"
RENDER_DATE = "%d-%m-%Y"

# strptime's %f accepts at most 6 digits; nanosecond input is truncated
_FRACTION = re.compile(r"(\.\d{6})\d+")


class Base(DeclarativeBase):
    pass


class KpiPoint(Base):
    """One observation of a named series."""

    __tablename__ = "kpis"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kpi = Column(String, nullable=False, index=True)
    # Naive UTC
    dt = Column(DateTime, nullable=False, index=True)
    value = Column(Float, nullable=False)


def parse_timestamp(text: str) -> datetime:
    """
    Parse an RFC 3339 timestamp into a naive UTC datetime.

    Second precision is tried first, then fractional seconds.

    Raises:
        ToolError: If neither format matches
    """
    try:
        parsed = datetime.strptime(text, RFC3339)
    except ValueError:
        try:
            parsed = datetime.strptime(_FRACTION.sub(r"\1", text), RFC3339_NANO)
        except ValueError as e:
            raise ToolError(f"Invalid timestamp {text!r}: expected RFC 3339") from e
    return parsed.astimezone(UTC).replace(tzinfo=None)


def format_value(value: float) -> str:
    """Render a number without a trailing ``.0`` for whole values."""
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


class TimeSeriesStore:
    """
    Owns the async engine and the ``kpis`` table.

    Args:
        database_url: SQLAlchemy async URL, e.g. ``sqlite+aiosqlite:///data/tools.db``
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    async def initialize(self) -> None:
        """Create the engine and the table if it does not exist."""
        logger.info(f"Opening time-series database {self.database_url}")
        try:
            url = make_url(self.database_url)
            if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)

            self._engine = create_async_engine(self.database_url)
            self._sessions = async_sessionmaker(
                bind=self._engine, class_=AsyncSession, expire_on_commit=False
            )
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to open time-series database: {e}")
            raise RuntimeError(f"Could not open time-series database: {e}") from e

    def session(self) -> AsyncSession:
        if self._sessions is None:
            raise RuntimeError(
                "Time-series store not initialized. "
                "Use 'async with TimeSeriesStore(...) as store:' or call await store.initialize()"
            )
        return self._sessions()

    async def add_point(self, kpi: str, timestamp: str, value: float) -> None:
        """Insert one observation; ``timestamp`` is RFC 3339."""
        point = KpiPoint(kpi=kpi, dt=parse_timestamp(timestamp), value=value)
        async with self.session() as session:
            session.add(point)
            await session.commit()
        logger.debug(f"Added {kpi}={value} at {point.dt.isoformat()}")

    async def points(self, kpi: str, ini: datetime, end: datetime) -> list[tuple[datetime, float]]:
        """Observations of ``kpi`` with ``ini <= dt <= end`` ordered by time."""
        stmt = (
            select(KpiPoint.dt, KpiPoint.value)
            .where(KpiPoint.kpi == kpi, KpiPoint.dt >= ini, KpiPoint.dt <= end)
            .order_by(KpiPoint.dt)
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            return [(row.dt, row.value) for row in result]

    async def shutdown(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessions = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
        return False


class TimeSeriesTool(Tool):
    """Renders a series window as ``Values for <kpi> by date: DD-MM-YYYY: v, ...``."""

    name = "timeseries"

    def __init__(self, store: TimeSeriesStore):
        self.store = store

    async def query(self, params: dict[str, str]) -> str:
        kpi = params.get("tool", "")
        ini = parse_timestamp(params.get("ini", ""))
        end = parse_timestamp(params.get("end", ""))

        logger.debug(f"Reading series '{kpi}' from {ini.isoformat()} to {end.isoformat()}")

        try:
            rows = await self.store.points(kpi, ini, end)
        except SQLAlchemyError as e:
            raise ToolError(f"Time-series query for '{kpi}' failed: {e}") from e

        values = ", ".join(f"{dt.strftime(RENDER_DATE)}: {format_value(value)}" for dt, value in rows)
        return f"Values for {kpi} by date: {values}"

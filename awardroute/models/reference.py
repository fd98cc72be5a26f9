import uuid

from sqlalchemy import Float, Integer, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from awardroute.database import Base


class Airport(Base):
    __tablename__ = "airports"

    iata: Mapped[str] = mapped_column(String(3), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(255))
    city_name: Mapped[str | None] = mapped_column(String(255))
    country: Mapped[str | None] = mapped_column(String(100))
    country_code: Mapped[str | None] = mapped_column(String(2))
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    region: Mapped[str] = mapped_column(String(50), nullable=False, index=True)


class BackbonePath(Base):
    """Precomputed multi-carrier routing between two airports, up to two hubs."""

    __tablename__ = "path"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type: Mapped[str | None] = mapped_column(String(20))
    origin: Mapped[str] = mapped_column(String(3), nullable=False)
    destination: Mapped[str] = mapped_column(String(3), nullable=False)
    h1: Mapped[str | None] = mapped_column(String(3))
    h2: Mapped[str | None] = mapped_column(String(3))
    origin_region: Mapped[str] = mapped_column("originRegion", String(50), nullable=False, index=True)
    destination_region: Mapped[str] = mapped_column("destinationRegion", String(50), nullable=False, index=True)
    alliance: Mapped[str] = mapped_column(String(50), nullable=False)
    total_distance: Mapped[float] = mapped_column("totalDistance", Float, nullable=False)
    direct_distance: Mapped[float | None] = mapped_column("directDistance", Float)


class FeederRoute(Base):
    """Single-alliance connector between two airports (intra-region route)."""

    __tablename__ = "intra_routes"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    origin: Mapped[str] = mapped_column("Origin", String(3), nullable=False, index=True)
    destination: Mapped[str] = mapped_column("Destination", String(3), nullable=False, index=True)
    distance: Mapped[float] = mapped_column("Distance", Float, nullable=False)
    alliance: Mapped[str] = mapped_column("Alliance", String(50), nullable=False)


class ReliabilityRule(Base):
    __tablename__ = "reliability"

    code: Mapped[str] = mapped_column(String(3), primary_key=True)
    min_count: Mapped[int] = mapped_column(Integer, default=1)
    exemption: Mapped[str | None] = mapped_column(String(4))
    ffp_program: Mapped[list | None] = mapped_column(JSONB, default=list)

"""Domain records shared by the route finder, composer and projection engine."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cached_property
from typing import Any, Iterable

CABINS = ("Y", "W", "J", "F")


def parse_timestamp(value: str) -> datetime:
    """Parse a provider timestamp; naive values are treated as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_alliance_tuple(value: str | Iterable[str] | None) -> tuple[str, ...]:
    """Normalize an alliance column (single code, comma list or sequence) to a tuple."""
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return tuple(v for v in value if v)


@dataclass(frozen=True)
class Airport:
    iata: str
    latitude: float
    longitude: float
    region: str
    name: str | None = None


@dataclass(frozen=True)
class BackbonePath:
    origin: str
    destination: str
    h1: str | None
    h2: str | None
    alliances: tuple[str, ...]
    total_distance: float
    origin_region: str | None = None
    destination_region: str | None = None


@dataclass(frozen=True)
class FeederRoute:
    origin: str
    destination: str
    alliances: tuple[str, ...]
    distance: float


@dataclass(frozen=True)
class ReliabilityRule:
    code: str
    min_count: int = 1
    exemption: str = ""
    ffp_programs: tuple[str, ...] = ()

    def threshold(self, cabin: str) -> int:
        """Seat count a cabin needs to be bookable through normal channels."""
        return 1 if cabin.upper() in self.exemption.upper() else self.min_count

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "min_count": self.min_count,
            "exemption": self.exemption,
            "ffp_program": list(self.ffp_programs),
        }


@dataclass(frozen=True)
class AvailabilityFlight:
    flight_number: str
    total_duration: int
    aircraft: str
    departs_at: str
    arrives_at: str
    y_count: int = 0
    w_count: int = 0
    j_count: int = 0
    f_count: int = 0
    distance: float | None = None

    @cached_property
    def fingerprint(self) -> str:
        key = f"{self.flight_number}|{self.departs_at}|{self.arrives_at}"
        return hashlib.md5(key.encode()).hexdigest()

    @cached_property
    def departure(self) -> datetime:
        return parse_timestamp(self.departs_at)

    @cached_property
    def arrival(self) -> datetime:
        return parse_timestamp(self.arrives_at)

    @property
    def carrier(self) -> str:
        return self.flight_number[:2].upper()

    def seats(self, cabin: str) -> int:
        return {
            "Y": self.y_count,
            "W": self.w_count,
            "J": self.j_count,
            "F": self.f_count,
        }[cabin.upper()]

    def to_dict(self) -> dict:
        return {
            "flight_number": self.flight_number,
            "total_duration": self.total_duration,
            "aircraft": self.aircraft,
            "departs_at": self.departs_at,
            "arrives_at": self.arrives_at,
            "y_count": self.y_count,
            "w_count": self.w_count,
            "j_count": self.j_count,
            "f_count": self.f_count,
            "distance": self.distance,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AvailabilityFlight":
        return cls(
            flight_number=data["flight_number"],
            total_duration=int(data.get("total_duration") or 0),
            aircraft=data.get("aircraft") or "",
            departs_at=data["departs_at"],
            arrives_at=data["arrives_at"],
            y_count=int(data.get("y_count") or 0),
            w_count=int(data.get("w_count") or 0),
            j_count=int(data.get("j_count") or 0),
            f_count=int(data.get("f_count") or 0),
            distance=data.get("distance"),
        )


@dataclass
class AvailabilityGroup:
    origin: str
    destination: str
    date: str
    alliance: str
    flights: list[AvailabilityFlight] = field(default_factory=list)

    @property
    def segment_key(self) -> str:
        return f"{self.origin}-{self.destination}"

    def to_dict(self) -> dict:
        return {
            "origin": self.origin,
            "destination": self.destination,
            "date": self.date,
            "alliance": self.alliance,
            "flights": [f.to_dict() for f in self.flights],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AvailabilityGroup":
        return cls(
            origin=data["origin"],
            destination=data["destination"],
            date=data["date"],
            alliance=data["alliance"],
            flights=[AvailabilityFlight.from_dict(f) for f in data.get("flights", [])],
        )

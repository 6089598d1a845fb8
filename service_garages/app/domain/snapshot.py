"""
Garage availability snapshot model.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from service_garages.app.etag import fingerprint


@dataclass(frozen=True)
class Garage:
    """A single garage with its current availability."""

    id: str
    name: str
    lat: float
    lng: float
    capacity: int
    free: int
    address: str
    type: str = "garage"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize in wire key order; the ETag depends on it."""
        return {
            "id": self.id,
            "name": self.name,
            "lat": self.lat,
            "lng": self.lng,
            "capacity": self.capacity,
            "free": self.free,
            "address": self.address,
            "type": self.type,
        }


@dataclass(frozen=True)
class CacheEntry:
    """A snapshot body paired with the ETag computed from it."""

    etag: str
    body: Dict[str, Any]

    @classmethod
    def for_body(cls, body: Dict[str, Any]) -> "CacheEntry":
        """Build an entry whose ETag is derived from ``body``."""
        return cls(etag=fingerprint(body), body=body)

    def to_dict(self) -> Dict[str, Any]:
        return {"etag": self.etag, "body": self.body}

    @classmethod
    def from_dict(cls, payload: Any) -> Optional["CacheEntry"]:
        """Rehydrate a stored entry, or None when the payload is not one."""
        if not isinstance(payload, dict):
            return None
        etag = payload.get("etag")
        body = payload.get("body")
        if not isinstance(etag, str) or not etag or body is None:
            return None
        return cls(etag=etag, body=body)


DEMO_GARAGES = (
    Garage(
        id="obilicev-venac",
        name="Obilićev venac",
        lat=44.81725,
        lng=20.45593,
        capacity=804,
        free=42,
        address="Obilićev venac 14-16",
    ),
    Garage(
        id="masarikova",
        name="Masarikova",
        lat=44.80771,
        lng=20.46202,
        capacity=457,
        free=18,
        address="Masarikova 4",
    ),
    Garage(
        id="zeleni-venac",
        name="Zeleni venac",
        lat=44.81484,
        lng=20.45527,
        capacity=320,
        free=5,
        address="Brankova 4",
    ),
    Garage(
        id="pinki",
        name="Pinki (Novi Beograd)",
        lat=44.8212,
        lng=20.3972,
        capacity=150,
        free=27,
        address="Bul. Zorana Đinđića 12",
    ),
)


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as UTC ISO-8601 with milliseconds and a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_snapshot(garages: List[Any], updated_at: datetime) -> Dict[str, Any]:
    """Assemble a snapshot body with ``updatedAt`` first, then ``garages``."""
    return {"updatedAt": format_timestamp(updated_at), "garages": list(garages)}


def build_demo_snapshot(updated_at: datetime) -> Dict[str, Any]:
    """The fixed demo snapshot served when no upstream is configured."""
    return build_snapshot([garage.to_dict() for garage in DEMO_GARAGES], updated_at)


def normalize_snapshot(raw: Any, updated_at: datetime) -> Dict[str, Any]:
    """
    Coerce an upstream body into snapshot shape.

    A mapping that already carries a truthy ``updatedAt`` and a ``garages``
    value other than null, false, 0 or "" is returned as-is; an empty list
    still counts as present. A bare list becomes the garage list. Anything
    else yields an empty garage list. Wrapped results are stamped with
    ``updated_at``.
    """
    if isinstance(raw, dict) and raw.get("updatedAt") and raw.get("garages") not in (None, False, 0, ""):
        return raw

    garages = raw if isinstance(raw, list) else []
    return build_snapshot(garages, updated_at)

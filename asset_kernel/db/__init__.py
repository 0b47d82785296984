"""Database layer: declarative base, engine/session management, immutability."""

from asset_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString

__all__ = ["Base", "TrackedBase", "UTCDateTime", "UUIDString"]

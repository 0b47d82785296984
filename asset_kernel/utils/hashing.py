"""
Deterministic hashing utilities.

Audit hash-chaining depends on byte-identical serialization of the same
logical payload, so every hash in the kernel goes through
``canonicalize_json``.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS_MARKER = "GENESIS"


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # Trailing zeros removed so 100.00 and 100 hash alike
        return format(obj.normalize(), "f")
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys sorted, no whitespace, Decimal/datetime/UUID/Enum rendered as
    strings.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict | None) -> str:
    """Hex SHA-256 of the canonical JSON of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_record(
    entity_type: str,
    entity_id: str,
    entity_seq: int,
    action: str,
    payload_hash: str,
    prev_checksum: str | None,
) -> str:
    """
    Checksum of one audit row.

    Covers the row's identifying fields, its payload hash, and the
    checksum of the previous row for the same entity (or GENESIS for the
    first row), forming a per-entity tamper-evident chain.
    """
    data = "|".join(
        [
            entity_type,
            str(entity_id),
            str(entity_seq),
            action,
            payload_hash,
            prev_checksum or GENESIS_MARKER,
        ]
    )
    return hashlib.sha256(data.encode("utf-8")).hexdigest()

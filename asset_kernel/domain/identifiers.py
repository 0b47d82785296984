"""
Identifier formats and allocation outcomes.

Pure half of the IdentifierAllocator: how a base code is derived from
free text, how each kind renders attempt N, and the tagged outcome of a
single attempt. Uniqueness itself is decided by the store (see
``asset_kernel.services.identifier_allocator``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from asset_kernel.domain.enums import IdentifierKind

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")

T = TypeVar("T")


def derive_base(text: str | None, length: int = 6, pad_char: str = "0") -> str:
    """
    First ``length`` alphanumerics of ``text``, upper-cased, right-padded.

    >>> derive_base("Acme Corp.")
    'ACMECO'
    >>> derive_base("X-1")
    'X10000'
    """
    cleaned = _NON_ALNUM.sub("", text or "").upper()
    return cleaned[:length].ljust(length, pad_char)


@dataclass(frozen=True)
class IdentifierFormat:
    """
    How codes of one kind are spelled.

    Attempt 0 of an unsuffixed kind is the bare prefix; every other attempt
    appends the attempt number, zero-padded to ``suffix_width``.
    """
    kind: IdentifierKind
    suffix_width: int = 0
    unsuffixed_first: bool = False

    def render(self, prefix: str, attempt: int) -> str:
        if attempt == 0 and self.unsuffixed_first:
            return prefix
        if self.suffix_width:
            return f"{prefix}{attempt:0{self.suffix_width}d}"
        return f"{prefix}{attempt}"


def asset_number_prefix(category: str | None, year: int) -> str:
    category_code = _NON_ALNUM.sub("", category or "").upper()[:3] or "AST"
    return f"{category_code}-{year}-"


def work_order_prefix(year: int) -> str:
    return f"WO-{year}-"


# -----------------------------------------------------------------------------
# Outcomes
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Allocated(Generic[T]):
    code: str
    entity: T
    attempts: int


@dataclass(frozen=True)
class Conflict:
    code: str


@dataclass(frozen=True)
class Exhausted:
    kind: IdentifierKind
    prefix: str
    attempts: int


AllocationOutcome = Allocated[Any] | Conflict | Exhausted

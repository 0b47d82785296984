"""
DepreciationEngine (``asset_kernel.domain.depreciation``).

Responsibility
--------------
Compute an asset's accumulated depreciation and book value as of a point
in time, for straight-line, declining-balance and units-of-production
methods.

Architecture position
---------------------
**Kernel > Domain** -- pure. No I/O, no session, no clock: "now" is always
an argument. Safe to call concurrently for different assets.

Invariants enforced
-------------------
* All money is ``Decimal``; never ``float``.
* ``accumulated + book_value == purchase_cost`` exactly.
* ``salvage_value <= book_value <= purchase_cost``.
* Accumulated depreciation is non-decreasing in ``as_of``.
* A disposed asset is frozen at its disposal date.

Failure modes
-------------
* ``InvalidDepreciationInputError`` -- missing/non-positive useful life,
  missing purchase cost or date, negative amounts, salvage above cost,
  disposed asset without a disposal date.
* ``InsufficientUsageDataError`` -- units-of-production without usage
  data or expected-units capacity.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from asset_kernel.domain.enums import AssetStatus, DepreciationMethod
from asset_kernel.exceptions import (
    InsufficientUsageDataError,
    InvalidDepreciationInputError,
)

_ZERO = Decimal("0")
_SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class DepreciationBasis:
    """The subset of an asset the engine reads."""
    purchase_cost: Decimal | None
    purchase_date: date | None
    useful_life_years: Decimal | None
    salvage_value: Decimal = _ZERO
    depreciation_method: DepreciationMethod = DepreciationMethod.STRAIGHT_LINE
    status: AssetStatus = AssetStatus.ACTIVE
    disposal_date: date | None = None
    units_to_date: Decimal | None = None
    total_expected_units: Decimal | None = None
    asset_id: UUID | None = None

    @classmethod
    def from_asset(cls, asset: Any) -> "DepreciationBasis":
        """Build from anything shaped like an asset (ORM row, record DTO)."""
        if isinstance(asset, cls):
            return asset
        method = getattr(asset, "depreciation_method", None) or DepreciationMethod.STRAIGHT_LINE
        status = getattr(asset, "status", None) or AssetStatus.ACTIVE
        life = getattr(asset, "useful_life_years", None)
        return cls(
            purchase_cost=getattr(asset, "purchase_cost", None),
            purchase_date=getattr(asset, "purchase_date", None),
            useful_life_years=Decimal(str(life)) if life is not None else None,
            salvage_value=getattr(asset, "salvage_value", None) or _ZERO,
            depreciation_method=DepreciationMethod(method),
            status=AssetStatus(status),
            disposal_date=getattr(asset, "disposal_date", None),
            units_to_date=getattr(asset, "units_to_date", None),
            total_expected_units=getattr(asset, "total_expected_units", None),
            asset_id=getattr(asset, "id", None),
        )


@dataclass(frozen=True)
class DepreciationResult:
    accumulated_depreciation: Decimal
    book_value: Decimal
    as_of: datetime
    method: DepreciationMethod
    elapsed_years: Decimal
    fully_depreciated: bool


def _as_utc_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class DepreciationEngine:
    """
    Pure depreciation calculator.

    Args:
        days_per_year: Denominator for fractional elapsed years.
        declining_balance_factor: 2 gives double-declining balance.
        quantum: Rounding step for accumulated depreciation.
    """

    def __init__(
        self,
        days_per_year: int = 365,
        declining_balance_factor: Decimal = Decimal("2"),
        quantum: Decimal = Decimal("0.01"),
    ):
        self._seconds_per_year = Decimal(days_per_year * _SECONDS_PER_DAY)
        self._factor = Decimal(declining_balance_factor)
        self._quantum = Decimal(quantum)

    def compute_as_of(self, asset: Any, as_of: date | datetime) -> DepreciationResult:
        """
        Accumulated depreciation and book value at ``as_of``.

        ``as_of`` may be a date (midnight UTC) or a datetime; elapsed time
        is measured to the second and divided by ``days_per_year`` days.
        """
        basis = DepreciationBasis.from_asset(asset)
        cost, salvage, life = self._validate(basis)
        method = basis.depreciation_method

        effective = _as_utc_datetime(as_of)
        if basis.status is AssetStatus.DISPOSED:
            if basis.disposal_date is None:
                raise InvalidDepreciationInputError(
                    _id(basis), "disposal_date", "disposed asset has no disposal date"
                )
            effective = min(effective, _as_utc_datetime(basis.disposal_date))

        start = _as_utc_datetime(basis.purchase_date)
        seconds = Decimal(int((effective - start).total_seconds()))
        elapsed = seconds / self._seconds_per_year if seconds > 0 else _ZERO
        depreciable = cost - salvage

        if elapsed <= 0:
            raw = _ZERO
        elif method is DepreciationMethod.STRAIGHT_LINE:
            raw = self._straight_line(depreciable, life, elapsed)
        elif method is DepreciationMethod.DECLINING_BALANCE:
            raw = self._declining_balance(cost, salvage, life, elapsed)
        else:
            raw = self._units_of_production(basis, depreciable)

        accumulated = raw.quantize(self._quantum, rounding=ROUND_HALF_UP)
        accumulated = max(_ZERO, min(accumulated, depreciable))
        return DepreciationResult(
            accumulated_depreciation=accumulated,
            book_value=cost - accumulated,
            as_of=effective,
            method=method,
            elapsed_years=elapsed,
            fully_depreciated=accumulated == depreciable,
        )

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    @staticmethod
    def _straight_line(depreciable: Decimal, life: Decimal, elapsed: Decimal) -> Decimal:
        annual = depreciable / life
        return min(annual * elapsed, depreciable)

    def _declining_balance(
        self,
        cost: Decimal,
        salvage: Decimal,
        life: Decimal,
        elapsed: Decimal,
    ) -> Decimal:
        rate = self._factor / life
        book = cost
        full_years = int(elapsed)
        for _ in range(full_years):
            charge = min(book * rate, book - salvage)
            book -= charge
            if book <= salvage:
                return cost - salvage

        fraction = elapsed - full_years
        if fraction > 0:
            book -= min(book * rate * fraction, book - salvage)
        return cost - book

    @staticmethod
    def _units_of_production(basis: DepreciationBasis, depreciable: Decimal) -> Decimal:
        if basis.units_to_date is None:
            raise InsufficientUsageDataError(_id(basis), "units_to_date")
        if basis.total_expected_units is None or basis.total_expected_units <= 0:
            raise InsufficientUsageDataError(_id(basis), "total_expected_units")
        if basis.units_to_date < 0:
            raise InvalidDepreciationInputError(
                _id(basis), "units_to_date", "must not be negative"
            )
        ratio = Decimal(basis.units_to_date) / Decimal(basis.total_expected_units)
        return min(depreciable * ratio, depreciable)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(basis: DepreciationBasis) -> tuple[Decimal, Decimal, Decimal]:
        asset_id = _id(basis)
        if basis.useful_life_years is None:
            raise InvalidDepreciationInputError(asset_id, "useful_life_years", "missing")
        if basis.useful_life_years <= 0:
            raise InvalidDepreciationInputError(
                asset_id, "useful_life_years", "must be positive"
            )
        if basis.purchase_cost is None:
            raise InvalidDepreciationInputError(asset_id, "purchase_cost", "missing")
        if basis.purchase_date is None:
            raise InvalidDepreciationInputError(asset_id, "purchase_date", "missing")
        cost = Decimal(basis.purchase_cost)
        salvage = Decimal(basis.salvage_value or 0)
        if cost < 0:
            raise InvalidDepreciationInputError(asset_id, "purchase_cost", "must not be negative")
        if salvage < 0:
            raise InvalidDepreciationInputError(asset_id, "salvage_value", "must not be negative")
        if salvage > cost:
            raise InvalidDepreciationInputError(
                asset_id, "salvage_value", "must not exceed purchase cost"
            )
        return cost, salvage, Decimal(basis.useful_life_years)


def _id(basis: DepreciationBasis) -> str | None:
    return str(basis.asset_id) if basis.asset_id is not None else None

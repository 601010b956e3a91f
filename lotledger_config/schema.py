"""
ReportSettings schema.

The typed, frozen form of a settings YAML file.  Defaults mirror
``defaults.yaml`` so that code constructing settings directly (tests,
embedding applications) gets the same behaviour as the packaged file.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from lotledger_kernel.domain.values import MONEY_TOLERANCE, QUANTITY_TOLERANCE


@dataclass(frozen=True)
class ReportSettings:
    """
    Tunables shared by every report.

    Contract:
        ``aging_bucket_bounds`` lists the inclusive upper bound (in days) of
        every bounded bucket; one unbounded bucket is appended after the
        last bound.  ``(30, 60, 90)`` yields 0-30, 31-60, 61-90, 90+.
        Documents of ``system_supplier_id`` stay out of supplier aging
        and balances; ``None`` turns the exclusion off.
    Guarantees:
        - Bounds are positive, unique and ascending.
        - Tolerances are non-negative.
        - ``expiry_horizon_days`` is non-negative.
    """

    aging_bucket_bounds: tuple[int, ...] = (30, 60, 90)
    settlement_tolerance: Decimal = MONEY_TOLERANCE
    quantity_tolerance: Decimal = QUANTITY_TOLERANCE
    expiry_horizon_days: int = 30
    unknown_name: str = "Unknown"
    initial_balance_label: str = "Initial balance"
    raise_on_shortfall: bool = False
    max_workers: int = 2
    system_supplier_id: str | None = "SYSTEM"

    def __post_init__(self) -> None:
        bounds = tuple(self.aging_bucket_bounds)
        object.__setattr__(self, "aging_bucket_bounds", bounds)
        if not bounds:
            raise ValueError("aging_bucket_bounds cannot be empty")
        if list(bounds) != sorted(bounds):
            raise ValueError("aging_bucket_bounds must be sorted ascending")
        if len(bounds) != len(set(bounds)):
            raise ValueError("aging_bucket_bounds must be unique")
        if any(b <= 0 for b in bounds):
            raise ValueError("aging_bucket_bounds must contain positive values")

        for name in ("settlement_tolerance", "quantity_tolerance"):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                value = Decimal(str(value))
                object.__setattr__(self, name, value)
            if value < 0:
                raise ValueError(f"{name} cannot be negative")

        if self.expiry_horizon_days < 0:
            raise ValueError("expiry_horizon_days cannot be negative")
        if not self.unknown_name.strip():
            raise ValueError("unknown_name cannot be empty")
        if self.system_supplier_id is not None and (
            not isinstance(self.system_supplier_id, str) or not self.system_supplier_id.strip()
        ):
            raise ValueError("system_supplier_id cannot be blank; use null to disable it")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

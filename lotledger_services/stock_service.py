"""
lotledger_services.stock_service -- Stock views derived from the lot replay.

Responsibility:
    Point-in-time stock per (product, warehouse) with the lots behind it,
    products below their minimum stock, lots nearing expiry, and the
    movements of one product on one day.

Architecture position:
    Services -- orchestration over engines + kernel.
    Every function replays the snapshot from scratch.

Invariants enforced:
    - Quantities and values equal the ledger state after replaying every
      confirmed document dated on or before the end of ``as_of``.
    - Expiry is measured in whole calendar days; negative means expired.

Failure modes:
    - Unknown product and warehouse ids get the fallback name and are
      listed on ``StockOverview.issues``.
    - Consumptions the stock could not cover are carried on every view
      as ``shortfalls``; with ``raise_on_shortfall`` the first one raises
      ``DataIntegrityError`` instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from lotledger_config import ReportSettings, get_active_config
from lotledger_engines.movements import CancellationCheck, replay_snapshot
from lotledger_engines.turnover import ALL_WAREHOUSES, TurnoverAggregator, TurnoverDetail
from lotledger_engines.valuation.batch_ledger import LotLayer
from lotledger_kernel.domain.issues import ReferenceIssue, StockShortfall
from lotledger_kernel.domain.snapshot import LedgerSnapshot
from lotledger_kernel.domain.values import ONE_DAY, ZERO, end_of_day, start_of_day
from lotledger_kernel.logging_config import get_logger
from lotledger_services._references import ReferenceTracker

logger = get_logger("services.stock")


@dataclass(frozen=True, slots=True)
class StockPosition:
    """Remaining stock of one product in one warehouse."""

    product_id: str
    product_name: str
    warehouse_id: str
    warehouse_name: str
    quantity: Decimal
    value: Decimal
    lots: tuple[LotLayer, ...]

    @property
    def average_unit_cost(self) -> Decimal:
        if self.quantity == ZERO:
            return ZERO
        return self.value / self.quantity


@dataclass(frozen=True)
class StockOverview:
    """All stock positions as of a date."""

    as_of: datetime
    warehouse_id: str
    positions: tuple[StockPosition, ...]
    shortfalls: tuple[StockShortfall, ...] = ()
    issues: tuple[ReferenceIssue, ...] = ()

    @property
    def total_value(self) -> Decimal:
        return sum((p.value for p in self.positions), ZERO)

    def quantity_of(self, product_id: str) -> Decimal:
        return sum((p.quantity for p in self.positions if p.product_id == product_id), ZERO)

    def value_of(self, product_id: str) -> Decimal:
        return sum((p.value for p in self.positions if p.product_id == product_id), ZERO)

    def shortfalls_of(self, product_id: str, warehouse_id: str | None = None) -> tuple[StockShortfall, ...]:
        return tuple(
            s for s in self.shortfalls
            if s.product_id == product_id and warehouse_id in (None, s.warehouse_id)
        )


@dataclass(frozen=True, slots=True)
class LowStockItem:
    """A product below its minimum, with the unmet consumptions that may explain it."""

    product_id: str
    product_name: str
    unit: str
    quantity: Decimal
    minimum_stock: Decimal
    shortfalls: tuple[StockShortfall, ...] = ()

    @property
    def deficit(self) -> Decimal:
        return self.minimum_stock - self.quantity


@dataclass(frozen=True, slots=True)
class ExpiringLot:
    lot: LotLayer
    product_name: str
    warehouse_name: str
    days_left: int
    shortfalls: tuple[StockShortfall, ...] = ()

    @property
    def is_expired(self) -> bool:
        return self.days_left < 0


@dataclass(frozen=True, slots=True)
class ProductDayMovements:
    """
    Drill-down of one product's stock on one day.

    ``shortfalls`` lists the unmet consumptions of this product and
    warehouse up to the end of the day; each one means the opening or
    closing quantity is higher than the documents asked for.
    """

    product_id: str
    warehouse_id: str
    day: datetime
    opening_quantity: Decimal
    movements: tuple[TurnoverDetail, ...]
    shortfalls: tuple[StockShortfall, ...] = ()

    @property
    def closing_quantity(self) -> Decimal:
        return self.opening_quantity + sum((m.quantity for m in self.movements), ZERO)


def _resolve_settings(settings: ReportSettings | None) -> ReportSettings:
    return settings if settings is not None else get_active_config()


def stock_as_of(
    snapshot: LedgerSnapshot,
    as_of: date | datetime,
    warehouse_id: str = ALL_WAREHOUSES,
    *,
    settings: ReportSettings | None = None,
    token: CancellationCheck | None = None,
) -> StockOverview:
    """Remaining lots per (product, warehouse) at the end of ``as_of``."""
    settings = _resolve_settings(settings)
    limit = end_of_day(as_of)
    processor, _ = replay_snapshot(
        snapshot,
        until=limit,
        quantity_tolerance=settings.quantity_tolerance,
        raise_on_shortfall=settings.raise_on_shortfall,
        token=token,
    )
    ledger = processor.ledger
    references = ReferenceTracker(settings.unknown_name)

    positions = []
    for product_id, location in ledger.keys():
        if warehouse_id != ALL_WAREHOUSES and location != warehouse_id:
            continue
        positions.append(
            StockPosition(
                product_id=product_id,
                product_name=references.name("product", snapshot.products_by_id, product_id),
                warehouse_id=location,
                warehouse_name=references.name("warehouse", snapshot.warehouses_by_id, location),
                quantity=ledger.quantity(product_id, location),
                value=ledger.value(product_id, location),
                lots=ledger.lots(product_id, location),
            )
        )
    positions.sort(key=lambda p: (p.product_name, p.product_id, p.warehouse_name, p.warehouse_id))

    shortfalls = tuple(
        s for s in processor.shortfalls
        if warehouse_id == ALL_WAREHOUSES or s.warehouse_id == warehouse_id
    )
    logger.info("stock_overview_built", extra={
        "as_of": limit.isoformat(),
        "warehouse_id": warehouse_id,
        "position_count": len(positions),
    })
    return StockOverview(
        as_of=limit,
        warehouse_id=warehouse_id,
        positions=tuple(positions),
        shortfalls=shortfalls,
        issues=references.issues,
    )


def low_stock(
    snapshot: LedgerSnapshot,
    as_of: date | datetime,
    warehouse_id: str = ALL_WAREHOUSES,
    *,
    settings: ReportSettings | None = None,
) -> tuple[LowStockItem, ...]:
    """Products with a minimum stock whose quantity is below it, most short first."""
    overview = stock_as_of(snapshot, as_of, warehouse_id, settings=settings)
    items = [
        LowStockItem(
            product_id=product.id,
            product_name=product.name,
            unit=product.unit,
            quantity=overview.quantity_of(product.id),
            minimum_stock=product.minimum_stock,
            shortfalls=overview.shortfalls_of(product.id),
        )
        for product in snapshot.products
        if product.minimum_stock > ZERO
    ]
    return tuple(sorted(
        (item for item in items if item.quantity < item.minimum_stock),
        key=lambda item: item.deficit,
        reverse=True,
    ))


def expiring_lots(
    snapshot: LedgerSnapshot,
    as_of: date | datetime,
    horizon_days: int | None = None,
    warehouse_id: str = ALL_WAREHOUSES,
    *,
    settings: ReportSettings | None = None,
) -> tuple[ExpiringLot, ...]:
    """Lots expiring within the horizon (or already expired), soonest first."""
    settings = _resolve_settings(settings)
    horizon = settings.expiry_horizon_days if horizon_days is None else horizon_days
    overview = stock_as_of(snapshot, as_of, warehouse_id, settings=settings)
    today = start_of_day(as_of)

    expiring = []
    for position in overview.positions:
        for lot in position.lots:
            if lot.expiry_date is None:
                continue
            days_left = (start_of_day(lot.expiry_date) - today) // ONE_DAY
            if days_left <= horizon:
                expiring.append(
                    ExpiringLot(
                        lot=lot,
                        product_name=position.product_name,
                        warehouse_name=position.warehouse_name,
                        days_left=days_left,
                        shortfalls=overview.shortfalls_of(lot.product_id, lot.warehouse_id),
                    )
                )
    expiring.sort(key=lambda e: e.days_left)
    return tuple(expiring)


def product_day_movements(
    snapshot: LedgerSnapshot,
    product_id: str,
    warehouse_id: str,
    day: date | datetime,
    *,
    settings: ReportSettings | None = None,
) -> ProductDayMovements:
    """Opening quantity, that day's movements and closing quantity of one product."""
    settings = _resolve_settings(settings)
    start = start_of_day(day)
    end = end_of_day(day)
    processor, movements = replay_snapshot(
        snapshot,
        until=end,
        quantity_tolerance=settings.quantity_tolerance,
        raise_on_shortfall=settings.raise_on_shortfall,
    )
    shortfalls = tuple(
        s for s in processor.shortfalls
        if s.product_id == product_id and s.warehouse_id == warehouse_id
    )
    aggregator = TurnoverAggregator(start, end, warehouse_id)
    aggregator.add_all(m for m in movements if m.product_id == product_id)
    rows = aggregator.build({}, unknown_name=settings.unknown_name)

    if not rows:
        return ProductDayMovements(product_id, warehouse_id, start, ZERO, (), shortfalls)
    row = rows[0]
    return ProductDayMovements(
        product_id=product_id,
        warehouse_id=warehouse_id,
        day=start,
        opening_quantity=row.opening_quantity,
        movements=row.details,
        shortfalls=shortfalls,
    )

"""
LedgerSnapshot -- the immutable input to every report.

The entity store hands the core one snapshot per report invocation.  All
collections are frozen tuples; lookups by id are derived on demand and
cached per snapshot instance.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from functools import cached_property
from types import MappingProxyType

from lotledger_kernel.domain.documents import (
    GoodsReceipt,
    GoodsReturn,
    InternalTransfer,
    Payment,
    PriceAdjustment,
    SalesInvoice,
    SalesReturn,
    WriteOff,
)
from lotledger_kernel.domain.entities import Counterparty, Dish, PartyKind, Product, Warehouse
from lotledger_kernel.domain.values import to_datetime, to_decimal


@dataclass(frozen=True, slots=True)
class OpeningLot:
    """
    Stock that predates the document history (initial stock balance).

    Seeds the batch ledger before any document is replayed.
    """

    batch_id: str
    product_id: str
    warehouse_id: str
    quantity: Decimal
    unit_cost: Decimal
    receipt_date: datetime
    expiry_date: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_decimal(self.quantity))
        object.__setattr__(self, "unit_cost", to_decimal(self.unit_cost))
        object.__setattr__(self, "receipt_date", to_datetime(self.receipt_date))
        if self.expiry_date is not None:
            object.__setattr__(self, "expiry_date", to_datetime(self.expiry_date))


def _index(entities: Iterable) -> Mapping:
    return MappingProxyType({entity.id: entity for entity in entities})


@dataclass(frozen=True)
class LedgerSnapshot:
    """Read-only view of the entity store as of one report invocation."""

    products: tuple[Product, ...] = ()
    warehouses: tuple[Warehouse, ...] = ()
    dishes: tuple[Dish, ...] = ()
    suppliers: tuple[Counterparty, ...] = ()
    clients: tuple[Counterparty, ...] = ()
    opening_stock: tuple[OpeningLot, ...] = ()
    goods_receipts: tuple[GoodsReceipt, ...] = ()
    write_offs: tuple[WriteOff, ...] = ()
    internal_transfers: tuple[InternalTransfer, ...] = ()
    goods_returns: tuple[GoodsReturn, ...] = ()
    price_adjustments: tuple[PriceAdjustment, ...] = ()
    payments: tuple[Payment, ...] = ()
    client_payments: tuple[Payment, ...] = ()
    sales_invoices: tuple[SalesInvoice, ...] = ()
    sales_returns: tuple[SalesReturn, ...] = ()
    label: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if isinstance(value, list):
                object.__setattr__(self, name, tuple(value))

    @cached_property
    def products_by_id(self) -> Mapping[str, Product]:
        return _index(self.products)

    @cached_property
    def warehouses_by_id(self) -> Mapping[str, Warehouse]:
        return _index(self.warehouses)

    @cached_property
    def dishes_by_id(self) -> Mapping[str, Dish]:
        return _index(self.dishes)

    @cached_property
    def suppliers_by_id(self) -> Mapping[str, Counterparty]:
        return _index(self.suppliers)

    @cached_property
    def clients_by_id(self) -> Mapping[str, Counterparty]:
        return _index(self.clients)

    def counterparties(self, kind: PartyKind) -> tuple[Counterparty, ...]:
        return self.suppliers if kind is PartyKind.SUPPLIER else self.clients

    def counterparties_by_id(self, kind: PartyKind) -> Mapping[str, Counterparty]:
        return self.suppliers_by_id if kind is PartyKind.SUPPLIER else self.clients_by_id

    def debt_documents(self, kind: PartyKind) -> tuple:
        """Every debt document of one side, in collection order."""
        if kind is PartyKind.SUPPLIER:
            return self.goods_receipts + self.goods_returns + self.price_adjustments
        return self.sales_invoices + self.sales_returns

    def party_payments(self, kind: PartyKind) -> tuple[Payment, ...]:
        return self.payments if kind is PartyKind.SUPPLIER else self.client_payments

    def stock_documents(self) -> tuple:
        """Stock documents in stream order: receipts, write-offs, transfers, returns, re-pricings."""
        return (
            self.goods_receipts
            + self.write_offs
            + self.internal_transfers
            + self.goods_returns
            + self.price_adjustments
        )

    def without_supplier(self, supplier_id: str) -> LedgerSnapshot:
        """
        Copy with one supplier's account, supplier documents and payments removed.

        Used to keep system-generated receipts (inventory surplus) out of
        supplier debt; stock reports keep using the full snapshot.
        """
        return replace(
            self,
            suppliers=tuple(s for s in self.suppliers if s.id != supplier_id),
            goods_receipts=tuple(d for d in self.goods_receipts if d.supplier_id != supplier_id),
            goods_returns=tuple(d for d in self.goods_returns if d.supplier_id != supplier_id),
            price_adjustments=tuple(d for d in self.price_adjustments if d.supplier_id != supplier_id),
            payments=tuple(p for p in self.payments if p.counterparty_id != supplier_id),
        )

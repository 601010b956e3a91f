"""
Documents -- closed tagged variants for every posted document kind.

Responsibility:
    Model the stock documents (receipts, write-offs, transfers, supplier
    returns, batch re-pricings) and the debt documents (receipts, supplier returns, price
    adjustments, sales invoices, sales returns) plus payments as frozen
    dataclasses.  ``StockDocument`` and ``DebtDocument`` are closed unions;
    every consumer matches them exhaustively with ``assert_never`` so that
    a new kind cannot be added without handling it everywhere.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Invariants enforced:
    - Quantities and prices are Decimal; dates are naive datetimes.
    - Line items are stored as tuples (documents are hashable snapshots).
    - Quantities are strictly positive.

Failure modes:
    - ValueError on non-numeric amounts, unparseable dates, or
      non-positive line quantities.
    - ValueError from ``debt_total`` on a return line that carries neither
      a price nor a FIFO value.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, assert_never

from lotledger_kernel.domain.entities import PartyKind
from lotledger_kernel.domain.values import ZERO, to_datetime, to_decimal


class DocumentStatus(str, Enum):
    """Posting state of a document.  Only CONFIRMED documents are replayed."""

    DRAFT = "draft"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class DocumentKind(str, Enum):
    """Discriminator shared by stock documents, debt documents and payments."""

    GOODS_RECEIPT = "goods_receipt"
    WRITE_OFF = "write_off"
    INTERNAL_TRANSFER = "internal_transfer"
    GOODS_RETURN = "goods_return"
    PRICE_ADJUSTMENT = "price_adjustment"
    SALES_INVOICE = "sales_invoice"
    SALES_RETURN = "sales_return"
    PAYMENT = "payment"


def _positive_quantity(value: object) -> Decimal:
    quantity = to_decimal(value)
    if quantity <= ZERO:
        raise ValueError(f"Line quantity must be positive, got {quantity}")
    return quantity


def _freeze_items(items: Iterable) -> tuple:
    return tuple(items)


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReceiptItem:
    """A received batch: becomes one stock lot."""

    product_id: str
    quantity: Decimal
    price: Decimal
    batch_id: str | None = None
    valid_date: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", _positive_quantity(self.quantity))
        object.__setattr__(self, "price", to_decimal(self.price))
        if self.valid_date is not None:
            object.__setattr__(self, "valid_date", to_datetime(self.valid_date))

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.price


@dataclass(frozen=True, slots=True)
class StockItem:
    """A quantity of one product leaving or moving between warehouses."""

    product_id: str
    quantity: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", _positive_quantity(self.quantity))


@dataclass(frozen=True, slots=True)
class ReturnItem:
    """
    A quantity returned to a supplier.

    The supplier is credited with ``fifo_value``, the cost of the lots the
    return consumed, which the stock replay fills in.  An explicit
    ``price`` overrides it with an agreed unit amount.  The stock side
    always costs the return from the FIFO lots.
    """

    product_id: str
    quantity: Decimal
    price: Decimal | None = None
    fifo_value: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", _positive_quantity(self.quantity))
        if self.price is not None:
            object.__setattr__(self, "price", to_decimal(self.price))
        if self.fifo_value is not None:
            object.__setattr__(self, "fifo_value", to_decimal(self.fifo_value))

    @property
    def is_valued(self) -> bool:
        return self.price is not None or self.fifo_value is not None

    @property
    def unit_price(self) -> Decimal:
        if self.price is not None:
            return self.price
        return self.line_total / self.quantity

    @property
    def line_total(self) -> Decimal:
        if self.price is not None:
            return self.quantity * self.price
        if self.fifo_value is None:
            raise ValueError(
                f"Return line for product {self.product_id} has no price and "
                "has not been costed from stock"
            )
        return self.fifo_value


@dataclass(frozen=True, slots=True)
class PriceAdjustmentItem:
    """Re-pricing of a previously received batch."""

    product_id: str
    original_quantity: Decimal
    old_price: Decimal
    new_price: Decimal
    batch_id: str | None = None
    reason: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "original_quantity", _positive_quantity(self.original_quantity))
        object.__setattr__(self, "old_price", to_decimal(self.old_price))
        object.__setattr__(self, "new_price", to_decimal(self.new_price))

    @property
    def line_total(self) -> Decimal:
        return self.original_quantity * (self.new_price - self.old_price)


@dataclass(frozen=True, slots=True)
class SalesItem:
    """A sold (or returned) dish line."""

    dish_id: str
    quantity: Decimal
    price: Decimal
    cost: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", _positive_quantity(self.quantity))
        object.__setattr__(self, "price", to_decimal(self.price))
        object.__setattr__(self, "cost", to_decimal(self.cost))

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.price


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GoodsReceipt:
    """Goods received from a supplier into one warehouse."""

    kind: ClassVar[DocumentKind] = DocumentKind.GOODS_RECEIPT

    id: str
    doc_number: str
    date: datetime
    supplier_id: str
    warehouse_id: str
    items: tuple[ReceiptItem, ...]
    status: DocumentStatus = DocumentStatus.CONFIRMED

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_datetime(self.date))
        object.__setattr__(self, "items", _freeze_items(self.items))
        object.__setattr__(self, "status", DocumentStatus(self.status))


@dataclass(frozen=True, slots=True)
class WriteOff:
    """Stock written off a warehouse (spoilage, loss, staff meals...)."""

    kind: ClassVar[DocumentKind] = DocumentKind.WRITE_OFF

    id: str
    doc_number: str
    date: datetime
    warehouse_id: str
    items: tuple[StockItem, ...]
    status: DocumentStatus = DocumentStatus.CONFIRMED
    reason: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_datetime(self.date))
        object.__setattr__(self, "items", _freeze_items(self.items))
        object.__setattr__(self, "status", DocumentStatus(self.status))


@dataclass(frozen=True, slots=True)
class InternalTransfer:
    """Stock moved between two warehouses at its original cost."""

    kind: ClassVar[DocumentKind] = DocumentKind.INTERNAL_TRANSFER

    id: str
    doc_number: str
    date: datetime
    from_warehouse_id: str
    to_warehouse_id: str
    items: tuple[StockItem, ...]
    status: DocumentStatus = DocumentStatus.CONFIRMED

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_datetime(self.date))
        object.__setattr__(self, "items", _freeze_items(self.items))
        object.__setattr__(self, "status", DocumentStatus(self.status))


@dataclass(frozen=True, slots=True)
class GoodsReturn:
    """Stock returned to a supplier."""

    kind: ClassVar[DocumentKind] = DocumentKind.GOODS_RETURN

    id: str
    doc_number: str
    date: datetime
    supplier_id: str
    warehouse_id: str
    items: tuple[ReturnItem, ...]
    status: DocumentStatus = DocumentStatus.CONFIRMED

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_datetime(self.date))
        object.__setattr__(self, "items", _freeze_items(self.items))
        object.__setattr__(self, "status", DocumentStatus(self.status))


@dataclass(frozen=True, slots=True)
class PriceAdjustment:
    """Supplier re-pricing of a goods receipt."""

    kind: ClassVar[DocumentKind] = DocumentKind.PRICE_ADJUSTMENT

    id: str
    doc_number: str
    date: datetime
    supplier_id: str
    items: tuple[PriceAdjustmentItem, ...]
    status: DocumentStatus = DocumentStatus.CONFIRMED
    goods_receipt_id: str | None = None
    warehouse_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_datetime(self.date))
        object.__setattr__(self, "items", _freeze_items(self.items))
        object.__setattr__(self, "status", DocumentStatus(self.status))


@dataclass(frozen=True, slots=True)
class SalesInvoice:
    """Dishes sold to a client."""

    kind: ClassVar[DocumentKind] = DocumentKind.SALES_INVOICE

    id: str
    doc_number: str
    date: datetime
    client_id: str
    items: tuple[SalesItem, ...]
    status: DocumentStatus = DocumentStatus.CONFIRMED
    warehouse_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_datetime(self.date))
        object.__setattr__(self, "items", _freeze_items(self.items))
        object.__setattr__(self, "status", DocumentStatus(self.status))


@dataclass(frozen=True, slots=True)
class SalesReturn:
    """Dishes returned by a client."""

    kind: ClassVar[DocumentKind] = DocumentKind.SALES_RETURN

    id: str
    doc_number: str
    date: datetime
    client_id: str
    items: tuple[SalesItem, ...]
    status: DocumentStatus = DocumentStatus.CONFIRMED
    warehouse_id: str | None = None
    original_invoice_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_datetime(self.date))
        object.__setattr__(self, "items", _freeze_items(self.items))
        object.__setattr__(self, "status", DocumentStatus(self.status))


@dataclass(frozen=True, slots=True)
class Payment:
    """Money paid to a supplier or received from a client.

    ``amount`` is unsigned and always reduces the counterparty's debt.
    """

    kind: ClassVar[DocumentKind] = DocumentKind.PAYMENT

    id: str
    doc_number: str
    date: datetime
    counterparty_id: str
    amount: Decimal
    comment: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", to_datetime(self.date))
        amount = to_decimal(self.amount)
        if amount < ZERO:
            raise ValueError(f"Payment amount cannot be negative, got {amount}")
        object.__setattr__(self, "amount", amount)


StockDocument = GoodsReceipt | WriteOff | InternalTransfer | GoodsReturn | PriceAdjustment
DebtDocument = GoodsReceipt | GoodsReturn | PriceAdjustment | SalesInvoice | SalesReturn
LineItem = ReceiptItem | ReturnItem | PriceAdjustmentItem | SalesItem


def is_confirmed(document: StockDocument | DebtDocument) -> bool:
    return document.status is DocumentStatus.CONFIRMED


def debt_counterparty_id(document: DebtDocument) -> str:
    """The supplier or client a debt document belongs to."""
    match document:
        case GoodsReceipt() | GoodsReturn() | PriceAdjustment():
            return document.supplier_id
        case SalesInvoice() | SalesReturn():
            return document.client_id
        case _:
            assert_never(document)


def debt_party_kind(document: DebtDocument) -> PartyKind:
    match document:
        case GoodsReceipt() | GoodsReturn() | PriceAdjustment():
            return PartyKind.SUPPLIER
        case SalesInvoice() | SalesReturn():
            return PartyKind.CLIENT
        case _:
            assert_never(document)


def debt_total(document: DebtDocument) -> Decimal:
    """
    Signed effect of a debt document on the counterparty's balance.

    Receipts and invoices increase debt; returns decrease it; price
    adjustments carry the sign of ``new_price - old_price``.
    """
    match document:
        case GoodsReceipt() | SalesInvoice():
            return sum((item.line_total for item in document.items), ZERO)
        case GoodsReturn() | SalesReturn():
            return -sum((item.line_total for item in document.items), ZERO)
        case PriceAdjustment():
            return sum((item.line_total for item in document.items), ZERO)
        case _:
            assert_never(document)

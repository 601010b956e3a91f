"""
Entities -- immutable reference data supplied by the entity store.

Products, warehouses, dishes and counterparties are read-only inputs to
every report.  Numeric fields are normalised to ``Decimal`` on
construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from lotledger_kernel.domain.values import ZERO, to_decimal


class PartyKind(str, Enum):
    """Which side of the business a counterparty sits on."""

    SUPPLIER = "supplier"
    CLIENT = "client"


@dataclass(frozen=True, slots=True)
class Product:
    """A stock-keeping raw material."""

    id: str
    name: str
    unit: str = ""
    minimum_stock: Decimal = ZERO
    sku: str | None = None
    category: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "minimum_stock", to_decimal(self.minimum_stock))


@dataclass(frozen=True, slots=True)
class Warehouse:
    """A storage location."""

    id: str
    name: str
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class Dish:
    """A finished good sold on sales invoices."""

    id: str
    name: str
    price: Decimal = ZERO
    category: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", to_decimal(self.price))


@dataclass(frozen=True, slots=True)
class Counterparty:
    """
    A supplier or client account.

    Contract:
        ``initial_balance`` is signed.  For suppliers a positive value is
        what the business owes the supplier; for clients a positive value
        is what the client owes the business.  In both cases positive
        means open debt that incoming payments settle.
    """

    id: str
    name: str
    kind: PartyKind
    initial_balance: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "initial_balance", to_decimal(self.initial_balance))
        if not isinstance(self.kind, PartyKind):
            object.__setattr__(self, "kind", PartyKind(self.kind))

    @classmethod
    def supplier(cls, id: str, name: str, initial_balance: Decimal | int | str = ZERO) -> Counterparty:
        return cls(id=id, name=name, kind=PartyKind.SUPPLIER, initial_balance=initial_balance)

    @classmethod
    def client(cls, id: str, name: str, initial_balance: Decimal | int | str = ZERO) -> Counterparty:
        return cls(id=id, name=name, kind=PartyKind.CLIENT, initial_balance=initial_balance)

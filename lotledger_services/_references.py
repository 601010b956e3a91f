"""
Reference resolution shared by the report services.

Documents may point at ids the snapshot does not contain.  The display
name falls back to the configured placeholder, the monetary math goes on,
and each dangling id is recorded once as a ``ReferenceIssue``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from lotledger_kernel.domain.documents import DebtDocument, Payment, debt_counterparty_id
from lotledger_kernel.domain.entities import Counterparty, PartyKind
from lotledger_kernel.domain.issues import ReferenceIssue
from lotledger_kernel.domain.snapshot import LedgerSnapshot
from lotledger_kernel.logging_config import get_logger

logger = get_logger("services.references")


class ReferenceTracker:
    """Resolves display names and collects unknown ids in first-seen order."""

    def __init__(self, unknown_name: str):
        self.unknown_name = unknown_name
        self._issues: dict[tuple[str, str], ReferenceIssue] = {}

    def name(
        self,
        entity_type: str,
        entities: Mapping[str, Any],
        entity_id: str,
        document_id: str | None = None,
    ) -> str:
        entity = entities.get(entity_id)
        if entity is not None:
            return entity.name
        self.record(entity_type, entity_id, document_id)
        return self.unknown_name

    def check(
        self,
        entity_type: str,
        entities: Mapping[str, Any],
        entity_id: str,
        document_id: str | None = None,
    ) -> None:
        if entity_id not in entities:
            self.record(entity_type, entity_id, document_id)

    def record(self, entity_type: str, entity_id: str, document_id: str | None = None) -> None:
        key = (entity_type, entity_id)
        if key in self._issues:
            return
        self._issues[key] = ReferenceIssue(entity_type, entity_id, document_id)
        logger.warning("unknown_reference", extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "document_id": document_id,
        })

    @property
    def issues(self) -> tuple[ReferenceIssue, ...]:
        return tuple(self._issues.values())


def resolve_counterparties(
    snapshot: LedgerSnapshot,
    kind: PartyKind,
    tracker: ReferenceTracker,
) -> list[Counterparty]:
    """
    Every counterparty of one side that a report must cover.

    Known accounts come first in snapshot order.  Ids that only appear on
    documents or payments follow, sorted, as placeholder accounts with a
    zero initial balance.
    """
    known = snapshot.counterparties_by_id(kind)
    parties = list(snapshot.counterparties(kind))

    first_reference: dict[str, str] = {}
    documents: list[DebtDocument | Payment] = list(snapshot.debt_documents(kind))
    documents += snapshot.party_payments(kind)
    for document in documents:
        party_id = (
            document.counterparty_id
            if isinstance(document, Payment)
            else debt_counterparty_id(document)
        )
        if party_id not in known:
            first_reference.setdefault(party_id, document.id)

    for party_id in sorted(first_reference):
        tracker.record(kind.value, party_id, first_reference[party_id])
        parties.append(Counterparty(id=party_id, name=tracker.unknown_name, kind=kind))
    return parties

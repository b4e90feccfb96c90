# Overview: Service-layer operations for inventory; the stock ledger is the only writer of stock.

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import InventoryLogEntry
from ..statuses import ChangeType, parse_enum
from ..validation import MAX_QUANTITY, MAX_STOCK
from bazaar.time_utils import utcnow

logger = logging.getLogger(__name__)

"""
Bazaar Inventory Invariants (authoritative)

Stock model:
- Product.stock is a live counter, mutated ONLY by StockLedger.apply_delta.
- Each mutation is one conditional UPDATE: stock + delta is applied iff the
  result stays within [0, MAX_STOCK]. There is no read-then-write window,
  so two concurrent checkouts can never both take the last unit.

Sign rules:
- sale: negative
- restock, return: positive
- adjustment: any non-zero delta (manual corrections, compensating restocks)

Audit:
- Every mutation appends an InventoryLogEntry in the SAME unit of work.
- Per product, entries ordered by id form a chain:
    entry[i+1].previous_quantity == entry[i].new_quantity
  starting from 0, and the last new_quantity equals Product.stock.
- Entries are append-only (no updates/deletes).

Transactions:
- apply_delta never opens a unit of work; it joins the caller's. Checkout
  uses that to make the decrement and the order insert atomic.
- adjust() is the standalone entry point and runs its own unit of work.
"""


@dataclass(frozen=True)
class StockMovement:
    previous: int
    new: int
    entry: InventoryLogEntry


@dataclass
class ChainReport:
    product_id: int
    valid: bool
    entry_count: int
    replayed_quantity: int
    current_stock: int
    breaks: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "valid": self.valid,
            "entry_count": self.entry_count,
            "replayed_quantity": self.replayed_quantity,
            "current_stock": self.current_stock,
            "breaks": self.breaks,
        }


def _check_sign(change_type: ChangeType, delta: int) -> None:
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("quantity_change must be an integer", details={"field": "quantity_change"})
    if delta == 0:
        raise ValidationError("quantity_change cannot be 0", details={"field": "quantity_change"})
    if abs(delta) > MAX_QUANTITY:
        raise ValidationError(
            f"quantity_change must be between -{MAX_QUANTITY} and {MAX_QUANTITY}",
            details={"field": "quantity_change", "maximum": MAX_QUANTITY},
        )
    if change_type == ChangeType.SALE and delta > 0:
        raise ValidationError("sale must decrease stock", details={"change_type": change_type.value})
    if change_type in (ChangeType.RESTOCK, ChangeType.RETURN) and delta < 0:
        raise ValidationError(
            f"{change_type.value} must increase stock",
            details={"change_type": change_type.value},
        )


class StockLedger:
    """Atomic stock mutations plus their append-only audit chain."""

    def __init__(self, repository, *, notifier=None):
        self.repository = repository
        self.notifier = notifier

    def apply_delta(
        self,
        product_id: int,
        delta: int,
        change_type,
        *,
        reason: str | None = None,
        order_id: int | None = None,
        payment_id: int | None = None,
        actor_user_id: int | None = None,
    ) -> StockMovement:
        """
        Apply `delta` to the product's stock and append the log entry.

        Must run inside the caller's unit of work. On failure nothing is
        written and the caller's transaction is rolled back by its unit of work.

        Raises:
            NotFoundError: product does not exist
            InsufficientStockError: stock + delta would be negative
            ValidationError: delta breaks the sign rule or the MAX_QUANTITY bound
            ValidationError: stock + delta would pass MAX_STOCK
        """
        change_type = parse_enum(ChangeType, change_type, "change_type")
        _check_sign(change_type, delta)

        new_quantity = self.repository.apply_stock_delta(product_id, delta)
        if new_quantity is None:
            available = self.repository.get_stock(product_id)
            if available is None:
                raise NotFoundError("product", product_id)
            if delta > 0:
                raise ValidationError(
                    f"Stock for product {product_id} cannot exceed {MAX_STOCK}",
                    details={"product_id": product_id, "current": available, "maximum": MAX_STOCK},
                )
            raise InsufficientStockError(product_id, requested=-delta, available=available)

        entry = InventoryLogEntry(
            product_id=product_id,
            change_type=change_type.value,
            quantity_change=delta,
            previous_quantity=new_quantity - delta,
            new_quantity=new_quantity,
            reason=reason,
            order_id=order_id,
            payment_id=payment_id,
            actor_user_id=actor_user_id,
            created_at=utcnow(),
        )
        self.repository.add_inventory_entry(entry)

        return StockMovement(previous=new_quantity - delta, new=new_quantity, entry=entry)

    def adjust(
        self,
        product_id: int,
        delta: int,
        *,
        change_type=ChangeType.ADJUSTMENT,
        reason: str | None = None,
        actor_user_id: int | None = None,
    ) -> StockMovement:
        """Manual stock change (restock, return, correction) in its own unit of work."""
        def _op():
            return self.apply_delta(
                product_id,
                delta,
                change_type,
                reason=reason,
                actor_user_id=actor_user_id,
            )

        movement = self.repository.run_in_transaction(_op)
        logger.info(
            "Stock %s for product %s: %s -> %s",
            movement.entry.change_type, product_id, movement.previous, movement.new,
        )
        if self.notifier is not None and delta < 0:
            self.notifier.low_stock_if_needed(product_id, movement.new)
        return movement

    def history(self, product_id: int) -> list[InventoryLogEntry]:
        if self.repository.get_product(product_id) is None:
            raise NotFoundError("product", product_id)
        return self.repository.list_inventory_entries(product_id)

    def verify_chain(self, product_id: int) -> ChainReport:
        """
        Replay the product's log and compare it to the live counter.

        A break is recorded wherever an entry does not start where the
        previous one ended, or does not add up on its own.
        """
        stock = self.repository.get_stock(product_id)
        if stock is None:
            raise NotFoundError("product", product_id)

        entries = self.repository.list_inventory_entries(product_id)
        breaks: list[dict] = []
        expected_previous = 0
        replayed = 0
        for entry in entries:
            if entry.previous_quantity != expected_previous:
                breaks.append({
                    "entry_id": entry.id,
                    "problem": "gap",
                    "expected_previous": expected_previous,
                    "actual_previous": entry.previous_quantity,
                })
            if entry.previous_quantity + entry.quantity_change != entry.new_quantity:
                breaks.append({
                    "entry_id": entry.id,
                    "problem": "arithmetic",
                    "previous": entry.previous_quantity,
                    "change": entry.quantity_change,
                    "new": entry.new_quantity,
                })
            if entry.new_quantity < 0:
                breaks.append({"entry_id": entry.id, "problem": "negative", "new": entry.new_quantity})
            replayed += entry.quantity_change
            expected_previous = entry.new_quantity

        if entries and entries[-1].new_quantity != stock:
            breaks.append({
                "entry_id": entries[-1].id,
                "problem": "stock_mismatch",
                "last_new": entries[-1].new_quantity,
                "stock": stock,
            })
        if not entries and stock != 0:
            breaks.append({"entry_id": None, "problem": "stock_mismatch", "last_new": 0, "stock": stock})
        if replayed != stock and not any(b["problem"] == "stock_mismatch" for b in breaks):
            breaks.append({"entry_id": None, "problem": "replay_mismatch", "replayed": replayed, "stock": stock})

        return ChainReport(
            product_id=product_id,
            valid=not breaks,
            entry_count=len(entries),
            replayed_quantity=replayed,
            current_stock=stock,
            breaks=breaks,
        )

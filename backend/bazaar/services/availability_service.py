# Overview: Optimistic stock pre-check run before checkout opens its unit of work.

from __future__ import annotations

from dataclasses import dataclass

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..validation import coerce_int, coerce_quantity


@dataclass(frozen=True)
class CheckoutLine:
    product_id: int
    quantity: int


def normalize_lines(raw_items) -> list[CheckoutLine]:
    """
    Validate request items and merge duplicates per product.

    Order of first appearance is preserved so order snapshots list lines the
    way the customer entered them.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list", details={"field": "items"})

    merged: dict[int, int] = {}
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"field": "items", "index": index})
        product_id = coerce_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1)
        quantity = coerce_quantity(raw.get("quantity"), f"items[{index}].quantity")
        merged[product_id] = merged.get(product_id, 0) + quantity

    return [CheckoutLine(product_id=pid, quantity=qty) for pid, qty in merged.items()]


class AvailabilityValidator:
    """
    Read-only check that every requested quantity is currently in stock.

    This is an early, friendly rejection only. Between this check and the
    commit another checkout may take the stock; the ledger's conditional
    update is what actually prevents overselling.
    """

    def __init__(self, repository):
        self.repository = repository

    def check(self, lines: list[CheckoutLine]) -> dict:
        """Returns {product_id: Product} for the lines; raises on the first shortfall."""
        products = {}
        for line in lines:
            product = self.repository.get_product(line.product_id)
            if product is None:
                raise NotFoundError("product", line.product_id)
            if not product.is_active:
                raise ValidationError(
                    f"Product {product.id} is not available for sale",
                    details={"product_id": product.id},
                )
            if product.stock < line.quantity:
                raise InsufficientStockError(product.id, requested=line.quantity, available=product.stock)
            products[product.id] = product
        return products

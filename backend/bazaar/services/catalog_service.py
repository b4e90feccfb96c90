# Overview: Product bootstrap; initial stock enters through the ledger like every other change.

from __future__ import annotations

import logging

from ..errors import NotFoundError, ValidationError
from ..models import Product
from ..statuses import ChangeType
from ..validation import MAX_QUANTITY, coerce_amount_fils, coerce_int
from bazaar.time_utils import utcnow

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, repository, ledger):
        self.repository = repository
        self.ledger = ledger

    def get(self, product_id: int) -> Product:
        product = self.repository.get_product(product_id)
        if product is None:
            raise NotFoundError("product", product_id)
        return product

    def create_product(
        self,
        *,
        seller_id: int,
        name: str,
        price_fils=None,
        stock=0,
        sku: str | None = None,
        description: str | None = None,
        actor_user_id: int | None = None,
    ) -> Product:
        """
        Create a product at stock 0, then restock it to `stock`.

        The opening quantity is a ledger entry, so the product's chain starts
        at 0 like every other chain.
        """
        if not name or not str(name).strip():
            raise ValidationError("name cannot be blank", details={"field": "name"})
        price = None if price_fils is None else coerce_amount_fils(price_fils, "price_fils")
        opening = coerce_int(stock, "stock", minimum=0, maximum=MAX_QUANTITY)

        def _op():
            if self.repository.get_seller(seller_id) is None:
                raise NotFoundError("seller", seller_id)
            now = utcnow()
            product = self.repository.add_product(Product(
                seller_id=seller_id,
                sku=sku,
                name=str(name).strip(),
                description=description,
                price_fils=price,
                stock=0,
                is_active=True,
                created_at=now,
                updated_at=now,
            ))
            if opening:
                self.ledger.apply_delta(
                    product.id,
                    opening,
                    ChangeType.RESTOCK,
                    reason="Opening stock",
                    actor_user_id=actor_user_id,
                )
            return product

        product = self.repository.run_in_transaction(_op)
        logger.info("Created product %s (%s) with opening stock %s", product.id, product.name, opening)
        return product

# Overview: Persisted shopping cart feeding non-POS checkout.

from __future__ import annotations

from ..errors import AuthorizationError, InsufficientStockError, NotFoundError, ValidationError
from ..models import CartItem
from ..validation import coerce_int, coerce_quantity
from bazaar.money import format_fils
from bazaar.time_utils import utcnow


class CartService:
    """
    Cart lines are suggestions, not reservations: nothing is taken out of
    stock until checkout commits. The stock check here only stops obviously
    impossible quantities early.
    """

    def __init__(self, repository):
        self.repository = repository

    def view(self, user_id: int) -> dict:
        lines = []
        total = 0
        for item in self.repository.list_cart_items(user_id):
            product = self.repository.get_product(item.product_id)
            price = product.price_fils if product is not None else None
            line_total = price * item.quantity if price is not None else None
            total += line_total or 0
            lines.append(dict(
                item.to_dict(),
                product=product.to_dict() if product is not None else None,
                line_total_fils=line_total,
                line_total=format_fils(line_total),
            ))
        return {"items": lines, "total_fils": total, "total": format_fils(total)}

    def _active_product(self, product_id: int):
        product = self.repository.get_product(product_id)
        if product is None:
            raise NotFoundError("product", product_id)
        if not product.is_active:
            raise ValidationError(f"Product {product_id} is not available for sale", details={"product_id": product_id})
        return product

    def add(self, user_id: int, product_id, quantity=1) -> CartItem:
        product_id = coerce_int(product_id, "product_id", minimum=1)
        quantity = coerce_quantity(quantity, "quantity")

        def _op():
            product = self._active_product(product_id)
            item = self.repository.find_cart_item(user_id, product_id)
            new_quantity = quantity + (item.quantity if item is not None else 0)
            if new_quantity > product.stock:
                raise InsufficientStockError(product_id, requested=new_quantity, available=product.stock)
            if item is None:
                now = utcnow()
                return self.repository.add_cart_item(CartItem(
                    user_id=user_id,
                    product_id=product_id,
                    quantity=new_quantity,
                    created_at=now,
                    updated_at=now,
                ))
            item.quantity = new_quantity
            item.updated_at = utcnow()
            return item

        return self.repository.run_in_transaction(_op)

    def _owned_item(self, user_id: int, item_id: int) -> CartItem:
        item = self.repository.get_cart_item(item_id)
        if item is None:
            raise NotFoundError("cart item", item_id)
        if item.user_id != user_id:
            raise AuthorizationError("Cart item belongs to another user", details={"cart_item_id": item_id})
        return item

    def update(self, user_id: int, item_id: int, quantity) -> CartItem:
        quantity = coerce_quantity(quantity, "quantity")

        def _op():
            item = self._owned_item(user_id, item_id)
            product = self._active_product(item.product_id)
            if quantity > product.stock:
                raise InsufficientStockError(product.id, requested=quantity, available=product.stock)
            item.quantity = quantity
            item.updated_at = utcnow()
            return item

        return self.repository.run_in_transaction(_op)

    def remove(self, user_id: int, item_id: int) -> None:
        def _op():
            self.repository.delete_cart_item(self._owned_item(user_id, item_id))

        self.repository.run_in_transaction(_op)

    def clear(self, user_id: int) -> int:
        return self.repository.run_in_transaction(lambda: self.repository.clear_cart(user_id))

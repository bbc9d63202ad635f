from __future__ import annotations


class StorefrontError(Exception):
    """Erro de domínio com mensagem segura para o cliente."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(StorefrontError):
    pass


class SizeNotFoundError(NotFoundError):
    def __init__(self, size_id: int) -> None:
        super().__init__("size not found")
        self.size_id = size_id


class DiscountCodeNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Discount code not found")


class OrderNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Order not found")


class CartItemNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Cart item not found")


class CatalogReferenceError(StorefrontError):
    pass


class InsufficientStockError(StorefrontError):
    def __init__(self, size_id: int, available: int, requested: int) -> None:
        super().__init__(f"insufficient stock: requested {requested}, available {available}")
        self.size_id = size_id
        self.available = max(0, available)
        self.requested = requested

    @property
    def out_of_stock(self) -> bool:
        return self.available == 0


class CartEmptyError(StorefrontError):
    def __init__(self) -> None:
        super().__init__("Cart is empty")


class DiscountRejectedError(StorefrontError):
    pass


class DiscountAlreadyRedeemedError(StorefrontError):
    def __init__(self, message: str = "Discount code has already been used") -> None:
        super().__init__(message)


class DiscountCodeExistsError(StorefrontError):
    def __init__(self) -> None:
        super().__init__("Discount code already exists")

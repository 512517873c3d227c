# provide dataclass models

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Literal, Optional, Tuple

OrderStatus = Literal["processing", "shipped", "delivered", "cancelled"]

ORDER_STATUSES: Tuple[OrderStatus, ...] = (
    "processing",
    "shipped",
    "delivered",
    "cancelled",
)

# forward-only lifecycle; delivered and cancelled are terminal
ORDER_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "processing": ("shipped", "cancelled"),
    "shipped": ("delivered", "cancelled"),
    "delivered": (),
    "cancelled": (),
}

SIZES: Tuple[str, ...] = ("XS", "S", "M", "L", "XL", "XXL")

# shown on the cart screen only, never added to the order total
DELIVERY_OPTIONS: Dict[str, Tuple[str, Decimal]] = {
    "standard": ("Standard delivery", Decimal("400.00")),
    "express": ("Express delivery", Decimal("600.00")),
}


@dataclass(frozen=True)
class Identity:
    """Signed-in user, resolved once per session."""

    uid: int
    email: str
    is_admin: bool = False


@dataclass(frozen=True)
class Product:
    pid: int
    name: str
    descr: str
    category: str
    price: Decimal
    image_url: str
    sizes: Tuple[str, ...]


@dataclass(frozen=True)
class ProductDraft:
    """Admin form contents for creating or editing a product."""

    name: str
    price: Decimal
    descr: str = ""
    category: str = ""
    image_url: str = ""
    sizes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CartLine:
    cart_id: int
    pid: int
    size: str
    qty: int
    product: Optional[Product] = None  # live product, display only


@dataclass(frozen=True)
class ShippingInfo:
    full_name: str
    address: str
    phone: str
    country: str = "Russia"
    postal_code: str = ""


@dataclass(frozen=True)
class Order:
    ono: int
    uid: int
    created_at: str
    status: str
    total_price: Decimal
    full_name: str
    country: str
    address: str
    postal_code: str
    phone: str
    order_number: Optional[int] = None  # derived recency rank, not stored


@dataclass(frozen=True)
class OrderLine:
    ono: int
    line_no: int
    pid: Optional[int]  # None once the product is deleted
    size: str
    qty: int
    uprice: Decimal  # unit price at time of order
    product_name: Optional[str] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class Favourite:
    uid: int
    pid: int
    created_at: str
    name: str
    price: Decimal
    image_url: str

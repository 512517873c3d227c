# src/db/crud.py
from __future__ import annotations

import json
import secrets
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional, Tuple

import aiosqlite
from passlib.context import CryptContext

from db import models
from db.database import connect, transaction
from db.errors import (
    AuthRequiredError,
    CartNotFoundError,
    DuplicateCartLineError,
    EmptyCartError,
    InvalidTransitionError,
    NotAdminError,
    StoreError,
    ValidationError,
)
from utils import settings
from utils.logger import get_logger
from utils.pure import (
    can_transition,
    number_orders,
    validate_credentials,
    validate_product,
    validate_shipping,
)

_logger = get_logger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_PRODUCT_COLS = "pid, name, descr, category, price, image_url, sizes"
_ORDER_COLS = (
    "ono, uid, created_at, status, total_price, "
    "full_name, country, address, postal_code, phone"
)


def _now() -> str:
    return datetime.now().isoformat(timespec="microseconds")


def _require_uid(uid: Optional[int]) -> int:
    if uid is None:
        raise AuthRequiredError("Sign in to continue.")
    return uid


def _require_admin(identity: Optional[models.Identity]) -> models.Identity:
    if identity is None:
        raise AuthRequiredError("Sign in to continue.")
    if not identity.is_admin:
        raise NotAdminError("Admin rights required.")
    return identity


def _raise_if_invalid(problems: List[str]) -> None:
    if problems:
        raise ValidationError(problems[0], problems)


def _row_to_product(row) -> models.Product:
    return models.Product(
        pid=row["pid"],
        name=row["name"],
        descr=row["descr"],
        category=row["category"],
        price=Decimal(row["price"]),
        image_url=row["image_url"],
        sizes=tuple(json.loads(row["sizes"] or "[]")),
    )


def _row_to_order(row) -> models.Order:
    return models.Order(
        ono=row["ono"],
        uid=row["uid"],
        created_at=row["created_at"],
        status=row["status"],
        total_price=Decimal(row["total_price"]),
        full_name=row["full_name"],
        country=row["country"],
        address=row["address"],
        postal_code=row["postal_code"],
        phone=row["phone"],
    )


# ---------------------------
# Auth & Registration
# ---------------------------


def _hash_password(pwd: str) -> str:
    return pwd_context.hash(pwd)


def _check_password(pwd: str, encoded: str) -> bool:
    try:
        return pwd_context.verify(pwd, encoded)
    except ValueError:
        # unrecognised or corrupted hash
        return False


async def email_available(email: str) -> bool:
    """True if no user already registered with the given email."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT 1 FROM users WHERE email = ? LIMIT 1;", (email.strip().lower(),)
        )
        row = await cur.fetchone()
        await cur.close()
        return row is None


async def sign_up(
    email: str, pwd: str, confirm: Optional[str] = None, is_admin: bool = False
) -> models.Identity:
    """Create a new account and return its identity."""
    _raise_if_invalid(validate_credentials(email, pwd, confirm))
    email = email.strip().lower()
    async with connect() as conn:
        try:
            cur = await conn.execute(
                "INSERT INTO users(email, pwd_hash, is_admin, created_at) VALUES (?, ?, ?, ?);",
                (email, _hash_password(pwd), int(is_admin), _now()),
            )
        except aiosqlite.IntegrityError as e:
            raise ValidationError("Email already taken.") from e
        uid = cur.lastrowid
        await conn.commit()
    _logger.info(f"Registered user {uid} ({email})")
    return models.Identity(uid=uid, email=email, is_admin=is_admin)


async def sign_in(email: str, pwd: str) -> Tuple[models.Identity, str]:
    """Check credentials and open a session. Returns (identity, session token)."""
    email = (email or "").strip().lower()
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT uid, email, pwd_hash, is_admin FROM users WHERE email = ?;",
            (email,),
        )
        row = await cur.fetchone()
        await cur.close()
        if not row or not _check_password(pwd or "", row["pwd_hash"]):
            raise AuthRequiredError("Invalid email or password.")

        token = secrets.token_urlsafe(32)
        await conn.execute(
            "INSERT INTO sessions(token, uid, start_time, end_time) VALUES (?, ?, ?, NULL);",
            (token, row["uid"], _now()),
        )
        await conn.commit()
    identity = models.Identity(
        uid=row["uid"], email=row["email"], is_admin=bool(row["is_admin"])
    )
    _logger.info(f"User {identity.uid} signed in (admin={identity.is_admin})")
    return identity, token


async def current_identity(token: Optional[str]) -> Optional[models.Identity]:
    """Identity behind an open session token, or None."""
    if not token:
        return None
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT u.uid, u.email, u.is_admin
            FROM sessions s JOIN users u ON u.uid = s.uid
            WHERE s.token = ? AND s.end_time IS NULL;
            """,
            (token,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return models.Identity(uid=row[0], email=row[1], is_admin=bool(row[2]))


async def sign_out(token: str) -> None:
    """Close the session; the token stops resolving."""
    async with connect() as conn:
        await conn.execute(
            "UPDATE sessions SET end_time = ? WHERE token = ? AND end_time IS NULL;",
            (_now(), token),
        )
        await conn.commit()


async def get_identity(uid: int) -> Optional[models.Identity]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT uid, email, is_admin FROM users WHERE uid = ?;", (uid,)
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return models.Identity(uid=row[0], email=row[1], is_admin=bool(row[2]))


async def is_admin(uid: int) -> bool:
    identity = await get_identity(uid)
    return bool(identity and identity.is_admin)


async def ensure_admin(email: str, pwd: str) -> models.Identity:
    """
    Create the admin account, or promote it and reset its password if the
    email is already registered. Safe to call on every start.
    """
    email = email.strip().lower()
    async with connect() as conn:
        cur = await conn.execute("SELECT uid FROM users WHERE email = ?;", (email,))
        row = await cur.fetchone()
        await cur.close()
        if row:
            uid = row[0]
            await conn.execute(
                "UPDATE users SET is_admin = 1, pwd_hash = ? WHERE uid = ?;",
                (_hash_password(pwd), uid),
            )
        else:
            cur = await conn.execute(
                "INSERT INTO users(email, pwd_hash, is_admin, created_at) VALUES (?, ?, 1, ?);",
                (email, _hash_password(pwd), _now()),
            )
            uid = cur.lastrowid
        await conn.commit()
    _logger.info(f"Admin account ready: {email}")
    return models.Identity(uid=uid, email=email, is_admin=True)


# ---------------------------
# Products
# ---------------------------


async def list_products() -> List[models.Product]:
    """All products, newest first."""
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLS} FROM products ORDER BY created_at DESC, pid DESC;"
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


async def get_product(pid: int) -> Optional[models.Product]:
    """Fetch a product by pid."""
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PRODUCT_COLS} FROM products WHERE pid = ?;", (pid,)
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return _row_to_product(row)


async def create_product(
    identity: Optional[models.Identity], draft: models.ProductDraft
) -> models.Product:
    _require_admin(identity)
    _raise_if_invalid(validate_product(draft))
    async with connect() as conn:
        cur = await conn.execute(
            """
            INSERT INTO products(name, descr, category, price, image_url, sizes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                draft.name.strip(),
                draft.descr,
                draft.category.strip(),
                str(draft.price),
                draft.image_url,
                json.dumps(list(draft.sizes)),
                _now(),
            ),
        )
        pid = cur.lastrowid
        await conn.commit()
    _logger.info(f"Product {pid} created by admin {identity.uid}")
    return await get_product(pid)


async def update_product(
    identity: Optional[models.Identity], pid: int, draft: models.ProductDraft
) -> models.Product:
    _require_admin(identity)
    _raise_if_invalid(validate_product(draft))
    async with connect() as conn:
        res = await conn.execute(
            """
            UPDATE products
            SET name = ?, descr = ?, category = ?, price = ?, image_url = ?, sizes = ?
            WHERE pid = ?;
            """,
            (
                draft.name.strip(),
                draft.descr,
                draft.category.strip(),
                str(draft.price),
                draft.image_url,
                json.dumps(list(draft.sizes)),
                pid,
            ),
        )
        await conn.commit()
    if res.rowcount == 0:
        raise StoreError(f"Product {pid} not found.")
    _logger.info(f"Product {pid} updated by admin {identity.uid}")
    return await get_product(pid)


async def delete_product(identity: Optional[models.Identity], pid: int) -> bool:
    """Delete a product. Order lines keep their frozen price and lose the link."""
    _require_admin(identity)
    async with connect() as conn:
        res = await conn.execute("DELETE FROM products WHERE pid = ?;", (pid,))
        await conn.commit()
    if res.rowcount:
        _logger.info(f"Product {pid} deleted by admin {identity.uid}")
    return res.rowcount > 0


# ---------------------------
# Cart Management
# ---------------------------


async def get_cart_id(uid: int) -> Optional[int]:
    async with connect() as conn:
        cur = await conn.execute("SELECT cart_id FROM carts WHERE uid = ?;", (uid,))
        row = await cur.fetchone()
        await cur.close()
    return row[0] if row else None


async def get_or_create_cart(uid: Optional[int]) -> int:
    """Resolve the user's cart, creating it on first use."""
    _require_uid(uid)
    async with connect() as conn:
        await conn.execute("INSERT OR IGNORE INTO carts(uid) VALUES (?);", (uid,))
        await conn.commit()
        cur = await conn.execute("SELECT cart_id FROM carts WHERE uid = ?;", (uid,))
        row = await cur.fetchone()
        await cur.close()
    return row[0]


async def add_cart_line(
    uid: Optional[int], pid: int, size: str, qty: int = 1
) -> models.CartLine:
    """
    Insert one (product, size) line into the user's cart.
    A second line for the same product and size is rejected by the
    UNIQUE(cart_id, pid, size) constraint, so concurrent sessions cannot
    both slip one in.
    """
    _require_uid(uid)
    if qty < 1:
        raise ValidationError("Quantity must be at least 1.")
    product = await get_product(pid)
    if not product:
        raise ValidationError("Product not found.")
    if size not in product.sizes:
        raise ValidationError(f"Size {size} is not available for {product.name}.")

    cart_id = await get_or_create_cart(uid)
    async with connect() as conn:
        try:
            await conn.execute(
                "INSERT INTO cart_items(cart_id, pid, size, qty, created_at) VALUES (?, ?, ?, ?, ?);",
                (cart_id, pid, size, qty, _now()),
            )
        except aiosqlite.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise DuplicateCartLineError(
                    "This item is already in your cart."
                ) from e
            raise ValidationError("Product not found.") from e
        await conn.commit()
    _logger.debug(f"Cart {cart_id}: added product {pid} size {size} x{qty}")
    return models.CartLine(cart_id=cart_id, pid=pid, size=size, qty=qty, product=product)


async def remove_cart_line(cart_id: int, pid: int, size: str) -> bool:
    """Remove a single line; returns False when there was nothing to remove."""
    async with connect() as conn:
        res = await conn.execute(
            "DELETE FROM cart_items WHERE cart_id = ? AND pid = ? AND size = ?;",
            (cart_id, pid, size),
        )
        await conn.commit()
    return res.rowcount > 0


async def list_cart_lines(uid: Optional[int]) -> List[models.CartLine]:
    """The user's cart lines joined with the live product, oldest first."""
    _require_uid(uid)
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT ci.cart_id, ci.size, ci.qty,
                   p.pid, p.name, p.descr, p.category, p.price, p.image_url, p.sizes
            FROM carts c
            JOIN cart_items ci ON ci.cart_id = c.cart_id
            JOIN products p ON p.pid = ci.pid
            WHERE c.uid = ?
            ORDER BY ci.created_at, ci.pid, ci.size;
            """,
            (uid,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.CartLine(
            cart_id=row["cart_id"],
            pid=row["pid"],
            size=row["size"],
            qty=row["qty"],
            product=_row_to_product(row),
        )
        for row in rows
    ]


async def cart_line_count(uid: int) -> int:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT COUNT(*) FROM cart_items ci JOIN carts c ON c.cart_id = ci.cart_id
            WHERE c.uid = ?;
            """,
            (uid,),
        )
        row = await cur.fetchone()
        await cur.close()
    return int(row[0])


# ---------------------------
# Checkout & Orders
# ---------------------------


async def place_order(uid: Optional[int], info: models.ShippingInfo) -> models.Order:
    """
    Turn the user's cart into an order and return it.

    Reading the cart, inserting the order and its lines (with prices frozen
    from the catalogue) and emptying the cart happen in one transaction; on
    any failure nothing is written. The cart row itself is kept for reuse.
    """
    _raise_if_invalid(validate_shipping(info))
    _require_uid(uid)

    async with transaction() as conn:
        cur = await conn.execute("SELECT cart_id FROM carts WHERE uid = ?;", (uid,))
        cart = await cur.fetchone()
        await cur.close()
        if not cart:
            raise CartNotFoundError("Cart not found.")
        cart_id = cart[0]

        cur = await conn.execute(
            """
            SELECT ci.pid, ci.size, ci.qty, p.price
            FROM cart_items ci JOIN products p ON p.pid = ci.pid
            WHERE ci.cart_id = ?
            ORDER BY ci.created_at, ci.pid, ci.size;
            """,
            (cart_id,),
        )
        lines = await cur.fetchall()
        await cur.close()
        if not lines:
            raise EmptyCartError("Your cart is empty.")

        total = sum(
            (Decimal(line["price"]) * line["qty"] for line in lines), Decimal("0.00")
        )
        created_at = _now()
        cur = await conn.execute(
            """
            INSERT INTO orders(uid, created_at, status, total_price,
                               full_name, country, address, postal_code, phone)
            VALUES (?, ?, 'processing', ?, ?, ?, ?, ?, ?);
            """,
            (
                uid,
                created_at,
                str(total),
                info.full_name.strip(),
                info.country.strip(),
                info.address.strip(),
                info.postal_code.strip(),
                info.phone,
            ),
        )
        ono = cur.lastrowid

        await conn.executemany(
            "INSERT INTO order_items(ono, line_no, pid, size, qty, uprice) VALUES (?, ?, ?, ?, ?, ?);",
            [
                (ono, line_no, line["pid"], line["size"], line["qty"], line["price"])
                for line_no, line in enumerate(lines, start=1)
            ],
        )
        await conn.execute("DELETE FROM cart_items WHERE cart_id = ?;", (cart_id,))

    _logger.info(f"Order {ono} placed by user {uid}: {len(lines)} lines, total {total}")
    return models.Order(
        ono=ono,
        uid=uid,
        created_at=created_at,
        status="processing",
        total_price=total,
        full_name=info.full_name.strip(),
        country=info.country.strip(),
        address=info.address.strip(),
        postal_code=info.postal_code.strip(),
        phone=info.phone,
    )


async def list_orders(
    identity: Optional[models.Identity], scope: Literal["mine", "all"] = "mine"
) -> List[models.Order]:
    """
    Orders newest first, each carrying its derived order number
    (oldest = 1). "all" is the admin view across every user.
    """
    if scope == "all":
        _require_admin(identity)
        where, params = "", ()
    else:
        uid = _require_uid(identity.uid if identity else None)
        where, params = "WHERE uid = ?", (uid,)

    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_ORDER_COLS} FROM orders {where} ORDER BY created_at DESC, ono DESC;",
            params,
        )
        rows = await cur.fetchall()
        await cur.close()
    return number_orders([_row_to_order(row) for row in rows])


async def get_order(ono: int) -> Optional[models.Order]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_ORDER_COLS} FROM orders WHERE ono = ?;", (ono,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_order(row) if row else None


async def get_order_lines(ono: int) -> List[models.OrderLine]:
    """Lines of one order with the product name and image, if still in the catalogue."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT oi.ono, oi.line_no, oi.pid, oi.size, oi.qty, oi.uprice,
                   p.name, p.image_url
            FROM order_items oi LEFT JOIN products p ON p.pid = oi.pid
            WHERE oi.ono = ?
            ORDER BY oi.line_no;
            """,
            (ono,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.OrderLine(
            ono=row[0],
            line_no=row[1],
            pid=row[2],
            size=row[3],
            qty=row[4],
            uprice=Decimal(row[5]),
            product_name=row[6],
            image_url=row[7],
        )
        for row in rows
    ]


async def update_order_status(
    identity: Optional[models.Identity], ono: int, status: str
) -> models.Order:
    """
    Admin only. With ORDER_STATUS_STRICT on, only forward moves from the
    lifecycle table are accepted; setting the current status is a no-op.
    """
    _require_admin(identity)
    if status not in models.ORDER_STATUSES:
        raise ValidationError(f"Unknown order status '{status}'.")

    async with transaction() as conn:
        cur = await conn.execute("SELECT status FROM orders WHERE ono = ?;", (ono,))
        row = await cur.fetchone()
        await cur.close()
        if not row:
            raise StoreError(f"Order {ono} not found.")
        old = row[0]
        if old != status:
            if settings.ORDER_STATUS_STRICT and not can_transition(old, status):
                raise InvalidTransitionError(
                    f"Cannot change order status from {old} to {status}."
                )
            await conn.execute(
                "UPDATE orders SET status = ? WHERE ono = ?;", (status, ono)
            )
            _logger.info(f"Order {ono}: {old} -> {status} by admin {identity.uid}")

    return await get_order(ono)


# ---------------------------
# Favourites
# ---------------------------


async def is_favourite(uid: int, pid: int) -> bool:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT 1 FROM favourites WHERE uid = ? AND pid = ?;", (uid, pid)
        )
        row = await cur.fetchone()
        await cur.close()
    return row is not None


async def toggle_favourite(uid: Optional[int], pid: int) -> bool:
    """Flip the favourite flag for (user, product); returns the new state."""
    _require_uid(uid)
    async with transaction() as conn:
        res = await conn.execute(
            "DELETE FROM favourites WHERE uid = ? AND pid = ?;", (uid, pid)
        )
        if res.rowcount:
            return False
        try:
            await conn.execute(
                "INSERT INTO favourites(uid, pid, created_at) VALUES (?, ?, ?);",
                (uid, pid, _now()),
            )
        except aiosqlite.IntegrityError as e:
            raise ValidationError("Product not found.") from e
    return True


async def remove_favourite(uid: Optional[int], pid: int) -> bool:
    """Drop a favourite; False if it was already gone."""
    _require_uid(uid)
    async with connect() as conn:
        res = await conn.execute(
            "DELETE FROM favourites WHERE uid = ? AND pid = ?;", (uid, pid)
        )
        await conn.commit()
    return res.rowcount > 0


async def list_favourites(uid: Optional[int]) -> List[models.Favourite]:
    _require_uid(uid)
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT f.uid, f.pid, f.created_at, p.name, p.price, p.image_url
            FROM favourites f JOIN products p ON p.pid = f.pid
            WHERE f.uid = ?
            ORDER BY f.created_at DESC;
            """,
            (uid,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.Favourite(
            uid=row[0],
            pid=row[1],
            created_at=row[2],
            name=row[3],
            price=Decimal(row[4]),
            image_url=row[5],
        )
        for row in rows
    ]

import dataclasses
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, List, Literal, Optional, Sequence, TypeVar

from db.models import (
    ORDER_STATUSES,
    ORDER_TRANSITIONS,
    CartLine,
    Order,
    OrderLine,
    ProductDraft,
    ShippingInfo,
)

T = TypeVar("T")

PHONE_PATTERN = re.compile(r"^\+7\d{10}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6
IMAGE_EXTENSIONS = ("png", "jpg", "jpeg", "webp")


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[Any]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows; cells are converted with str().
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table.
    """
    if not rows:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = [str(h) for h in headers]
    rows = [[str(cell).replace("|", "\\|") for cell in row] for row in rows]

    num_cols = len(headers)
    if aligns is None:
        aligns = ["c"] * num_cols
    elif len(aligns) != num_cols:
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {"l": ":---", "c": ":---:", "r": "---:"}

    header_line = "| " + " | ".join(headers) + " |"
    align_line = "| " + " | ".join(align_map[a] for a in aligns) + " |"
    row_lines = ["| " + " | ".join(row) + " |" for row in rows]

    return "\n".join([header_line, align_line, *row_lines])


def format_price(value: Decimal) -> str:
    return f"{value:,.2f} ₽".replace(",", " ")


# ---------------------------
# Cart
# ---------------------------


def cart_subtotal(lines: Iterable[CartLine]) -> Decimal:
    """Sum of qty x live price; lines whose product vanished count as zero."""
    return sum(
        (line.product.price * line.qty for line in lines if line.product),
        Decimal("0.00"),
    )


# ---------------------------
# Validation
# ---------------------------


def normalize_phone(raw: str) -> str:
    """Keep digits only and force the +7 prefix, at most 12 characters."""
    digits = re.sub(r"\D", "", raw or "")
    if digits.startswith("7"):
        digits = digits[1:]
    return ("+7" + digits)[:12]


def validate_shipping(info: ShippingInfo) -> List[str]:
    problems = []
    if not info.full_name.strip():
        problems.append("Full name is required.")
    if not info.address.strip():
        problems.append("Address is required.")
    if not PHONE_PATTERN.match(info.phone or ""):
        problems.append("Phone must look like +7XXXXXXXXXX.")
    return problems


def validate_credentials(email: str, pwd: str, confirm: Optional[str] = None) -> List[str]:
    problems = []
    if not EMAIL_PATTERN.match((email or "").strip()):
        problems.append("Enter a valid email address.")
    if confirm is not None and pwd != confirm:
        problems.append("Passwords do not match.")
    if len(pwd or "") < MIN_PASSWORD_LENGTH:
        problems.append(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
        )
    return problems


def parse_price(raw: str) -> Optional[Decimal]:
    try:
        value = Decimal((raw or "").strip().replace(",", "."))
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value.quantize(Decimal("0.01"))


def validate_product(draft: ProductDraft) -> List[str]:
    problems = []
    if not draft.name.strip():
        problems.append("Product name is required.")
    if draft.price is None or draft.price < 0:
        problems.append("Price must be zero or more.")
    if not draft.sizes or any(not s.strip() for s in draft.sizes):
        problems.append("Pick at least one size.")
    if not draft.image_url.strip():
        problems.append("Upload an image first.")
    return problems


def image_extension(filename: str) -> Optional[str]:
    """Lower-cased extension if it is an allowed image type, else None."""
    _, dot, ext = (filename or "").rpartition(".")
    ext = ext.lower()
    return ext if dot and ext in IMAGE_EXTENSIONS else None


# ---------------------------
# Orders
# ---------------------------


def can_transition(old: str, new: str) -> bool:
    if new not in ORDER_STATUSES:
        return False
    return old == new or new in ORDER_TRANSITIONS.get(old, ())


def number_orders(orders: Sequence[Order]) -> List[Order]:
    """
    Annotate a newest-first list with its recency rank: the oldest order is
    number 1, the newest is len(orders). Recomputed on every read.
    """
    count = len(orders)
    return [
        dataclasses.replace(order, order_number=count - idx)
        for idx, order in enumerate(orders)
    ]


def order_detail_markdown(order: Optional[Order], lines: Sequence[OrderLine]) -> str:
    if order is None:
        return "### Select an order to view its details."

    number = order.order_number if order.order_number is not None else order.ono
    header = (
        f"### Order #{number} ({order.status})\n\n"
        f"Date: {order.created_at[:16].replace('T', ' ')}  \n"
        f"Ship to: {order.full_name}, {order.country} {order.postal_code}, {order.address}  \n"
        f"Phone: {order.phone}\n\n"
    )
    rows = [
        [
            line.product_name or "(removed product)",
            line.size,
            line.qty,
            format_price(line.uprice),
            format_price(line.uprice * line.qty),
        ]
        for line in lines
    ]
    table = generate_markdown_table(
        ["Product", "Size", "Qty", "Unit Price", "Line Total"],
        rows,
        ["l", "c", "r", "r", "r"],
    )
    return header + table + f"\n\n**Total:** {format_price(order.total_price)}"


def filter_by_order_number(orders: Iterable[Order], term: str) -> List[Order]:
    digits = re.sub(r"\D", "", term or "")
    if not digits:
        return list(orders)
    # int() drops leading zeros, "007" matches #7
    needle = str(int(digits))
    return [
        o for o in orders if o.order_number is not None and needle in str(o.order_number)
    ]


def merge_change(
    rows: Sequence[T],
    event_type: str,
    pk: Any,
    payload: dict,
    key: str,
    build: Optional[Callable[[dict], T]] = None,
) -> List[T]:
    """
    Fold one row-change event into a list of dataclass rows, matched by `key`.

    Applying the same event twice gives the same list. Inserts are only added
    when `build` is given and the row is not present yet.
    """
    rows = list(rows)
    if event_type == "delete":
        return [r for r in rows if getattr(r, key) != pk]

    for idx, row in enumerate(rows):
        if getattr(row, key) == pk:
            names = {f.name for f in dataclasses.fields(row)}
            updates = {k: v for k, v in payload.items() if k in names and k != key}
            rows[idx] = dataclasses.replace(row, **updates)
            return rows

    if event_type == "insert" and build is not None:
        rows.append(build(payload))
    return rows

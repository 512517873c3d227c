import os
import sys
import unittest
from decimal import Decimal

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db.models import (  # noqa: E402
    ORDER_STATUSES,
    CartLine,
    Order,
    OrderLine,
    Product,
    ProductDraft,
    ShippingInfo,
)
from utils.pure import (  # noqa: E402
    can_transition,
    cart_subtotal,
    filter_by_order_number,
    format_price,
    generate_markdown_table,
    image_extension,
    merge_change,
    normalize_phone,
    number_orders,
    order_detail_markdown,
    parse_price,
    validate_credentials,
    validate_product,
    validate_shipping,
)


def make_order(ono: int, status: str = "processing") -> Order:
    return Order(
        ono=ono,
        uid=1,
        created_at=f"2025-02-{ono:02d}T12:00:00",
        status=status,
        total_price=Decimal("100.00"),
        full_name="Ivan Petrov",
        country="Russia",
        address="Moscow",
        postal_code="",
        phone="+79991234567",
    )


def make_line(price: str, qty: int) -> CartLine:
    product = Product(
        pid=1, name="Tee", descr="", category="", price=Decimal(price), image_url="", sizes=("M",)
    )
    return CartLine(cart_id=1, pid=1, size="M", qty=qty, product=product)


class MarkdownTableTestCase(unittest.TestCase):
    def test_headers_and_alignment(self):
        md = generate_markdown_table(["A", "B"], [[1, "x|y"]], ["l", "r"])
        self.assertEqual(md.splitlines(), ["| A | B |", "| :--- | ---: |", "| 1 | x\\|y |"])

    def test_first_row_as_header_and_empty(self):
        md = generate_markdown_table(None, [["k", "v"], ["a", "b"]])
        self.assertTrue(md.startswith("| k | v |"))
        self.assertEqual(generate_markdown_table(["A"], []), "")
        with self.assertRaises(ValueError):
            generate_markdown_table(["A", "B"], [[1, 2]], ["l"])


class CartMathTestCase(unittest.TestCase):
    def test_subtotal(self):
        lines = [make_line("3490.00", 2), make_line("7490.50", 1)]
        self.assertEqual(cart_subtotal(lines), Decimal("14470.50"))
        self.assertEqual(cart_subtotal([]), Decimal("0.00"))

    def test_format_price(self):
        self.assertEqual(format_price(Decimal("3490")), "3 490.00 ₽")
        self.assertEqual(format_price(Decimal("12.5")), "12.50 ₽")


class ValidationTestCase(unittest.TestCase):
    def test_normalize_phone(self):
        self.assertEqual(normalize_phone("8 (999) 123-45-67"), "+78999123456")
        self.assertEqual(normalize_phone("+7 999 123 45 67"), "+79991234567")
        self.assertEqual(normalize_phone(""), "+7")
        self.assertEqual(normalize_phone("79991234567000"), "+79991234567")

    def test_validate_shipping(self):
        good = ShippingInfo(full_name="Ivan", address="Moscow", phone="+79991234567")
        self.assertEqual(validate_shipping(good), [])

        bad = ShippingInfo(full_name=" ", address="", phone="89991234567")
        self.assertEqual(
            validate_shipping(bad),
            [
                "Full name is required.",
                "Address is required.",
                "Phone must look like +7XXXXXXXXXX.",
            ],
        )

    def test_validate_credentials(self):
        self.assertEqual(validate_credentials("a@b.co", "secret1", "secret1"), [])
        self.assertEqual(validate_credentials("a@b.co", "secret1"), [])
        self.assertTrue(validate_credentials("nope", "secret1"))
        self.assertTrue(validate_credentials("a@b.co", "12345"))
        self.assertIn("Passwords do not match.", validate_credentials("a@b.co", "secret1", "secret2"))

    def test_parse_price(self):
        self.assertEqual(parse_price("1990"), Decimal("1990.00"))
        self.assertEqual(parse_price(" 12,5 "), Decimal("12.50"))
        self.assertIsNone(parse_price("abc"))
        self.assertIsNone(parse_price(""))
        self.assertIsNone(parse_price("NaN"))

    def test_validate_product(self):
        good = ProductDraft(name="Cap", price=Decimal("10"), image_url="x", sizes=("S",))
        self.assertEqual(validate_product(good), [])
        bad = ProductDraft(name="", price=None, image_url="")
        self.assertEqual(len(validate_product(bad)), 4)

    def test_image_extension(self):
        self.assertEqual(image_extension("photo.PNG"), "png")
        self.assertEqual(image_extension("a.b.jpeg"), "jpeg")
        self.assertEqual(image_extension("x.webp"), "webp")
        self.assertIsNone(image_extension("doc.pdf"))
        self.assertIsNone(image_extension("png"))


class OrderHelpersTestCase(unittest.TestCase):
    def test_can_transition(self):
        self.assertTrue(can_transition("processing", "shipped"))
        self.assertTrue(can_transition("processing", "cancelled"))
        self.assertTrue(can_transition("shipped", "delivered"))
        self.assertTrue(can_transition("shipped", "shipped"))
        self.assertFalse(can_transition("shipped", "processing"))
        self.assertFalse(can_transition("processing", "delivered"))
        self.assertFalse(can_transition("processing", "lost"))
        for terminal in ("delivered", "cancelled"):
            for status in ORDER_STATUSES:
                if status != terminal:
                    self.assertFalse(can_transition(terminal, status))

    def test_number_orders(self):
        numbered = number_orders([make_order(3), make_order(2), make_order(1)])
        self.assertEqual([o.order_number for o in numbered], [3, 2, 1])
        self.assertEqual(number_orders([]), [])

    def test_filter_by_order_number(self):
        orders = number_orders([make_order(i) for i in range(12, 0, -1)])
        self.assertEqual(len(filter_by_order_number(orders, "")), 12)
        self.assertEqual(len(filter_by_order_number(orders, "abc")), 12)
        self.assertEqual([o.order_number for o in filter_by_order_number(orders, "#1")], [12, 11, 10, 1])
        self.assertEqual([o.order_number for o in filter_by_order_number(orders, "007")], [7])

    def test_merge_change(self):
        rows = number_orders([make_order(2), make_order(1)])
        updated = merge_change(rows, "update", 1, {"ono": 1, "status": "shipped"}, key="ono")
        self.assertEqual(updated[1].status, "shipped")
        self.assertEqual(updated[1].order_number, 1)
        self.assertEqual(rows[1].status, "processing")

        deleted = merge_change(updated, "delete", 2, {"ono": 2}, key="ono")
        self.assertEqual([o.ono for o in deleted], [1])
        self.assertEqual(merge_change(deleted, "delete", 2, {"ono": 2}, key="ono"), deleted)

        # unknown rows are only added for inserts with a builder
        self.assertEqual(merge_change(deleted, "update", 9, {"status": "shipped"}, key="ono"), deleted)
        inserted = merge_change(deleted, "insert", 3, {"ono": 3}, key="ono", build=lambda p: make_order(p["ono"]))
        self.assertEqual([o.ono for o in inserted], [1, 3])
        self.assertEqual(
            merge_change(inserted, "insert", 3, {"ono": 3}, key="ono", build=lambda p: make_order(p["ono"])),
            inserted,
        )

    def test_order_detail_markdown(self):
        self.assertIn("Select an order", order_detail_markdown(None, []))
        order = number_orders([make_order(5)])[0]
        lines = [
            OrderLine(ono=5, line_no=1, pid=1, size="M", qty=2, uprice=Decimal("50.00"), product_name="Tee"),
            OrderLine(ono=5, line_no=2, pid=None, size="L", qty=1, uprice=Decimal("10.00")),
        ]
        md = order_detail_markdown(order, lines)
        self.assertIn("### Order #1 (processing)", md)
        self.assertIn("| Tee | M | 2 | 50.00 ₽ | 100.00 ₽ |", md)
        self.assertIn("(removed product)", md)


if __name__ == "__main__":
    unittest.main()

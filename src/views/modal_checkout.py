from typing import List, Optional

import aiosqlite
from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

from db.crud import place_order
from db.errors import AuthRequiredError, StoreError
from db.models import CartLine, Order, ShippingInfo
from utils.logger import get_logger
from utils.messages import UserLogoutMessage
from utils.pure import (
    cart_subtotal,
    format_price,
    generate_markdown_table,
    normalize_phone,
    validate_shipping,
)
from views.modal_dialog import DialogModal, ProblemsDialogModal

_logger = get_logger(__name__)


class CheckoutModal(ModalScreen[Optional[Order]]):
    """
    A modal screen for check out: order summary plus the recipient form.
    Returns the placed Order on success, None otherwise.
    """

    def __init__(self, lines: List[CartLine]):
        super().__init__()
        self._lines = lines

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            yield Label("Full name")
            yield Input(placeholder="Ivan Ivanov", id="input-full-name")
            yield Label("Country")
            yield Input("Russia", id="input-country")
            yield Label("Address")
            yield Input(placeholder="Moscow, Tverskaya 1, apt 2", id="input-address")
            yield Label("Postal code")
            yield Input(placeholder="101000", id="input-postal-code", type="integer")
            yield Label("Phone")
            yield Input("+7", id="input-phone")
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        headers = ["Product", "Size", "Unit Price", "Quantity", "Total Price"]
        rows = [
            [
                line.product.name,
                line.size,
                format_price(line.product.price),
                line.qty,
                format_price(line.product.price * line.qty),
            ]
            for line in self._lines
        ]
        md = "### Order Summary\n\n"
        md += generate_markdown_table(headers, rows, ["l", "c", "r", "c", "r"])
        md += f"\n\n**Subtotal:** {format_price(cart_subtotal(self._lines))}"
        await self.query_one(MarkdownViewer).document.update(md)
        self.query_one("#input-full-name").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    @on(Input.Changed, "#input-phone")
    def handle_phone_changed(self, event: Input.Changed) -> None:
        phone = normalize_phone(event.value)
        if phone != event.value:
            event.input.value = phone

    def shipping_info(self) -> ShippingInfo:
        return ShippingInfo(
            full_name=self.query_one("#input-full-name", Input).value.strip(),
            address=self.query_one("#input-address", Input).value.strip(),
            phone=self.query_one("#input-phone", Input).value.strip(),
            country=self.query_one("#input-country", Input).value.strip(),
            postal_code=self.query_one("#input-postal-code", Input).value.strip(),
        )

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        info = self.shipping_info()
        problems = validate_shipping(info)
        if problems:
            await self.app.push_screen_wait(
                ProblemsDialogModal("Check the recipient details:", problems)
            )
            return

        if not await self.app.push_screen_wait(
            DialogModal(
                "Place order? This cannot be undone.",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        btn_submit = self.query_one("#btn-submit", Button)
        btn_submit.disabled = True
        btn_submit.label = "Placing order..."
        try:
            order = await place_order(self.app.state.uid, info)
        except AuthRequiredError as e:
            self.notify(str(e), severity="error")
            self.dismiss(None)
            self.app.post_message(UserLogoutMessage())
            return
        except (StoreError, aiosqlite.Error) as e:
            _logger.error(f"Checkout failed: {e}")
            self.notify(f"Checkout failed: {e}", severity="error")
            return
        finally:
            btn_submit.disabled = False
            btn_submit.label = "Place Order"

        self.app.notify(f"Order placed. Total {format_price(order.total_price)}.")
        self.dismiss(order)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)

from typing import List, Optional

import aiosqlite
from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Label, RadioButton, RadioSet, Rule

from db.crud import list_cart_lines, remove_cart_line
from db.errors import StoreError
from db.models import DELIVERY_OPTIONS, CartLine
from utils.messages import CartChangedMessage, ModeSwitchedMessage, NewOrderMessage
from utils.pure import cart_subtotal, format_price
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal


class CartLineActionRemoveMessage(Message):
    bubble = True


class CartLineActionLabel(Label):
    def action_remove(self):
        self.post_message(CartLineActionRemoveMessage())


class CartLineWidget(HorizontalGroup):
    def __init__(self, line: CartLine):
        super().__init__()
        self.line = line

    def compose(self):
        prod = self.line.product
        with Container(id="div-cart-item-group"):
            with Container(id="div-item"):
                yield Label(content=prod.name, id="label-item-name")
                yield Label(content=self.line.size, id="label-item-size")
                yield Label(content=f"x{self.line.qty}", id="label-item-qty")
                yield Label(
                    content=format_price(prod.price * self.line.qty),
                    id="label-item-price",
                )
            with Container(id="div-actions"):
                yield CartLineActionLabel(
                    content="[@click=remove()]Remove[/]", id="link-item-remove"
                )

    @on(CartLineActionRemoveMessage)
    @work()
    async def handle_remove_line(self):
        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove this item from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        )
        if not remove_confirmed:
            return

        try:
            await remove_cart_line(self.line.cart_id, self.line.pid, self.line.size)
        except aiosqlite.Error as e:
            self.screen.report_error("Removing item", e)
            return
        self.post_message(CartChangedMessage())
        self.notify("Item removed from cart.", severity="information")


class CartScreen(BaseScreen):
    """
    Cart lines with live prices, delivery choice and checkout.
    """

    def __init__(self) -> None:
        super().__init__()
        self._lines: List[CartLine] = []
        self._delivery: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("Subtotal: 0.00 ₽", id="label-cart-total")
        with RadioSet(id="radio-delivery"):
            for key, (title, price) in DELIVERY_OPTIONS.items():
                yield RadioButton(f"{title} ({format_price(price)})", name=key)
        yield Label("", id="label-cart-grand-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Refresh", id="btn-refresh")
            yield Button("Checkout", id="btn-checkout", variant="primary", disabled=True)

    @on(CartChangedMessage)
    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True)  # must be exclusive, concurrent reloads mount duplicates
    async def handle_cart_change(self):
        try:
            lines = await list_cart_lines(self.app.state.uid)
        except (StoreError, aiosqlite.Error) as e:
            self.report_error("Loading cart", e)
            return

        content = self.query_one("#vertscroll-content")
        if [c.line for c in content.children] != lines:
            await content.remove_children()
            await content.mount_all([CartLineWidget(line) for line in lines])

        content.set_class(not lines, "no-items")
        self._lines = lines
        self.update_totals()

    @on(RadioSet.Changed, "#radio-delivery")
    def handle_delivery_changed(self, event: RadioSet.Changed) -> None:
        self._delivery = event.pressed.name
        self.update_totals()

    def update_totals(self) -> None:
        subtotal = cart_subtotal(self._lines)
        self.query_one("#label-cart-total").content = f"Subtotal: {format_price(subtotal)}"

        grand_total = ""
        if self._delivery:
            title, price = DELIVERY_OPTIONS[self._delivery]
            grand_total = f"With {title.lower()}: {format_price(subtotal + price)}"
        self.query_one("#label-cart-grand-total").content = grand_total

        # checkout needs a delivery method and at least one line
        self.query_one("#btn-checkout").disabled = not (self._lines and self._delivery)

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        if not self._lines:
            self.app.notify("Cart is empty.", severity="warning")
            return

        order = await self.app.push_screen_wait(CheckoutModal(self._lines))
        self.post_message(CartChangedMessage())
        if order:
            self.app.post_message(NewOrderMessage(order))
            self.app.post_message(ModeSwitchedMessage(self.app.current_mode, "profile"))
            await self.app.switch_mode("profile")

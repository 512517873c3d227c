from typing import Optional

import aiosqlite
from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Label, MarkdownViewer, RadioButton, RadioSet

from db.crud import add_cart_line, get_product, is_favourite, toggle_favourite
from db.errors import AuthRequiredError, StoreError
from db.models import Product
from utils.logger import get_logger
from utils.messages import UserLogoutMessage
from utils.pure import format_price, generate_markdown_table

_logger = get_logger(__name__)


class ProductDetailModal(ModalScreen[bool]):
    """
    Product detail with size choice, add to cart and favourite toggle.
    Returns True if the cart changed, False if not.
    """

    def __init__(self, pid: int) -> None:
        super().__init__()

        self._pid = pid
        self._prod: Optional[Product] = None
        self._size: Optional[str] = None

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("Size")
                yield RadioSet(id="radio-size")
                yield Button("♡ Favourite", id="btn-fav")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        try:
            self._prod = await get_product(self._pid)
        except aiosqlite.Error as e:
            _logger.error(f"Loading product {self._pid} failed: {e}")
            self.app.notify(f"Loading product failed: {e}", severity="error")
            self.dismiss(False)
            return
        if not self._prod:
            self.app.notify("Product not found.", severity="error")
            self.dismiss(False)
            return

        table_rows = [
            ["Category", self._prod.category or "-"],
            ["Price", format_price(self._prod.price)],
            ["Sizes", ", ".join(self._prod.sizes)],
        ]
        md = f"### {self._prod.name}\n\n"
        md += generate_markdown_table(["Attribute", "Value"], table_rows, ["l", "l"])
        if self._prod.descr:
            md += f"\n\n{self._prod.descr}"
        if self._prod.image_url:
            md += f"\n\n[Image]({self._prod.image_url})"
        await self.query_one(MarkdownViewer).document.update(md)

        radio_size = self.query_one(RadioSet)
        await radio_size.mount_all([RadioButton(s) for s in self._prod.sizes])

        # nothing can be added or favourited before a size is picked
        self.query_one("#btn-addcart").disabled = True
        self.query_one("#btn-fav").disabled = True
        radio_size.focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(RadioSet.Changed, "#radio-size")
    async def handle_size_changed(self, event: RadioSet.Changed) -> None:
        self._size = str(event.pressed.label)
        self.query_one("#btn-addcart").disabled = False
        self.query_one("#btn-fav").disabled = False
        await self.refresh_favourite()

    async def refresh_favourite(self) -> None:
        try:
            fav = await is_favourite(self.app.state.uid, self._pid)
        except aiosqlite.Error as e:
            _logger.error(f"Favourite lookup failed: {e}")
            self.notify(f"Favourite lookup failed: {e}", severity="error")
            return
        btn_fav = self.query_one("#btn-fav", Button)
        btn_fav.label = "♥ Favourite" if fav else "♡ Favourite"
        btn_fav.variant = "warning" if fav else "default"

    def require_sign_in(self, error: AuthRequiredError) -> None:
        self.app.notify(str(error), severity="error")
        self.dismiss(False)
        self.app.post_message(UserLogoutMessage())

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-fav")
    @work(exclusive=True)
    async def handle_favourite(self):
        if not self._size:
            self.notify("Pick a size first.", severity="warning")
            return
        try:
            fav = await toggle_favourite(self.app.state.uid, self._pid)
        except AuthRequiredError as e:
            self.require_sign_in(e)
            return
        except (StoreError, aiosqlite.Error) as e:
            _logger.error(f"Favourite toggle failed: {e}")
            self.notify(str(e), severity="error")
            return
        self.notify("Added to favourites." if fav else "Removed from favourites.")
        await self.refresh_favourite()

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        if not self._size:
            self.notify("Pick a size first.", severity="warning")
            return
        try:
            await add_cart_line(self.app.state.uid, self._pid, self._size)
        except AuthRequiredError as e:
            self.require_sign_in(e)
            return
        except (StoreError, aiosqlite.Error) as e:
            _logger.error(f"Add to cart failed: {e}")
            self.notify(str(e), severity="error")
            return

        self.app.notify(f"{self._prod.name} ({self._size}) added to cart.")
        self.dismiss(True)

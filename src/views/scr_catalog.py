import aiosqlite
from textual import events, on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.events import ScreenResume
from textual.widgets import DataTable, Label

import db.crud
from utils.messages import CartChangedMessage
from utils.pure import format_price
from views.base_screen import BaseScreen
from views.modal_product import ProductDetailModal


class CatalogScreen(BaseScreen):
    """
    All products, newest first. Enter opens the product detail.
    """

    # only here to be displayed in footer
    BINDINGS = [
        Binding("fn+shift+1", "abs(1)", "View Product", show=True, key_display="⏎"),
        Binding("f5", "reload", "Reload", show=True),
    ]

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Label("", id="label-catalog-count")
        yield DataTable(id="table-catalog")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Name", "Category", "Price", "Sizes")
        table.focus()

    @on(ScreenResume)
    @work(exclusive=True)
    async def action_reload(self) -> None:
        try:
            products = await db.crud.list_products()
        except aiosqlite.Error as e:
            self.report_error("Loading products", e)
            return

        table = self.query_one(DataTable)
        table.clear()
        for p in products:
            table.add_row(
                p.name,
                p.category or "-",
                format_price(p.price),
                ", ".join(p.sizes),
                key=str(p.pid),
            )
        self.query_one("#label-catalog-count").content = f"{len(products)} product(s)"

    def on_key(self, event: events.Key) -> None:
        table = self.query_one(DataTable)
        if event.key == "enter" and self.focused == table and table.row_count:
            row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
            self.open_product(int(row_key.value))

    @work()
    async def open_product(self, pid: int) -> None:
        if await self.app.push_screen_wait(ProductDetailModal(pid)):
            self.post_message(CartChangedMessage())

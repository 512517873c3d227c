from typing import List, Optional

import aiosqlite
from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label, MarkdownViewer, Select
from textual.worker import Worker

import db.crud
from db.errors import AuthRequiredError, StoreError
from db.models import ORDER_STATUSES, Order
from db.realtime import ChangeFeed
from utils.logger import get_logger
from utils.pure import (
    filter_by_order_number,
    format_price,
    merge_change,
    order_detail_markdown,
)
from views.base_screen import AdminScreen

_logger = get_logger(__name__)


class AdminOrdersScreen(AdminScreen):
    """
    Every customer's orders, newest first, searchable by order number.

    Status changes made here patch the in-memory list; changes made by other
    admins arrive through the orders feed. Inserts and deletes reload the
    whole list because they shift every derived order number.
    """

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Order] = []
        self._selected_ono: Optional[int] = None
        self._feed_worker: Optional[Worker] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Input(id="input-order-search", placeholder="Search by order number...")
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            yield DataTable(id="table-orders")
        with Horizontal(id="hort-status-control"):
            yield Label("Status")
            yield Select(
                [(s.capitalize(), s) for s in ORDER_STATUSES],
                id="select-status",
                allow_blank=True,
            )
            yield Button("Apply", id="btn-apply-status", variant="primary")
            yield Button("Refresh", id="btn-refresh")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("No", "Date", "Customer", "Phone", "Address", "Total", "Status")

    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    def handle_refresh(self) -> None:
        if not self.app.state.is_admin:
            return
        self.reload_orders()
        feed = self._feed_worker
        # cancelled on sign-out, started again for the next admin
        if feed is None or feed.is_finished or feed.is_cancelled:
            self._feed_worker = self._follow_orders()

    @work(exclusive=True, group="orders")
    async def reload_orders(self) -> None:
        try:
            self._orders = await db.crud.list_orders(self.app.state.identity, "all")
        except AuthRequiredError as e:
            self.report_error("Loading orders", e)
            self._orders = []
        except (StoreError, aiosqlite.Error) as e:
            self.report_error("Loading orders", e)
            return
        self.render_orders()

    def render_orders(self) -> None:
        term = self.query_one("#input-order-search", Input).value
        shown = filter_by_order_number(self._orders, term)

        table = self.query_one(DataTable)
        table.clear()
        for o in shown:
            table.add_row(
                f"#{o.order_number}",
                o.created_at[:16].replace("T", " "),
                o.full_name,
                o.phone,
                o.address,
                format_price(o.total_price),
                o.status,
                key=str(o.ono),
            )

        keys = [o.ono for o in shown]
        if self._selected_ono in keys:
            table.move_cursor(row=keys.index(self._selected_ono))
        elif shown:
            self._selected_ono = shown[0].ono
        else:
            self._selected_ono = None
        self.show_selected()

    @on(Input.Changed, "#input-order-search")
    def handle_search(self) -> None:
        self.render_orders()

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        self._selected_ono = int(event.row_key.value)
        self.show_selected()

    def selected_order(self) -> Optional[Order]:
        return next((o for o in self._orders if o.ono == self._selected_ono), None)

    @work(exclusive=True, group="detail")
    async def show_selected(self) -> None:
        order = self.selected_order()
        lines = []
        if order:
            self.query_one("#select-status", Select).value = order.status
            try:
                lines = await db.crud.get_order_lines(order.ono)
            except aiosqlite.Error as e:
                self.report_error("Loading order lines", e)
        md = order_detail_markdown(order, lines)
        await self.query_one("#md-order-detail", MarkdownViewer).document.update(md)

    @on(Button.Pressed, "#btn-apply-status")
    @work(exclusive=True, group="status")
    async def handle_apply_status(self) -> None:
        order = self.selected_order()
        status = self.query_one("#select-status", Select).value
        if order is None or status is Select.BLANK:
            self.notify("Select an order and a status first.", severity="warning")
            return
        if status == order.status:
            return

        try:
            updated = await db.crud.update_order_status(
                self.app.state.identity, order.ono, status
            )
        except (StoreError, aiosqlite.Error) as e:
            self.report_error("Status update", e)
            # compensating re-fetch, the local list may be stale
            self.reload_orders()
            return

        self._orders = merge_change(
            self._orders, "update", updated.ono, {"status": updated.status}, key="ono"
        )
        self.render_orders()
        self.notify(f"Order #{order.order_number} is now {updated.status}.")

    @work(exclusive=True, group="feed")
    async def _follow_orders(self) -> None:
        feed = ChangeFeed("orders")
        try:
            await feed.start()
        except aiosqlite.Error as e:
            self.report_error("Following orders", e)
            return
        async for event in feed.listen():
            _logger.debug(f"Order {event.pk} {event.type}")
            if event.type == "update":
                self._orders = merge_change(
                    self._orders, "update", event.pk, event.row, key="ono"
                )
                self.render_orders()
            else:
                self.reload_orders()

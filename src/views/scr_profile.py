from typing import List, Optional

import aiosqlite
from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Label, MarkdownViewer, TabbedContent, TabPane
from textual.worker import Worker

import db.crud
from db.errors import AuthRequiredError, StoreError
from db.models import Order
from db.realtime import ChangeFeed
from utils.logger import get_logger
from utils.messages import CartChangedMessage, UserLogoutMessage
from utils.pure import format_price, order_detail_markdown
from views.base_screen import BaseScreen
from views.modal_product import ProductDetailModal

_logger = get_logger(__name__)


class ProfileScreen(BaseScreen):
    """
    The signed-in user's orders (numbered newest first, with line detail)
    and favourites. Favourites follow the row-change feed, so a toggle made
    from another session shows up without a manual refresh.
    """

    # only here to be displayed in footer
    BINDINGS = [
        Binding("enter", "noop", "View Order Detail", show=True, key_display="⏎"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Order] = []
        self._feed_uid: Optional[int] = None
        self._feed_worker: Optional[Worker] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Label("", id="label-profile-email")
        with TabbedContent(id="tabs-profile"):
            with TabPane("My Orders", id="tab-orders"):
                with Vertical():
                    yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
                    yield DataTable(id="table-orders")
            with TabPane("Favourites", id="tab-favourites"):
                with Vertical():
                    yield DataTable(id="table-favourites")
                    with Horizontal(id="hort-fav-actions"):
                        yield Button("Open", id="btn-fav-open", variant="primary")
                        yield Button("Remove", id="btn-fav-remove", variant="error")
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")

    def on_mount(self) -> None:
        table = self.query_one("#table-orders", DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("No", "Date", "Status", "Total")

        table = self.query_one("#table-favourites", DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Product", "Price")

    @on(Button.Pressed, "#btn-refresh")
    @on(ScreenResume)
    def handle_refresh(self):
        identity = self.app.state.identity
        if not identity:
            return
        self.query_one("#label-profile-email", Label).content = identity.email
        self._load_orders()
        self._load_favourites()
        feed = self._feed_worker
        # a sign-out cancels the feed, so a finished worker is restarted too
        stale = feed is None or feed.is_finished or feed.is_cancelled
        if stale or self._feed_uid != identity.uid:
            self._feed_uid = identity.uid
            self._feed_worker = self._follow_favourites(identity.uid)

    @work(exclusive=True, group="orders")
    async def _load_orders(self) -> None:
        try:
            orders = await db.crud.list_orders(self.app.state.identity, "mine")
        except AuthRequiredError:
            self.app.post_message(UserLogoutMessage())
            return
        except (StoreError, aiosqlite.Error) as e:
            self.report_error("Loading orders", e)
            return

        table = self.query_one("#table-orders", DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                f"#{o.order_number}",
                o.created_at[:16].replace("T", " "),
                o.status,
                format_price(o.total_price),
                key=str(o.ono),
            )
        self._orders = orders
        if orders:
            table.move_cursor(row=0)
            self._render_detail(orders[0])
        else:
            self._render_detail(None)

    @on(DataTable.RowHighlighted, "#table-orders")
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        ono = int(event.row_key.value)
        order = next((o for o in self._orders if o.ono == ono), None)
        self._render_detail(order)

    @work(exclusive=True, group="detail")
    async def _render_detail(self, order: Optional[Order]) -> None:
        lines = []
        if order:
            try:
                lines = await db.crud.get_order_lines(order.ono)
            except aiosqlite.Error as e:
                self.report_error("Loading order lines", e)
        md = order_detail_markdown(order, lines)
        await self.query_one("#md-order-detail", MarkdownViewer).document.update(md)

    @work(exclusive=True, group="favourites")
    async def _load_favourites(self) -> None:
        try:
            favourites = await db.crud.list_favourites(self.app.state.uid)
        except AuthRequiredError:
            return
        except (StoreError, aiosqlite.Error) as e:
            self.report_error("Loading favourites", e)
            return

        table = self.query_one("#table-favourites", DataTable)
        table.clear()
        for fav in favourites:
            table.add_row(fav.name, format_price(fav.price), key=str(fav.pid))

    @work(exclusive=True, group="feed")
    async def _follow_favourites(self, uid: int) -> None:
        """Re-fetch favourites whenever this user's favourites change anywhere."""
        feed = ChangeFeed("favourites", owner=uid)
        try:
            await feed.start()
        except aiosqlite.Error as e:
            self.report_error("Following favourites", e)
            return
        async for event in feed.listen():
            _logger.debug(f"Favourite {event.type} for product {event.pk}")
            self._load_favourites()

    def selected_favourite(self) -> Optional[int]:
        table = self.query_one("#table-favourites", DataTable)
        if not table.row_count:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return int(row_key.value)

    @on(DataTable.RowSelected, "#table-favourites")
    @on(Button.Pressed, "#btn-fav-open")
    @work()
    async def handle_open_favourite(self) -> None:
        """Open the product so a size can be picked before adding it to the cart."""
        pid = self.selected_favourite()
        if pid is None:
            self.notify("Select a favourite first.", severity="warning")
            return
        if await self.app.push_screen_wait(ProductDetailModal(pid)):
            self.post_message(CartChangedMessage())
        self._load_favourites()

    @on(Button.Pressed, "#btn-fav-remove")
    @work(exclusive=True, group="favourite-remove")
    async def handle_remove_favourite(self) -> None:
        pid = self.selected_favourite()
        if pid is None:
            self.notify("Select a favourite first.", severity="warning")
            return
        try:
            await db.crud.remove_favourite(self.app.state.uid, pid)
        except AuthRequiredError:
            self.app.post_message(UserLogoutMessage())
            return
        except (StoreError, aiosqlite.Error) as e:
            self.report_error("Removing favourite", e)
            return
        self.notify("Removed from favourites.")
        self._load_favourites()

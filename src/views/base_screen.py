import asyncio

import aiosqlite
from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import ScreenResume
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

import db.crud as crud
from utils.logger import get_logger
from utils.messages import CartChangedMessage, ModeSwitchedMessage, UserLogoutMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal

_logger = get_logger(__name__)


class Sidebar(Container):
    init_mode = ""

    def __init__(self) -> None:
        super().__init__()
        # mount and resume both rebuild the menu; one rebuild at a time
        self._reload_lock = asyncio.Lock()

    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Button("Sign out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        self.init_mode = self.app.current_mode
        await self.reload()

    async def reload(self) -> None:
        """Rebuild user info and the menu for whoever is signed in now."""
        state = self.app.state
        if not state.identity:
            return

        async with self._reload_lock:
            try:
                cart_count = f"{await crud.cart_line_count(state.uid)} item(s)"
            except aiosqlite.Error as e:
                _logger.error(f"Loading cart count failed: {e}")
                self.notify(f"Loading cart count failed: {e}", severity="error")
                cart_count = "-"
            table_rows = [
                ["Email", state.identity.email],
                ["Role", "Admin" if state.is_admin else "Customer"],
                ["Cart", cart_count],
            ]
            md_table_str = generate_markdown_table(None, table_rows, ["l", "l"])
            await self.query_one(Markdown).update(md_table_str)

            modes = dict(self.app.CUSTOMER_MODES)
            if state.is_admin:
                modes.update(self.app.ADMIN_MODES)

            list_menu: ListView = self.query_one("#list-menu")
            await list_menu.clear()
            await list_menu.extend(
                [ListItem(Label(v), name=k) for k, v in modes.items()]
            )
            self.highlight_item(self.init_mode)

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.name
        self.highlight_item(self.init_mode)
        if self.app.current_mode != selected_mode:
            self.app.post_message(
                ModeSwitchedMessage(self.app.current_mode, selected_mode)
            )
            await self.app.switch_mode(selected_mode)

    @on(Button.Pressed, "#btn-logout")
    @work()
    async def handle_logout(self):
        if not await self.app.push_screen_wait(
            DialogModal(
                "Are you sure you want to sign out?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        self.app.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = item.name == mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "Storefront",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        """
        self.app.title = "Storefront"
        self.sub_title = header_sub_title
        for k, v in self.app.MODES.items():
            if isinstance(self, v):
                self.sub_title = {
                    **self.app.CUSTOMER_MODES,
                    **self.app.ADMIN_MODES,
                }.get(k, header_sub_title)

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    @on(ScreenResume)
    @on(CartChangedMessage)
    async def handle_sidebar_refresh(self) -> None:
        if self._show_sidebar and self.app.state.identity:
            await self.query_one(Sidebar).reload()

    def report_error(self, action: str, error: Exception) -> None:
        """Log a failed backend call and show its message; nothing is retried."""
        _logger.error(f"{action} failed: {error}")
        self.notify(f"{action} failed: {error}", severity="error")

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())


class AdminScreen(BaseScreen):
    """Base for admin-only screens; bounces anyone without the admin flag."""

    @on(ScreenResume)
    async def guard_admin(self) -> None:
        state = self.app.state
        if not state.identity:
            self.app.post_message(UserLogoutMessage())
        elif not state.is_admin:
            self.notify("Admin rights required.", severity="error")
            self.app.post_message(ModeSwitchedMessage(self.app.current_mode, "catalog"))
            await self.app.switch_mode("catalog")

import aiosqlite
from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

import db.crud
from db.errors import StoreError
from utils import settings
from utils.logger import get_logger
from utils.messages import (
    ModeSwitchedMessage,
    NewOrderMessage,
    QuitRequestedMessage,
    UserLoginMessage,
    UserLogoutMessage,
)
from utils.state import GlobalState
from views.scr_admin_orders import AdminOrdersScreen
from views.scr_admin_products import AdminProductsScreen
from views.scr_cart import CartScreen
from views.scr_catalog import CatalogScreen
from views.scr_login import LoginScreen
from views.scr_profile import ProfileScreen

_logger = get_logger(__name__)


class StorefrontApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "catalog": CatalogScreen,
        "cart": CartScreen,
        "profile": ProfileScreen,
        "admin_orders": AdminOrdersScreen,
        "admin_products": AdminProductsScreen,
    }

    CUSTOMER_MODES = {
        "catalog": "Catalog",
        "cart": "Cart",
        "profile": "Profile",
    }
    ADMIN_MODES = {"admin_orders": "Orders", "admin_products": "Products"}

    CSS_PATH = "styles/storefront.tcss"

    state: GlobalState

    def __init__(self):
        super().__init__()
        self.state = GlobalState()

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow(restore=True)

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(UserLoginMessage)
    def handle_user_login(self, message: UserLoginMessage):
        _logger.info(f"{message.identity.email} signed in (admin={message.identity.is_admin})")

    @on(NewOrderMessage)
    def handle_new_order(self, message: NewOrderMessage):
        _logger.info(f"Order {message.order.ono} placed, total {message.order.total_price}")

    @on(ModeSwitchedMessage)
    def handle_mode_switched(self, message: ModeSwitchedMessage):
        _logger.debug(f"Mode {message.old_mode} -> {message.new_mode}")

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        self.stop_feeds()
        try:
            await self.state.sign_out()
        except aiosqlite.Error as e:
            # the local session is gone even if the store could not be told
            _logger.error(f"Closing the session failed: {e}")
        self.notify("Signed out.")
        self.main_flow()

    def stop_feeds(self) -> None:
        """Live feeds follow the signed-in user, so they end with the session."""
        for worker in self.workers:
            if worker.group == "feed":
                worker.cancel()

    @on(QuitRequestedMessage)
    def handle_quit(self):
        # the session stays open so the next start signs straight in
        self.exit()

    async def bootstrap_admin(self) -> None:
        if not (settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD):
            return
        try:
            await db.crud.ensure_admin(settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD)
        except (StoreError, aiosqlite.Error) as e:
            _logger.error(f"Admin bootstrap failed: {e}")
            self.notify(f"Admin bootstrap failed: {e}", severity="error")

    async def restore_session(self) -> bool:
        try:
            return await self.state.restore() is not None
        except aiosqlite.Error as e:
            _logger.error(f"Restoring the session failed: {e}")
            self.notify(f"Restoring the session failed: {e}", severity="error")
            return False

    @work
    async def main_flow(self, restore: bool = False):
        if restore:
            await self.bootstrap_admin()
        if not (restore and await self.restore_session()):
            await self.push_screen_wait(LoginScreen())

        self.post_message(ModeSwitchedMessage(self.current_mode, "catalog"))
        await self.switch_mode("catalog")


def main():
    StorefrontApp().run()


if __name__ == "__main__":
    main()

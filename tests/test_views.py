import os
import sys
import tempfile
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from textual import work  # noqa: E402
from textual.widgets import DataTable, Input, RadioButton  # noqa: E402

from db import crud  # noqa: E402
from db import database as db_database  # noqa: E402
from main import StorefrontApp  # noqa: E402
from utils import settings  # noqa: E402
from utils.messages import UserLogoutMessage  # noqa: E402
from views.modal_product import ProductDetailModal  # noqa: E402
from views.scr_login import LoginScreen  # noqa: E402
from views.scr_profile import ProfileScreen  # noqa: E402


class StorefrontHarness(StorefrontApp):
    """Starts in one mode with a given identity instead of the login flow."""

    # CSS_PATH is resolved next to the defining module, so point it back at src/
    CSS_PATH = os.path.join(src_path, "styles", "storefront.tcss")

    def __init__(self, identity, start_mode: str = "catalog"):
        super().__init__()
        self.state.identity = identity
        self.start_mode = start_mode
        self.notices = []

    def notify(self, message, *args, **kwargs):
        self.notices.append((str(message), kwargs.get("severity", "information")))
        super().notify(message, *args, **kwargs)

    @work
    async def main_flow(self, restore: bool = False):
        await self.switch_mode(self.start_mode)

    def errors(self):
        return [m for m, severity in self.notices if severity == "error"]

    def has_error(self, prefix: str) -> bool:
        return any(m.startswith(prefix) for m in self.errors())


async def wait_until(pilot, predicate, timeout: float = 5.0) -> bool:
    for _ in range(int(timeout / 0.05)):
        if predicate():
            return True
        await pilot.pause(0.05)
    return predicate()


class ViewsTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        db_database.DB_PATH = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database._initialized = False
        self._session_file = settings.SESSION_FILE
        self._poll_seconds = settings.REALTIME_POLL_SECONDS
        settings.SESSION_FILE = os.path.join(self.temp_dir.name, "session.json")
        settings.REALTIME_POLL_SECONDS = 0.05

    async def asyncSetUp(self):
        self.alice = await crud.sign_up("alice@example.com", "secret1")

    def tearDown(self):
        settings.SESSION_FILE = self._session_file
        settings.REALTIME_POLL_SECONDS = self._poll_seconds
        self.temp_dir.cleanup()

    def break_store(self):
        # sqlite cannot open a directory as a database file
        db_database.DB_PATH = self.temp_dir.name

    async def test_catalog_reports_store_failure_and_keeps_running(self):
        self.break_store()
        app = StorefrontHarness(self.alice)
        async with app.run_test(size=(120, 40)) as pilot:
            self.assertTrue(
                await wait_until(pilot, lambda: app.has_error("Loading products failed"))
            )
            self.assertTrue(
                await wait_until(pilot, lambda: app.has_error("Loading cart count failed"))
            )
            self.assertTrue(app.is_running)
            self.assertIsNone(app.return_code)

    async def test_product_detail_closes_when_store_fails(self):
        app = StorefrontHarness(self.alice)
        async with app.run_test(size=(120, 40)) as pilot:
            await wait_until(pilot, lambda: app.current_mode == "catalog")
            self.break_store()
            app.push_screen(ProductDetailModal(1))

            self.assertTrue(
                await wait_until(pilot, lambda: app.has_error("Loading product failed"))
            )
            self.assertTrue(
                await wait_until(pilot, lambda: not isinstance(app.screen, ProductDetailModal))
            )
            self.assertTrue(app.is_running)

    async def test_sign_in_reports_store_failure(self):
        app = StorefrontHarness(None)
        async with app.run_test(size=(120, 40)) as pilot:
            await wait_until(pilot, lambda: app.current_mode == "catalog")
            login = LoginScreen()
            await app.push_screen(login)
            login.query_one("#input-login-email", Input).value = "alice@example.com"
            login.query_one("#input-login-pwd", Input).value = "secret1"
            self.break_store()

            login.handle_login_submit()
            self.assertTrue(await wait_until(pilot, lambda: app.has_error("Sign in failed")))
            self.assertIs(app.screen, login)
            self.assertIsNone(app.state.identity)
            self.assertTrue(app.is_running)

    async def test_add_to_cart_without_identity_signs_out(self):
        app = StorefrontHarness(None)
        async with app.run_test(size=(120, 40)) as pilot:
            await wait_until(pilot, lambda: app.current_mode == "catalog")
            modal = ProductDetailModal(1)
            await app.push_screen(modal)
            self.assertTrue(await wait_until(pilot, lambda: list(modal.query(RadioButton))))

            list(modal.query(RadioButton))[0].value = True
            self.assertTrue(await wait_until(pilot, lambda: modal._size is not None))
            modal.handle_addcart()

            self.assertTrue(
                await wait_until(pilot, lambda: ("Signed out.", "information") in app.notices)
            )
            self.assertIsNot(app.screen, modal)
            self.assertEqual(await crud.cart_line_count(self.alice.uid), 0)

    async def test_remove_favourite_from_profile(self):
        await crud.toggle_favourite(self.alice.uid, 2)
        await crud.toggle_favourite(self.alice.uid, 4)

        app = StorefrontHarness(self.alice, "profile")
        async with app.run_test(size=(120, 40)) as pilot:
            self.assertTrue(
                await wait_until(pilot, lambda: isinstance(app.screen, ProfileScreen))
            )
            profile = app.screen
            table = profile.query_one("#table-favourites", DataTable)
            self.assertTrue(await wait_until(pilot, lambda: table.row_count == 2))
            # newest first
            self.assertEqual(profile.selected_favourite(), 4)

            profile.handle_remove_favourite()
            self.assertTrue(await wait_until(pilot, lambda: table.row_count == 1))
            self.assertFalse(await crud.is_favourite(self.alice.uid, 4))
            self.assertTrue(await crud.is_favourite(self.alice.uid, 2))

    async def test_open_favourite_goes_through_size_choice(self):
        await crud.toggle_favourite(self.alice.uid, 2)

        app = StorefrontHarness(self.alice, "profile")
        async with app.run_test(size=(120, 40)) as pilot:
            self.assertTrue(
                await wait_until(pilot, lambda: isinstance(app.screen, ProfileScreen))
            )
            profile = app.screen
            table = profile.query_one("#table-favourites", DataTable)
            self.assertTrue(await wait_until(pilot, lambda: table.row_count == 1))

            profile.handle_open_favourite()
            self.assertTrue(
                await wait_until(pilot, lambda: isinstance(app.screen, ProductDetailModal))
            )
            modal = app.screen
            self.assertTrue(await wait_until(pilot, lambda: list(modal.query(RadioButton))))
            self.assertTrue(modal.query_one("#btn-addcart").disabled)

            list(modal.query(RadioButton))[0].value = True
            self.assertTrue(
                await wait_until(pilot, lambda: not modal.query_one("#btn-addcart").disabled)
            )
            modal.handle_addcart()
            self.assertTrue(await wait_until(pilot, lambda: app.screen is profile))

            lines = await crud.list_cart_lines(self.alice.uid)
            self.assertEqual([(line.pid, line.qty) for line in lines], [(2, 1)])

    async def test_sign_out_stops_the_favourites_feed(self):
        app = StorefrontHarness(self.alice, "profile")
        async with app.run_test(size=(120, 40)) as pilot:

            def running_feeds():
                return [
                    w
                    for w in app.workers
                    if w.group == "feed" and not (w.is_finished or w.is_cancelled)
                ]

            self.assertTrue(await wait_until(pilot, lambda: len(running_feeds()) == 1))

            app.post_message(UserLogoutMessage())
            self.assertTrue(await wait_until(pilot, lambda: app.state.identity is None))
            self.assertTrue(await wait_until(pilot, lambda: not running_feeds()))


if __name__ == "__main__":
    unittest.main()

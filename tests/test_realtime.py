import asyncio
import os
import sys
import tempfile
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import crud  # noqa: E402
from db import database as db_database  # noqa: E402
from db.models import ShippingInfo  # noqa: E402
from db.realtime import ChangeFeed  # noqa: E402
from utils.pure import merge_change  # noqa: E402

SHIPPING = ShippingInfo(full_name="Ivan Petrov", address="Moscow", phone="+79991234567")


class ChangeFeedTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        db_database.DB_PATH = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database._initialized = False

    async def asyncSetUp(self):
        self.admin = await crud.ensure_admin("admin@example.com", "admin-pw")
        self.other_admin = await crud.ensure_admin("ops@example.com", "ops-pw")
        self.alice = await crud.sign_up("alice@example.com", "secret1")
        self.bob = await crud.sign_up("bob@example.com", "secret2")

    def tearDown(self):
        self.temp_dir.cleanup()

    async def _place(self, identity):
        await crud.add_cart_line(identity.uid, 1, "M")
        return await crud.place_order(identity.uid, SHIPPING)

    async def test_feed_starts_at_end_of_log(self):
        await self._place(self.alice)
        feed = ChangeFeed("orders")
        await feed.start()
        self.assertEqual(await feed.poll(), [])

    async def test_second_admin_sees_status_change(self):
        order = await self._place(self.alice)
        orders_view = await crud.list_orders(self.other_admin, "all")

        feed = ChangeFeed("orders")
        await feed.start()
        await crud.update_order_status(self.admin, order.ono, "shipped")

        events = await feed.poll()
        self.assertEqual(len(events), 1)
        event = events[0]
        self.assertEqual((event.table, event.type, event.pk), ("orders", "update", order.ono))
        self.assertEqual(event.owner, self.alice.uid)
        self.assertEqual(event.row["status"], "shipped")

        merged = merge_change(orders_view, event.type, event.pk, event.row, key="ono")
        self.assertEqual(merged[0].status, "shipped")
        self.assertEqual(merged[0].order_number, 1)
        # applying the same event again changes nothing
        self.assertEqual(merge_change(merged, event.type, event.pk, event.row, key="ono"), merged)

        # nothing is delivered twice
        self.assertEqual(await feed.poll(), [])

    async def test_insert_and_delete_events(self):
        feed = ChangeFeed("orders")
        await feed.start()
        order = await self._place(self.bob)
        async with db_database.connect() as conn:
            await conn.execute("DELETE FROM orders WHERE ono = ?;", (order.ono,))
            await conn.commit()

        events = await feed.poll()
        self.assertEqual([e.type for e in events], ["insert", "delete"])
        self.assertEqual(events[0].row["status"], "processing")
        self.assertTrue(events[0].seq < events[1].seq)

    async def test_favourites_feed_is_scoped_to_owner(self):
        feed = ChangeFeed("favourites", owner=self.alice.uid)
        await feed.start()

        await crud.toggle_favourite(self.bob.uid, 2)
        await crud.toggle_favourite(self.alice.uid, 3)
        await crud.toggle_favourite(self.alice.uid, 3)

        events = await feed.poll()
        self.assertEqual([(e.type, e.pk) for e in events], [("insert", 3), ("delete", 3)])
        self.assertTrue(all(e.owner == self.alice.uid for e in events))

    async def test_listen_yields_new_events(self):
        feed = ChangeFeed("favourites", owner=self.alice.uid, poll_interval=0.01)
        await feed.start()
        await crud.toggle_favourite(self.alice.uid, 1)

        async def first_event():
            async for event in feed.listen():
                return event

        event = await asyncio.wait_for(first_event(), timeout=5)
        self.assertEqual((event.type, event.pk), ("insert", 1))


if __name__ == "__main__":
    unittest.main()

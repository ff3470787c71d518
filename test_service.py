import sqlite3
import unittest
from contextlib import redirect_stdout
from io import StringIO

import shop_service as ss


class ServiceLayerTest(unittest.TestCase):
    def setUp(self):
        self.conn = ss.connect(":memory:")
        ss.init_db(self.conn, ss.SCHEMA_PATH)

    def tearDown(self):
        self.conn.close()

    def test_init_seeds_single_settings_row(self):
        ss.init_db(self.conn, ss.SCHEMA_PATH)
        count = self.conn.execute("SELECT COUNT(*) AS c FROM shop_settings").fetchone()["c"]
        self.assertEqual(count, 1)

    def test_row_to_api_shapes_columns(self):
        bill = ss.create_bill(self.conn, "sales", {
            "billDate": "2024-01-15", "customerName": "A", "customerPhone": "1",
            "items": [{"itemName": "X", "qty": 1}], "subtotal": 10, "taxPercentage": 0, "taxAmount": 0,
            "taxType": "GST", "advanceAmount": 0, "totalAmount": 10, "isPaid": False,
        })
        self.assertIn("shopPhone1", bill)
        self.assertIn("serialNo", bill)
        self.assertIs(bill["isPaid"], False)
        self.assertEqual(bill["items"], [{"itemName": "X", "qty": 1}])

    def test_as_int(self):
        self.assertEqual(ss.as_int("12abc"), 12)
        self.assertEqual(ss.as_int(" -4"), -4)
        self.assertEqual(ss.as_int(7.9), 7)
        self.assertIsNone(ss.as_int(True))
        self.assertIsNone(ss.as_int("abc"))
        self.assertIsNone(ss.as_int(None))

    def test_duplicate_phone_rejected_by_schema(self):
        ss.upsert_customer(self.conn, "A", "1")
        with self.assertRaises(sqlite3.IntegrityError):
            self.conn.execute(
                "INSERT INTO customers (name, phone, created_at, updated_at) VALUES ('B','1','x','x')"
            )

    def test_failed_restock_rolls_back(self):
        product = ss.create_product(self.conn, {"name": "A", "rate": 1, "productType": "sales", "stockQuantity": 2})
        with self.assertRaises(ss.ShopError) as ctx:
            ss.adjust_stock(self.conn, product["id"], -5)
        self.assertEqual(ctx.exception.code, "INSUFFICIENT_STOCK")
        self.assertEqual(ss.get_product(self.conn, product["id"])["stockQuantity"], 2)
        # connection is usable for a new transaction afterwards
        ss.adjust_stock(self.conn, product["id"], 1)

    def test_purge_expired_sessions(self):
        admin = ss.create_admin(self.conn, "owner", "secret123")
        ss.login(self.conn, "owner", "secret123")
        self.conn.execute(
            "INSERT INTO sessions (user_id, token, expires_at, created_at) VALUES (?, 'old', '2001-01-01T00:00:00Z', '2001-01-01T00:00:00Z')",
            (admin["id"],),
        )
        self.assertEqual(ss.purge_expired_sessions(self.conn), 1)
        self.assertEqual(self.conn.execute("SELECT COUNT(*) AS c FROM sessions").fetchone()["c"], 1)

    def test_demo_seed_is_idempotent(self):
        with redirect_stdout(StringIO()):
            ss.demo_seed(self.conn)
            ss.demo_seed(self.conn)
        self.assertEqual(len(ss.list_admins(self.conn)), 1)
        self.assertEqual(len(ss.export_products(self.conn)), 7)
        self.assertEqual(len(ss.export_customers(self.conn)), 4)
        self.assertTrue(any(p["name"] == "Steel Plates Set" for p in ss.export_products(self.conn)))

    def test_connect_adds_missing_photo_column(self):
        conn = sqlite3.connect(":memory:")
        conn.execute("CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT, phone TEXT, address TEXT, created_at TEXT, updated_at TEXT)")
        conn.row_factory = sqlite3.Row
        ss._ensure_customer_extras(conn)
        cols = {row["name"] for row in conn.execute("PRAGMA table_info(customers)")}
        conn.close()
        self.assertIn("photo_urls", cols)


if __name__ == "__main__":
    unittest.main()

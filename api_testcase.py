"""Shared unittest base: a fresh temp-file SQLite database behind the Flask test client."""
import os
import tempfile
import unittest

import shop_service as ss
from shop_server import app

_CONFIG_KEYS = ('TESTING', 'SHOP_DB_PATH', 'SHOP_BACKUP_DIR', 'SHOP_LOCAL_DIR', 'SHOP_REQUIRE_AUTH')


class ShopApiTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = self._tmp.name
        self.db_path = os.path.join(self.tmp_dir, 'shop.db')
        self._saved_config = {key: app.config.get(key) for key in _CONFIG_KEYS}
        app.config.update(
            TESTING=True,
            SHOP_DB_PATH=self.db_path,
            SHOP_BACKUP_DIR=os.path.join(self.tmp_dir, 'backup'),
            SHOP_LOCAL_DIR=os.path.join(self.tmp_dir, 'local'),
            SHOP_REQUIRE_AUTH=False,
        )
        self.conn = ss.connect(self.db_path)
        ss.init_db(self.conn, ss.SCHEMA_PATH)
        self.client = app.test_client()

    def tearDown(self):
        self.conn.close()
        app.config.update(self._saved_config)
        self._tmp.cleanup()

    def admin_token(self, username='owner', password='secret123'):
        if not self.conn.execute("SELECT 1 FROM admin_users WHERE username=?", (username,)).fetchone():
            ss.create_admin(self.conn, username, password, 'Owner')
        return ss.login(self.conn, username, password)['token']

    def auth(self, token):
        return {'Authorization': f'Bearer {token}'}

    def sales_bill(self, **overrides):
        payload = {
            'billDate': '2024-01-15',
            'customerName': 'Rajesh Kumar',
            'customerPhone': '9876543210',
            'customerAddress': '12 MG Road',
            'items': [{'itemName': 'Pressure Cooker', 'qty': 1, 'rate': 1200, 'amount': 1200}],
            'subtotal': 1200,
            'taxPercentage': 18,
            'taxAmount': 216,
            'taxType': 'GST',
            'advanceAmount': 0,
            'totalAmount': 1416,
            'isPaid': True,
        }
        payload.update(overrides)
        return payload

    def rental_bill(self, **overrides):
        payload = {
            'fromDate': '2024-02-01',
            'toDate': '2024-02-03',
            'customerName': 'Priya Sharma',
            'customerPhone': '8765432109',
            'items': [{'itemName': 'Folding Chair', 'qty': 50, 'rate': 25, 'amount': 1250}],
            'subtotal': 1250,
            'transportFees': 200,
            'taxPercentage': 0,
            'taxAmount': 0,
            'taxType': 'None',
            'advanceAmount': 500,
            'totalAmount': 950,
            'isPaid': False,
        }
        payload.update(overrides)
        return payload

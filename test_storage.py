import json
import os
import unittest

import shop_service as ss
from api_testcase import ShopApiTestCase
from local_store import LocalStore


class StorageApiTest(ShopApiTestCase):
    def _seed(self):
        ss.create_bill(self.conn, 'sales', self.sales_bill())
        ss.create_product(self.conn, {'name': 'A', 'rate': 1, 'productType': 'sales'})
        ss.create_product(self.conn, {'name': 'B', 'rate': 1, 'productType': 'rental'})
        for i in range(3):
            ss.upsert_customer(self.conn, f'C{i}', f'{i}')
        ss.create_booking(self.conn, {
            'billType': 'sales', 'billId': 1, 'customerName': 'C0', 'customerPhone': '0',
            'items': [{'itemName': 'A'}], 'totalAmount': 1, 'bookingDate': '2024-01-01', 'status': 'booked',
        })

    def test_summary_estimates(self):
        self._seed()
        body = self.client.get('/api/storage').get_json()
        self.assertEqual(body['records'], {'salesBills': 1, 'rentalBills': 0, 'products': 2,
                                           'customers': 3, 'bookings': 1, 'total': 7})
        self.assertEqual(body['storage']['usedKB'], 4.4)
        self.assertEqual(body['storage']['maxGB'], 10)
        self.assertEqual(body['breakdown']['customers'], {'count': 3, 'sizeKB': 0.9})

    def test_stats_shape_leaves_out_bookings(self):
        self._seed()
        body = self.client.get('/api/storage/stats').get_json()
        self.assertNotIn('bookings', body['records'])
        self.assertEqual(body['records']['total'], 6)
        self.assertEqual(body['storage']['used']['kb'], 3.9)
        self.assertEqual(body['storage']['limit'], {'gb': 10})

    def test_backup_writes_ndjson_per_table(self):
        ss.upsert_customer(self.conn, 'Rajesh', '9876543210')
        resp = self.client.post('/api/storage/backup', json={})
        files = resp.get_json()['files']
        self.assertEqual(len(files), len(ss.BACKUP_TABLES))
        customers_file = [f for f in files if os.path.basename(f).startswith('customers_')][0]
        with open(customers_file, encoding='utf-8') as f:
            rows = [json.loads(line) for line in f]
        self.assertEqual(rows[0]['phone'], '9876543210')

    def test_backup_rejects_bad_day(self):
        resp = self.client.post('/api/storage/backup', json={'day': '18/10/2026'})
        self.assertEqual(resp.get_json()['code'], 'INVALID_FORMAT')

    def test_sync_local_ingests_pending_bills(self):
        store = LocalStore(os.path.join(self.tmp_dir, 'local'))
        local = store.save_sales_bill(self.sales_bill())
        store.save_rental_bill(self.rental_bill())
        ss.create_bill(self.conn, 'sales', self.sales_bill())

        resp = self.client.post('/api/storage/sync-local')
        self.assertEqual(resp.get_json(), {'success': True, 'ingested': 2, 'failed': 0})
        synced = [b for b in store.list_bills('sales') if b['id'] == local['id']][0]
        self.assertEqual(synced['syncStatus'], 'synced')
        self.assertEqual(synced['serverSerialNo'], 2)
        self.assertEqual(store.pending_bills(), [])
        again = self.client.post('/api/storage/sync-local').get_json()
        self.assertEqual(again['ingested'], 0)

    def test_sync_local_skips_invalid_bill(self):
        store = LocalStore(os.path.join(self.tmp_dir, 'local'))
        bad = store.save_sales_bill(self.sales_bill(isPaid='yes'))
        good = store.save_sales_bill(self.sales_bill(customerPhone='7654321098'))

        resp = self.client.post('/api/storage/sync-local')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {'success': True, 'ingested': 1, 'failed': 1})
        pending_ids = [bill['id'] for _, bill in store.pending_bills()]
        self.assertEqual(pending_ids, [bad['id']])
        self.assertEqual(ss.list_bills(self.conn, 'sales')[0]['customerPhone'], good['customerPhone'])

    def test_sync_local_respects_monthly_bill_limit(self):
        now = ss.iso_now()
        self.conn.executemany("""
            INSERT INTO sales_bills (serial_no, bill_date, customer_name, customer_phone, items, subtotal, tax_amount,
                                     advance_amount, total_amount, is_paid, created_at, updated_at)
            VALUES (?, '2024-01-01', 'X', '1', '[]', 0, 0, 0, 0, 1, ?, ?)
        """, [(i + 1, now, now) for i in range(50)])
        store = LocalStore(os.path.join(self.tmp_dir, 'local'))
        store.save_sales_bill(self.sales_bill())

        resp = self.client.post('/api/storage/sync-local')
        self.assertEqual(resp.status_code, 403)
        body = resp.get_json()
        self.assertEqual(body['code'], 'PLAN_LIMIT_REACHED')
        self.assertEqual(body['ingested'], 0)
        count = self.conn.execute("SELECT COUNT(*) AS c FROM sales_bills").fetchone()['c']
        self.assertEqual(count, 50)
        self.assertEqual(len(store.pending_bills()), 1)


class HealthAndErrorsTest(ShopApiTestCase):
    def test_health(self):
        self.assertEqual(self.client.get('/api/health').get_json(), {'status': 'ok'})

    def test_unknown_route_is_json(self):
        resp = self.client.get('/api/nowhere')
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()['code'], 'NOT_FOUND')

    def test_no_cache_headers(self):
        resp = self.client.get('/api/health')
        self.assertIn('no-store', resp.headers['Cache-Control'])


if __name__ == '__main__':
    unittest.main()

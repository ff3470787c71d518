import unittest

import shop_service as ss
from api_testcase import ShopApiTestCase


class SalesBillTest(ShopApiTestCase):
    def test_next_serial_starts_at_one_and_increments(self):
        self.assertEqual(self.client.get('/api/sales-bills/next-serial').get_json(), {'nextSerial': 1})
        first = self.client.post('/api/sales-bills', json=self.sales_bill())
        second = self.client.post('/api/sales-bills', json=self.sales_bill())
        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.get_json()['serialNo'], 1)
        self.assertEqual(second.get_json()['serialNo'], 2)
        self.assertEqual(self.client.get('/api/sales-bills/next-serial').get_json(), {'nextSerial': 3})
        # rental numbering is independent
        self.assertEqual(self.client.get('/api/rental-bills/next-serial').get_json(), {'nextSerial': 1})

    def test_serial_follows_max_not_count(self):
        first = ss.create_bill(self.conn, 'sales', self.sales_bill())
        ss.create_bill(self.conn, 'sales', self.sales_bill())
        ss.delete_bill(self.conn, 'sales', first['id'])
        self.assertEqual(ss.next_serial(self.conn, 'sales'), 3)

    def test_required_fields_and_types(self):
        missing = self.sales_bill()
        del missing['taxType']
        resp = self.client.post('/api/sales-bills', json=missing)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['code'], 'MISSING_REQUIRED_FIELD')

        cases = [
            ({'items': 'Pressure Cooker'}, 'INVALID_ITEMS_FORMAT'),
            ({'isPaid': 'yes'}, 'INVALID_ISPAID_TYPE'),
            ({'customerFeedback': 'great'}, 'INVALID_FEEDBACK'),
            ({'totalAmount': 'lots'}, 'INVALID_AMOUNT'),
        ]
        for overrides, code in cases:
            resp = self.client.post('/api/sales-bills', json=self.sales_bill(**overrides))
            self.assertEqual(resp.get_json()['code'], code, overrides)

    def test_response_shape(self):
        bill = self.client.post('/api/sales-bills', json=self.sales_bill(customerFeedback='good')).get_json()
        self.assertIs(bill['isPaid'], True)
        self.assertEqual(bill['items'][0]['itemName'], 'Pressure Cooker')
        self.assertEqual(bill['customerFeedback'], 'good')
        self.assertEqual(bill['shopName'], ss.DEFAULT_SHOP['shop_name'])
        self.assertEqual(bill['shopPhone1'], ss.DEFAULT_SHOP['phone_number_1'])

    def test_shop_fields_follow_settings(self):
        ss.update_settings(self.conn, {'shopName': 'Durga Stores', 'logoUrl': 'logo.png'})
        bill = self.client.post('/api/sales-bills', json=self.sales_bill()).get_json()
        self.assertEqual(bill['shopName'], 'Durga Stores')
        self.assertEqual(bill['shopLogoUrl'], 'logo.png')
        explicit = self.client.post('/api/sales-bills', json=self.sales_bill(shopName='Branch 2')).get_json()
        self.assertEqual(explicit['shopName'], 'Branch 2')

    def test_bill_consumes_matching_stock(self):
        cooker = ss.create_product(self.conn, {'name': 'Pressure Cooker', 'rate': 1200, 'productType': 'sales',
                                               'stockQuantity': 3})
        items = [
            {'itemName': 'Pressure Cooker', 'qty': 5, 'rate': 1200, 'amount': 6000},
            {'itemName': 'Unknown Thing', 'qty': 1, 'rate': 10, 'amount': 10},
        ]
        resp = self.client.post('/api/sales-bills', json=self.sales_bill(items=items))
        self.assertEqual(resp.status_code, 201)
        product = ss.get_product(self.conn, cooker['id'])
        self.assertEqual(product['stockQuantity'], 0)
        self.assertEqual(product['totalSales'], 5)
        latest = ss.stock_history(self.conn, cooker['id'])[0]
        self.assertEqual(latest['changeType'], 'sale')
        self.assertEqual(latest['quantityChange'], -3)
        self.assertEqual(latest['notes'], 'Sales bill #1')

    def test_get_update_delete(self):
        bill = self.client.post('/api/sales-bills', json=self.sales_bill()).get_json()
        fetched = self.client.get(f"/api/sales-bills?id={bill['id']}").get_json()
        self.assertEqual(fetched['serialNo'], 1)

        updated = self.client.put(f"/api/sales-bills?id={bill['id']}", json={'isPaid': False, 'customerAddress': ''}).get_json()
        self.assertIs(updated['isPaid'], False)
        self.assertIsNone(updated['customerAddress'])
        self.assertEqual(updated['customerName'], 'Rajesh Kumar')

        deleted = self.client.delete(f"/api/sales-bills?id={bill['id']}").get_json()
        self.assertEqual(deleted['deletedRecord']['id'], bill['id'])
        missing = self.client.get(f"/api/sales-bills?id={bill['id']}")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()['code'], 'BILL_NOT_FOUND')

    def test_list_filters(self):
        ss.create_bill(self.conn, 'sales', self.sales_bill(billDate='2024-01-10', isPaid=True))
        ss.create_bill(self.conn, 'sales', self.sales_bill(billDate='2024-02-10', isPaid=False, customerName='Priya'))
        ss.create_bill(self.conn, 'sales', self.sales_bill(billDate='2024-03-10', isPaid=True))
        unpaid = self.client.get('/api/sales-bills?isPaid=false').get_json()
        self.assertEqual([b['customerName'] for b in unpaid], ['Priya'])
        ranged = self.client.get('/api/sales-bills?startDate=2024-02-01&endDate=2024-03-31').get_json()
        self.assertEqual([b['billDate'] for b in ranged], ['2024-03-10', '2024-02-10'])

    def test_pdf(self):
        bill = ss.create_bill(self.conn, 'sales', self.sales_bill())
        resp = self.client.get(f"/api/sales-bills/{bill['id']}/pdf")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.mimetype, 'application/pdf')
        self.assertTrue(resp.data.startswith(b'%PDF'))
        self.assertEqual(self.client.get('/api/sales-bills/404/pdf').status_code, 404)


class RentalBillTest(ShopApiTestCase):
    def test_create_requires_rental_fields(self):
        payload = self.rental_bill()
        del payload['transportFees']
        resp = self.client.post('/api/rental-bills', json=payload)
        self.assertEqual(resp.get_json()['code'], 'MISSING_REQUIRED_FIELD')

    def test_create_and_consume_rental_stock(self):
        chairs = ss.create_product(self.conn, {'name': 'Folding Chair', 'rate': 25, 'productType': 'rental',
                                               'stockQuantity': 200})
        bill = self.client.post('/api/rental-bills', json=self.rental_bill()).get_json()
        self.assertEqual(bill['serialNo'], 1)
        self.assertEqual(bill['transportFees'], 200)
        self.assertEqual(bill['toDate'], '2024-02-03')
        product = ss.get_product(self.conn, chairs['id'])
        self.assertEqual(product['stockQuantity'], 150)
        self.assertEqual(product['totalRentals'], 50)

    def test_delete_returns_record(self):
        bill = ss.create_bill(self.conn, 'rental', self.rental_bill())
        body = self.client.delete(f"/api/rental-bills?id={bill['id']}").get_json()
        self.assertEqual(body['record']['serialNo'], 1)

    def test_pdf(self):
        bill = ss.create_bill(self.conn, 'rental', self.rental_bill())
        resp = self.client.get(f"/api/rental-bills/{bill['id']}/pdf")
        self.assertTrue(resp.data.startswith(b'%PDF'))


class MonthlyBillLimitTest(ShopApiTestCase):
    def _fill_month(self, count):
        now = ss.iso_now()
        self.conn.executemany("""
            INSERT INTO sales_bills (serial_no, bill_date, customer_name, customer_phone, items, subtotal, tax_amount,
                                     advance_amount, total_amount, is_paid, created_at, updated_at)
            VALUES (?, '2024-01-01', 'X', '1', '[]', 0, 0, 0, 0, 1, ?, ?)
        """, [(i + 1, now, now) for i in range(count)])

    def test_free_plan_blocks_bill_fifty_one(self):
        self._fill_month(50)
        resp = self.client.post('/api/rental-bills', json=self.rental_bill())
        self.assertEqual(resp.status_code, 403)
        body = resp.get_json()
        self.assertEqual(body['code'], 'PLAN_LIMIT_REACHED')
        self.assertEqual(body['limit'], 50)

    def test_enterprise_is_unlimited(self):
        self._fill_month(50)
        ss.set_plan(self.conn, 'enterprise')
        resp = self.client.post('/api/sales-bills', json=self.sales_bill())
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.get_json()['serialNo'], 51)


if __name__ == '__main__':
    unittest.main()

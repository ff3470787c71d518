import unittest

import plans
import shop_service as ss
from api_testcase import ShopApiTestCase


class SettingsApiTest(ShopApiTestCase):
    def test_defaults(self):
        body = self.client.get('/api/settings').get_json()
        self.assertEqual(body['shopName'], 'SREE SAI DURGA')
        self.assertEqual(body['language'], 'en')
        self.assertEqual(body['theme'], 'light')
        self.assertEqual(body['plan'], 'free')

    def test_blank_fields_keep_previous_values(self):
        resp = self.client.put('/api/settings', json={'shopName': '', 'shopAddress': 'New Street', 'theme': 'dark'})
        settings = resp.get_json()['settings']
        self.assertEqual(settings['shopName'], 'SREE SAI DURGA')
        self.assertEqual(settings['shopAddress'], 'New Street')
        self.assertEqual(settings['theme'], 'dark')

    def test_logo_and_qr_overwrite_when_present(self):
        self.client.put('/api/settings', json={'logoUrl': 'logo.png', 'paymentQrUrl': 'qr.png'})
        settings = self.client.put('/api/settings', json={'logoUrl': None}).get_json()['settings']
        self.assertIsNone(settings['logoUrl'])
        self.assertEqual(settings['paymentQrUrl'], 'qr.png')

    def test_language_and_theme_validation(self):
        self.assertEqual(self.client.put('/api/settings', json={'language': 'de'}).get_json()['code'], 'INVALID_LANGUAGE')
        self.assertEqual(self.client.put('/api/settings', json={'theme': 'neon'}).get_json()['code'], 'INVALID_THEME')
        ok = self.client.put('/api/settings', json={'language': 'ta'}).get_json()['settings']
        self.assertEqual(ok['language'], 'ta')


class PlanApiTest(ShopApiTestCase):
    def test_catalog(self):
        catalog = self.client.get('/api/plans').get_json()
        self.assertEqual([p['id'] for p in catalog], ['free', 'pro', 'enterprise'])
        self.assertTrue(catalog[1]['recommended'])

    def test_current_plan_usage(self):
        for i in range(40):
            ss.upsert_customer(self.conn, f'C{i}', f'phone-{i}')
        body = self.client.get('/api/plan').get_json()
        self.assertEqual(body['plan'], 'free')
        usage = {u['featureId']: u for u in body['usage']}
        self.assertEqual(usage['customer_records']['usage'], 40)
        self.assertEqual(usage['customer_records']['percentage'], 40.0)
        self.assertFalse(usage['customer_records']['nearLimit'])
        self.assertIn('resetsAt', usage['monthly_bills'])

    def test_change_plan_needs_admin(self):
        self.assertEqual(self.client.put('/api/plan', json={'plan': 'pro'}).status_code, 401)
        token = self.admin_token()
        bad = self.client.put('/api/plan', json={'plan': 'gold'}, headers=self.auth(token))
        self.assertEqual(bad.get_json()['code'], 'INVALID_PLAN')
        ok = self.client.put('/api/plan', json={'plan': 'Pro'}, headers=self.auth(token)).get_json()
        self.assertEqual(ok['plan'], 'pro')
        self.assertEqual(ss.current_plan(self.conn), 'pro')


class PlanRulesTest(ShopApiTestCase):
    def test_check_feature(self):
        for i in range(48):
            ss.create_product(self.conn, {'name': f'P{i}', 'rate': 1, 'productType': 'sales'})
        self.assertTrue(plans.check_feature(self.conn, 'free', 'product_catalog')['allowed'])
        self.assertFalse(plans.check_feature(self.conn, 'free', 'product_catalog', adding=3)['allowed'])
        self.assertIsNone(plans.check_feature(self.conn, 'enterprise', 'product_catalog')['limit'])
        self.assertFalse(plans.check_feature(self.conn, 'free', 'api_access')['allowed'])
        self.assertTrue(plans.check_feature(self.conn, 'enterprise', 'api_access')['allowed'])

    def test_near_limit_flag(self):
        for i in range(41):
            ss.create_product(self.conn, {'name': f'P{i}', 'rate': 1, 'productType': 'sales'})
        usage = {u['featureId']: u for u in plans.plan_usage(self.conn, 'free')}
        self.assertTrue(usage['product_catalog']['nearLimit'])
        self.assertFalse(usage['product_catalog']['atLimit'])
        unlimited = {u['featureId']: u for u in plans.plan_usage(self.conn, 'enterprise')}
        self.assertTrue(unlimited['product_catalog']['unlimited'])

    def test_normalize_plan(self):
        self.assertEqual(plans.normalize_plan(' ENTERPRISE '), 'enterprise')
        self.assertIsNone(plans.normalize_plan('platinum'))
        self.assertIsNone(plans.normalize_plan(None))


if __name__ == '__main__':
    unittest.main()

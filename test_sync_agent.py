import tempfile
import unittest
from unittest import mock

import requests

import sync_agent
from local_store import LocalStore


def _response(status_code, body=None, text=''):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.json.return_value = body or {}
    resp.text = text
    return resp


class SyncAgentTest(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = LocalStore(self._tmp.name)
        self.bill = self.store.save_sales_bill({
            'billDate': '2024-01-15', 'customerName': 'Rajesh', 'customerPhone': '1',
            'items': [], 'subtotal': 0, 'taxPercentage': 0, 'taxAmount': 0, 'taxType': 'GST',
            'advanceAmount': 0, 'totalAmount': 0, 'isPaid': True,
        })

    def tearDown(self):
        self._tmp.cleanup()

    def test_pushes_pending_bill_and_marks_synced(self):
        with mock.patch('sync_agent.requests.get', return_value=_response(200)), \
                mock.patch('sync_agent.requests.post', return_value=_response(201, {'id': 7, 'serialNo': 3})) as post:
            synced = sync_agent.sync_once(self.store, 'http://shop.test')
        self.assertEqual(synced, 1)
        url = post.call_args[0][0]
        self.assertEqual(url, 'http://shop.test/api/sales-bills')
        payload = post.call_args[1]['json']
        self.assertNotIn('id', payload)
        self.assertNotIn('serialNo', payload)
        self.assertEqual(payload['customerName'], 'Rajesh')
        stored = self.store.list_bills('sales')[0]
        self.assertEqual(stored['syncStatus'], 'synced')
        self.assertEqual(stored['serverSerialNo'], 3)

    def test_rejected_bill_stays_pending(self):
        with mock.patch('sync_agent.requests.get', return_value=_response(200)), \
                mock.patch('sync_agent.requests.post', return_value=_response(403, text='limit')):
            self.assertEqual(sync_agent.sync_once(self.store, 'http://shop.test'), 0)
        self.assertEqual(len(self.store.pending_bills()), 1)

    def test_unreachable_server_skips_posting(self):
        with mock.patch('sync_agent.requests.get', side_effect=requests.ConnectionError('down')), \
                mock.patch('sync_agent.requests.post') as post:
            self.assertEqual(sync_agent.sync_once(self.store, 'http://shop.test'), 0)
        post.assert_not_called()

    def test_unparseable_response_keeps_bill_pending(self):
        resp = _response(201, text='<html>')
        resp.json.side_effect = ValueError('No JSON object could be decoded')
        with mock.patch('sync_agent.requests.get', return_value=_response(200)), \
                mock.patch('sync_agent.requests.post', return_value=resp):
            self.assertEqual(sync_agent.sync_once(self.store, 'http://shop.test'), 0)
        self.assertEqual(len(self.store.pending_bills()), 1)

    def test_network_error_while_posting(self):
        with mock.patch('sync_agent.requests.get', return_value=_response(200)), \
                mock.patch('sync_agent.requests.post', side_effect=requests.Timeout('slow')):
            self.assertEqual(sync_agent.sync_once(self.store, 'http://shop.test'), 0)
        self.assertEqual(len(self.store.pending_bills()), 1)


if __name__ == '__main__':
    unittest.main()

#!/usr/bin/env python3
"""
Sync agent: pushes bills captured in the local mirror store to the shop server.

Environment:
  SHOP_LOCAL_DIR        Folder holding the local JSON store (default: local_store)
  SHOP_SERVER_URL       Base URL of the shop server (default: http://127.0.0.1:5000)
  SHOP_ADMIN_TOKEN      Optional bearer token when the server requires auth
  SHOP_SYNC_INTERVAL    Seconds to sleep between passes (default: 10)
"""
import logging
import os
import time
from typing import Any, Dict

import requests

from local_store import LocalStore, LOCAL_DIR

logging.basicConfig(level=logging.INFO, format='[sync-agent] %(asctime)s %(levelname)s %(message)s')

SERVER_URL = os.environ.get('SHOP_SERVER_URL', 'http://127.0.0.1:5000').rstrip('/')
ADMIN_TOKEN = os.environ.get('SHOP_ADMIN_TOKEN', '')
TRY_INTERVAL = float(os.environ.get('SHOP_SYNC_INTERVAL', '10'))
REQUEST_TIMEOUT = float(os.environ.get('SHOP_SYNC_TIMEOUT', '15'))

BILL_ENDPOINTS = {'sales': '/api/sales-bills', 'rental': '/api/rental-bills'}
LOCAL_ONLY_FIELDS = ('id', 'serialNo', 'createdAt', 'updatedAt', 'syncStatus', 'syncedAt')


def _headers() -> Dict[str, str]:
    headers = {'Content-Type': 'application/json'}
    if ADMIN_TOKEN:
        headers['Authorization'] = f'Bearer {ADMIN_TOKEN}'
    return headers


def server_reachable(base_url: str = SERVER_URL) -> bool:
    try:
        resp = requests.get(f'{base_url}/api/health', timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        logging.debug("Health check failed: %s", exc)
        return False
    return resp.status_code == 200


def post_bill(kind: str, bill: Dict[str, Any], base_url: str = SERVER_URL):
    """POST one local bill; returns the created server record or None."""
    payload = {k: v for k, v in bill.items() if k not in LOCAL_ONLY_FIELDS}
    try:
        resp = requests.post(f'{base_url}{BILL_ENDPOINTS[kind]}', json=payload,
                             headers=_headers(), timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        logging.warning("HTTP error posting %s: %s", bill.get('id'), exc)
        return None
    if resp.status_code != 201:
        logging.warning("Server rejected %s: status=%s body=%s", bill.get('id'), resp.status_code, resp.text[:200])
        return None
    try:
        body = resp.json()
    except ValueError:
        logging.warning("Bad JSON response for %s: %s", bill.get('id'), resp.text[:200])
        return None
    logging.info("Posted %s as %s bill #%s", bill.get('id'), kind, body.get('serialNo'))
    return body


def sync_once(store: LocalStore, base_url: str = SERVER_URL) -> int:
    """Push every pending bill once; returns how many the server accepted."""
    if not server_reachable(base_url):
        logging.info("Server %s unreachable; keeping bills local", base_url)
        return 0
    synced = 0
    for kind, bill in store.pending_bills():
        record = post_bill(kind, bill, base_url)
        if record is None:
            continue
        store.mark_synced(kind, bill['id'], record.get('id'), record.get('serialNo'))
        synced += 1
    return synced


def main() -> None:
    store = LocalStore(LOCAL_DIR)
    logging.info("Sync agent watching %s -> %s", LOCAL_DIR, SERVER_URL)
    while True:
        synced = sync_once(store)
        if synced:
            logging.info("Synced %d bill(s)", synced)
        time.sleep(TRY_INTERVAL)


if __name__ == '__main__':
    main()

from flask import Flask, request, jsonify, g, Response
from flask_cors import CORS
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException
import os
import io
import re
import csv
import logging
from functools import wraps
from typing import Any, Dict, Optional

import shop_service as ss
import plans
from cache_utils import DataCache, RequestBatcher, cached_call
from local_store import LocalStore
from bill_pdf import render_bill_pdf

# Load environment variables
load_dotenv()

def _env_string(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return trimmed string-valued env vars, normalizing empty strings to None."""
    raw = os.getenv(name, default)
    if raw is None:
        return default
    if isinstance(raw, str):
        clean = raw.strip()
        return clean if clean else default
    return raw

def _env_float(name: str, default: float) -> float:
    try:
        return float(_env_string(name, str(default)))
    except ValueError:
        return default

app = Flask(__name__)
app.secret_key = _env_string('SHOP_SECRET_KEY', 'dev-shop-secret')
CORS(app)

_LOG_LEVEL_NAME = (os.getenv('SHOP_LOG_LEVEL') or 'INFO').strip().upper()
app.logger.setLevel(getattr(logging, _LOG_LEVEL_NAME, logging.INFO))
logging.getLogger('werkzeug').setLevel(getattr(logging, _LOG_LEVEL_NAME, logging.INFO))

app.config.update(
    SHOP_DB_PATH=_env_string('SHOP_DB_PATH', 'shop.db'),
    SHOP_SCHEMA_PATH=_env_string('SHOP_SCHEMA_PATH', ss.SCHEMA_PATH),
    SHOP_BACKUP_DIR=_env_string('SHOP_BACKUP_DIR', 'shop_backup'),
    SHOP_LOCAL_DIR=_env_string('SHOP_LOCAL_DIR', 'local_store'),
    SHOP_SESSION_HOURS=_env_float('SHOP_SESSION_HOURS', 24.0),
    SHOP_REQUIRE_AUTH=(_env_string('SHOP_REQUIRE_AUTH', '0') == '1'),
)

CACHE_TTL = _env_float('SHOP_CACHE_TTL', 30.0)
_cache = DataCache(default_ttl=CACHE_TTL)
_batcher = RequestBatcher()

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
_PUBLIC_PREFIXES = ('/api/auth/', '/api/health')
_STRICT_INT = re.compile(r'^\s*-?\d+\s*$')


# ---------- connection & helpers ----------
def _db():
    """One SQLite connection per request context; schema is created on first use."""
    if 'shop_conn' not in g:
        conn = ss.connect(app.config['SHOP_DB_PATH'])
        if not ss.has_schema(conn):
            ss.init_db(conn, app.config['SHOP_SCHEMA_PATH'])
            app.logger.info('Initialized schema in %s', app.config['SHOP_DB_PATH'])
        g.shop_conn = conn
    return g.shop_conn


@app.teardown_appcontext
def _close_db(exc):
    conn = g.pop('shop_conn', None)
    if conn is not None:
        conn.close()


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _pagination(default_limit: int = DEFAULT_PAGE_SIZE, max_limit: int = MAX_PAGE_SIZE):
    limit = ss.as_int(request.args.get('limit'))
    if limit is None or limit < 1:
        limit = default_limit
    offset = ss.as_int(request.args.get('offset'))
    if offset is None or offset < 0:
        offset = 0
    return min(limit, max_limit), offset


def _strict_id(raw: Optional[str], message: str = 'Invalid ID format') -> int:
    if raw is None or not _STRICT_INT.match(raw):
        raise ss.ShopError(message, 'INVALID_ID')
    return int(raw)


def _query_id(name: str = 'id') -> Optional[int]:
    raw = request.args.get(name)
    if raw is None:
        return None
    return _strict_id(raw)


def _cache_key(name: str) -> str:
    return f"{app.config['SHOP_DB_PATH']}::{name}"


def _invalidate_cache():
    _cache.clear(f"{app.config['SHOP_DB_PATH']}::")


def _shop_defaults(conn) -> Dict[str, Any]:
    return dict(ss.ensure_settings_row(conn))


def _enforce_plan(conn, feature_id: str, adding: int = 1):
    """Raise 403 when the current plan does not cover ``adding`` more units of a feature."""
    plan_id = ss.current_plan(conn)
    result = plans.check_feature(conn, plan_id, feature_id, adding)
    if result['allowed']:
        return
    plan = plans.PLANS.get(plan_id) or plans.PLANS[plans.DEFAULT_PLAN]
    feature_name = plans.FEATURE_NAMES.get(feature_id, feature_id)
    if result['limit'] is None:
        raise ss.ShopError(f"{feature_name} is not available on the {plan['name']}",
                           'FEATURE_NOT_AVAILABLE', 403, plan=plan_id)
    raise ss.ShopError(f"{feature_name} limit reached for the {plan['name']} ({result['limit']})",
                       'PLAN_LIMIT_REACHED', 403, plan=plan_id, usage=result['usage'], limit=result['limit'])


# ---------- auth ----------
def _bearer_token() -> Optional[str]:
    header = request.headers.get('Authorization') or ''
    if header.lower().startswith('bearer '):
        token = header[7:].strip()
        return token or None
    return None


def _authenticate() -> Dict[str, Any]:
    token = _bearer_token()
    if not token:
        raise ss.ShopError('Authentication required', 'UNAUTHORIZED', 401)
    return ss.verify_session(_db(), token)


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if 'admin' not in g:
            g.admin = _authenticate()
        return view(*args, **kwargs)
    return wrapper


@app.before_request
def _require_admin_session():
    """With SHOP_REQUIRE_AUTH=1 every API route except auth and health needs a session."""
    if not app.config['SHOP_REQUIRE_AUTH'] or request.method == 'OPTIONS':
        return None
    path = request.path
    if not path.startswith('/api/') or path.startswith(_PUBLIC_PREFIXES):
        return None
    g.admin = _authenticate()
    return None


@app.after_request
def _drop_cached_reports(response):
    """Analytics and storage figures go stale after any successful write."""
    if request.method in ('POST', 'PUT', 'DELETE') and response.status_code < 400:
        _invalidate_cache()
    return response


# Disable caching for all API responses
@app.after_request
def add_no_cache_headers(response):
    response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
    response.headers['Pragma'] = 'no-cache'
    if 'Expires' in response.headers:
        del response.headers['Expires']
    response.headers['X-Content-Type-Options'] = 'nosniff'
    return response


# ---------- error handling ----------
@app.errorhandler(ss.ShopError)
def _handle_shop_error(exc: ss.ShopError):
    app.logger.debug('%s %s -> %s %s', request.method, request.path, exc.status, exc.code)
    return jsonify(exc.to_dict()), exc.status


@app.errorhandler(Exception)
def _handle_unexpected(exc: Exception):
    if isinstance(exc, HTTPException):
        code = (exc.name or 'error').upper().replace(' ', '_')
        return jsonify({'error': exc.description, 'code': code}), exc.code
    app.logger.exception('Unhandled error on %s %s', request.method, request.path)
    return jsonify({'error': f'Internal server error: {exc}', 'code': 'INTERNAL_ERROR'}), 500


@app.route('/api/health')
def api_health():
    return jsonify({'status': 'ok'})


# ---------- admin auth ----------
@app.route('/api/auth/admin/login', methods=['POST'])
def api_admin_login():
    data = _json_body()
    result = ss.login(_db(), data.get('username'), data.get('password'), app.config['SHOP_SESSION_HOURS'])
    app.logger.info('Admin %s logged in', result['user']['username'])
    return jsonify(result)


@app.route('/api/auth/admin/verify')
def api_admin_verify():
    token = (request.args.get('token') or '').strip() or _bearer_token()
    return jsonify(ss.verify_session(_db(), token))


@app.route('/api/auth/admin/logout', methods=['POST'])
def api_admin_logout():
    token = _bearer_token() or str(_json_body().get('token') or '').strip()
    if not token:
        raise ss.ShopError('Token is required', 'MISSING_TOKEN')
    if ss.logout(_db(), token):
        app.logger.info('Admin session closed')
    return jsonify({'success': True})


@app.route('/api/admins', methods=['GET'])
@admin_required
def api_admins_list():
    return jsonify(ss.list_admins(_db()))


@app.route('/api/admins', methods=['POST'])
@admin_required
def api_admins_create():
    data = _json_body()
    admin = ss.create_admin(_db(), data.get('username'), data.get('password'), data.get('name'))
    app.logger.info('Admin %s created by %s', admin['username'], g.admin['user']['username'])
    return jsonify(admin), 201


@app.route('/api/admins/<admin_id>', methods=['DELETE'])
@admin_required
def api_admins_delete(admin_id):
    removed = ss.delete_admin(_db(), _strict_id(admin_id), g.admin['user']['id'])
    app.logger.info('Admin %s deleted', removed['username'])
    return jsonify({'success': True, 'admin': removed})


# ---------- customers ----------
@app.route('/api/customers', methods=['GET'])
def api_customers_list():
    limit, offset = _pagination()
    search = (request.args.get('search') or '').strip() or None
    return jsonify(ss.list_customers(_db(), limit, offset, search))


@app.route('/api/customers', methods=['POST'])
def api_customers_upsert():
    """Create a customer, or refresh name/address when the phone is already known."""
    data = _json_body()
    conn = _db()
    phone = data.get('phone')
    if isinstance(phone, str) and phone.strip() and not ss.find_customer_by_phone(conn, phone):
        _enforce_plan(conn, 'customer_records')
    customer, created = ss.upsert_customer(conn, data.get('name'), phone, data.get('address'))
    return jsonify(customer), (201 if created else 200)


@app.route('/api/customers/behavior')
def api_customers_behavior():
    conn = _db()
    _enforce_plan(conn, 'customer_behavior_analytics')
    return jsonify(ss.customer_behavior(conn, request.args.get('search')))


@app.route('/api/customers/bulk', methods=['POST'])
def api_customers_bulk():
    data = _json_body()
    action = data.get('action')
    conn = _db()
    start, end = data.get('startDate'), data.get('endDate')
    if action == 'deleteAll':
        count = ss.delete_customers(conn, start, end)
        app.logger.info('Bulk deleted %s customer(s)', count)
        return jsonify({'success': True, 'message': f'Deleted {count} customers', 'count': count})
    if action == 'upload':
        rows = data.get('data')
        if isinstance(rows, list):
            phones = {str(r.get('phone')).strip() for r in rows if isinstance(r, dict) and r.get('phone') and r.get('name')}
            new_count = sum(1 for p in phones if not ss.find_customer_by_phone(conn, p))
            if new_count:
                _enforce_plan(conn, 'customer_records', new_count)
        count = ss.bulk_upload_customers(conn, rows)
        app.logger.info('Bulk uploaded %s customer(s)', count)
        return jsonify({'success': True, 'count': count, 'message': f'Successfully uploaded {count} customers'}), 201
    if action == 'export':
        rows = ss.export_customers(conn, start, end)
        return jsonify({'success': True, 'data': rows, 'count': len(rows)})
    raise ss.ShopError('Invalid action', 'INVALID_ACTION')


@app.route('/api/customers/<customer_id>', methods=['GET'])
def api_customer_get(customer_id):
    return jsonify(ss.get_customer(_db(), _strict_id(customer_id, 'Invalid customer ID')))


@app.route('/api/customers/<customer_id>', methods=['PUT'])
def api_customer_update(customer_id):
    cid = _strict_id(customer_id, 'Invalid customer ID')
    return jsonify(ss.update_customer(_db(), cid, _json_body()))


@app.route('/api/customers/<customer_id>', methods=['DELETE'])
def api_customer_delete(customer_id):
    ss.delete_customer(_db(), _strict_id(customer_id, 'Invalid customer ID'))
    return jsonify({'success': True, 'message': 'Customer deleted'})


@app.route('/api/customers/<customer_id>/photos', methods=['POST'])
def api_customer_photos_add(customer_id):
    customer = ss.add_customer_photos(_db(), customer_id, _json_body().get('photos'))
    return jsonify({'success': True, 'customer': customer})


@app.route('/api/customers/<customer_id>/photos', methods=['DELETE'])
def api_customer_photos_remove(customer_id):
    photos = ss.remove_customer_photo(_db(), customer_id, request.args.get('photoIndex'))
    return jsonify({'success': True, 'photoUrls': photos})


# ---------- products ----------
@app.route('/api/products', methods=['GET'])
def api_products_get():
    conn = _db()
    product_id = _query_id()
    if product_id is not None:
        return jsonify(ss.get_product(conn, product_id))
    limit, offset = _pagination()
    return jsonify(ss.list_products(
        conn, limit, offset,
        search=(request.args.get('search') or '').strip() or None,
        product_type=request.args.get('productType') or None,
        category=request.args.get('category') or None,
    ))


@app.route('/api/products', methods=['POST'])
def api_products_create():
    conn = _db()
    _enforce_plan(conn, 'product_catalog')
    product = ss.create_product(conn, _json_body())
    return jsonify(product), 201


@app.route('/api/products', methods=['PUT'])
def api_products_update():
    product_id = _query_id()
    if product_id is None:
        raise ss.ShopError('Product ID is required', 'INVALID_ID')
    product = ss.update_product(_db(), product_id, _json_body())
    return jsonify(product)


@app.route('/api/products', methods=['DELETE'])
def api_products_delete():
    conn = _db()
    if request.args.get('bulkDelete') == 'true':
        count = ss.delete_all_products(conn)
        app.logger.info('Bulk deleted %s product(s)', count)
        return jsonify({'message': f'Successfully deleted {count} products', 'count': count})
    product_id = _query_id()
    if product_id is None:
        raise ss.ShopError('Product ID is required', 'INVALID_ID')
    product = ss.delete_product(conn, product_id)
    return jsonify({'message': 'Product deleted successfully', 'product': product})


@app.route('/api/products/restock', methods=['POST'])
def api_products_restock():
    data = _json_body()
    product = ss.adjust_stock(_db(), data.get('productId'), data.get('quantityChange'),
                              data.get('changeType'), data.get('notes'))
    applied = product['changeApplied']
    app.logger.info('Stock for product %s: %s -> %s (%s)', product['id'],
                    applied['previousQuantity'], applied['newQuantity'], applied['changeType'])
    return jsonify(product)


@app.route('/api/products/low-stock')
def api_products_low_stock():
    return jsonify(ss.low_stock_products(_db()))


@app.route('/api/products/stock-history')
def api_products_stock_history():
    product_id = request.args.get('productId')
    pid = None
    if product_id:
        pid = ss.as_int(product_id)
        if pid is None:
            raise ss.ShopError('productId must be a valid integer', 'INVALID_PRODUCT_ID')
    limit, offset = _pagination(default_limit=50, max_limit=200)
    return jsonify(ss.stock_history(_db(), pid, limit, offset))


@app.route('/api/products/analytics')
def api_products_analytics():
    conn = _db()
    return jsonify(cached_call(_cache, _cache_key('product-analytics'),
                               lambda: ss.product_analytics(conn), batcher=_batcher))


PRODUCT_CSV_COLUMNS = [
    ('ID', 'id'), ('Name', 'name'), ('Rate', 'rate'), ('Category', 'category'),
    ('Type', 'productType'), ('Stock Quantity', 'stockQuantity'), ('Min Stock Level', 'minStockLevel'),
    ('Total Sales', 'totalSales'), ('Total Rentals', 'totalRentals'),
    ('Last Restocked', 'lastRestocked'), ('Created At', 'createdAt'),
]


@app.route('/api/products/export')
def api_products_export():
    fmt = (request.args.get('format') or 'json').strip().lower()
    if fmt not in ('json', 'csv'):
        raise ss.ShopError("format must be 'json' or 'csv'", 'INVALID_FORMAT')
    rows = ss.export_products(_db())
    if fmt == 'json':
        return jsonify({'success': True, 'data': rows, 'count': len(rows)})
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow([header for header, _ in PRODUCT_CSV_COLUMNS])
    for row in rows:
        writer.writerow(['' if row.get(key) is None else row.get(key) for _, key in PRODUCT_CSV_COLUMNS])
    return Response(buf.getvalue(), mimetype='text/csv',
                    headers={'Content-Disposition': 'attachment; filename=products.csv'})


# ---------- bills ----------
def _bills_get(kind: str):
    conn = _db()
    bill_id = _query_id()
    if bill_id is not None:
        return jsonify(ss.get_bill(conn, kind, bill_id))
    limit, offset = _pagination()
    is_paid_raw = request.args.get('isPaid')
    return jsonify(ss.list_bills(
        conn, kind, limit, offset,
        search=(request.args.get('search') or '').strip() or None,
        start_date=request.args.get('startDate') or None,
        end_date=request.args.get('endDate') or None,
        is_paid=None if is_paid_raw is None else is_paid_raw == 'true',
    ))


def _bills_create(kind: str):
    conn = _db()
    _enforce_plan(conn, 'monthly_bills')
    bill = ss.create_bill(conn, kind, _json_body(), _shop_defaults(conn))
    app.logger.info('%s bill #%s created for %s', kind.capitalize(), bill['serialNo'], bill['customerName'])
    return jsonify(bill), 201


def _bills_update(kind: str):
    bill_id = _query_id()
    if bill_id is None:
        raise ss.ShopError('Valid ID is required', 'INVALID_ID')
    bill = ss.update_bill(_db(), kind, bill_id, _json_body())
    return jsonify(bill)


def _bills_delete(kind: str, record_key: str):
    bill_id = _query_id()
    if bill_id is None:
        raise ss.ShopError('Valid ID is required', 'INVALID_ID')
    record = ss.delete_bill(_db(), kind, bill_id)
    label = ss.bill_kind(kind)['label']
    return jsonify({'message': f'{label} deleted successfully', record_key: record})


def _bill_pdf(kind: str, bill_id: str):
    bill = ss.get_bill(_db(), kind, _strict_id(bill_id))
    pdf = render_bill_pdf(bill, kind)
    filename = f"{kind}-bill-{bill['serialNo']}.pdf"
    return Response(pdf, mimetype='application/pdf',
                    headers={'Content-Disposition': f'inline; filename={filename}'})


@app.route('/api/sales-bills', methods=['GET'])
def api_sales_bills_get():
    return _bills_get('sales')


@app.route('/api/sales-bills', methods=['POST'])
def api_sales_bills_create():
    return _bills_create('sales')


@app.route('/api/sales-bills', methods=['PUT'])
def api_sales_bills_update():
    return _bills_update('sales')


@app.route('/api/sales-bills', methods=['DELETE'])
def api_sales_bills_delete():
    return _bills_delete('sales', 'deletedRecord')


@app.route('/api/sales-bills/next-serial')
def api_sales_bills_next_serial():
    return jsonify({'nextSerial': ss.next_serial(_db(), 'sales')})


@app.route('/api/sales-bills/<bill_id>/pdf')
def api_sales_bill_pdf(bill_id):
    return _bill_pdf('sales', bill_id)


@app.route('/api/rental-bills', methods=['GET'])
def api_rental_bills_get():
    return _bills_get('rental')


@app.route('/api/rental-bills', methods=['POST'])
def api_rental_bills_create():
    return _bills_create('rental')


@app.route('/api/rental-bills', methods=['PUT'])
def api_rental_bills_update():
    return _bills_update('rental')


@app.route('/api/rental-bills', methods=['DELETE'])
def api_rental_bills_delete():
    return _bills_delete('rental', 'record')


@app.route('/api/rental-bills/next-serial')
def api_rental_bills_next_serial():
    return jsonify({'nextSerial': ss.next_serial(_db(), 'rental')})


@app.route('/api/rental-bills/<bill_id>/pdf')
def api_rental_bill_pdf(bill_id):
    return _bill_pdf('rental', bill_id)


# ---------- bookings ----------
def _booking_filter_args() -> Dict[str, Optional[str]]:
    return {
        'bill_type': request.args.get('billType') or None,
        'status': request.args.get('status') or None,
        'start_date': request.args.get('startDate') or None,
        'end_date': request.args.get('endDate') or None,
    }


@app.route('/api/bookings', methods=['GET'])
def api_bookings_get():
    conn = _db()
    booking_id = _query_id()
    if booking_id is not None:
        return jsonify(ss.get_booking(conn, booking_id))
    limit, offset = _pagination()
    return jsonify(ss.list_bookings(conn, limit, offset,
                                    search=(request.args.get('search') or '').strip() or None,
                                    **_booking_filter_args()))


@app.route('/api/bookings', methods=['POST'])
def api_bookings_create():
    return jsonify(ss.create_booking(_db(), _json_body())), 201


@app.route('/api/bookings', methods=['PUT'])
def api_bookings_update():
    booking_id = _query_id()
    if booking_id is None:
        raise ss.ShopError('Valid ID is required', 'INVALID_ID')
    return jsonify(ss.update_booking(_db(), booking_id, _json_body()))


@app.route('/api/bookings', methods=['DELETE'])
def api_bookings_delete():
    """Single delete by ?id, or bulk by ?ids=[..] / filters when bulkDelete=true."""
    conn = _db()
    if request.args.get('bulkDelete') == 'true':
        ids_raw = request.args.get('ids')
        if ids_raw:
            count = ss.delete_bookings_by_ids(conn, ss.parse_id_list(ids_raw))
        else:
            count = ss.delete_bookings_matching(conn, **_booking_filter_args())
        app.logger.info('Bulk deleted %s booking(s)', count)
        return jsonify({'message': f'Successfully deleted {count} bookings', 'deletedCount': count})
    booking_id = _query_id()
    if booking_id is None:
        raise ss.ShopError('Either id or bulkDelete parameter is required', 'MISSING_PARAMETERS')
    ss.delete_booking(conn, booking_id)
    return jsonify({'message': 'Booking deleted successfully', 'deletedCount': 1})


# ---------- settings & plan ----------
@app.route('/api/settings', methods=['GET'])
def api_settings_get():
    return jsonify(ss.get_settings(_db()))


@app.route('/api/settings', methods=['PUT'])
def api_settings_update():
    settings = ss.update_settings(_db(), _json_body())
    app.logger.info('Shop settings updated')
    return jsonify({'success': True, 'settings': settings})


def _plan_payload(conn) -> Dict[str, Any]:
    plan_id = plans.normalize_plan(ss.current_plan(conn)) or plans.DEFAULT_PLAN
    plan = plans.PLANS[plan_id]
    return {
        'plan': plan_id,
        'name': plan['name'],
        'price': plan['price'],
        'description': plan['description'],
        'features': dict(plan['features']),
        'usage': plans.plan_usage(conn, plan_id),
    }


@app.route('/api/plan', methods=['GET'])
def api_plan_get():
    return jsonify(_plan_payload(_db()))


@app.route('/api/plans')
def api_plans_catalog():
    return jsonify(plans.plan_catalog())


@app.route('/api/plan', methods=['PUT'])
@admin_required
def api_plan_update():
    plan_id = plans.normalize_plan(_json_body().get('plan'))
    if plan_id is None:
        raise ss.ShopError(f"plan must be one of: {', '.join(plans.PLANS)}", 'INVALID_PLAN')
    conn = _db()
    ss.set_plan(conn, plan_id)
    app.logger.info('Plan changed to %s by %s', plan_id, g.admin['user']['username'])
    return jsonify(_plan_payload(conn))


# ---------- storage ----------
@app.route('/api/storage')
def api_storage():
    conn = _db()
    return jsonify(cached_call(_cache, _cache_key('storage'), lambda: ss.storage_summary(conn), batcher=_batcher))


@app.route('/api/storage/stats')
def api_storage_stats():
    conn = _db()
    return jsonify(cached_call(_cache, _cache_key('storage-stats'), lambda: ss.storage_stats(conn), batcher=_batcher))


@app.route('/api/storage/backup', methods=['POST'])
def api_storage_backup():
    day = _json_body().get('day') or None
    files = ss.backup_ndjson(_db(), day, app.config['SHOP_BACKUP_DIR'])
    app.logger.info('Wrote %d backup file(s) to %s', len(files), app.config['SHOP_BACKUP_DIR'])
    return jsonify({'success': True, 'files': files})


@app.route('/api/storage/sync-local', methods=['POST'])
def api_storage_sync_local():
    """Pull bills captured offline into SQLite."""
    conn = _db()
    store = LocalStore(app.config['SHOP_LOCAL_DIR'])
    result = ss.ingest_local_bills(conn, store, _shop_defaults(conn),
                                   gate=lambda kind: _enforce_plan(conn, 'monthly_bills'))
    ingested, failed = result['ingested'], result['failed']
    for failure in failed:
        app.logger.warning('Skipped local %s bill %s: %s (%s)',
                           failure['kind'], failure['id'], failure['error'], failure['code'])
    if ingested:
        _invalidate_cache()
        app.logger.info('Ingested %s local bill(s) into SQLite', ingested)
    blocked = result['blocked']
    if blocked is not None:
        extra = dict(blocked.extra, ingested=ingested, failed=len(failed))
        raise ss.ShopError(blocked.message, blocked.code, blocked.status, **extra)
    return jsonify({'success': True, 'ingested': ingested, 'failed': len(failed)})


if __name__ == '__main__':
    debug = os.getenv('FLASK_DEBUG', '0') == '1'
    port = int(os.getenv('PORT', '5000'))
    host = os.getenv('HOST', '0.0.0.0')
    app.run(host=host, port=port, debug=debug)

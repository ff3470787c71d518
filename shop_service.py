#!/usr/bin/env python3
# Shop billing scaffold: SQLite store for customers, products/stock, sales & rental bills, bookings
import os, sys, json, uuid, sqlite3, re, hmac, argparse, datetime as dt
from contextlib import contextmanager
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

import bcrypt

DB_PATH = os.environ.get("SHOP_DB_PATH", "shop.db")
SCHEMA_PATH = os.environ.get("SHOP_SCHEMA_PATH") or str(Path(__file__).with_name("schema.sql"))
BACKUP_DIR = os.environ.get("SHOP_BACKUP_DIR", "shop_backup")

PRODUCT_TYPES = ("sales", "rental")
BILL_TYPES = ("sales", "rental")
BOOKING_STATUSES = ("booked", "completed", "cancelled")
FEEDBACK_VALUES = ("very_good", "good", "bad")
LANGUAGES = ("en", "ta", "te", "hi", "fr")
THEMES = ("light", "dark")

DEFAULT_SHOP = {
    "shop_name": "SREE SAI DURGA",
    "shop_address": "MAIN ROAD, THIRUVENNAI NALLUR Kt, VILLUPURAM Dt, PINCODE : 607203",
    "phone_number_1": "9790548669",
    "phone_number_2": "9442378669",
}

JSON_COLUMNS = {"items", "photo_urls"}
BOOL_COLUMNS = {"is_paid"}


class ShopError(Exception):
    """Validation / lookup failure carrying the HTTP status and error code for the API."""
    def __init__(self, message: str, code: str, status: int = 400, **extra: Any):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message, "code": self.code}
        body.update(self.extra)
        return body


def iso_now() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"

def parse_iso(value: str) -> dt.datetime:
    raw = (value or "").strip()
    if raw.endswith("Z"):
        raw = raw[:-1]
    parsed = dt.datetime.fromisoformat(raw)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return parsed

def connect(db_path: str = DB_PATH) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # explicit BEGIN/COMMIT via _transaction(); single statements autocommit
    conn.isolation_level = None
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    try:
        _ensure_customer_extras(conn)
    except sqlite3.Error:
        pass
    return conn

def init_db(conn: sqlite3.Connection, schema_path: str = SCHEMA_PATH):
    with open(schema_path, "r", encoding="utf-8") as f:
        conn.executescript(f.read())
    _ensure_customer_extras(conn)
    ensure_settings_row(conn)

def has_schema(conn: sqlite3.Connection) -> bool:
    row = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='sales_bills'").fetchone()
    return row is not None

def _ensure_customer_extras(conn: sqlite3.Connection):
    """Add photo_urls on customers tables created before photo support."""
    rows = conn.execute("PRAGMA table_info(customers)").fetchall()
    if not rows:
        return
    existing = {row["name"] for row in rows}
    if "photo_urls" not in existing:
        conn.execute("ALTER TABLE customers ADD COLUMN photo_urls TEXT")

@contextmanager
def _transaction(conn: sqlite3.Connection):
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


# ---------- ROW SHAPING ----------
def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)

def _decode_json_column(raw: Any) -> Any:
    if raw in (None, ""):
        return []
    if isinstance(raw, (list, dict)):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return []

def row_to_api(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    """sqlite row -> camelCase dict with JSON/boolean columns decoded."""
    if row is None:
        return None
    out: Dict[str, Any] = {}
    for key in row.keys():
        value = row[key]
        if key in JSON_COLUMNS:
            value = _decode_json_column(value)
        elif key in BOOL_COLUMNS:
            value = bool(value)
        out[_camel(key)] = value
    return out

def rows_to_api(rows) -> List[Dict[str, Any]]:
    return [row_to_api(r) for r in rows]


# ---------- INPUT COERCION ----------
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")

def as_int(value: Any) -> Optional[int]:
    """Leading-integer parse: 12, 12.7, '12', '12abc' -> 12; anything else -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return int(value)
    m = _INT_PREFIX.match(str(value))
    return int(m.group(1)) if m else None

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)

def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None

def _require_text(value: Any, code: str, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ShopError(message, code)
    return value.strip()

def _require_id(value: Any, code: str = "INVALID_ID", message: str = "Valid ID is required") -> int:
    parsed = as_int(value)
    if parsed is None:
        raise ShopError(message, code)
    return parsed

def _json_dump(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


# ---------- SETTINGS ----------
def ensure_settings_row(conn: sqlite3.Connection) -> sqlite3.Row:
    row = conn.execute("SELECT * FROM shop_settings ORDER BY id LIMIT 1").fetchone()
    if row:
        return row
    now = iso_now()
    conn.execute("""
        INSERT INTO shop_settings (shop_name, shop_address, phone_number_1, phone_number_2, logo_url, payment_qr_url, language, theme, plan, created_at, updated_at)
        VALUES (?,?,?,?,NULL,NULL,'en','light','free',?,?)
    """, (DEFAULT_SHOP["shop_name"], DEFAULT_SHOP["shop_address"], DEFAULT_SHOP["phone_number_1"], DEFAULT_SHOP["phone_number_2"], now, now))
    return conn.execute("SELECT * FROM shop_settings ORDER BY id LIMIT 1").fetchone()

def _settings_payload(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "shopName": row["shop_name"],
        "shopAddress": row["shop_address"],
        "phoneNumber1": row["phone_number_1"],
        "phoneNumber2": row["phone_number_2"],
        "logoUrl": row["logo_url"],
        "paymentQrUrl": row["payment_qr_url"],
        "language": row["language"],
        "theme": row["theme"],
        "plan": row["plan"],
        "updatedAt": row["updated_at"],
    }

def get_settings(conn: sqlite3.Connection) -> Dict[str, Any]:
    return _settings_payload(ensure_settings_row(conn))

def update_settings(conn: sqlite3.Connection, data: Dict[str, Any]) -> Dict[str, Any]:
    """Blank text fields keep their previous value; logo/QR urls are replaced whenever supplied."""
    current = ensure_settings_row(conn)
    language = current["language"]
    if data.get("language"):
        language = str(data["language"]).strip().lower()
        if language not in LANGUAGES:
            raise ShopError(f"language must be one of: {', '.join(LANGUAGES)}", "INVALID_LANGUAGE")
    theme = current["theme"]
    if data.get("theme"):
        theme = str(data["theme"]).strip().lower()
        if theme not in THEMES:
            raise ShopError("theme must be 'light' or 'dark'", "INVALID_THEME")
    values = {
        "shop_name": _clean_text(data.get("shopName")) or current["shop_name"],
        "shop_address": _clean_text(data.get("shopAddress")) or current["shop_address"],
        "phone_number_1": _clean_text(data.get("phoneNumber1")) or current["phone_number_1"],
        "phone_number_2": _clean_text(data.get("phoneNumber2")) or current["phone_number_2"],
        "logo_url": _clean_text(data["logoUrl"]) if "logoUrl" in data else current["logo_url"],
        "payment_qr_url": _clean_text(data["paymentQrUrl"]) if "paymentQrUrl" in data else current["payment_qr_url"],
        "language": language,
        "theme": theme,
        "updated_at": iso_now(),
        "id": current["id"],
    }
    conn.execute("""
        UPDATE shop_settings SET shop_name=:shop_name, shop_address=:shop_address,
            phone_number_1=:phone_number_1, phone_number_2=:phone_number_2,
            logo_url=:logo_url, payment_qr_url=:payment_qr_url,
            language=:language, theme=:theme, updated_at=:updated_at
        WHERE id=:id
    """, values)
    return get_settings(conn)

def set_plan(conn: sqlite3.Connection, plan_id: str) -> Dict[str, Any]:
    current = ensure_settings_row(conn)
    conn.execute("UPDATE shop_settings SET plan=?, updated_at=? WHERE id=?", (plan_id, iso_now(), current["id"]))
    return get_settings(conn)

def current_plan(conn: sqlite3.Connection) -> str:
    return ensure_settings_row(conn)["plan"] or "free"


# ---------- ADMIN AUTH ----------
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored:
        return False
    if stored.startswith("$2"):
        try:
            return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))
        except ValueError:
            return False
    # rows seeded before hashing was introduced hold the raw password
    return hmac.compare_digest(stored, password)

def _admin_payload(row: sqlite3.Row) -> Dict[str, Any]:
    return {"id": row["id"], "username": row["username"], "name": row["name"]}

def create_admin(conn: sqlite3.Connection, username: Any, password: Any, name: Any = None) -> Dict[str, Any]:
    username = _require_text(username, "MISSING_USERNAME", "Username is required")
    if not isinstance(password, str) or not password:
        raise ShopError("Password is required", "MISSING_PASSWORD")
    if len(password) < 6:
        raise ShopError("Password must be at least 6 characters long", "INVALID_PASSWORD")
    display = _clean_text(name) or username
    now = iso_now()
    try:
        cur = conn.execute(
            "INSERT INTO admin_users (username, password, name, created_at) VALUES (?,?,?,?)",
            (username, hash_password(password), display, now),
        )
    except sqlite3.IntegrityError:
        raise ShopError("Username already exists", "DUPLICATE_USERNAME", 409)
    row = conn.execute("SELECT id, username, name, created_at FROM admin_users WHERE id=?", (cur.lastrowid,)).fetchone()
    return row_to_api(row)

def list_admins(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    return rows_to_api(conn.execute("SELECT id, username, name, created_at FROM admin_users ORDER BY id").fetchall())

def delete_admin(conn: sqlite3.Connection, admin_id: Any, acting_user_id: Optional[int] = None) -> Dict[str, Any]:
    admin_id = _require_id(admin_id)
    row = conn.execute("SELECT id, username, name, created_at FROM admin_users WHERE id=?", (admin_id,)).fetchone()
    if not row:
        raise ShopError("Admin not found", "NOT_FOUND", 404)
    if acting_user_id is not None and acting_user_id == admin_id:
        raise ShopError("You cannot delete your own account", "INVALID_ID")
    total = conn.execute("SELECT COUNT(*) AS c FROM admin_users").fetchone()["c"]
    if total <= 1:
        raise ShopError("At least one admin must remain", "INVALID_ID")
    conn.execute("DELETE FROM admin_users WHERE id=?", (admin_id,))
    return row_to_api(row)

def login(conn: sqlite3.Connection, username: Any, password: Any, session_hours: float = 24) -> Dict[str, Any]:
    if not username:
        raise ShopError("Username is required", "MISSING_USERNAME")
    if not password:
        raise ShopError("Password is required", "MISSING_PASSWORD")
    row = conn.execute("SELECT * FROM admin_users WHERE username=? LIMIT 1", (str(username).strip(),)).fetchone()
    if not row or not verify_password(str(password), row["password"]):
        raise ShopError("Invalid credentials", "INVALID_CREDENTIALS", 401)
    token = str(uuid.uuid4())
    now = dt.datetime.now(dt.timezone.utc).replace(microsecond=0, tzinfo=None)
    expires = (now + dt.timedelta(hours=session_hours)).isoformat() + "Z"
    conn.execute(
        "INSERT INTO sessions (user_id, token, expires_at, created_at) VALUES (?,?,?,?)",
        (row["id"], token, expires, now.isoformat() + "Z"),
    )
    return {"token": token, "user": _admin_payload(row), "expiresAt": expires}

def verify_session(conn: sqlite3.Connection, token: Optional[str]) -> Dict[str, Any]:
    """Resolve a session token; expired sessions are removed on sight."""
    if not token:
        raise ShopError("Token is required", "MISSING_TOKEN")
    sess = conn.execute("SELECT * FROM sessions WHERE token=? LIMIT 1", (token,)).fetchone()
    if not sess:
        raise ShopError("Invalid token", "INVALID_TOKEN", 401, valid=False)
    expires_at = parse_iso(sess["expires_at"])
    if expires_at <= dt.datetime.now(dt.timezone.utc).replace(tzinfo=None):
        conn.execute("DELETE FROM sessions WHERE token=?", (token,))
        raise ShopError("Token expired", "TOKEN_EXPIRED", 401, valid=False)
    user = conn.execute("SELECT id, username, name FROM admin_users WHERE id=?", (sess["user_id"],)).fetchone()
    if not user:
        raise ShopError("User not found", "INVALID_TOKEN", 401, valid=False)
    return {"valid": True, "user": _admin_payload(user), "expiresAt": sess["expires_at"]}

def logout(conn: sqlite3.Connection, token: Optional[str]) -> bool:
    if not token:
        return False
    cur = conn.execute("DELETE FROM sessions WHERE token=?", (token,))
    return cur.rowcount > 0

def purge_expired_sessions(conn: sqlite3.Connection) -> int:
    cur = conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (iso_now(),))
    return cur.rowcount


# ---------- CUSTOMERS ----------
def list_customers(conn: sqlite3.Connection, limit: int = 10, offset: int = 0, search: Optional[str] = None) -> List[Dict[str, Any]]:
    sql = "SELECT * FROM customers"
    params: List[Any] = []
    if search:
        term = f"%{search}%"
        sql += " WHERE name LIKE ? OR phone LIKE ? OR address LIKE ?"
        params += [term, term, term]
    sql += " ORDER BY id LIMIT ? OFFSET ?"
    params += [limit, offset]
    return rows_to_api(conn.execute(sql, params).fetchall())

def _customer_row(conn: sqlite3.Connection, customer_id: int) -> Optional[sqlite3.Row]:
    return conn.execute("SELECT * FROM customers WHERE id=?", (customer_id,)).fetchone()

def get_customer(conn: sqlite3.Connection, customer_id: Any) -> Dict[str, Any]:
    cid = _require_id(customer_id, message="Invalid customer ID")
    row = _customer_row(conn, cid)
    if not row:
        raise ShopError("Customer not found", "NOT_FOUND", 404)
    return row_to_api(row)

def find_customer_by_phone(conn: sqlite3.Connection, phone: str) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM customers WHERE phone=?", ((phone or "").strip(),)).fetchone()
    return row_to_api(row)

def upsert_customer(conn: sqlite3.Connection, name: Any, phone: Any, address: Any = None) -> Tuple[Dict[str, Any], bool]:
    """Create or refresh a customer keyed by phone. Returns (customer, created)."""
    name = _require_text(name, "MISSING_NAME", "Name is required and must be a non-empty string")
    phone = _require_text(phone, "MISSING_PHONE", "Phone is required and must be a non-empty string")
    address = _clean_text(address)
    now = iso_now()
    existing = conn.execute("SELECT id FROM customers WHERE phone=?", (phone,)).fetchone()
    if existing:
        conn.execute("UPDATE customers SET name=?, address=?, updated_at=? WHERE id=?", (name, address, now, existing["id"]))
        return row_to_api(_customer_row(conn, existing["id"])), False
    try:
        cur = conn.execute(
            "INSERT INTO customers (name, phone, address, photo_urls, created_at, updated_at) VALUES (?,?,?,NULL,?,?)",
            (name, phone, address, now, now),
        )
    except sqlite3.IntegrityError:
        raise ShopError("A customer with this phone number already exists", "DUPLICATE_PHONE")
    return row_to_api(_customer_row(conn, cur.lastrowid)), True

def update_customer(conn: sqlite3.Connection, customer_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    cid = _require_id(customer_id, message="Invalid customer ID")
    name = _require_text(data.get("name"), "MISSING_NAME", "Name is required")
    phone = _require_text(data.get("phone"), "MISSING_PHONE", "Phone is required")
    address = _clean_text(data.get("address"))
    try:
        cur = conn.execute(
            "UPDATE customers SET name=?, phone=?, address=?, updated_at=? WHERE id=?",
            (name, phone, address, iso_now(), cid),
        )
    except sqlite3.IntegrityError:
        raise ShopError("Phone number already exists", "DUPLICATE_PHONE")
    if cur.rowcount == 0:
        raise ShopError("Customer not found", "NOT_FOUND", 404)
    return row_to_api(_customer_row(conn, cid))

def delete_customer(conn: sqlite3.Connection, customer_id: Any) -> None:
    cid = _require_id(customer_id, message="Invalid customer ID")
    cur = conn.execute("DELETE FROM customers WHERE id=?", (cid,))
    if cur.rowcount == 0:
        raise ShopError("Customer not found", "NOT_FOUND", 404)

def _photo_customer(conn: sqlite3.Connection, customer_id: Any) -> sqlite3.Row:
    cid = as_int(customer_id)
    if cid is None:
        raise ShopError("Valid customer ID is required", "INVALID_CUSTOMER_ID")
    row = _customer_row(conn, cid)
    if not row:
        raise ShopError("Customer not found", "CUSTOMER_NOT_FOUND", 404)
    return row

def add_customer_photos(conn: sqlite3.Connection, customer_id: Any, photos: Any) -> Dict[str, Any]:
    if not isinstance(photos, list):
        raise ShopError("Photos must be an array", "INVALID_PHOTOS_FORMAT")
    for idx, photo in enumerate(photos):
        if not isinstance(photo, str) or not photo.strip():
            raise ShopError(f"Photo at index {idx} must be a non-empty string", "INVALID_PHOTO_STRING")
    row = _photo_customer(conn, customer_id)
    current = _decode_json_column(row["photo_urls"])
    updated = list(current) + photos
    conn.execute("UPDATE customers SET photo_urls=?, updated_at=? WHERE id=?", (_json_dump(updated), iso_now(), row["id"]))
    return row_to_api(_customer_row(conn, row["id"]))

def remove_customer_photo(conn: sqlite3.Connection, customer_id: Any, photo_index: Any) -> List[str]:
    if as_int(customer_id) is None:
        raise ShopError("Valid customer ID is required", "INVALID_CUSTOMER_ID")
    if photo_index in (None, ""):
        raise ShopError("Photo index is required", "MISSING_PHOTO_INDEX")
    index = as_int(photo_index)
    if index is None:
        raise ShopError("Photo index must be a valid integer", "INVALID_PHOTO_INDEX")
    row = _photo_customer(conn, customer_id)
    current = _decode_json_column(row["photo_urls"])
    if not isinstance(current, list) or not current:
        raise ShopError("No photos exist for this customer", "NO_PHOTOS_EXIST")
    if index < 0 or index >= len(current):
        raise ShopError(f"Photo index out of bounds. Valid range: 0-{len(current) - 1}", "PHOTO_INDEX_OUT_OF_BOUNDS")
    updated = [p for i, p in enumerate(current) if i != index]
    conn.execute("UPDATE customers SET photo_urls=?, updated_at=? WHERE id=?", (_json_dump(updated), iso_now(), row["id"]))
    return updated

def _created_range_clause(start: Optional[str], end: Optional[str], column: str = "created_at") -> Tuple[str, List[Any]]:
    clauses, params = [], []
    if start:
        clauses.append(f"{column} >= ?")
        params.append(start)
    if end:
        clauses.append(f"{column} <= ?")
        params.append(end)
    return (" WHERE " + " AND ".join(clauses)) if clauses else "", params

def delete_customers(conn: sqlite3.Connection, start: Optional[str] = None, end: Optional[str] = None) -> int:
    where, params = _created_range_clause(start, end)
    cur = conn.execute(f"DELETE FROM customers{where}", params)
    return cur.rowcount

def export_customers(conn: sqlite3.Connection, start: Optional[str] = None, end: Optional[str] = None) -> List[Dict[str, Any]]:
    where, params = _created_range_clause(start, end)
    return rows_to_api(conn.execute(f"SELECT * FROM customers{where} ORDER BY id", params).fetchall())

def bulk_upload_customers(conn: sqlite3.Connection, rows: Any) -> int:
    """Upsert customers by phone; entries without name or phone are skipped."""
    if not isinstance(rows, list) or not rows:
        raise ShopError("Invalid data format. Expected array of customers.", "INVALID_DATA")
    valid = []
    for entry in rows:
        if not isinstance(entry, dict):
            continue
        name = _clean_text(entry.get("name"))
        phone = _clean_text(entry.get("phone"))
        if not name or not phone:
            continue
        valid.append((name, phone, _clean_text(entry.get("address"))))
    if not valid:
        raise ShopError("No valid customers to upload", "NO_VALID_DATA")
    now = iso_now()
    with _transaction(conn):
        for name, phone, address in valid:
            conn.execute("""
                INSERT INTO customers (name, phone, address, photo_urls, created_at, updated_at)
                VALUES (?,?,?,NULL,?,?)
                ON CONFLICT(phone) DO UPDATE SET
                    name=excluded.name,
                    address=COALESCE(excluded.address, customers.address),
                    updated_at=excluded.updated_at
            """, (name, phone, address, now, now))
    return len(valid)

def _sentiment(feedbacks: List[str]) -> str:
    if not feedbacks:
        return "No feedback"
    very_good = feedbacks.count("very_good")
    bad = feedbacks.count("bad")
    if very_good > bad:
        return "Positive"
    if bad > very_good:
        return "Negative"
    return "Neutral"

def customer_behavior(conn: sqlite3.Connection, search: Optional[str] = None) -> Dict[str, Any]:
    """Feedback distribution and per-customer spend across sales and rental bills."""
    bills = []
    for table in ("sales_bills", "rental_bills"):
        bills += conn.execute(
            f"SELECT customer_name, customer_phone, total_amount, advance_amount, customer_feedback FROM {table} ORDER BY id"
        ).fetchall()
    counts = {key: 0 for key in FEEDBACK_VALUES}
    customers: Dict[str, Dict[str, Any]] = {}
    for bill in bills:
        feedback = bill["customer_feedback"]
        if feedback in counts:
            counts[feedback] += 1
        entry = customers.setdefault(bill["customer_phone"], {
            "name": bill["customer_name"],
            "phone": bill["customer_phone"],
            "totalSpent": 0.0,
            "billCount": 0,
            "feedbacks": [],
        })
        entry["totalSpent"] += float(bill["total_amount"] or 0) + float(bill["advance_amount"] or 0)
        entry["billCount"] += 1
        if feedback:
            entry["feedbacks"].append(feedback)
    total = sum(counts.values())

    def pct(n: int) -> float:
        return round(n * 100.0 / total, 2) if total else 0.0

    ranked = sorted(customers.values(), key=lambda c: c["totalSpent"], reverse=True)
    for entry in ranked:
        entry["sentiment"] = _sentiment(entry["feedbacks"])
    if search and search.strip():
        needle = search.strip()
        ranked = [c for c in ranked if needle.lower() in (c["name"] or "").lower() or needle in (c["phone"] or "")]
    return {
        "feedback": {
            "veryGood": counts["very_good"],
            "good": counts["good"],
            "bad": counts["bad"],
            "total": total,
            "veryGoodPercent": pct(counts["very_good"]),
            "goodPercent": pct(counts["good"]),
            "badPercent": pct(counts["bad"]),
        },
        "customers": ranked,
    }


# ---------- PRODUCTS & STOCK ----------
PRODUCT_COLUMNS = ("id, name, rate, category, product_type, stock_quantity, min_stock_level, "
                   "total_sales, total_rentals, last_restocked, created_at, updated_at")

def _product_row(conn: sqlite3.Connection, product_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id=?", (product_id,)).fetchone()

def _check_product_type(value: Any) -> str:
    if value not in PRODUCT_TYPES:
        raise ShopError("Product type must be 'sales' or 'rental'", "INVALID_PRODUCT_TYPE")
    return value

def _check_rate(value: Any) -> float:
    if not _is_number(value) or value < 0:
        raise ShopError("Rate must be a positive number", "INVALID_RATE")
    return float(value)

def _check_stock_level(value: Any, label: str) -> int:
    parsed = as_int(value)
    if parsed is None or parsed < 0:
        raise ShopError(f"{label} must be a non-negative integer", "INVALID_STOCK_LEVEL")
    return parsed

def get_product(conn: sqlite3.Connection, product_id: Any) -> Dict[str, Any]:
    pid = _require_id(product_id)
    row = _product_row(conn, pid)
    if not row:
        raise ShopError("Product not found", "PRODUCT_NOT_FOUND", 404)
    return row_to_api(row)

def list_products(conn: sqlite3.Connection, limit: int = 10, offset: int = 0, search: Optional[str] = None,
                  product_type: Optional[str] = None, category: Optional[str] = None) -> List[Dict[str, Any]]:
    clauses, params = [], []
    if product_type:
        clauses.append("product_type = ?")
        params.append(_check_product_type(product_type))
    if category:
        clauses.append("category = ?")
        params.append(category)
    if search:
        clauses.append("name LIKE ?")
        params.append(f"%{search}%")
    where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
    sql = f"SELECT {PRODUCT_COLUMNS} FROM products{where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
    return rows_to_api(conn.execute(sql, params + [limit, offset]).fetchall())

def create_product(conn: sqlite3.Connection, data: Dict[str, Any]) -> Dict[str, Any]:
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ShopError("Product name is required", "MISSING_NAME")
    rate = data.get("rate")
    if rate is None:
        raise ShopError("Product rate is required", "MISSING_RATE")
    rate = _check_rate(rate)
    product_type = data.get("productType")
    if not product_type:
        raise ShopError("Product type is required", "MISSING_PRODUCT_TYPE")
    _check_product_type(product_type)
    stock = _check_stock_level(data["stockQuantity"], "Stock quantity") if data.get("stockQuantity") is not None else 0
    min_level = _check_stock_level(data["minStockLevel"], "Minimum stock level") if data.get("minStockLevel") is not None else 5
    now = iso_now()
    with _transaction(conn):
        cur = conn.execute("""
            INSERT INTO products (name, rate, category, product_type, stock_quantity, min_stock_level, last_restocked, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?)
        """, (name.strip(), rate, _clean_text(data.get("category")), product_type, stock, min_level,
              now if stock > 0 else None, now, now))
        product_id = cur.lastrowid
        if stock > 0:
            _append_stock_history(conn, product_id, "initial", stock, 0, stock, "Opening stock", now)
    return row_to_api(_product_row(conn, product_id))

def update_product(conn: sqlite3.Connection, product_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    pid = _require_id(product_id)
    if not _product_row(conn, pid):
        raise ShopError("Product not found", "PRODUCT_NOT_FOUND", 404)
    updates: Dict[str, Any] = {}
    if "name" in data:
        name = data["name"]
        if not isinstance(name, str) or not name.strip():
            raise ShopError("Product name cannot be empty", "INVALID_NAME")
        updates["name"] = name.strip()
    if "rate" in data:
        updates["rate"] = _check_rate(data["rate"])
    if "productType" in data:
        updates["product_type"] = _check_product_type(data["productType"])
    if "category" in data:
        updates["category"] = _clean_text(data["category"])
    if "minStockLevel" in data:
        updates["min_stock_level"] = _check_stock_level(data["minStockLevel"], "Minimum stock level")
    updates["updated_at"] = iso_now()
    assignments = ", ".join(f"{col}=?" for col in updates)
    conn.execute(f"UPDATE products SET {assignments} WHERE id=?", list(updates.values()) + [pid])
    return row_to_api(_product_row(conn, pid))

def delete_product(conn: sqlite3.Connection, product_id: Any) -> Dict[str, Any]:
    pid = _require_id(product_id)
    row = _product_row(conn, pid)
    if not row:
        raise ShopError("Product not found", "PRODUCT_NOT_FOUND", 404)
    conn.execute("DELETE FROM products WHERE id=?", (pid,))
    return row_to_api(row)

def delete_all_products(conn: sqlite3.Connection) -> int:
    return conn.execute("DELETE FROM products").rowcount

def _append_stock_history(conn: sqlite3.Connection, product_id: int, change_type: str, change: int,
                          previous: int, new: int, notes: Optional[str], created: str):
    conn.execute("""
        INSERT INTO stock_history (product_id, change_type, quantity_change, previous_quantity, new_quantity, notes, created_at)
        VALUES (?,?,?,?,?,?,?)
    """, (product_id, change_type, change, previous, new, notes, created))

def adjust_stock(conn: sqlite3.Connection, product_id: Any, quantity_change: Any,
                 change_type: Optional[str] = None, notes: Optional[str] = None) -> Dict[str, Any]:
    """Apply a stock delta and record it in stock_history; the result may not go below zero."""
    if not product_id:
        raise ShopError("Product ID is required", "MISSING_PRODUCT_ID")
    if quantity_change is None:
        raise ShopError("Quantity change is required", "MISSING_QUANTITY")
    pid = as_int(product_id)
    if pid is None:
        raise ShopError("Product ID must be a valid integer", "INVALID_PRODUCT_ID")
    delta = as_int(quantity_change)
    if delta is None:
        raise ShopError("Quantity change must be a valid number", "INVALID_QUANTITY")
    now = iso_now()
    with _transaction(conn):
        row = _product_row(conn, pid)
        if not row:
            raise ShopError("Product not found", "PRODUCT_NOT_FOUND", 404)
        previous = int(row["stock_quantity"] or 0)
        new_qty = previous + delta
        if new_qty < 0:
            raise ShopError(
                f"Cannot decrease stock below 0. Current stock: {previous}, Requested change: {delta}",
                "INSUFFICIENT_STOCK",
            )
        last_restocked = now if delta > 0 else row["last_restocked"]
        conn.execute("UPDATE products SET stock_quantity=?, last_restocked=?, updated_at=? WHERE id=?",
                     (new_qty, last_restocked, now, pid))
        final_type = _clean_text(change_type) or ("restock" if delta > 0 else "adjustment")
        _append_stock_history(conn, pid, final_type, delta, previous, new_qty, _clean_text(notes), now)
    out = row_to_api(_product_row(conn, pid))
    out["changeApplied"] = {
        "previousQuantity": previous,
        "change": delta,
        "newQuantity": new_qty,
        "changeType": final_type,
    }
    return out

def low_stock_products(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    rows = conn.execute(
        f"SELECT {PRODUCT_COLUMNS} FROM products WHERE stock_quantity < min_stock_level ORDER BY stock_quantity ASC, id"
    ).fetchall()
    out = []
    for row in rows:
        item = row_to_api(row)
        item["stockDeficit"] = row["min_stock_level"] - row["stock_quantity"]
        out.append(item)
    return out

def stock_history(conn: sqlite3.Connection, product_id: Optional[int] = None, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
    sql = """
        SELECT h.id, h.product_id, p.name AS product_name, h.change_type, h.quantity_change,
               h.previous_quantity, h.new_quantity, h.notes, h.created_at
        FROM stock_history h
        JOIN products p ON p.id = h.product_id
    """
    params: List[Any] = []
    if product_id is not None:
        sql += " WHERE h.product_id = ?"
        params.append(product_id)
    sql += " ORDER BY h.created_at DESC, h.id DESC LIMIT ? OFFSET ?"
    return rows_to_api(conn.execute(sql, params + [limit, offset]).fetchall())

def _scalar(conn: sqlite3.Connection, sql: str, params: Tuple = ()) -> int:
    row = conn.execute(sql, params).fetchone()
    return int(row[0] or 0) if row else 0

def product_analytics(conn: sqlite3.Connection) -> Dict[str, Any]:
    top_selling = conn.execute("""
        SELECT id, name, rate, category, product_type, total_sales, stock_quantity
        FROM products ORDER BY total_sales DESC, id LIMIT 10
    """).fetchall()
    top_rented = conn.execute("""
        SELECT id, name, rate, category, product_type, total_rentals, stock_quantity
        FROM products ORDER BY total_rentals DESC, id LIMIT 10
    """).fetchall()
    return {
        "totalProducts": _scalar(conn, "SELECT COUNT(*) FROM products"),
        "salesProducts": _scalar(conn, "SELECT COUNT(*) FROM products WHERE product_type='sales'"),
        "rentalProducts": _scalar(conn, "SELECT COUNT(*) FROM products WHERE product_type='rental'"),
        "totalSalesCount": _scalar(conn, "SELECT COALESCE(SUM(total_sales), 0) FROM products"),
        "totalRentalsCount": _scalar(conn, "SELECT COALESCE(SUM(total_rentals), 0) FROM products"),
        "topSellingProducts": rows_to_api(top_selling),
        "topRentedProducts": rows_to_api(top_rented),
        "lowStockCount": _scalar(conn, "SELECT COUNT(*) FROM products WHERE stock_quantity < min_stock_level"),
        "outOfStockCount": _scalar(conn, "SELECT COUNT(*) FROM products WHERE stock_quantity = 0"),
    }

def export_products(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    return rows_to_api(conn.execute(f"SELECT {PRODUCT_COLUMNS} FROM products ORDER BY created_at DESC, id DESC").fetchall())


# ---------- BILLS (sales & rental) ----------
BILL_KINDS: Dict[str, Dict[str, Any]] = {
    "sales": {
        "table": "sales_bills",
        "label": "Sales bill",
        "date_column": "bill_date",
        "counter_column": "total_sales",
        "history_type": "sale",
        "required": ["billDate", "customerName", "customerPhone", "items", "subtotal", "taxPercentage",
                     "taxAmount", "taxType", "advanceAmount", "totalAmount", "isPaid"],
        "text": {"billDate": "bill_date"},
        "optional_text": {},
        "numbers": {"subtotal": "subtotal", "taxPercentage": "tax_percentage", "taxAmount": "tax_amount",
                    "advanceAmount": "advance_amount", "totalAmount": "total_amount"},
    },
    "rental": {
        "table": "rental_bills",
        "label": "Rental bill",
        "date_column": "from_date",
        "counter_column": "total_rentals",
        "history_type": "rental",
        "required": ["fromDate", "customerName", "customerPhone", "items", "subtotal", "transportFees",
                     "taxPercentage", "taxAmount", "taxType", "advanceAmount", "totalAmount", "isPaid"],
        "text": {"fromDate": "from_date"},
        "optional_text": {"toDate": "to_date"},
        "numbers": {"subtotal": "subtotal", "transportFees": "transport_fees", "taxPercentage": "tax_percentage",
                    "taxAmount": "tax_amount", "advanceAmount": "advance_amount", "totalAmount": "total_amount"},
    },
}
_COMMON_TEXT = {"customerName": "customer_name", "customerPhone": "customer_phone", "taxType": "tax_type"}
_COMMON_OPTIONAL_TEXT = {"customerAddress": "customer_address"}
_SHOP_FIELDS = (
    ("shopName", "shop_name", "shop_name"),
    ("shopAddress", "shop_address", "shop_address"),
    ("shopPhone1", "shop_phone_1", "phone_number_1"),
    ("shopPhone2", "shop_phone_2", "phone_number_2"),
    ("shopLogoUrl", "shop_logo_url", "logo_url"),
    ("shopQrUrl", "shop_qr_url", "payment_qr_url"),
)

def bill_kind(kind: str) -> Dict[str, Any]:
    try:
        return BILL_KINDS[kind]
    except KeyError:
        raise ShopError("billType must be 'sales' or 'rental'", "INVALID_BILL_TYPE")

def _check_feedback(value: Any) -> Optional[str]:
    cleaned = _clean_text(value)
    if cleaned is None:
        return None
    if cleaned not in FEEDBACK_VALUES:
        raise ShopError("customerFeedback must be 'very_good', 'good' or 'bad'", "INVALID_FEEDBACK")
    return cleaned

def _check_amount(field: str, value: Any) -> float:
    if not _is_number(value):
        raise ShopError(f"{field} must be a number", "INVALID_AMOUNT")
    return float(value)

def _check_items(value: Any) -> list:
    if not isinstance(value, list):
        raise ShopError("items must be a valid JSON array", "INVALID_ITEMS_FORMAT")
    return value

def _check_is_paid(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ShopError("isPaid must be a boolean value", "INVALID_ISPAID_TYPE")
    return value

def next_serial(conn: sqlite3.Connection, kind: str) -> int:
    table = bill_kind(kind)["table"]
    row = conn.execute(f"SELECT MAX(serial_no) AS m FROM {table}").fetchone()
    return int(row["m"] or 0) + 1

def _consume_stock_for_item(conn: sqlite3.Connection, meta: Dict[str, Any], item: Any, serial: int, now: str):
    """Items are matched to products by exact name; unknown items are ignored."""
    if not isinstance(item, dict):
        return
    name = _clean_text(item.get("itemName"))
    qty = as_int(item.get("qty")) or 0
    if not name or qty <= 0:
        return
    product = conn.execute("SELECT id, stock_quantity FROM products WHERE name=? ORDER BY id LIMIT 1", (name,)).fetchone()
    if not product:
        return
    previous = int(product["stock_quantity"] or 0)
    new_qty = max(0, previous - qty)
    counter = meta["counter_column"]
    conn.execute(f"UPDATE products SET stock_quantity=?, {counter}={counter}+?, updated_at=? WHERE id=?",
                 (new_qty, qty, now, product["id"]))
    _append_stock_history(conn, product["id"], meta["history_type"], new_qty - previous, previous, new_qty,
                          f"{meta['label']} #{serial}", now)

def create_bill(conn: sqlite3.Connection, kind: str, data: Dict[str, Any], settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Validate and store a bill. Serial allocation, stock consumption and the insert share one transaction.
    data uses API field names, e.g.
      {'billDate': '2024-01-15', 'customerName': 'Rajesh', 'customerPhone': '98..',
       'items': [{'itemName': 'Pressure Cooker', 'qty': 1, 'rate': 1200, 'amount': 1200}],
       'subtotal': 1200, 'taxPercentage': 18, 'taxAmount': 216, 'taxType': 'GST',
       'advanceAmount': 0, 'totalAmount': 1416, 'isPaid': True}
    """
    meta = bill_kind(kind)
    for field in meta["required"]:
        if data.get(field) is None:
            raise ShopError(f"{field} is required", "MISSING_REQUIRED_FIELD")
    items = _check_items(data["items"])
    is_paid = _check_is_paid(data["isPaid"])
    values: Dict[str, Any] = {}
    for field, column in list(meta["text"].items()) + list(_COMMON_TEXT.items()):
        values[column] = _require_text(data[field], "MISSING_REQUIRED_FIELD", f"{field} is required")
    for field, column in list(meta["optional_text"].items()) + list(_COMMON_OPTIONAL_TEXT.items()):
        values[column] = _clean_text(data.get(field))
    for field, column in meta["numbers"].items():
        values[column] = _check_amount(field, data[field])
    values["customer_feedback"] = _check_feedback(data.get("customerFeedback"))
    values["items"] = _json_dump(items)
    values["is_paid"] = 1 if is_paid else 0
    shop = settings or {}
    for field, column, setting_key in _SHOP_FIELDS:
        values[column] = _clean_text(data.get(field)) or shop.get(setting_key) or DEFAULT_SHOP.get(setting_key)
    now = iso_now()
    values["created_at"] = now
    values["updated_at"] = now
    with _transaction(conn):
        serial = next_serial(conn, kind)
        values["serial_no"] = serial
        for item in items:
            _consume_stock_for_item(conn, meta, item, serial, now)
        columns = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        cur = conn.execute(f"INSERT INTO {meta['table']} ({columns}) VALUES ({marks})", list(values.values()))
        bill_id = cur.lastrowid
    return row_to_api(conn.execute(f"SELECT * FROM {meta['table']} WHERE id=?", (bill_id,)).fetchone())

def get_bill(conn: sqlite3.Connection, kind: str, bill_id: Any) -> Dict[str, Any]:
    meta = bill_kind(kind)
    bid = _require_id(bill_id)
    row = conn.execute(f"SELECT * FROM {meta['table']} WHERE id=?", (bid,)).fetchone()
    if not row:
        raise ShopError(f"{meta['label']} not found", "BILL_NOT_FOUND", 404)
    return row_to_api(row)

def list_bills(conn: sqlite3.Connection, kind: str, limit: int = 10, offset: int = 0, search: Optional[str] = None,
               start_date: Optional[str] = None, end_date: Optional[str] = None, is_paid: Optional[bool] = None) -> List[Dict[str, Any]]:
    meta = bill_kind(kind)
    date_col = meta["date_column"]
    clauses, params = [], []
    if search:
        clauses.append("(customer_name LIKE ? OR customer_phone LIKE ?)")
        params += [f"%{search}%", f"%{search}%"]
    if start_date:
        clauses.append(f"{date_col} >= ?")
        params.append(start_date)
    if end_date:
        clauses.append(f"{date_col} <= ?")
        params.append(end_date)
    if is_paid is not None:
        clauses.append("is_paid = ?")
        params.append(1 if is_paid else 0)
    where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
    sql = f"SELECT * FROM {meta['table']}{where} ORDER BY {date_col} DESC, id DESC LIMIT ? OFFSET ?"
    return rows_to_api(conn.execute(sql, params + [limit, offset]).fetchall())

def update_bill(conn: sqlite3.Connection, kind: str, bill_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    """Partial update; stock is not re-balanced when items change."""
    meta = bill_kind(kind)
    get_bill(conn, kind, bill_id)
    bid = as_int(bill_id)
    updates: Dict[str, Any] = {}
    if "items" in data:
        updates["items"] = _json_dump(_check_items(data["items"]))
    if "isPaid" in data:
        updates["is_paid"] = 1 if _check_is_paid(data["isPaid"]) else 0
    for field, column in list(meta["text"].items()) + list(_COMMON_TEXT.items()):
        if data.get(field) is not None:
            updates[column] = _require_text(data[field], "MISSING_REQUIRED_FIELD", f"{field} cannot be empty")
    for field, column in list(meta["optional_text"].items()) + list(_COMMON_OPTIONAL_TEXT.items()):
        if field in data:
            updates[column] = _clean_text(data[field])
    for field, column in meta["numbers"].items():
        if field in data:
            updates[column] = _check_amount(field, data[field])
    if "customerFeedback" in data:
        updates["customer_feedback"] = _check_feedback(data["customerFeedback"])
    updates["updated_at"] = iso_now()
    assignments = ", ".join(f"{col}=?" for col in updates)
    conn.execute(f"UPDATE {meta['table']} SET {assignments} WHERE id=?", list(updates.values()) + [bid])
    return get_bill(conn, kind, bid)

def delete_bill(conn: sqlite3.Connection, kind: str, bill_id: Any) -> Dict[str, Any]:
    meta = bill_kind(kind)
    record = get_bill(conn, kind, bill_id)
    conn.execute(f"DELETE FROM {meta['table']} WHERE id=?", (record["id"],))
    return record


# ---------- BOOKINGS ----------
def _check_bill_type(value: Any) -> str:
    if value not in BILL_TYPES:
        raise ShopError("billType must be 'sales' or 'rental'", "INVALID_BILL_TYPE")
    return value

def _check_status(value: Any) -> str:
    if value not in BOOKING_STATUSES:
        raise ShopError("status must be 'booked', 'completed', or 'cancelled'", "INVALID_STATUS")
    return value

def _booking_filters(search: Optional[str], bill_type: Optional[str], status: Optional[str],
                     start_date: Optional[str], end_date: Optional[str]) -> Tuple[str, List[Any]]:
    clauses, params = [], []
    if search:
        clauses.append("(customer_name LIKE ? OR customer_phone LIKE ?)")
        params += [f"%{search}%", f"%{search}%"]
    if bill_type:
        clauses.append("bill_type = ?")
        params.append(_check_bill_type(bill_type))
    if status:
        clauses.append("status = ?")
        params.append(_check_status(status))
    if start_date:
        clauses.append("booking_date >= ?")
        params.append(start_date)
    if end_date:
        clauses.append("booking_date <= ?")
        params.append(end_date)
    return (" WHERE " + " AND ".join(clauses)) if clauses else "", params

def get_booking(conn: sqlite3.Connection, booking_id: Any) -> Dict[str, Any]:
    bid = _require_id(booking_id)
    row = conn.execute("SELECT * FROM bookings WHERE id=?", (bid,)).fetchone()
    if not row:
        raise ShopError("Booking not found", "BOOKING_NOT_FOUND", 404)
    return row_to_api(row)

def list_bookings(conn: sqlite3.Connection, limit: int = 10, offset: int = 0, search: Optional[str] = None,
                  bill_type: Optional[str] = None, status: Optional[str] = None,
                  start_date: Optional[str] = None, end_date: Optional[str] = None) -> List[Dict[str, Any]]:
    where, params = _booking_filters(search, bill_type, status, start_date, end_date)
    sql = f"SELECT * FROM bookings{where} ORDER BY booking_date DESC, id DESC LIMIT ? OFFSET ?"
    return rows_to_api(conn.execute(sql, params + [limit, offset]).fetchall())

def create_booking(conn: sqlite3.Connection, data: Dict[str, Any]) -> Dict[str, Any]:
    required = (
        ("billType", "MISSING_BILL_TYPE"),
        ("billId", "MISSING_BILL_ID"),
        ("customerName", "MISSING_CUSTOMER_NAME"),
        ("customerPhone", "MISSING_CUSTOMER_PHONE"),
        ("items", "MISSING_ITEMS"),
        ("totalAmount", "MISSING_TOTAL_AMOUNT"),
        ("bookingDate", "MISSING_BOOKING_DATE"),
        ("status", "MISSING_STATUS"),
    )
    for field, code in required:
        value = data.get(field)
        if value is None or (field not in ("billId", "totalAmount") and value in ("", [])):
            raise ShopError(f"{field} is required", code)
    bill_type = _check_bill_type(str(data["billType"]).strip())
    status = _check_status(str(data["status"]).strip())
    items = _check_items(data["items"])
    bill_id = as_int(data["billId"])
    if bill_id is None:
        raise ShopError("billId must be an integer", "MISSING_BILL_ID")
    now = iso_now()
    cur = conn.execute("""
        INSERT INTO bookings (bill_type, bill_id, customer_name, customer_phone, customer_address, items, total_amount, booking_date, notes, status, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?,?,?,?,?)
    """, (bill_type, bill_id,
          _require_text(data["customerName"], "MISSING_CUSTOMER_NAME", "customerName is required"),
          _require_text(data["customerPhone"], "MISSING_CUSTOMER_PHONE", "customerPhone is required"),
          _clean_text(data.get("customerAddress")), _json_dump(items),
          _check_amount("totalAmount", data["totalAmount"]),
          _require_text(data["bookingDate"], "MISSING_BOOKING_DATE", "bookingDate is required"),
          _clean_text(data.get("notes")), status, now, now))
    return get_booking(conn, cur.lastrowid)

def update_booking(conn: sqlite3.Connection, booking_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    existing = get_booking(conn, booking_id)
    updates: Dict[str, Any] = {}
    if data.get("billType"):
        updates["bill_type"] = _check_bill_type(str(data["billType"]).strip())
    if data.get("status"):
        updates["status"] = _check_status(str(data["status"]).strip())
    if data.get("items") is not None:
        updates["items"] = _json_dump(_check_items(data["items"]))
    if data.get("billId") is not None:
        bill_id = as_int(data["billId"])
        if bill_id is None:
            raise ShopError("billId must be an integer", "MISSING_BILL_ID")
        updates["bill_id"] = bill_id
    for field, column in (("customerName", "customer_name"), ("customerPhone", "customer_phone"), ("bookingDate", "booking_date")):
        if data.get(field) is not None:
            updates[column] = _require_text(data[field], "MISSING_REQUIRED_FIELD", f"{field} cannot be empty")
    for field, column in (("customerAddress", "customer_address"), ("notes", "notes")):
        if field in data:
            updates[column] = _clean_text(data[field])
    if data.get("totalAmount") is not None:
        updates["total_amount"] = _check_amount("totalAmount", data["totalAmount"])
    updates["updated_at"] = iso_now()
    assignments = ", ".join(f"{col}=?" for col in updates)
    conn.execute(f"UPDATE bookings SET {assignments} WHERE id=?", list(updates.values()) + [existing["id"]])
    return get_booking(conn, existing["id"])

def delete_booking(conn: sqlite3.Connection, booking_id: Any) -> None:
    existing = get_booking(conn, booking_id)
    conn.execute("DELETE FROM bookings WHERE id=?", (existing["id"],))

def parse_id_list(raw: str) -> List[int]:
    """Accept a JSON array ('[1,2]') or a comma separated list ('1,2'); invalid entries are dropped."""
    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        values = parsed
    elif parsed is not None and not isinstance(parsed, (dict, str)):
        values = [parsed]
    else:
        values = [part.strip() for part in raw.split(",")]
    out = []
    for value in values:
        parsed_id = as_int(value)
        if parsed_id is not None:
            out.append(parsed_id)
    return out

def delete_bookings_by_ids(conn: sqlite3.Connection, ids: List[int]) -> int:
    if not ids:
        raise ShopError("No valid booking IDs provided", "INVALID_IDS")
    marks = ", ".join("?" for _ in ids)
    conn.execute(f"DELETE FROM bookings WHERE id IN ({marks})", ids)
    return len(ids)

def delete_bookings_matching(conn: sqlite3.Connection, bill_type: Optional[str] = None, status: Optional[str] = None,
                             start_date: Optional[str] = None, end_date: Optional[str] = None) -> int:
    where, params = _booking_filters(None, bill_type, status, start_date, end_date)
    with _transaction(conn):
        count = _scalar(conn, f"SELECT COUNT(*) FROM bookings{where}", tuple(params))
        conn.execute(f"DELETE FROM bookings{where}", params)
    return count


# ---------- STORAGE ----------
STORAGE_LIMIT_GB = 10
RECORD_SIZE_KB = {"salesBills": 2.0, "rentalBills": 2.0, "products": 0.5, "customers": 0.3, "bookings": 0.5}
_COUNT_TABLES = {"salesBills": "sales_bills", "rentalBills": "rental_bills", "products": "products",
                 "customers": "customers", "bookings": "bookings"}

def record_counts(conn: sqlite3.Connection) -> Dict[str, int]:
    return {key: _scalar(conn, f"SELECT COUNT(*) FROM {table}") for key, table in _COUNT_TABLES.items()}

def storage_summary(conn: sqlite3.Connection) -> Dict[str, Any]:
    counts = record_counts(conn)
    sizes = {key: counts[key] * RECORD_SIZE_KB[key] for key in counts}
    total_kb = sum(sizes.values())
    total_mb = total_kb / 1024
    total_gb = total_mb / 1024
    return {
        "records": dict(counts, total=sum(counts.values())),
        "storage": {
            "usedKB": round(total_kb, 2),
            "usedMB": round(total_mb, 2),
            "usedGB": round(total_gb, 3),
            "maxGB": STORAGE_LIMIT_GB,
            "availableGB": round(STORAGE_LIMIT_GB - total_gb, 3),
            "usedPercentage": round(total_gb / STORAGE_LIMIT_GB * 100, 2),
        },
        "breakdown": {key: {"count": counts[key], "sizeKB": round(sizes[key], 2)} for key in counts},
    }

def storage_stats(conn: sqlite3.Connection) -> Dict[str, Any]:
    """Alternative storage report that leaves bookings out of the estimate."""
    counts = record_counts(conn)
    counts.pop("bookings")
    sizes = {key: counts[key] * RECORD_SIZE_KB[key] for key in counts}
    total_kb = sum(sizes.values())
    total_mb = total_kb / 1024
    total_gb = total_mb / 1024
    return {
        "records": dict(counts, total=sum(counts.values())),
        "storage": {
            "used": {"bytes": total_kb * 1024, "kb": round(total_kb, 2), "mb": round(total_mb, 2), "gb": round(total_gb, 3)},
            "limit": {"gb": STORAGE_LIMIT_GB},
            "percentage": round(total_gb / STORAGE_LIMIT_GB * 100, 2),
            "remaining": {"gb": round(STORAGE_LIMIT_GB - total_gb, 3)},
        },
        "breakdown": {
            key: {"count": counts[key], "sizeKB": round(sizes[key], 2), "sizeMB": round(sizes[key] / 1024, 2)}
            for key in counts
        },
    }


# ---------- BACKUPS ----------
BACKUP_TABLES = ("customers", "products", "stock_history", "sales_bills", "rental_bills", "bookings")

def ensure_dir(p: str):
    Path(p).mkdir(parents=True, exist_ok=True)

def backup_ndjson(conn: sqlite3.Connection, day: Optional[str] = None, backup_dir: Optional[str] = None) -> List[str]:
    """
    day: 'YYYY-MM-DD' in UTC. Defaults to today.
    Writes one NDJSON file per table holding rows created that day.
    """
    if day is None:
        day = dt.datetime.now(dt.timezone.utc).date().isoformat()
    try:
        start_day = dt.date.fromisoformat(str(day))
    except ValueError:
        raise ShopError("day must be formatted YYYY-MM-DD", "INVALID_FORMAT")
    target = backup_dir or BACKUP_DIR
    ensure_dir(target)
    start = start_day.isoformat() + "T00:00:00"
    end = (start_day + dt.timedelta(days=1)).isoformat() + "T00:00:00"
    written = []
    for table in BACKUP_TABLES:
        path = Path(target) / f"{table}_{day}.ndjson"
        with open(path, "w", encoding="utf-8") as f:
            for row in conn.execute(f"SELECT * FROM {table} WHERE created_at >= ? AND created_at < ? ORDER BY id", (start, end)):
                f.write(_json_dump(row_to_api(row)) + "\n")
        written.append(str(path))
    return written


# ---------- LOCAL STORE INGEST ----------
def ingest_local_bills(conn: sqlite3.Connection, store, settings: Optional[Dict[str, Any]] = None,
                       gate=None) -> Dict[str, Any]:
    """Move bills captured offline in a LocalStore into SQLite, assigning server serial numbers.

    A bill that fails validation stays pending and is reported under ``failed``.
    ``gate(kind)`` runs before each insert; a ShopError from it stops the run and
    is returned as ``blocked`` with every remaining bill left pending.
    """
    result: Dict[str, Any] = {"ingested": 0, "failed": [], "blocked": None}
    for kind, bill in store.pending_bills():
        if gate is not None:
            try:
                gate(kind)
            except ShopError as exc:
                result["blocked"] = exc
                break
        payload = {k: v for k, v in bill.items() if k not in ("id", "serialNo", "createdAt", "updatedAt", "syncStatus")}
        try:
            record = create_bill(conn, kind, payload, settings)
        except ShopError as exc:
            result["failed"].append({"id": bill.get("id"), "kind": kind, "code": exc.code, "error": exc.message})
            continue
        store.mark_synced(kind, bill["id"], record["id"], record["serialNo"])
        result["ingested"] += 1
    return result


# ---------- DEMO & CLI ----------
def demo_seed(conn: sqlite3.Connection):
    """Seed an admin, shop settings and a small catalog; existing rows are left alone."""
    ensure_settings_row(conn)
    if not conn.execute("SELECT 1 FROM admin_users LIMIT 1").fetchone():
        create_admin(conn, "admin", "admin123", "Shop Admin")
    customers = [
        ("Rajesh Kumar", "9876543210", "12 MG Road, Bangalore, Karnataka 560001"),
        ("Priya Sharma", "8765432109", "45 Park Street, Kolkata, West Bengal 700016"),
        ("Amit Patel", "7654321098", "78 Anna Nagar, Chennai, Tamil Nadu 600040"),
        ("Lakshmi Reddy", "6543210987", "23 Banjara Hills, Hyderabad, Telangana 500034"),
    ]
    for name, phone, address in customers:
        upsert_customer(conn, name, phone, address)
    if _scalar(conn, "SELECT COUNT(*) FROM products") == 0:
        catalog = [
            ("Steel Plates Set", 500, "Kitchen", "sales", 20),
            ("Pressure Cooker", 1200, "Kitchen", "sales", 8),
            ("Ceiling Fan", 1800, "Electronics", "sales", 3),
            ("Mixer Grinder", 2500, "Kitchen", "sales", 6),
            ("Folding Chair", 25, "Furniture", "rental", 200),
            ("Shamiana Tent", 3000, "Events", "rental", 4),
            ("Sound System", 2000, "Electronics", "rental", 2),
        ]
        for name, rate, category, product_type, stock in catalog:
            create_product(conn, {"name": name, "rate": rate, "category": category,
                                  "productType": product_type, "stockQuantity": stock})
    print("Demo data seeded")

def main():
    ap = argparse.ArgumentParser(description="Shop billing data service")
    ap.add_argument("--init", action="store_true", help="Initialize database schema")
    ap.add_argument("--schema", default=SCHEMA_PATH, help="Path to schema.sql")
    ap.add_argument("--seed", action="store_true", help="Insert demo admin, customers and products")
    ap.add_argument("--backup", action="store_true", help="Write NDJSON backups")
    ap.add_argument("--day", default=None, help="Backup day (YYYY-MM-DD, default today)")
    ap.add_argument("--purge-sessions", action="store_true", help="Delete expired admin sessions")
    ap.add_argument("--db", default=DB_PATH, help="Path to SQLite DB")
    args = ap.parse_args()

    conn = connect(args.db)
    try:
        if args.init:
            init_db(conn, args.schema)
            print("Initialized schema from", args.schema)

        if args.seed:
            demo_seed(conn)

        if args.backup:
            for path in backup_ndjson(conn, args.day):
                print("Backed up to", path)

        if args.purge_sessions:
            print(f"Removed {purge_expired_sessions(conn)} expired session(s)")
    except ShopError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    finally:
        conn.close()

if __name__ == "__main__":
    main()

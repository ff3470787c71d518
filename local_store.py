#!/usr/bin/env python3
# Offline mirror of the shop data as JSON files, used when the server cannot be reached
import os, json, time, random, string, tempfile, threading, datetime as dt
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

LOCAL_DIR = os.environ.get("SHOP_LOCAL_DIR", "local_store")

COLLECTIONS = ("salesBills", "rentalBills", "customers", "products", "calendarBookings")
BILL_COLLECTIONS = {"sales": "salesBills", "rental": "rentalBills"}
ID_PREFIXES = {"salesBills": "SB", "rentalBills": "RB", "customers": "C", "products": "P", "calendarBookings": "BK"}

SYNC_PENDING = "pending"
SYNC_DONE = "synced"


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"

def generate_id(prefix: str) -> str:
    """<PREFIX>-<epoch ms>-<9 random chars>, e.g. SB-1718000000000-k3j9x0a1b"""
    suffix = "".join(random.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


class LocalStore:
    """One JSON array per collection under base_dir; writes go through a temp file + rename."""

    def __init__(self, base_dir: str = LOCAL_DIR):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    # ---------- raw collection access ----------
    def _path(self, collection: str) -> Path:
        if collection not in COLLECTIONS:
            raise KeyError(f"Unknown collection: {collection}")
        return self.base_dir / f"{collection}.json"

    def read(self, collection: str) -> List[Dict[str, Any]]:
        path = self._path(collection)
        with self._lock:
            if not path.exists():
                return []
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        return data if isinstance(data, list) else []

    def _write(self, collection: str, rows: List[Dict[str, Any]]):
        path = self._path(collection)
        with self._lock:
            fd, tmp = tempfile.mkstemp(dir=str(self.base_dir), prefix=f".{collection}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rows, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)

    def clear(self):
        with self._lock:
            for collection in COLLECTIONS:
                path = self._path(collection)
                if path.exists():
                    path.unlink()

    def _update_by_id(self, collection: str, record_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            rows = self.read(collection)
            for row in rows:
                if row.get("id") == record_id:
                    row.update({k: v for k, v in updates.items() if k != "id"})
                    row["updatedAt"] = _now()
                    self._write(collection, rows)
                    return row
        return None

    def _delete_by_id(self, collection: str, record_id: str) -> bool:
        with self._lock:
            rows = self.read(collection)
            kept = [row for row in rows if row.get("id") != record_id]
            if len(kept) == len(rows):
                return False
            self._write(collection, kept)
            return True

    # ---------- bills ----------
    def _bill_collection(self, kind: str) -> str:
        try:
            return BILL_COLLECTIONS[kind]
        except KeyError:
            raise ValueError("kind must be 'sales' or 'rental'")

    def next_serial(self, kind: str) -> int:
        rows = self.read(self._bill_collection(kind))
        serials = [int(r.get("serialNo") or 0) for r in rows]
        return max(serials, default=0) + 1

    def save_bill(self, kind: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Store a bill locally with the next local serial and remember its customer."""
        collection = self._bill_collection(kind)
        with self._lock:
            rows = self.read(collection)
            record = dict(data)
            record["id"] = generate_id(ID_PREFIXES[collection])
            record["serialNo"] = max((int(r.get("serialNo") or 0) for r in rows), default=0) + 1
            record["createdAt"] = _now()
            record["syncStatus"] = SYNC_PENDING
            rows.append(record)
            self._write(collection, rows)
            if record.get("customerName") and record.get("customerPhone"):
                self.save_customer({
                    "name": record["customerName"],
                    "phone": record["customerPhone"],
                    "address": record.get("customerAddress"),
                })
        return record

    def save_sales_bill(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.save_bill("sales", data)

    def save_rental_bill(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.save_bill("rental", data)

    def list_bills(self, kind: str) -> List[Dict[str, Any]]:
        return self.read(self._bill_collection(kind))

    def update_bill(self, kind: str, bill_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._update_by_id(self._bill_collection(kind), bill_id, updates)

    def delete_bill(self, kind: str, bill_id: str) -> bool:
        return self._delete_by_id(self._bill_collection(kind), bill_id)

    def pending_bills(self) -> List[Tuple[str, Dict[str, Any]]]:
        out = []
        for kind, collection in BILL_COLLECTIONS.items():
            for row in self.read(collection):
                if row.get("syncStatus", SYNC_PENDING) == SYNC_PENDING:
                    out.append((kind, row))
        return out

    def mark_synced(self, kind: str, bill_id: str, server_id: Any = None, server_serial: Any = None) -> Optional[Dict[str, Any]]:
        updates: Dict[str, Any] = {"syncStatus": SYNC_DONE, "syncedAt": _now()}
        if server_id is not None:
            updates["serverId"] = server_id
        if server_serial is not None:
            updates["serverSerialNo"] = server_serial
        return self.update_bill(kind, bill_id, updates)

    # ---------- customers ----------
    def save_customer(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Upsert by phone."""
        with self._lock:
            rows = self.read("customers")
            phone = (data.get("phone") or "").strip()
            for row in rows:
                if row.get("phone") == phone:
                    row.update({k: v for k, v in data.items() if k not in ("id", "phone") and v is not None})
                    row["updatedAt"] = _now()
                    self._write("customers", rows)
                    return row
            record = dict(data)
            record["phone"] = phone
            record["id"] = generate_id(ID_PREFIXES["customers"])
            record["createdAt"] = _now()
            rows.append(record)
            self._write("customers", rows)
        return record

    def get_customers(self) -> List[Dict[str, Any]]:
        return self.read("customers")

    def search_customers(self, query: str) -> List[Dict[str, Any]]:
        needle = (query or "").strip()
        lowered = needle.lower()
        return [
            c for c in self.read("customers")
            if lowered in (c.get("name") or "").lower()
            or needle in (c.get("phone") or "")
            or lowered in (c.get("address") or "").lower()
        ]

    def update_customer(self, customer_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._update_by_id("customers", customer_id, updates)

    def delete_customer(self, customer_id: str) -> bool:
        return self._delete_by_id("customers", customer_id)

    # ---------- products ----------
    def save_product(self, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            rows = self.read("products")
            record = dict(data)
            record["id"] = generate_id(ID_PREFIXES["products"])
            record["createdAt"] = _now()
            rows.append(record)
            self._write("products", rows)
        return record

    def get_products(self) -> List[Dict[str, Any]]:
        return self.read("products")

    def search_products(self, query: str) -> List[Dict[str, Any]]:
        lowered = (query or "").strip().lower()
        return [p for p in self.read("products") if lowered in (p.get("name") or "").lower()]

    def update_product(self, product_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._update_by_id("products", product_id, updates)

    def delete_product(self, product_id: str) -> bool:
        return self._delete_by_id("products", product_id)

    # ---------- bookings ----------
    def save_booking(self, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            rows = self.read("calendarBookings")
            record = dict(data)
            record["id"] = generate_id(ID_PREFIXES["calendarBookings"])
            record["createdAt"] = _now()
            rows.append(record)
            self._write("calendarBookings", rows)
        return record

    def get_bookings(self) -> List[Dict[str, Any]]:
        return self.read("calendarBookings")

    def delete_booking(self, booking_id: str) -> bool:
        return self._delete_by_id("calendarBookings", booking_id)

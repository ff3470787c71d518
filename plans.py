"""Subscription plans and feature gating for the shop."""
import datetime as dt
import sqlite3
from typing import Any, Dict, List, Optional

DEFAULT_PLAN = 'free'
NEAR_LIMIT_PERCENT = 80.0

# Metered features carry a numeric limit (None = unlimited); flag features are True/False.
PLANS: Dict[str, Dict[str, Any]] = {
    'free': {
        'name': 'Free Plan',
        'price': 'Free',
        'description': 'Perfect for small shops getting started with digital billing',
        'features': {
            'monthly_bills': 50,
            'customer_records': 100,
            'product_catalog': 50,
            'customer_behavior_analytics': False,
            'advanced_reports': False,
            'priority_support': False,
            'api_access': False,
        },
    },
    'pro': {
        'name': 'Pro Plan',
        'price': '₹999/month',
        'description': 'For growing shops with more transactions and advanced needs',
        'recommended': True,
        'features': {
            'monthly_bills': 500,
            'customer_records': 1000,
            'product_catalog': 500,
            'customer_behavior_analytics': True,
            'advanced_reports': True,
            'priority_support': True,
            'api_access': False,
        },
    },
    'enterprise': {
        'name': 'Enterprise Plan',
        'price': '₹2,499/month',
        'description': 'For large shops with unlimited transactions and premium features',
        'features': {
            'monthly_bills': None,
            'customer_records': None,
            'product_catalog': None,
            'customer_behavior_analytics': True,
            'advanced_reports': True,
            'priority_support': True,
            'api_access': True,
        },
    },
}

FEATURE_NAMES = {
    'monthly_bills': 'Monthly Bills',
    'customer_records': 'Customer Records',
    'product_catalog': 'Product Catalog',
    'customer_behavior_analytics': 'Customer Behavior Analytics',
    'advanced_reports': 'Advanced Reports',
    'priority_support': 'Priority Support',
    'api_access': 'API Access',
}

METERED_FEATURES = ('monthly_bills', 'customer_records', 'product_catalog')


def normalize_plan(plan_id: Optional[str]) -> Optional[str]:
    key = (plan_id or '').strip().lower()
    return key if key in PLANS else None


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def _month_start(now: Optional[dt.datetime] = None) -> str:
    now = now or _utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0).isoformat() + 'Z'


def feature_usage(conn: sqlite3.Connection, feature_id: str, now: Optional[dt.datetime] = None) -> int:
    """Current consumption of a metered feature."""
    if feature_id == 'monthly_bills':
        start = _month_start(now)
        total = 0
        for table in ('sales_bills', 'rental_bills'):
            row = conn.execute(f"SELECT COUNT(*) AS c FROM {table} WHERE created_at >= ?", (start,)).fetchone()
            total += int(row['c'] or 0)
        return total
    if feature_id == 'customer_records':
        return int(conn.execute("SELECT COUNT(*) AS c FROM customers").fetchone()['c'] or 0)
    if feature_id == 'product_catalog':
        return int(conn.execute("SELECT COUNT(*) AS c FROM products").fetchone()['c'] or 0)
    return 0


def check_feature(conn: sqlite3.Connection, plan_id: str, feature_id: str, adding: int = 1) -> Dict[str, Any]:
    """
    Decide whether ``adding`` more units of a feature fit the plan.

    Returns {'allowed', 'usage', 'limit'}; limit is None for unlimited or flag features.
    """
    plan = PLANS.get(plan_id) or PLANS[DEFAULT_PLAN]
    value = plan['features'].get(feature_id, False)
    if feature_id not in METERED_FEATURES:
        return {'allowed': bool(value), 'usage': None, 'limit': None}
    usage = feature_usage(conn, feature_id)
    if value is None:
        return {'allowed': True, 'usage': usage, 'limit': None}
    return {'allowed': usage + adding <= value, 'usage': usage, 'limit': value}


def plan_usage(conn: sqlite3.Connection, plan_id: str) -> List[Dict[str, Any]]:
    plan = PLANS.get(plan_id) or PLANS[DEFAULT_PLAN]
    out = []
    for feature_id in METERED_FEATURES:
        limit = plan['features'][feature_id]
        usage = feature_usage(conn, feature_id)
        percentage = min(100.0, usage * 100.0 / limit) if limit else 0.0
        entry = {
            'featureId': feature_id,
            'name': FEATURE_NAMES[feature_id],
            'usage': usage,
            'limit': limit,
            'unlimited': limit is None,
            'percentage': round(percentage, 2),
            'nearLimit': percentage >= NEAR_LIMIT_PERCENT,
            'atLimit': percentage >= 100.0,
        }
        if feature_id == 'monthly_bills':
            entry['resetsAt'] = _next_month_start()
        out.append(entry)
    return out


def _next_month_start(now: Optional[dt.datetime] = None) -> str:
    now = now or _utcnow()
    year, month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)
    return dt.datetime(year, month, 1).isoformat() + 'Z'


def plan_catalog() -> List[Dict[str, Any]]:
    catalog = []
    for plan_id, plan in PLANS.items():
        catalog.append({
            'id': plan_id,
            'name': plan['name'],
            'price': plan['price'],
            'description': plan['description'],
            'recommended': bool(plan.get('recommended')),
            'features': dict(plan['features']),
        })
    return catalog

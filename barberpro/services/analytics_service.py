# =============================================================================
# barberpro/services/analytics_service.py
# Dashboard Analytics for BarberPro
# =============================================================================
"""
Dashboard analytics computed from customer records with pandas.

Figures:
- customers and revenue for today, the last 7 days and the last 30 days
- the ten most requested services
- customers with a birthday in the next 7 days

AnalyticsService serves them through the LocalStore snapshot cache.
"""

from __future__ import annotations
from datetime import date
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence
import logging

import pandas as pd

from barberpro.errors import RemoteError, handle_error
from barberpro.models import Customer

if TYPE_CHECKING:
    from barberpro.data.supabase_client import RemoteStoreClient
    from barberpro.offline.local_store import LocalStore
    from barberpro.offline.network_monitor import NetworkMonitor

logger = logging.getLogger(__name__)

COLUMNS = ["name", "mobile", "visit_date", "payment_amount", "services", "birthday"]
TOP_SERVICES = 10
BIRTHDAY_WINDOW_DAYS = 7


def _days_until_birthday(birthday: Optional[str], today: date) -> Optional[int]:
    """Days until the next occurrence of a YYYY-MM-DD birthday (0 = today)."""
    if not birthday:
        return None
    try:
        born = date.fromisoformat(str(birthday)[:10])
    except ValueError:
        return None

    def occurrence(year: int) -> date:
        try:
            return born.replace(year=year)
        except ValueError:
            # 29 February in a non-leap year
            return date(year, 2, 28)

    upcoming = occurrence(today.year)
    if upcoming < today:
        upcoming = occurrence(today.year + 1)
    return (upcoming - today).days


def compute_analytics(customers: Sequence[Customer], today: Optional[date] = None) -> Dict[str, Any]:
    """
    Compute dashboard figures from customer records.

    Args:
        customers: Customer records (local or remote)
        today: Reference day (default: date.today())

    Returns:
        JSON-ready dict with camelCase keys
    """
    today = today or date.today()
    frame = pd.DataFrame(
        [{column: getattr(customer, column) for column in COLUMNS} for customer in customers],
        columns=COLUMNS,
    )

    visits = pd.to_datetime(
        frame["visit_date"].astype(str).str[:10], format="%Y-%m-%d", errors="coerce"
    )
    amounts = pd.to_numeric(frame["payment_amount"], errors="coerce").fillna(0.0)
    start_of_day = pd.Timestamp(today)

    def window(days: int) -> pd.Series:
        return visits >= start_of_day - pd.Timedelta(days=days)

    today_mask = visits >= start_of_day
    weekly_mask = window(7)
    monthly_mask = window(30)

    services = frame["services"].explode().dropna()
    counts = services.value_counts().head(TOP_SERVICES)
    popular = [{"name": str(name), "count": int(count)} for name, count in counts.items()]

    upcoming: List[Dict[str, Any]] = []
    for row in frame.itertuples(index=False):
        days = _days_until_birthday(row.birthday, today)
        if days is not None and days <= BIRTHDAY_WINDOW_DAYS:
            upcoming.append({"name": row.name, "birthday": row.birthday, "mobile": row.mobile})

    return {
        "todayCustomers": int(today_mask.sum()),
        "todayRevenue": float(amounts[today_mask].sum()),
        "weeklyCustomers": int(weekly_mask.sum()),
        "weeklyRevenue": float(amounts[weekly_mask].sum()),
        "monthlyCustomers": int(monthly_mask.sum()),
        "monthlyRevenue": float(amounts[monthly_mask].sum()),
        "popularServices": popular,
        "upcomingBirthdays": upcoming,
    }


class AnalyticsService:
    """
    Serves dashboard analytics, preferring a fresh cached snapshot.

    Online, figures are computed from the remote customer set and cached.
    Offline (or when the fetch fails), they are computed from local records
    and not cached, so a later online refresh is not masked.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStoreClient,
        monitor: NetworkMonitor,
        today: Optional[Callable[[], date]] = None,
    ):
        self.store = store
        self.remote = remote
        self.monitor = monitor
        self._today = today or date.today

    async def get_analytics(self, force_refresh: bool = False) -> Dict[str, Any]:
        if not force_refresh:
            cached = await self.store.get_cached_snapshot()
            if cached is not None:
                logger.debug("Serving cached analytics snapshot")
                return cached

        if self.monitor.current_status():
            try:
                customers = await self.remote.fetch_all("customers")
            except RemoteError as e:
                handle_error(
                    e, context="Fetching customers for analytics", level=logging.WARNING, log=logger
                )
            else:
                analytics = compute_analytics(customers, self._today())
                await self.store.cache_snapshot(analytics)
                return analytics

        customers = await self.store.get_all_records("customers")
        return compute_analytics(customers, self._today())

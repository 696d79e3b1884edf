"""
Per-user dashboard figures.

Revenue is the sum of ACCEPTED quotes' grand totals, each taken from
``compute_totals`` so the dashboard never disagrees with the quote view.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict

from ..schemas.dashboard import CustomerRevenueOut, DashboardStats
from ..schemas.quotes import QuoteOut, QuoteSummary
from .decimal_bridge import ZERO
from .pricing import compute_totals
from .quote_service import load_quote_items
from .store import QuoteStore
from .workflow import QuoteStatus


RECENT_LIMIT = 5
TOP_CUSTOMERS_LIMIT = 5


def get_dashboard_stats(store: QuoteStore, acting_user_id: uuid.UUID) -> DashboardStats:
    quotes = store.list_quotes(acting_user_id, limit=None)

    grand_totals: Dict[uuid.UUID, Decimal] = {}
    for quote in quotes:
        tasks, materials_by_task = load_quote_items(store, quote)
        grand_totals[quote.id] = compute_totals(quote, tasks, materials_by_task).grand_total

    accepted = [q for q in quotes if q.status == QuoteStatus.ACCEPTED.value]
    total_revenue = sum((grand_totals[q.id] for q in accepted), ZERO)

    # customer_id -> [accepted revenue, quote count]
    per_customer: Dict[uuid.UUID, list] = {}
    for quote in quotes:
        if quote.customer_id is None:
            continue
        entry = per_customer.setdefault(quote.customer_id, [ZERO, 0])
        entry[1] += 1
        if quote.status == QuoteStatus.ACCEPTED.value:
            entry[0] += grand_totals[quote.id]

    top_customers = []
    ranked = sorted(per_customer.items(), key=lambda kv: (kv[1][0], kv[1][1]), reverse=True)
    for customer_id, (revenue, count) in ranked[:TOP_CUSTOMERS_LIMIT]:
        customer = store.get_customer(customer_id)
        if customer is None:
            continue
        top_customers.append(CustomerRevenueOut(
            id=customer.id,
            name=customer.name,
            email=customer.email,
            total_revenue=revenue,
            quote_count=count,
        ))

    recent = sorted(quotes, key=lambda q: q.created_at or datetime.min, reverse=True)[:RECENT_LIMIT]
    return DashboardStats(
        total_quotes=len(quotes),
        accepted_quotes=len(accepted),
        total_customers=len(per_customer),
        total_revenue=total_revenue,
        recent_quotes=[
            QuoteSummary(**QuoteOut.from_row(q).model_dump(), grand_total=grand_totals[q.id])
            for q in recent
        ],
        top_customers=top_customers,
    )

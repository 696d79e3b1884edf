import uuid
from typing import List, Optional

from pydantic import BaseModel

from .quotes import Money, QuoteSummary


class CustomerRevenueOut(BaseModel):
    id: uuid.UUID
    name: str
    email: Optional[str] = None
    total_revenue: Money
    quote_count: int


class DashboardStats(BaseModel):
    total_quotes: int
    accepted_quotes: int
    total_customers: int
    total_revenue: Money
    recent_quotes: List[QuoteSummary]
    top_customers: List[CustomerRevenueOut]

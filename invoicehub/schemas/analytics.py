from typing import Dict
from pydantic import BaseModel


class DashboardResponse(BaseModel):
    invoice_counts: Dict[str, int]
    total_invoiced: str
    revenue_collected: str
    outstanding_receivables: str
    overdue_count: int
    client_count: int

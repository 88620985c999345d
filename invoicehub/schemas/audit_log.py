from typing import List, Optional
from pydantic import BaseModel


class InvoiceHistoryEntry(BaseModel):
    id: str
    action: str
    actor_email: Optional[str] = None
    before_state: Optional[dict] = None
    after_state: Optional[dict] = None
    changed_fields: Optional[List[str]] = None
    request_id: Optional[str] = None
    created_at: str

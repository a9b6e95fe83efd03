from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class ProcessedWebhookEvent(Document):
    """Marker for a billing webhook event that has been applied exactly once."""
    event_id: Indexed(str, unique=True)
    event_type: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "processed_webhook_events"

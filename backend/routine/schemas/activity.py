from datetime import datetime

from pydantic import BaseModel


class ActivityLogOut(BaseModel):
    id: str
    actor: str | None
    action: str
    entity_type: str | None
    entity_id: str | None
    details: dict
    created_at: datetime | None

    model_config = {"from_attributes": True}

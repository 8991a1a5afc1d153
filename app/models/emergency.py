from sqlmodel import SQLModel, Field
from typing import Optional

from app.core.types import TouristStatus
from app.models.location import PositionPayload

class PanicRequest(SQLModel):
    tourist_id: str
    location: Optional[PositionPayload] = None
    message: Optional[str] = None

class AcknowledgeRequest(SQLModel):
    tourist_id: str
    status: TouristStatus = TouristStatus.SAFE
    risk_score: Optional[float] = Field(default=None, ge=0, le=1)

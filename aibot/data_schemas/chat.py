# aibot/data_schemas/chat.py

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _epoch_millis() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class ChatResponse(BaseModel):
    """Response body of POST /api/chat"""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    session_id: str = Field(alias="sessionId")
    timestamp: int = Field(default_factory=_epoch_millis)

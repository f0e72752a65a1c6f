from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class BackendModel(BaseModel):
    """Base for payloads coming from the backend: tolerant of unknown keys"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BackendEnvelope(BackendModel):
    """Fields every backend response may carry"""
    success: bool = Field(default=True, description="Whether the backend reports success")
    message: Optional[str] = Field(default=None, description="Human-readable message")

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class MessageRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    payload: str
    partition: int
    offset: int
    timestamp: int = Field(..., description="Record timestamp in epoch milliseconds.")


class ConsumptionResult(BaseModel):
    """One bounded read: the records plus where to resume per partition."""

    topic: str
    messages: List[MessageRecord] = Field(default_factory=list)
    progress: Dict[int, int] = Field(default_factory=dict)


class ProduceRequest(BaseModel):
    partition: int = Field(..., ge=0)
    message: str


class ProduceReceipt(BaseModel):
    topic: str
    partition: int
    offset: int

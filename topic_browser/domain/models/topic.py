"""Topic metadata models used by the core, REST routes and the CLI."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

TOPIC_NAME_PATTERN = r"^[\w\-.]+$"


class PartitionWatermark(BaseModel):
    """Low/high watermark pair of one partition, fresh from the cluster."""

    model_config = ConfigDict(frozen=True)

    partition: int = Field(..., ge=0)
    low: int
    high: int
    error: Optional[str] = Field(
        default=None,
        description="Set when the watermark query failed; low and high are then -1.",
    )

    @model_validator(mode="after")
    def _low_not_above_high(self) -> "PartitionWatermark":
        if self.low > self.high:
            raise ValueError(f"partition {self.partition}: low {self.low} > high {self.high}")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def count(self) -> int:
        """Messages currently retained."""
        return self.high - self.low

    @property
    def available(self) -> bool:
        return self.error is None

    @classmethod
    def unavailable(cls, partition: int, reason: str) -> "PartitionWatermark":
        return cls(partition=partition, low=-1, high=-1, error=reason)


class TopicDefinition(BaseModel):
    """What it takes to create a topic again."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., pattern=TOPIC_NAME_PATTERN, examples=["orders"])
    partition_count: int = Field(..., ge=1)
    replication_factor: int = Field(1, ge=1)


class TopicSnapshot(BaseModel):
    """Immutable view of a topic's partitions and watermarks."""

    model_config = ConfigDict(frozen=True)

    name: str
    partitions: List[PartitionWatermark] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_messages(self) -> int:
        return sum(p.count for p in self.partitions)

    def partition(self, partition_id: int) -> Optional[PartitionWatermark]:
        for p in self.partitions:
            if p.partition == partition_id:
                return p
        return None

    def definition(self) -> TopicDefinition:
        return TopicDefinition(name=self.name, partition_count=len(self.partitions))


class TopicSummary(BaseModel):
    name: str
    partition_count: int

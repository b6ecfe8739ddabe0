"""Per-partition read windows derived from requested offsets and watermarks."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from topic_browser.core.exceptions import AssignmentFailed
from topic_browser.domain.models.topic import TopicSnapshot


@dataclass(frozen=True)
class PartitionWindow:
    """Offsets ``[floor, ceiling]`` one call may read from a partition."""

    partition: int
    requested: int
    floor: int
    ceiling: int
    high: int

    @property
    def satisfied(self) -> bool:
        """Nothing to read: the caller is already at the end of the log."""
        return self.floor >= self.ceiling

    @property
    def limit(self) -> int:
        return self.ceiling

    @property
    def max_records(self) -> int:
        return max(0, self.ceiling - self.floor + 1)


@dataclass(frozen=True)
class ConsumptionPlan:
    topic: str
    active: Tuple[PartitionWindow, ...] = ()
    satisfied: Tuple[PartitionWindow, ...] = ()
    # partitions whose watermarks could not be read, with the offset requested
    unreadable: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        snapshot: TopicSnapshot,
        offsets: Mapping[int, int],
        window_size: int,
    ) -> "ConsumptionPlan":
        """Classify every requested partition as active, satisfied or unreadable.

        Raises
        ------
        AssignmentFailed
            If a requested partition does not exist in *snapshot*.
        """
        active = []
        satisfied = []
        unreadable: Dict[int, int] = {}
        for partition_id in sorted(offsets):
            requested = int(offsets[partition_id])
            wm = snapshot.partition(partition_id)
            if wm is None:
                raise AssignmentFailed(
                    f"Topic '{snapshot.name}' has no partition {partition_id}",
                    topic=snapshot.name,
                    partition=partition_id,
                )
            if not wm.available:
                unreadable[partition_id] = requested
                continue
            window = PartitionWindow(
                partition=partition_id,
                requested=requested,
                floor=max(wm.low, requested),
                ceiling=min(wm.high - 1, requested + window_size),
                high=wm.high,
            )
            (satisfied if window.satisfied else active).append(window)
        return cls(
            topic=snapshot.name,
            active=tuple(active),
            satisfied=tuple(satisfied),
            unreadable=unreadable,
        )

    @property
    def limits(self) -> Dict[int, int]:
        return {w.partition: w.limit for w in self.active}

    def initial_progress(self) -> Dict[int, int]:
        """Progress before any record is read."""
        progress = dict(self.unreadable)
        progress.update({w.partition: w.high for w in self.satisfied})
        progress.update({w.partition: w.floor for w in self.active})
        return progress


def parse_offsets(raw: Optional[str]) -> Optional[Dict[int, int]]:
    """
    Parse an offset request written as comma-separated ``partition;offset``
    pairs (``partition:offset`` also works), e.g. ``"0;45,1;25"``.

    Empty or missing input -> None. Raises ValueError on malformed pairs,
    negative partitions or a partition given twice.
    """
    if raw is None or not raw.strip():
        return None
    offsets: Dict[int, int] = {}
    for pair in raw.split(","):
        pair = pair.strip()
        if not pair:
            continue
        sep = ";" if ";" in pair else ":"
        partition_s, _, offset_s = pair.partition(sep)
        try:
            partition, offset = int(partition_s), int(offset_s)
        except ValueError:
            raise ValueError(f"offsets entry '{pair}' must look like 'partition;offset'") from None
        if partition < 0:
            raise ValueError(f"offsets entry '{pair}': partition must be >= 0")
        if partition in offsets:
            raise ValueError(f"offsets entry '{pair}': partition {partition} given twice")
        offsets[partition] = offset
    return offsets or None

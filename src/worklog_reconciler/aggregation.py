"""Lossless aggregation of activity blocks and the working set that holds them."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from typing import Callable, Iterable, Iterator, Optional, Sequence

from .config import ReconcileSettings
from .errors import InvalidAggregation, InvalidInterval, NotAggregated
from .intervals import end_time, to_minutes
from .models import (
    ActivityBlock,
    AggregationRecord,
    ExclusionSet,
    Origin,
)

logger = logging.getLogger(__name__)

SEQUENCE_SEPARATOR = " → "

_UNSET = object()


def new_aggregate_id() -> str:
    return f"aggregated-{uuid.uuid4().hex}"


def chronological(blocks: Iterable[ActivityBlock]) -> list[ActivityBlock]:
    """Sort blocks by start time; ties keep their incoming order."""
    return sorted(blocks, key=lambda block: to_minutes(block.start_time))


def short_description(block: ActivityBlock, length: int = 50) -> str:
    for candidate in (block.description, block.title, block.source_app):
        if candidate and candidate.strip():
            return candidate.strip()[:length]
    return ""


def aggregate(
    blocks: Sequence[ActivityBlock],
    exclusions: ExclusionSet,
    *,
    settings: Optional[ReconcileSettings] = None,
    id_factory: Callable[[], str] = new_aggregate_id,
) -> ActivityBlock:
    """Merge ``blocks`` into one aggregated block.

    The aggregate spans from the earliest start to the latest end, but its
    duration is the sum of the input durations, so gaps between inputs are
    never logged. Every input id is added to ``exclusions``. Nothing is
    mutated unless the whole operation succeeds.
    """
    settings = settings or ReconcileSettings()
    if len(blocks) < 2:
        raise InvalidAggregation("At least two blocks are required to aggregate")

    ids = [block.id for block in blocks]
    if len(set(ids)) != len(ids):
        raise InvalidAggregation("Cannot aggregate the same block twice")
    nested = [block.id for block in blocks if block.is_aggregated]
    if nested:
        raise InvalidAggregation(
            f"Blocks {', '.join(nested)} are already aggregated; disaggregate them first"
        )

    ordered = chronological(blocks)
    latest_end = max(ordered, key=lambda block: to_minutes(block.end_time)).end_time
    total_seconds = sum(block.duration_seconds for block in ordered)

    parts = [
        f"[{block.start_time}-{block.end_time}] "
        f"{short_description(block, settings.short_description_length)}"
        for block in ordered
    ]

    apps_in_order: list[str] = []
    for block in ordered:
        if not apps_in_order or apps_in_order[-1] != block.source_app:
            apps_in_order.append(block.source_app)
    unique_apps = list(dict.fromkeys(block.source_app for block in ordered))

    ticket = next(
        (block.selected_ticket for block in ordered if block.selected_ticket), None
    )

    new_id = id_factory()
    if new_id in ids:
        raise InvalidAggregation(f"Generated id {new_id} collides with an input block")

    aggregated = ActivityBlock(
        id=new_id,
        start_time=ordered[0].start_time,
        end_time=latest_end,
        duration_seconds=total_seconds,
        title=f"Aggregate ({len(ordered)}): {SEQUENCE_SEPARATOR.join(apps_in_order)}",
        source_app=", ".join(unique_apps),
        selected_ticket=ticket,
        origin=Origin.AGGREGATED,
        description=SEQUENCE_SEPARATOR.join(parts),
        aggregation=AggregationRecord(tuple(block.snapshot() for block in ordered)),
    )

    exclusions.update(ids)
    logger.debug(
        "Aggregated %d blocks into %s (%d seconds)", len(ordered), new_id, total_seconds
    )
    return aggregated


def disaggregate(block: ActivityBlock, exclusions: ExclusionSet) -> list[ActivityBlock]:
    """Restore the original blocks of an aggregate, in chronological order."""
    if not block.is_aggregated or block.aggregation is None:
        raise NotAggregated(f"Block {block.id} is not an aggregate")

    restored = [ActivityBlock.from_snapshot(item) for item in block.aggregation.items]
    exclusions.difference_update(block.aggregation.original_ids)
    logger.debug("Disaggregated %s into %d blocks", block.id, len(restored))
    return restored


def merge_feed(
    working: Iterable[ActivityBlock],
    fetched: Iterable[ActivityBlock],
    exclusions: ExclusionSet,
) -> list[ActivityBlock]:
    """Rebuild the working set after the raw activity feed was re-fetched.

    Fetched blocks absorbed into an aggregation are dropped. Manual and
    aggregated blocks survive the refresh and follow the raw blocks.
    """
    kept = [block for block in working if block.origin is not Origin.RAW]
    kept_ids = {block.id for block in kept}
    seen: set[str] = set()
    raw: list[ActivityBlock] = []
    for block in fetched:
        if block.id in exclusions or block.id in kept_ids or block.id in seen:
            continue
        seen.add(block.id)
        raw.append(block)
    return chronological(raw) + kept


def group_by_hour(
    blocks: Iterable[ActivityBlock], exclude_ids: Iterable[str] = ()
) -> list[list[ActivityBlock]]:
    """Return groups of two or more blocks starting within the same hour."""
    skip = set(exclude_ids)
    groups: defaultdict[int, list[ActivityBlock]] = defaultdict(list)
    for block in blocks:
        if block.is_aggregated or block.id in skip:
            continue
        groups[to_minutes(block.start_time) // 60].append(block)
    return [groups[hour] for hour in sorted(groups) if len(groups[hour]) >= 2]


class WorkingSet:
    """Ordered, id-unique collection of editable blocks for one day."""

    def __init__(
        self,
        blocks: Iterable[ActivityBlock] = (),
        exclusions: Optional[ExclusionSet] = None,
        settings: Optional[ReconcileSettings] = None,
    ) -> None:
        self.exclusions: ExclusionSet = exclusions if exclusions is not None else set()
        self.settings = settings or ReconcileSettings()
        self._blocks: list[ActivityBlock] = []
        for block in blocks:
            self.add(block)

    def __iter__(self) -> Iterator[ActivityBlock]:
        return iter(list(self._blocks))

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, block_id: object) -> bool:
        return any(block.id == block_id for block in self._blocks)

    @property
    def blocks(self) -> list[ActivityBlock]:
        return list(self._blocks)

    @property
    def total_seconds(self) -> int:
        return sum(block.duration_seconds for block in self._blocks)

    def get(self, block_id: str) -> ActivityBlock:
        for block in self._blocks:
            if block.id == block_id:
                return block
        raise KeyError(block_id)

    def add(self, block: ActivityBlock) -> None:
        if block.id in self:
            raise ValueError(f"Block {block.id} is already in the working set")
        self._blocks.append(block)

    def remove(self, block_id: str) -> ActivityBlock:
        block = self.get(block_id)
        self._blocks.remove(block)
        return block

    def update_block(
        self,
        block_id: str,
        *,
        start_time: Optional[str] = None,
        duration_seconds: Optional[int] = None,
        description: Optional[str] = None,
        selected_ticket: object = _UNSET,
    ) -> ActivityBlock:
        """Edit a block in place; the end time follows start and duration."""
        block = self.get(block_id)
        if duration_seconds is not None:
            if duration_seconds < 0:
                raise InvalidInterval("Duration cannot be negative")
            if block.is_aggregated and duration_seconds != block.duration_seconds:
                raise InvalidAggregation(
                    "The duration of an aggregate is the sum of its parts"
                )
        if start_time is not None:
            to_minutes(start_time)

        if start_time is not None or duration_seconds is not None:
            block.start_time = start_time if start_time is not None else block.start_time
            if duration_seconds is not None:
                block.duration_seconds = duration_seconds
            block.end_time = end_time(
                block.start_time,
                block.duration_seconds,
                allow_wrap=self.settings.allow_midnight_wrap,
            )
        if description is not None:
            block.description = description
        if selected_ticket is not _UNSET:
            block.selected_ticket = selected_ticket or None  # type: ignore[assignment]
        return block

    def aggregate_ids(self, block_ids: Sequence[str]) -> ActivityBlock:
        """Replace the selected blocks with their aggregate.

        The aggregate takes the position of the first selected block.
        """
        selected = [self.get(block_id) for block_id in block_ids]
        aggregated = aggregate(selected, self.exclusions, settings=self.settings)
        chosen = {block.id for block in selected}
        position = next(
            index for index, block in enumerate(self._blocks) if block.id in chosen
        )
        remaining = [block for block in self._blocks if block.id not in chosen]
        remaining.insert(position, aggregated)
        self._blocks = remaining
        return aggregated

    def disaggregate_id(self, block_id: str) -> list[ActivityBlock]:
        """Replace an aggregate with its restored originals, in place."""
        block = self.get(block_id)
        restored = disaggregate(block, self.exclusions)
        index = self._blocks.index(block)
        self._blocks[index : index + 1] = restored
        return restored

    def refresh(self, fetched: Iterable[ActivityBlock]) -> None:
        self._blocks = merge_feed(self._blocks, fetched, self.exclusions)

    def mark_logged(self, block_id: str) -> ActivityBlock:
        """Drop a block that was written to the work-log system."""
        block = self.remove(block_id)
        logger.debug("Block %s logged and removed from the working set", block_id)
        return block

"""JetStream policy enums and conversion from channel spec values."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable


class DeliverPolicy(str, Enum):
    ALL = "all"
    LAST = "last"
    NEW = "new"
    BY_START_SEQUENCE = "by_start_sequence"
    BY_START_TIME = "by_start_time"


class ReplayPolicy(str, Enum):
    INSTANT = "instant"
    ORIGINAL = "original"


class RetentionPolicy(str, Enum):
    LIMITS = "limits"
    INTEREST = "interest"
    WORK_QUEUE = "workqueue"


class DiscardPolicy(str, Enum):
    OLD = "old"
    NEW = "new"


class StorageType(str, Enum):
    FILE = "file"
    MEMORY = "memory"


_DELIVER = {
    "All": DeliverPolicy.ALL,
    "Last": DeliverPolicy.LAST,
    "New": DeliverPolicy.NEW,
    "ByStartSequence": DeliverPolicy.BY_START_SEQUENCE,
    "ByStartTime": DeliverPolicy.BY_START_TIME,
}

_REPLAY = {
    "Instant": ReplayPolicy.INSTANT,
    "Original": ReplayPolicy.ORIGINAL,
}

_RETENTION = {
    "Limits": RetentionPolicy.LIMITS,
    "Work": RetentionPolicy.WORK_QUEUE,
    "Interest": RetentionPolicy.INTEREST,
}

_DISCARD = {
    "Old": DiscardPolicy.OLD,
    "New": DiscardPolicy.NEW,
}

_STORAGE = {
    "File": StorageType.FILE,
    "Memory": StorageType.MEMORY,
}


def convert_deliver_policy(value: str | None, default: DeliverPolicy) -> DeliverPolicy:
    """Map a spec deliver policy to JetStream's, or return ``default``."""
    return _DELIVER.get(value, default)


def convert_replay_policy(value: str | None, default: ReplayPolicy) -> ReplayPolicy:
    """Map a spec replay policy to JetStream's, or return ``default``."""
    return _REPLAY.get(value, default)


def convert_retention_policy(value: str | None, default: RetentionPolicy) -> RetentionPolicy:
    """Map a spec retention policy to JetStream's, or return ``default``."""
    return _RETENTION.get(value, default)


def convert_discard_policy(value: str | None, default: DiscardPolicy) -> DiscardPolicy:
    """Map a spec discard policy to JetStream's, or return ``default``."""
    return _DISCARD.get(value, default)


def convert_storage(value: str | None, default: StorageType) -> StorageType:
    """Map a spec storage type to JetStream's, or return ``default``."""
    return _STORAGE.get(value, default)


@dataclass
class StreamPlacement:
    """Placement of a stream as written in a channel spec."""

    cluster: str = ""
    tags: list[str] = field(default_factory=list)


@dataclass
class StreamSource:
    """A mirror or source stream as written in a channel spec."""

    name: str = ""
    opt_start_seq: int = 0
    opt_start_time: datetime | None = None
    filter_subject: str = ""


@dataclass
class Placement:
    """Placement of a stream as JetStream takes it."""

    cluster: str = ""
    tags: list[str] = field(default_factory=list)


@dataclass
class NatsStreamSource:
    """A mirror or source stream as JetStream takes it."""

    name: str = ""
    opt_start_seq: int = 0
    opt_start_time: datetime | None = None
    filter_subject: str = ""


def convert_placement(placement: StreamPlacement | None) -> Placement | None:
    """Convert a spec placement, passing ``None`` through."""
    if placement is None:
        return None
    return Placement(cluster=placement.cluster, tags=list(placement.tags))


def convert_stream_source(source: StreamSource | None) -> NatsStreamSource | None:
    """Convert a spec stream source, passing ``None`` through."""
    if source is None:
        return None
    return NatsStreamSource(
        name=source.name,
        opt_start_seq=source.opt_start_seq,
        opt_start_time=source.opt_start_time,
        filter_subject=source.filter_subject,
    )


def convert_stream_sources(
    sources: Iterable[StreamSource] | None,
) -> list[NatsStreamSource] | None:
    """Convert a list of spec stream sources, passing ``None`` through."""
    if sources is None:
        return None
    return [convert_stream_source(source) for source in sources]
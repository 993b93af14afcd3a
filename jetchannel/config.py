"""Building JetStream stream and consumer configurations from a channel spec."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from jetchannel.policies import (
    DeliverPolicy,
    DiscardPolicy,
    NatsStreamSource,
    Placement,
    ReplayPolicy,
    RetentionPolicy,
    StorageType,
    StreamPlacement,
    StreamSource,
    convert_deliver_policy,
    convert_discard_policy,
    convert_placement,
    convert_replay_policy,
    convert_retention_policy,
    convert_storage,
    convert_stream_source,
    convert_stream_sources,
)

ACK_EXPLICIT = "explicit"


@dataclass
class StreamSpec:
    """Stream settings as written in a channel spec."""

    additional_subjects: list[str] = field(default_factory=list)
    retention: str = ""
    max_consumers: int = 0
    max_msgs: int = 0
    max_bytes: int = 0
    discard: str = ""
    max_age: timedelta = timedelta(0)
    max_msg_size: int = 0
    storage: str = ""
    replicas: int = 0
    no_ack: bool = False
    duplicate_window: timedelta = timedelta(0)
    placement: StreamPlacement | None = None
    mirror: StreamSource | None = None
    sources: list[StreamSource] | None = None


@dataclass
class ConsumerTemplate:
    """Consumer settings shared by every subscriber of a channel."""

    deliver_policy: str = ""
    opt_start_seq: int = 0
    opt_start_time: datetime | None = None
    ack_wait: timedelta = timedelta(0)
    max_deliver: int = 0
    filter_subject: str = ""
    replay_policy: str = ""
    rate_limit_bps: int = 0
    sample_frequency: str = ""
    max_ack_pending: int = 0


@dataclass
class NatsStreamConfig:
    """A stream configuration as JetStream takes it."""

    name: str
    subjects: list[str]
    retention: RetentionPolicy = RetentionPolicy.LIMITS
    max_consumers: int = 0
    max_msgs: int = 0
    max_bytes: int = 0
    discard: DiscardPolicy = DiscardPolicy.OLD
    max_age: timedelta = timedelta(0)
    max_msg_size: int = 0
    storage: StorageType = StorageType.FILE
    replicas: int = 0
    no_ack: bool = False
    duplicates: timedelta = timedelta(0)
    placement: Placement | None = None
    mirror: NatsStreamSource | None = None
    sources: list[NatsStreamSource] | None = None


@dataclass
class NatsConsumerConfig:
    """A durable consumer configuration as JetStream takes it."""

    durable: str
    deliver_group: str
    deliver_subject: str
    ack_policy: str = ACK_EXPLICIT
    deliver_policy: DeliverPolicy = DeliverPolicy.ALL
    opt_start_seq: int = 0
    opt_start_time: datetime | None = None
    ack_wait: timedelta = timedelta(0)
    max_deliver: int = 0
    filter_subject: str = ""
    replay_policy: ReplayPolicy = ReplayPolicy.INSTANT
    rate_limit: int = 0
    sample_frequency: str = ""
    max_ack_pending: int = 0


def build_stream_config(
    stream_name: str, subject: str, spec: StreamSpec | None
) -> NatsStreamConfig:
    """Build the stream configuration, with ``subject`` always first."""
    if spec is None:
        return NatsStreamConfig(name=stream_name, subjects=[subject])

    return NatsStreamConfig(
        name=stream_name,
        subjects=[subject, *spec.additional_subjects],
        retention=convert_retention_policy(spec.retention, RetentionPolicy.LIMITS),
        max_consumers=spec.max_consumers,
        max_msgs=spec.max_msgs,
        max_bytes=spec.max_bytes,
        discard=convert_discard_policy(spec.discard, DiscardPolicy.OLD),
        max_age=spec.max_age,
        max_msg_size=spec.max_msg_size,
        storage=convert_storage(spec.storage, StorageType.FILE),
        replicas=spec.replicas,
        no_ack=spec.no_ack,
        duplicates=spec.duplicate_window,
        placement=convert_placement(spec.placement),
        mirror=convert_stream_source(spec.mirror),
        sources=convert_stream_sources(spec.sources),
    )


def build_consumer_config(
    consumer_name: str, deliver_subject: str, template: ConsumerTemplate | None
) -> NatsConsumerConfig:
    """Build a durable, queue-grouped, explicitly acked consumer configuration."""
    config = NatsConsumerConfig(
        durable=consumer_name,
        deliver_group=consumer_name,
        deliver_subject=deliver_subject,
        ack_policy=ACK_EXPLICIT,
    )
    if template is None:
        return config

    config.deliver_policy = convert_deliver_policy(template.deliver_policy, DeliverPolicy.ALL)
    config.opt_start_seq = template.opt_start_seq
    config.ack_wait = template.ack_wait
    config.max_deliver = template.max_deliver
    config.filter_subject = template.filter_subject
    config.replay_policy = convert_replay_policy(template.replay_policy, ReplayPolicy.INSTANT)
    config.rate_limit = template.rate_limit_bps
    config.sample_frequency = template.sample_frequency
    config.max_ack_pending = template.max_ack_pending
    config.opt_start_time = template.opt_start_time
    return config
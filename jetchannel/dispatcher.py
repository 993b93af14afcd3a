"""Manages the JetStream consumers and host routing behind every channel."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterator, Protocol

from jetchannel.config import NatsConsumerConfig, build_consumer_config
from jetchannel.consumer import (
    ChannelConfig,
    Consumer,
    Dispatch,
    SubscriberStatusType,
    Subscription,
)
from jetchannel.naming import consumer_name, consumer_subject_name, publish_subject_name
from jetchannel.resources import ChannelRef

_log = logging.getLogger(__name__)

StreamSubjectFunc = Callable[[str, str], str]
ConsumerNameFunc = Callable[[str], str]
ConsumerSubjectFunc = Callable[[str, str, str], str]


class ConsumerNotFoundError(LookupError):
    """Raised by a JetStream client when a consumer does not exist."""

    def __init__(self, stream: str = "", name: str = "") -> None:
        super().__init__(f"consumer not found: {stream}/{name}")
        self.stream = stream
        self.name = name


class UnknownHostError(LookupError):
    """Raised when no channel is registered for a host name."""

    def __init__(self, host: str) -> None:
        super().__init__(f"unknown channel host: {host}")
        self.host = host


class SubscriberErrors(Exception):
    """Failures of individual subscribers during one reconciliation."""

    def __init__(self, errors: list[tuple[str, BaseException]] | None = None) -> None:
        self.errors: list[tuple[str, BaseException]] = list(errors or [])
        super().__init__()

    def add_error(self, uid: str, error: BaseException) -> None:
        self.errors.append((uid, error))

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self) -> Iterator[tuple[str, BaseException]]:
        return iter(self.errors)

    def __str__(self) -> str:
        return "; ".join(f"subscriber {uid}: {err}" for uid, err in self.errors)


class _ConsumerInfo(Protocol):
    stream: str
    name: str
    config: NatsConsumerConfig


class _JetStream(Protocol):
    def add_consumer(self, stream: str, config: NatsConsumerConfig) -> _ConsumerInfo: ...

    def consumer_info(self, stream: str, name: str) -> _ConsumerInfo: ...

    def delete_consumer(self, stream: str, name: str) -> None: ...

    def queue_subscribe(
        self,
        subject: str,
        queue: str,
        handler: Callable[[Any], Any],
        *,
        stream: str,
        consumer: str,
    ) -> Any: ...

    def publish(self, subject: str, payload: bytes, *, msg_id: str) -> Any: ...


class Dispatcher:
    """Routes incoming events to channel streams and keeps one consumer per subscriber.

    Only the leader creates and deletes JetStream consumers; followers bind to
    consumers the leader already created, sharing delivery through queue groups.
    """

    def __init__(
        self,
        js: _JetStream,
        dispatch: Dispatch,
        publish_subject_func: StreamSubjectFunc = publish_subject_name,
        consumer_name_func: ConsumerNameFunc = consumer_name,
        consumer_subject_func: ConsumerSubjectFunc = consumer_subject_name,
        logger: logging.Logger | None = None,
    ) -> None:
        self._js = js
        self._dispatch = dispatch
        self._publish_subject = publish_subject_func
        self._consumer_name = consumer_name_func
        self._consumer_subject = consumer_subject_func
        self._logger = logger or _log

        self._hosts: dict[str, ChannelRef] = {}
        self._hosts_lock = threading.Lock()

        self._consumer_lock = threading.Lock()
        self._channel_subscribers: dict[tuple[str, str], set[str]] = {}
        self._consumers: dict[str, Consumer] = {}

    def register_channel_host(self, config: ChannelConfig) -> None:
        """Accept events addressed to ``config.host_name`` for this channel.

        Raises ValueError if the host is already taken by another channel.
        """
        ref = ChannelRef(name=config.name, namespace=config.namespace)
        with self._hosts_lock:
            old = self._hosts.setdefault(config.host_name, ref)
        if old != ref:
            raise ValueError(
                "duplicate hostName found. Each channel must have a unique host header. "
                f"HostName:{config.host_name}, channel:{old.namespace}.{old.name}, "
                f"channel:{config.namespace}.{config.name}"
            )

    def channel_reference_from_host(self, host: str) -> ChannelRef:
        """Return the channel registered for ``host``."""
        with self._hosts_lock:
            ref = self._hosts.get(host)
        if ref is None:
            raise UnknownHostError(host)
        return ref

    def reconcile_consumers(self, config: ChannelConfig, is_leader: bool) -> None:
        """Subscribe new subscribers of a channel and unsubscribe removed ones.

        Raises SubscriberErrors naming every subscriber that failed.
        """
        key = (config.namespace, config.name)
        with self._consumer_lock:
            current = self._channel_subscribers.get(key, set())
            expected = set(config.subscription_uids())
            to_add = expected - current
            to_remove = current - expected

            next_subs: set[str] = set()
            errors = SubscriberErrors()

            for sub in config.subscriptions:
                error: BaseException | None = None
                if sub.uid in to_add:
                    self._logger.debug("subscription %s not configured, subscribing", sub.uid)
                    status, error = self._subscribe(config, sub, is_leader)
                else:
                    status = SubscriberStatusType.UP_TO_DATE

                if status in (SubscriberStatusType.CREATED, SubscriberStatusType.UP_TO_DATE):
                    next_subs.add(sub.uid)
                elif status in (SubscriberStatusType.SKIPPED, SubscriberStatusType.ERROR):
                    next_subs.discard(sub.uid)

                if error is not None:
                    errors.add_error(sub.uid, error)

            for uid in sorted(to_remove):
                self._logger.debug("extraneous subscription %s, unsubscribing", uid)
                try:
                    self._unsubscribe(config, uid, is_leader)
                except Exception as err:
                    errors.add_error(uid, err)
                next_subs.discard(uid)

            self._channel_subscribers[key] = next_subs

        if errors:
            raise errors

    def publish(self, namespace: str, name: str, event_id: str, payload: bytes) -> Any:
        """Publish an encoded event to a channel's stream.

        The event ID is the message ID, so JetStream can drop duplicates.
        """
        subject = self._publish_subject(namespace, name)
        self._logger.debug("publishing message %s to subject %s", event_id, subject)
        return self._js.publish(subject, payload, msg_id=event_id)

    def _subscribe(
        self, config: ChannelConfig, sub: Subscription, is_leader: bool
    ) -> tuple[SubscriberStatusType, BaseException | None]:
        try:
            info = self._get_or_ensure_consumer(config, sub, is_leader)
        except ConsumerNotFoundError:
            self._logger.info("dispatcher not leader and consumer does not exist yet")
            return SubscriberStatusType.SKIPPED, None
        except Exception as err:
            self._logger.error("failed to get or ensure consumer: %s", err)
            return SubscriberStatusType.ERROR, err

        consumer = Consumer(
            subscription=sub,
            dispatch=self._dispatch,
            channel_namespace=config.namespace,
            logger=self._logger,
        )
        try:
            consumer.js_sub = self._js.queue_subscribe(
                info.config.deliver_subject,
                info.config.deliver_group,
                consumer.handle,
                stream=info.stream,
                consumer=info.name,
            )
        except Exception as err:
            self._logger.error("failed to create queue subscription for consumer: %s", err)
            return SubscriberStatusType.ERROR, err

        self._consumers[sub.uid] = consumer
        return SubscriberStatusType.CREATED, None

    def _unsubscribe(self, config: ChannelConfig, uid: str, is_leader: bool) -> None:
        consumer = self._consumers.pop(uid, None)
        if consumer is None:
            raise KeyError(
                "unable to unsubscribe, Consumer is not present in consumers map "
                f"for UID: {uid}"
            )

        close_error: BaseException | None = None
        try:
            consumer.close()
        except Exception as err:
            close_error = err

        if is_leader:
            try:
                self._delete_consumer(config, uid)
            except Exception as delete_error:
                if close_error is None:
                    raise
                raise RuntimeError(
                    "failed to deleteConsumer after failed consumer.Close(): "
                    f"{delete_error}: {close_error}"
                ) from close_error

        if close_error is not None:
            raise close_error

    def _get_or_ensure_consumer(
        self, config: ChannelConfig, sub: Subscription, is_leader: bool
    ) -> _ConsumerInfo:
        name = self._consumer_name(sub.uid)
        if is_leader:
            deliver_subject = self._consumer_subject(config.namespace, config.name, sub.uid)
            consumer_config = build_consumer_config(
                name, deliver_subject, config.consumer_config_template
            )
            return self._js.add_consumer(config.stream_name, consumer_config)
        return self._js.consumer_info(config.stream_name, name)

    def _delete_consumer(self, config: ChannelConfig, uid: str) -> None:
        name = self._consumer_name(uid)
        try:
            self._js.delete_consumer(config.stream_name, name)
        except Exception as err:
            self._logger.error("failed to delete JetStream consumer %s: %s", name, err)
            raise
"""Per-subscriber JetStream consumers that forward messages and settle them."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Callable, Mapping, Protocol

from jetchannel.config import ConsumerTemplate

MSG_ID_HEADER = "Nats-Msg-Id"
DEFAULT_IN_PROGRESS_INTERVAL = 10.0

_HTTP_REQUEST_TIMEOUT = 408
_HTTP_TOO_MANY_REQUESTS = 429

_log = logging.getLogger(__name__)


class SubscriberStatusType(IntEnum):
    """What reconciling one subscriber did."""

    CREATED = 0
    SKIPPED = 1
    UP_TO_DATE = 2
    ERROR = 3
    DELETED = 4


@dataclass
class Subscription:
    """A subscriber of a channel and where its events go."""

    uid: str
    subscriber: str | None = None
    reply: str | None = None
    dead_letter: str | None = None
    retry_config: Any = None


@dataclass
class ChannelConfig:
    """Everything the dispatcher needs to know about one channel."""

    namespace: str
    name: str
    host_name: str = ""
    stream_name: str = ""
    consumer_config_template: ConsumerTemplate | None = None
    subscriptions: list[Subscription] = field(default_factory=list)

    def subscription_uids(self) -> list[str]:
        """Return the UIDs of the subscriptions, in order."""
        return [sub.uid for sub in self.subscriptions]


class Outcome(Enum):
    """How a received message is settled with JetStream."""

    ACK = "ack"
    NACK = "nak"
    TERM = "term"


class ConsumerClosedError(Exception):
    """Raised when closing a consumer that is already closed."""

    def __init__(self) -> None:
        super().__init__("dispatcher consumer closed")


class _Message(Protocol):
    headers: Mapping[str, str] | None

    def ack(self) -> None: ...

    def nak(self) -> None: ...

    def term(self) -> None: ...

    def in_progress(self) -> None: ...


class _Subscription(Protocol):
    def drain(self) -> None: ...


Dispatch = Callable[[Subscription, Any], Any]


def classify_dispatch(error: BaseException | None, response_code: int) -> Outcome:
    """Decide how to settle a message after trying to deliver it.

    Success is acked. Server errors, 429 and 408 are nacked so JetStream
    redelivers later. Any other failure terminates the message.
    """
    if error is None:
        return Outcome.ACK
    if (
        response_code // 100 == 5
        or response_code == _HTTP_TOO_MANY_REQUESTS
        or response_code == _HTTP_REQUEST_TIMEOUT
    ):
        return Outcome.NACK
    return Outcome.TERM


class Consumer:
    """Forwards messages of one JetStream consumer to a subscriber.

    ``dispatch(subscription, msg)`` delivers a message; it signals failure by
    raising, and the exception may carry the subscriber's ``response_code``.
    """

    def __init__(
        self,
        subscription: Subscription,
        dispatch: Dispatch,
        channel_namespace: str,
        js_sub: _Subscription | None = None,
        in_progress_interval: float = DEFAULT_IN_PROGRESS_INTERVAL,
        logger: logging.Logger | None = None,
    ) -> None:
        self.subscription = subscription
        self.channel_namespace = channel_namespace
        self.js_sub = js_sub
        self.in_progress_interval = in_progress_interval
        self._dispatch = dispatch
        self._logger = logger or _log
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Drain the subscription; a second close raises ConsumerClosedError."""
        with self._lock:
            if self._closed:
                raise ConsumerClosedError()
            self._closed = True
            if self.js_sub is not None:
                self.js_sub.drain()

    def handle(self, msg: _Message) -> Outcome:
        """Deliver ``msg`` to the subscriber, then ack, nak or term it.

        While delivery runs the message is marked in progress periodically, and
        that stops before the message is settled.
        """
        headers = msg.headers or {}
        msg_id = headers.get(MSG_ID_HEADER, "")
        stop = threading.Event()

        def keep_alive() -> None:
            while not stop.wait(self.in_progress_interval):
                try:
                    msg.in_progress()
                except Exception:
                    self._logger.exception(
                        "failed to mark message %s as in progress", msg_id
                    )

        ticker = threading.Thread(target=keep_alive, daemon=True)
        ticker.start()
        try:
            outcome = self._deliver(msg, msg_id)
        finally:
            stop.set()
            ticker.join()

        settle = {
            Outcome.ACK: msg.ack,
            Outcome.NACK: msg.nak,
            Outcome.TERM: msg.term,
        }[outcome]
        try:
            settle()
        except Exception:
            self._logger.exception(
                "failed to %s message %s after delivery to subscriber",
                outcome.value,
                msg_id,
            )
        return outcome

    def _deliver(self, msg: _Message, msg_id: str) -> Outcome:
        self._logger.debug("received message %s from JetStream consumer", msg_id)
        try:
            self._dispatch(self.subscription, msg)
        except Exception as err:
            code = getattr(err, "response_code", 0) or 0
            self._logger.error(
                "failed to forward message %s to downstream subscriber: %s "
                "(dispatch_resp_code=%s)",
                msg_id,
                err,
                code,
            )
            return classify_dispatch(err, code)
        self._logger.debug("message %s forwarded to downstream subscriber", msg_id)
        return Outcome.ACK
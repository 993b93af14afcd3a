from dataclasses import dataclass, field
from types import SimpleNamespace

import pytest

from jetchannel.config import ConsumerTemplate
from jetchannel.consumer import ChannelConfig, Outcome, Subscription
from jetchannel.dispatcher import (
    ConsumerNotFoundError,
    Dispatcher,
    SubscriberErrors,
    UnknownHostError,
)
from jetchannel.naming import stream_name
from jetchannel.policies import DeliverPolicy
from jetchannel.resources import ChannelRef

TEST_NS = "test-namespace"
NC_NAME = "test-nc"


@dataclass
class FakeSub:
    drained: int = 0

    def drain(self):
        self.drained += 1


@dataclass
class FakeJetStream:
    consumers: dict = field(default_factory=dict)
    subscriptions: list = field(default_factory=list)
    deleted: list = field(default_factory=list)
    published: list = field(default_factory=list)
    fail_add: bool = False

    def add_consumer(self, stream, config):
        if self.fail_add:
            raise RuntimeError("add failed")
        info = SimpleNamespace(stream=stream, name=config.durable, config=config)
        self.consumers[(stream, config.durable)] = info
        return info

    def consumer_info(self, stream, name):
        try:
            return self.consumers[(stream, name)]
        except KeyError:
            raise ConsumerNotFoundError(stream, name) from None

    def delete_consumer(self, stream, name):
        self.consumers.pop((stream, name), None)
        self.deleted.append((stream, name))

    def queue_subscribe(self, subject, queue, handler, *, stream, consumer):
        sub = FakeSub()
        self.subscriptions.append(
            SimpleNamespace(
                subject=subject, queue=queue, handler=handler,
                stream=stream, consumer=consumer, sub=sub,
            )
        )
        return sub

    def publish(self, subject, payload, *, msg_id):
        self.published.append((subject, payload, msg_id))
        return "ack"


def make_config(*uids, host="a.b.c.d", template=None, namespace=TEST_NS, name=NC_NAME):
    return ChannelConfig(
        namespace=namespace,
        name=name,
        host_name=host,
        stream_name=stream_name(namespace, name),
        consumer_config_template=template,
        subscriptions=[Subscription(uid=uid, subscriber="http://sub") for uid in uids],
    )


def make_dispatcher(js=None, dispatch=None):
    return Dispatcher(js or FakeJetStream(), dispatch or (lambda sub, msg: None))


def test_register_channel_host():
    d = make_dispatcher()
    d.register_channel_host(make_config())
    assert d.channel_reference_from_host("a.b.c.d") == ChannelRef(
        name=NC_NAME, namespace=TEST_NS
    )


def test_register_same_channel_twice_is_allowed():
    d = make_dispatcher()
    d.register_channel_host(make_config())
    d.register_channel_host(make_config())
    assert d.channel_reference_from_host("a.b.c.d").name == NC_NAME


def test_register_duplicate_host_for_other_channel_fails():
    d = make_dispatcher()
    d.register_channel_host(make_config())
    with pytest.raises(ValueError, match="duplicate hostName"):
        d.register_channel_host(make_config(name="other"))
    assert d.channel_reference_from_host("a.b.c.d").name == NC_NAME


def test_unknown_host():
    d = make_dispatcher()
    with pytest.raises(UnknownHostError) as info:
        d.channel_reference_from_host("nowhere")
    assert info.value.host == "nowhere"


def test_leader_creates_and_subscribes_consumers():
    js = FakeJetStream()
    d = make_dispatcher(js)
    d.reconcile_consumers(make_config("ab-cd"), is_leader=True)

    stream = "KN_TEST_NAMESPACE__TEST_NC"
    assert (stream, "KN_SUB_ABCD") in js.consumers
    [sub] = js.subscriptions
    assert sub.subject == "test-namespace.test-nc._knative_consumer.abcd"
    assert sub.queue == "KN_SUB_ABCD"
    assert sub.stream == stream
    assert sub.consumer == "KN_SUB_ABCD"


def test_consumer_template_is_applied():
    js = FakeJetStream()
    d = make_dispatcher(js)
    template = ConsumerTemplate(deliver_policy="New", max_deliver=3)
    d.reconcile_consumers(make_config("u1", template=template), is_leader=True)
    info = js.consumers[("KN_TEST_NAMESPACE__TEST_NC", "KN_SUB_U1")]
    assert info.config.deliver_policy == DeliverPolicy.NEW
    assert info.config.max_deliver == 3


def test_reconcile_again_does_not_resubscribe():
    js = FakeJetStream()
    d = make_dispatcher(js)
    config = make_config("u1", "u2")
    d.reconcile_consumers(config, is_leader=True)
    d.reconcile_consumers(config, is_leader=True)
    assert len(js.subscriptions) == 2


def test_removed_subscription_is_drained_and_deleted_by_leader():
    js = FakeJetStream()
    d = make_dispatcher(js)
    d.reconcile_consumers(make_config("u1", "u2"), is_leader=True)
    d.reconcile_consumers(make_config("u1"), is_leader=True)

    by_consumer = {s.consumer: s.sub for s in js.subscriptions}
    assert by_consumer["KN_SUB_U2"].drained == 1
    assert by_consumer["KN_SUB_U1"].drained == 0
    assert js.deleted == [("KN_TEST_NAMESPACE__TEST_NC", "KN_SUB_U2")]


def test_follower_unsubscribe_does_not_delete_consumer():
    js = FakeJetStream()
    leader = make_dispatcher(js)
    leader.reconcile_consumers(make_config("u1"), is_leader=True)
    follower = make_dispatcher(js)
    follower.reconcile_consumers(make_config("u1"), is_leader=False)
    follower.reconcile_consumers(make_config(), is_leader=False)
    assert js.deleted == []
    assert js.subscriptions[-1].sub.drained == 1


def test_follower_skips_missing_consumer_then_subscribes_later():
    js = FakeJetStream()
    follower = make_dispatcher(js)
    follower.reconcile_consumers(make_config("u1"), is_leader=False)
    assert js.subscriptions == []

    make_dispatcher(js).reconcile_consumers(make_config("u1"), is_leader=True)
    follower.reconcile_consumers(make_config("u1"), is_leader=False)
    assert len(js.subscriptions) == 2
    assert js.subscriptions[-1].consumer == "KN_SUB_U1"


def test_failed_consumer_creation_reports_subscriber_errors_and_retries():
    js = FakeJetStream(fail_add=True)
    d = make_dispatcher(js)
    with pytest.raises(SubscriberErrors) as info:
        d.reconcile_consumers(make_config("u1"), is_leader=True)
    errors = list(info.value)
    assert [uid for uid, _ in errors] == ["u1"]
    assert str(errors[0][1]) == "add failed"

    js.fail_add = False
    d.reconcile_consumers(make_config("u1"), is_leader=True)
    assert len(js.subscriptions) == 1


def test_subscribed_handler_dispatches_and_acks():
    js = FakeJetStream()
    seen = []
    d = make_dispatcher(js, dispatch=lambda sub, msg: seen.append(sub.uid))
    d.reconcile_consumers(make_config("u1"), is_leader=True)

    settled = []
    msg = SimpleNamespace(
        headers={"Nats-Msg-Id": "m1"},
        ack=lambda: settled.append("ack"),
        nak=lambda: settled.append("nak"),
        term=lambda: settled.append("term"),
        in_progress=lambda: None,
    )
    outcome = js.subscriptions[0].handler(msg)
    assert outcome is Outcome.ACK
    assert seen == ["u1"]
    assert settled == ["ack"]


def test_publish_uses_channel_subject_and_event_id():
    js = FakeJetStream()
    d = make_dispatcher(js)
    result = d.publish(TEST_NS, NC_NAME, "evt-1", b"payload")
    assert result == "ack"
    assert js.published == [("test-namespace.test-nc._knative", b"payload", "evt-1")]


def test_subscriber_errors_message():
    errors = SubscriberErrors()
    errors.add_error("u1", RuntimeError("boom"))
    assert len(errors) == 1
    assert str(errors) == "subscriber u1: boom"
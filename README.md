# jetchannel

Building blocks for an event channel that keeps its messages in a JetStream
stream and forwards them to subscribers. The package has no third-party
dependencies: the JetStream client and the delivery to subscribers are
objects you pass in.

## Modules

- `jetchannel.naming`: `stream_name`, `publish_subject_name`,
  `consumer_name` and `consumer_subject_name`, plus the constants
  `CONTROLLER_NAME` and `DISPATCHER_NAME`.
- `jetchannel.policies`: the enums `DeliverPolicy`, `ReplayPolicy`,
  `RetentionPolicy`, `DiscardPolicy` and `StorageType`, and the
  `convert_*` functions that map spec values such as `"Work"` or
  `"ByStartTime"` to them. If the value is not recognised, the given default
  is returned. There are also `convert_placement`, `convert_stream_source` and
  `convert_stream_sources`. These pass `None` through.
- `jetchannel.config`: the spec dataclasses `StreamSpec` and
  `ConsumerTemplate`, and `build_stream_config` and `build_consumer_config`,
  which produce `NatsStreamConfig` and `NatsConsumerConfig`. The channel's
  publish subject always comes first in the stream's subjects. Consumers are
  durable, use the consumer name as the deliver group, and use explicit acks.
- `jetchannel.resources`: manifests as plain dicts. These are the channel
  service (`make_k8s_service`, with the option `external_service`), service
  accounts (`make_service_account`), role bindings (`make_role_binding`) and
  the dispatcher service (`DispatcherServiceBuilder` with
  `DispatcherServiceArgs`).
- `jetchannel.consumer`: `ChannelConfig`, `Subscription`,
  `SubscriberStatusType`, `Outcome`, `classify_dispatch` and `Consumer`.
- `jetchannel.dispatcher`: `Dispatcher` and the errors
  `ConsumerNotFoundError`, `UnknownHostError` and `SubscriberErrors`.

## Examples

```python
from jetchannel.naming import stream_name, publish_subject_name, consumer_name

stream_name("knative-eventing", "my-channel", "")
# 'KN_KNATIVE_EVENTING__MY_CHANNEL'

publish_subject_name("default", "channel")
# 'default.channel._knative'

consumer_name("abc-123")
# 'KN_SUB_ABC123'
```

```python
from jetchannel.config import build_consumer_config

cfg = build_consumer_config("KN_SUB_ABC", "default.channel._knative_consumer.abc", None)
cfg.durable, cfg.deliver_group
# ('KN_SUB_ABC', 'KN_SUB_ABC')
```

```python
from jetchannel.resources import ChannelRef, make_k8s_service, external_service

channel = ChannelRef(name="my-test-nc", namespace="my-test-ns")
service = make_k8s_service(
    channel, external_service("dispatcher-namespace", "jetstream-ch-dispatcher")
)
service["spec"]["externalName"]
# 'jetstream-ch-dispatcher.dispatcher-namespace.svc.cluster.local'
```

## Delivery and settling

`classify_dispatch(error, response_code)` decides how a message is settled:

- If there is no error, the message is acked.
- A 5xx, 429 or 408 response is nacked, so JetStream redelivers the message.
- Any other failure terminates the message.

`Consumer.handle(msg)` calls `dispatch(subscription, msg)`. While delivery
runs, it marks the message in progress at a fixed interval. It then acks,
naks or terms the message and returns the `Outcome`. An exception raised by
`dispatch` can carry a `response_code` attribute. `Consumer.close()` drains
the subscription, and a second call raises `ConsumerClosedError`.

## The dispatcher

`Dispatcher(js, dispatch)` takes a JetStream client object with these
methods:

- `add_consumer(stream, config)`
- `consumer_info(stream, name)`
- `delete_consumer(stream, name)`
- `queue_subscribe(subject, queue, handler, *, stream, consumer)`
- `publish(subject, payload, *, msg_id)`

The consumer info objects it returns must have `stream`, `name` and `config`.

- `register_channel_host(config)` maps a host name to a channel. It raises
  `ValueError` if another channel already holds that host.
- `channel_reference_from_host(host)` returns the `ChannelRef` for a host, or
  raises `UnknownHostError`.
- `reconcile_consumers(config, is_leader)` subscribes new subscriptions and
  unsubscribes removed ones:
  - The leader creates and deletes the JetStream consumers.
  - A follower binds only to existing consumers. It skips a subscription
    when `consumer_info` raises `ConsumerNotFoundError`.
  - Per-subscriber failures are collected and raised together as
    `SubscriberErrors`.
- `publish(namespace, name, event_id, payload)` publishes to the channel's
  subject, with the event ID as the message ID.

## What this package does not do

This package does not include:

- a NATS or JetStream client;
- an HTTP receiver for incoming events;
- CloudEvents encoding;
- a Kubernetes controller that watches channels or applies the manifests it
  builds;
- a manifest for the dispatcher deployment;
- a command-line program.

Those parts are left to the application that uses it.

## Installation

```
pip install .
```

## Running the tests

```
pip install .[test]
pytest
```
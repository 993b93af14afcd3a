"""Names of the JetStream streams, subjects and consumers that back a channel."""

CONTROLLER_NAME = "jetstream-ch-controller"
DISPATCHER_NAME = "jetstream-ch-dispatcher"


def stream_name(namespace: str, name: str, override_name: str | None = None) -> str:
    """Return the stream name for a channel.

    An override, when given, is used verbatim. Otherwise the name has the form
    ``KN_NAMESPACE__NAME`` in upper case, with hyphens turned into underscores,
    so "default/channel" becomes "KN_DEFAULT__CHANNEL".
    """
    if override_name:
        return override_name
    return f"KN_{namespace}__{name}".replace("-", "_").upper()


def publish_subject_name(namespace: str, name: str) -> str:
    """Return the subject that events sent to a channel are published on."""
    return f"{namespace}.{name}._knative"


def consumer_name(sub_uid: str) -> str:
    """Return the durable consumer name for a subscription UID."""
    return "KN_SUB_" + sub_uid.replace("-", "").upper()


def consumer_subject_name(namespace: str, name: str, uid: str) -> str:
    """Return the deliver subject shared by all dispatchers of one subscriber."""
    return f"{namespace}.{name}._knative_consumer.{uid.replace('-', '').lower()}"
"""Kubernetes manifests for the channel's services, service accounts and role bindings."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable

from jetchannel.naming import DISPATCHER_NAME

CHANNEL_LABEL_KEY = "messaging.knative.dev/channel"
CHANNEL_LABEL_VALUE = "nats-jetstream-channel"

ROLE_LABEL_KEY = "messaging.knative.dev/role"
DISPATCHER_ROLE_LABEL_VALUE = "dispatcher"
CONTROLLER_ROLE_LABEL_VALUE = "controller"

DISPATCHER_LABELS = {
    CHANNEL_LABEL_KEY: CHANNEL_LABEL_VALUE,
    ROLE_LABEL_KEY: DISPATCHER_ROLE_LABEL_VALUE,
}

MESSAGING_ROLE_LABEL = "messaging.knative.dev/role"
MESSAGING_ROLE = "nats-jetstream-channel"

PORT_NAME = "http"
PORT_NUMBER = 80

CLUSTER_DOMAIN = "cluster.local"

_ROLE_KIND_ROLE = "Role"
_ROLE_KIND_CLUSTER_ROLE = "ClusterRole"

Manifest = dict[str, Any]
ServiceOption = Callable[[Manifest], None]


@dataclass(frozen=True)
class ChannelRef:
    """The identity of a channel resource, enough to own other resources."""

    name: str
    namespace: str
    uid: str = ""
    api_version: str = "messaging.knative.dev/v1alpha1"
    kind: str = "NatsJetStreamChannel"


@dataclass
class DispatcherServiceArgs:
    """Settings applied on top of the dispatcher service."""

    dispatcher_namespace: str
    service_annotations: dict[str, str] | None = None
    service_labels: dict[str, str] | None = None


def _controller_ref(channel: ChannelRef) -> Manifest:
    return {
        "apiVersion": channel.api_version,
        "kind": channel.kind,
        "name": channel.name,
        "uid": channel.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def _join_string_maps(
    base: dict[str, str] | None, extra: dict[str, str] | None
) -> dict[str, str] | None:
    """Merge two string maps, entries of ``extra`` winning; ``None`` if both are."""
    if base is None and extra is None:
        return None
    return {**(base or {}), **(extra or {})}


def get_service_hostname(name: str, namespace: str) -> str:
    """Return the fully qualified in-cluster host name of a service."""
    return f"{name}.{namespace}.svc.{CLUSTER_DOMAIN}"


def make_jsm_channel_service_name(name: str) -> str:
    """Return the name of the service that fronts a channel."""
    return f"{name}-kn-jsm-channel"


def external_service(namespace: str, service: str) -> ServiceOption:
    """Return an option making a service an ExternalName alias for another service."""

    def apply(svc: Manifest) -> None:
        svc["spec"] = {
            "type": "ExternalName",
            "externalName": get_service_hostname(service, namespace),
        }

    return apply


def make_k8s_service(channel: ChannelRef, *args: ServiceOption) -> Manifest:
    """Build the service for a channel, owned by it, then apply each option in turn.

    An option signals failure by raising; the exception propagates.
    """
    svc: Manifest = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": make_jsm_channel_service_name(channel.name),
            "namespace": channel.namespace,
            "labels": {MESSAGING_ROLE_LABEL: MESSAGING_ROLE},
            "ownerReferences": [_controller_ref(channel)],
        },
        "spec": {
            "ports": [
                {"name": PORT_NAME, "protocol": "TCP", "port": PORT_NUMBER},
            ],
        },
    }
    for option in args:
        option(svc)
    return svc


def make_service_account(namespace: str, name: str) -> Manifest:
    """Build a service account in ``namespace``."""
    return {"metadata": {"namespace": namespace, "name": name}}


def make_role_binding(
    namespace: str,
    name: str,
    service_account: Manifest,
    role_name: str,
    is_cluster_role: bool,
) -> Manifest:
    """Build a role binding granting ``role_name`` to ``service_account``."""
    sa_meta = service_account.get("metadata", {})
    return {
        "metadata": {"name": name, "namespace": namespace},
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": _ROLE_KIND_CLUSTER_ROLE if is_cluster_role else _ROLE_KIND_ROLE,
            "name": role_name,
        },
        "subjects": [
            {
                "kind": "ServiceAccount",
                "namespace": sa_meta.get("namespace", ""),
                "name": sa_meta.get("name", ""),
            }
        ],
    }


def _dispatcher_service_template() -> Manifest:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": DISPATCHER_NAME,
            "labels": dict(DISPATCHER_LABELS),
        },
        "spec": {
            "selector": dict(DISPATCHER_LABELS),
            "ports": [
                {
                    "name": "http-dispatcher",
                    "protocol": "TCP",
                    "port": 80,
                    "targetPort": 8080,
                }
            ],
        },
    }


@dataclass
class DispatcherServiceBuilder:
    """Builds the dispatcher service, from scratch or on top of an existing one."""

    service: Manifest = field(default_factory=_dispatcher_service_template)
    args: DispatcherServiceArgs | None = None

    @classmethod
    def from_service(cls, service: Manifest) -> "DispatcherServiceBuilder":
        """Start from an existing service, for updating it in place."""
        return cls(service=copy.deepcopy(service))

    def with_args(self, args: DispatcherServiceArgs) -> "DispatcherServiceBuilder":
        self.args = args
        return self

    def build(self) -> Manifest:
        """Apply the arguments and return the service."""
        if self.args is None:
            raise ValueError("dispatcher service arguments not set")
        metadata = self.service.setdefault("metadata", {})
        metadata["namespace"] = self.args.dispatcher_namespace
        annotations = _join_string_maps(
            metadata.get("annotations"), self.args.service_annotations
        )
        labels = _join_string_maps(metadata.get("labels"), self.args.service_labels)
        if annotations is None:
            metadata.pop("annotations", None)
        else:
            metadata["annotations"] = annotations
        if labels is None:
            metadata.pop("labels", None)
        else:
            metadata["labels"] = labels
        return self.service
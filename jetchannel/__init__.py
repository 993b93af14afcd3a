"""Naming, configuration, resource manifests, consumers and dispatch for JetStream-backed event channels."""

__version__ = "0.1.0"
__all__ = ["config", "consumer", "dispatcher", "naming", "policies", "resources"]
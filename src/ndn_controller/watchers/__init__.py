"""Watcher implementations used by the controller."""

from .kube import ResourceWatcher, identity_keys, owner_keys  # noqa: F401

__all__ = ["ResourceWatcher", "identity_keys", "owner_keys"]

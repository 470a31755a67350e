"""Cluster state, gossip, configuration and API messages for a publish/subscribe broker."""

__version__ = "0.1.0"
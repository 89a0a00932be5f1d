"""Helpers for CKB integration tests: RPC clients, subscriptions, p2p framing and chain queries."""

__version__ = "0.1.0"
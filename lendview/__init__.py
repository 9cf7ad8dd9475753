"""Aggregation, risk and batched-authorization layer for an on-chain lending pool."""

__version__ = "0.1.0"

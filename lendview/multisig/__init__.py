from .safe_relay import SafeRelayClient

__all__ = ["SafeRelayClient"]

"""Multisig backend protocol — batch submission and status lookup."""
from typing import Protocol, Sequence

from ..models import AuthorizationId, AuthorizationStatus, PayloadItem, TxId


class MultisigBackend(Protocol):
    """Opaque co-signing backend. Signer sets and thresholds are not exposed."""

    async def submit(self, payload: Sequence[PayloadItem]) -> AuthorizationId: ...

    async def get_status(
        self, authorization_id: AuthorizationId
    ) -> tuple[AuthorizationStatus, TxId | None]: ...

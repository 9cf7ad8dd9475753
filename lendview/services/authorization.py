"""Batched (multisig) and direct (single-signer) submission paths.

The two paths stay separate: a batched authorization has an id and a
co-signing phase before any settlement transaction exists, a direct
submission is a transaction from the start.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Sequence

from ..chains.evm.abi import encode_call
from ..errors import MultisigUnavailableError, ReadError, ValidationError
from ..interfaces.ledger import LedgerGateway
from ..interfaces.multisig import MultisigBackend
from ..models import (
    AuthorizationId,
    BatchedAuthorization,
    DirectSubmission,
    Operation,
    PayloadItem,
    TxStatus,
)

logger = logging.getLogger(__name__)


def encode_operation(operation: Operation) -> PayloadItem:
    if not operation.target:
        raise ValidationError(f"No target contract for {operation.intent}", field="target")
    try:
        data = encode_call(operation.intent, operation.args)
    except ValueError as e:
        raise ValidationError(str(e), field="args") from e
    return PayloadItem(to=operation.target, data=data, value=str(int(operation.value or 0)))


class BatchedAuthorizationBuilder:
    """Encodes operations for co-signing and tracks authorization status.

    ``poll_status`` is idempotent: repeated calls without a backend change
    return the same status, and a terminal status is never left.
    """

    def __init__(self, backend: MultisigBackend) -> None:
        self._backend = backend
        self._authorizations: dict[AuthorizationId, BatchedAuthorization] = {}

    @staticmethod
    def encode(operations: Sequence[Operation]) -> tuple[PayloadItem, ...]:
        if not operations:
            raise ValidationError("At least one operation is required", field="operations")
        return tuple(encode_operation(op) for op in operations)

    async def submit(self, payload: Sequence[PayloadItem]) -> BatchedAuthorization:
        authorization_id = await self._backend.submit(payload)
        authorization = BatchedAuthorization(
            authorization_id=authorization_id, payload=tuple(payload)
        )
        self._authorizations[authorization_id] = authorization
        return authorization

    async def submit_batched(self, operations: Sequence[Operation]) -> BatchedAuthorization:
        return await self.submit(self.encode(operations))

    def get(self, authorization_id: AuthorizationId) -> BatchedAuthorization | None:
        return self._authorizations.get(authorization_id)

    async def poll_status(self, authorization_id: AuthorizationId) -> BatchedAuthorization:
        """Current status. Settled does not imply on-chain finality."""
        current = self._authorizations.get(authorization_id)
        if current is None:
            current = BatchedAuthorization(authorization_id=authorization_id, payload=())
        if current.status.is_terminal:
            return current

        try:
            status, settlement_tx_id = await self._backend.get_status(authorization_id)
        except MultisigUnavailableError as e:
            logger.warning("Status lookup for %s failed: %s", authorization_id, e)
            return current

        if status is not current.status:
            logger.info("Authorization %s is now %s", authorization_id, status.value)
            current = replace(current, status=status, settlement_tx_id=settlement_tx_id)
        self._authorizations[authorization_id] = current
        return current


class DirectSubmitter:
    """Single-signer path straight through the ledger gateway."""

    def __init__(self, gateway: LedgerGateway, sender: str | None = None) -> None:
        self._gateway = gateway
        self._sender = sender

    async def submit(self, operation: Operation) -> DirectSubmission:
        item = encode_operation(operation)
        tx_id = await self._gateway.send_transaction(
            item.to, item.data, int(operation.value or 0), self._sender
        )
        logger.info("Submitted %s: %s", operation.intent, tx_id)
        return DirectSubmission(tx_id=tx_id)

    async def confirm(
        self, submission: DirectSubmission, poll_interval: float = 2.0, timeout: float = 120.0
    ) -> DirectSubmission:
        """Wait for a receipt. Left PENDING if the ledger cannot be reached."""
        if submission.status is not TxStatus.PENDING:
            return submission
        try:
            status = await self._gateway.wait_for_transaction(
                submission.tx_id, poll_interval=poll_interval, timeout=timeout
            )
        except ReadError as e:
            logger.warning("Confirmation of %s unavailable: %s", submission.tx_id, e)
            return submission
        return replace(submission, status=status)

"""
Flight Oracle Relay Oracle Registry

Owns the set of registered oracle identities and the index triple the ledger
assigned to each one.

Registration Flow (per identity, sequentially):
    1. Send registerOracle carrying the stake from that identity
    2. Read getMyIndexes as that identity
    3. Store an OracleRegistration

Any failure along the way excludes that identity and moves on to the next
one. Failed identities are not retried; the next process start registers
from scratch.

Example:
    registry = OracleRegistry(gateway, stake_wei=10 * 10**18)
    await registry.register_all(await gateway.list_identities())

    for registration in registry.snapshot():
        print(registration.identity, registration.index_group)
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, Optional, Tuple

from pydantic import ValidationError

from ..ledger.gateway import LedgerGateway
from ..models import (
    INDEXES_METHOD,
    REGISTER_METHOD,
    FailureKind,
    OracleRegistration,
    RegistrationResult,
)


logger = logging.getLogger(__name__)


class OracleRegistry:
    """
    Identity -> OracleRegistration mapping, built by registering against
    the ledger.

    The mapping is only written during the registration phase; dispatch
    reads it through snapshot().
    """

    def __init__(self, gateway: LedgerGateway, stake_wei: int):
        """
        Initialize the registry.

        Args:
            gateway: Ledger gateway used for registration
            stake_wei: Value attached to every registerOracle transaction
        """
        self._gateway = gateway
        self._stake_wei = stake_wei
        self._registrations: Dict[str, OracleRegistration] = {}

    def __len__(self) -> int:
        return len(self._registrations)

    def __contains__(self, identity: object) -> bool:
        return identity in self._registrations

    def __iter__(self) -> Iterator[OracleRegistration]:
        return iter(self.snapshot())

    @property
    def identities(self) -> Tuple[str, ...]:
        return tuple(self._registrations)

    def get(self, identity: str) -> Optional[OracleRegistration]:
        return self._registrations.get(identity)

    def snapshot(self) -> Tuple[OracleRegistration, ...]:
        """Current registrations, detached from later changes."""
        return tuple(self._registrations.values())

    async def register_all(self, identities: Iterable[str]) -> "OracleRegistry":
        """
        Register every identity, skipping the ones that fail.

        Args:
            identities: Signing identities to register

        Returns:
            This registry
        """
        attempted = 0
        for identity in identities:
            attempted += 1
            await self.register(identity)

        if not self._registrations:
            logger.warning(
                f"No oracles registered out of {attempted} identities; "
                f"requests will not be answered"
            )
        else:
            logger.info(f"Registered {len(self._registrations)} of {attempted} oracles")
        return self

    async def register(self, identity: str) -> RegistrationResult:
        """
        Register a single identity as an oracle.

        Never raises; the outcome is reported in the returned result and
        logged here.
        """
        if identity in self._registrations:
            return self._failed(
                identity,
                FailureKind.ALREADY_REGISTERED,
                "identity is already registered",
            )

        try:
            sent = await self._gateway.send(
                REGISTER_METHOD,
                [],
                sender=identity,
                value=self._stake_wei,
            )
        except Exception as e:
            return self._failed(identity, FailureKind.TRANSPORT_ERROR, str(e))

        if not sent.get("success"):
            return self._failed(
                identity,
                FailureKind.TRANSACTION_FAILED,
                f"{sent.get('error')} - {sent.get('message')}",
            )

        try:
            indexes = await self._gateway.call(INDEXES_METHOD, [], sender=identity)
        except Exception as e:
            return self._failed(identity, FailureKind.TRANSPORT_ERROR, str(e), sent.get("tx_hash"))

        if not indexes.get("success"):
            return self._failed(
                identity,
                FailureKind.INDEX_QUERY_FAILED,
                f"{indexes.get('error')} - {indexes.get('message')}",
                sent.get("tx_hash"),
            )

        try:
            registration = OracleRegistration(
                identity=identity,
                index_group=indexes.get("value"),
            )
        except ValidationError as e:
            return self._failed(
                identity,
                FailureKind.INVALID_INDEXES,
                f"unusable indexes {indexes.get('value')!r}: {e.error_count()} validation error(s)",
                sent.get("tx_hash"),
            )

        self._registrations[identity] = registration
        logger.info(f"Oracle registered: {identity} indexes={list(registration.index_group)}")

        return RegistrationResult(
            identity=identity,
            success=True,
            registration=registration,
            tx_hash=sent.get("tx_hash"),
        )

    def _failed(
        self,
        identity: str,
        failure: FailureKind,
        message: str,
        tx_hash: Optional[str] = None,
    ) -> RegistrationResult:
        logger.warning(f"Oracle registration failed for {identity}: {failure.value} ({message})")
        return RegistrationResult(
            identity=identity,
            success=False,
            failure=failure,
            error_message=message,
            tx_hash=tx_hash,
        )

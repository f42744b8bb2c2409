"""
Flight Oracle Relay - Main Service

This module ties the oracle layers together into the running relay.

Lifecycle:
    1. Enumerate signing identities from the ledger gateway
    2. Register them as oracles (OracleRegistry)
    3. Subscribe once to OracleRequest events
    4. Run the RequestDispatcher as a consumer task for the process lifetime

    Ledger events -> RequestDispatcher -> (oracle x index) ResponseSubmitter -> Ledger

Stopping the relay cancels the subscription and stops awaiting events.
Submissions already in flight keep running; broadcast transactions cannot be
recalled. run_relay waits for them, up to the receipt timeout, before it
closes the gateway.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, Optional

from .config import RelayConfig, configure_logging
from .ledger.gateway import LedgerGateway, Subscription
from .models import REQUEST_EVENT, LedgerError
from .oracles.dispatcher import RequestDispatcher
from .oracles.registry import OracleRegistry
from .oracles.submitter import ResponseSubmitter


logger = logging.getLogger(__name__)


class RelayService:
    """
    The oracle relay.

    Owns the registry and holds the gateway handle; built once at startup.

    Example:
        relay = RelayService(gateway, config)
        await relay.start()
        ...
        await relay.stop()
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        config: Optional[RelayConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the relay.

        Args:
            gateway: Ledger gateway collaborator
            config: Relay configuration (defaults apply when omitted)
            rng: Random source for status codes (defaults to a Random seeded
                from config.oracle.random_seed)
        """
        self._config = config or RelayConfig()
        self._gateway = gateway

        self._registry = OracleRegistry(gateway, stake_wei=self._config.oracle.stake_wei)
        self._submitter = ResponseSubmitter(
            gateway,
            rng=rng or random.Random(self._config.oracle.random_seed),
        )
        self._dispatcher = RequestDispatcher(self._registry, self._submitter)

        self._subscription: Optional[Subscription] = None
        self._consumer: Optional[asyncio.Task] = None

    @property
    def registry(self) -> OracleRegistry:
        return self._registry

    @property
    def dispatcher(self) -> RequestDispatcher:
        return self._dispatcher

    @property
    def submitter(self) -> ResponseSubmitter:
        return self._submitter

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    async def start(self) -> None:
        """Register oracles, then subscribe and start dispatching."""
        if self._consumer is not None:
            raise RuntimeError("Relay already started")

        identities = await self._gateway.list_identities()
        limit = self._config.oracle.oracle_count
        if limit:
            identities = identities[:limit]
        logger.info(f"Registering {len(identities)} oracle identities")

        await self._registry.register_all(identities)

        self._subscription = await self._gateway.subscribe(REQUEST_EVENT)
        self._consumer = asyncio.create_task(
            self._dispatcher.run(self._subscription),
            name="oracle-request-dispatcher",
        )
        logger.info(f"Oracle relay started with {len(self._registry)} oracles")

    async def stop(self) -> None:
        """Cancel the subscription and wait for the consumer to wind down."""
        if self._subscription is not None:
            self._subscription.cancel()
        if self._consumer is not None:
            consumer, self._consumer = self._consumer, None
            await asyncio.gather(consumer, return_exceptions=True)
        logger.info(f"Oracle relay stopped: {self.stats()}")

    async def run_forever(self) -> None:
        """Start the relay and block until the subscription ends."""
        await self.start()
        if self._consumer is not None:
            await self._consumer

    def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"oracles": len(self._registry)}
        stats.update(self._dispatcher.stats())
        stats["responses_submitted"] = self._submitter.submitted_count
        stats["responses_failed"] = self._submitter.failed_count
        return stats


async def run_relay(config: RelayConfig) -> None:
    """Run the relay against a web3 node until cancelled."""
    from .ledger.web3_gateway import Web3LedgerGateway

    gateway = Web3LedgerGateway.from_config(config.ledger)
    relay = RelayService(gateway, config)
    try:
        if not await gateway.health_check():
            raise LedgerError(f"Ledger node at {config.ledger.url} is not reachable")
        await relay.run_forever()
    finally:
        await relay.stop()
        drained = await relay.dispatcher.wait_idle(
            timeout=config.ledger.receipt_timeout_seconds,
        )
        if not drained:
            logger.warning(
                f"Closing ledger with {relay.dispatcher.in_flight} submissions still pending"
            )
        await gateway.close()


def main() -> int:
    """Console entry point."""
    config = RelayConfig.from_env()
    configure_logging(config.logging)

    report = config.validate()
    for message in report["messages"]:
        logger.warning(message)
    if not report["valid"]:
        logger.error("Invalid configuration, relay not started")
        return 1

    try:
        asyncio.run(run_relay(config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except LedgerError as e:
        logger.error(f"Relay stopped: {e}")
        return 1
    return 0

"""
Flight Oracle Relay Ledger Gateway

Abstract interface to the ledger that hosts the FlightSurety application
contract, plus an in-memory implementation for tests and local development.

The gateway is deliberately narrow:
    - list_identities() -> signing addresses available to the relay
    - subscribe(event_name) -> cancellable Subscription of event payloads
    - call(method, args, sender) -> read-only contract call
    - send(method, args, sender, value) -> signed transaction, awaited

Per-call failures are returned as result dicts ({"success": False, "error",
"message"}) rather than raised, so callers can treat every attempt as an
independent outcome.

Example:
    ledger = MockLedgerGateway(identity_count=5)
    subscription = await ledger.subscribe("OracleRequest")
    ledger.emit("OracleRequest", {"airline": "0xA1", "flight": "ND1309", "timestamp": 1})

    async for item in subscription:
        ...
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from ..models import (
    INDEXES_METHOD,
    INDEXES_PER_ORACLE,
    REGISTER_METHOD,
    RESPONSE_METHOD,
    StreamError,
)


logger = logging.getLogger(__name__)


SubscriptionItem = Union[Dict[str, Any], StreamError]


class Subscription:
    """
    A cancellable, effectively infinite stream of event payloads.

    Producers push raw payload dicts or StreamError items; consumers iterate
    with `async for`. Iteration only ends after cancel(), once everything
    pushed before the cancel has been delivered.
    """

    _CLOSED = object()

    def __init__(
        self,
        event_name: str,
        on_cancel: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.event_name = event_name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancelled = False
        self._on_cancel = on_cancel

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def push(self, item: SubscriptionItem) -> None:
        """Deliver an event payload (or StreamError) to the consumer."""
        if self._cancelled:
            return
        self._queue.put_nowait(item)

    def push_error(self, message: str, exception: Optional[BaseException] = None) -> None:
        """Deliver a transport fault without ending the stream."""
        self.push(StreamError(message=message, exception=exception))

    def cancel(self) -> None:
        """Stop the stream. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        self._queue.put_nowait(self._CLOSED)
        if self._on_cancel is not None:
            self._on_cancel(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> SubscriptionItem:
        if self._cancelled and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item


class LedgerGateway(ABC):
    """
    Abstract interface to the ledger.

    Implementations can be:
        - Web3 JSON-RPC node (production)
        - Mock (testing)
    """

    @abstractmethod
    async def list_identities(self) -> List[str]:
        """
        List the signing identities the relay may send from.

        Returns:
            List of addresses
        """
        pass

    @abstractmethod
    async def subscribe(self, event_name: str) -> Subscription:
        """
        Subscribe to a named contract event.

        Args:
            event_name: Contract event name (e.g. "OracleRequest")

        Returns:
            Subscription yielding payload dicts and StreamError items
        """
        pass

    @abstractmethod
    async def call(
        self,
        method: str,
        args: Sequence[Any],
        sender: str,
    ) -> Dict[str, Any]:
        """
        Perform a read-only contract call.

        Args:
            method: Contract method name
            args: Positional method arguments
            sender: Identity the call is scoped to

        Returns:
            Dict with success, value (or error, message)
        """
        pass

    @abstractmethod
    async def send(
        self,
        method: str,
        args: Sequence[Any],
        sender: str,
        value: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Send a signed method-call transaction and await inclusion.

        Args:
            method: Contract method name
            args: Positional method arguments
            sender: Identity signing the transaction
            value: Native currency to attach, in wei

        Returns:
            Dict with success, tx_hash, block_number (or error, message)
        """
        pass

    async def health_check(self) -> bool:
        """Check if the ledger is reachable."""
        return True

    async def close(self) -> None:
        """Release gateway resources."""
        return None


class MockLedgerGateway(LedgerGateway):
    """
    In-memory ledger for development and testing.

    This simulates the oracle side of the FlightSurety application contract:
        - registerOracle requires the stake and rejects duplicates
        - each oracle is assigned three distinct random indices (0-9)
        - submitOracleResponse is rejected when the index is not one of the
          sender's indices
        - getMyIndexes fails for unregistered senders

    For testing, you can configure failure scenarios:
        - fail_method(method, sender) -> that sender's sends/calls fail
        - set_fail_all(True) -> every send fails
        - emit_error(event_name, message) -> inject a stream fault
    """

    DEFAULT_MIN_STAKE_WEI = 10 * 10**18

    def __init__(
        self,
        identities: Optional[Sequence[str]] = None,
        identity_count: int = 20,
        min_stake_wei: int = DEFAULT_MIN_STAKE_WEI,
        seed: Optional[int] = None,
        latency_seconds: float = 0.0,
    ):
        """
        Initialize the mock ledger.

        Args:
            identities: Explicit identity list (overrides identity_count)
            identity_count: Number of generated identities
            min_stake_wei: Minimum registerOracle value
            seed: Seed for index assignment
            latency_seconds: Simulated latency per call/send
        """
        if identities is not None:
            self._identities = list(identities)
        else:
            self._identities = [f"0x{i:040x}" for i in range(1, identity_count + 1)]
        self._min_stake = min_stake_wei
        self._rng = random.Random(seed)
        self._latency = latency_seconds

        self._oracles: Dict[str, Tuple[int, ...]] = {}
        self._pinned: Dict[str, Tuple[int, ...]] = {}
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._failing: Set[Tuple[str, Optional[str]]] = set()
        self._fail_all = False

        self.transactions: List[Dict[str, Any]] = []
        self.responses: List[Dict[str, Any]] = []

    # -------------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------------

    def fail_method(self, method: str, sender: Optional[str] = None) -> None:
        """Make `method` fail for `sender` (None = every sender)."""
        self._failing.add((method, sender))

    def set_fail_all(self, fail: bool) -> None:
        """Configure mock to fail every send."""
        self._fail_all = fail

    def assign_indexes(self, identity: str, indexes: Sequence[int]) -> None:
        """Pin the indices an identity will be given when it registers."""
        self._pinned[identity] = tuple(indexes)

    def indexes_of(self, identity: str) -> Optional[Tuple[int, ...]]:
        return self._oracles.get(identity)

    def emit(self, event_name: str, payload: Dict[str, Any]) -> int:
        """
        Deliver an event to every live subscription.

        Returns:
            Number of subscriptions the event was delivered to
        """
        subscriptions = self._subscriptions.get(event_name, [])
        for subscription in subscriptions:
            subscription.push(dict(payload))
        return len(subscriptions)

    def emit_error(self, event_name: str, message: str = "connection reset") -> None:
        """Deliver a StreamError to every live subscription."""
        for subscription in self._subscriptions.get(event_name, []):
            subscription.push_error(message, ConnectionError(message))

    def reset(self) -> None:
        """Reset all mock state."""
        self._oracles.clear()
        self._pinned.clear()
        self._failing.clear()
        self._fail_all = False
        self.transactions.clear()
        self.responses.clear()

    # -------------------------------------------------------------------------
    # LedgerGateway
    # -------------------------------------------------------------------------

    async def list_identities(self) -> List[str]:
        return list(self._identities)

    async def subscribe(self, event_name: str) -> Subscription:
        subscription = Subscription(event_name, on_cancel=self._forget)
        self._subscriptions.setdefault(event_name, []).append(subscription)
        return subscription

    def _forget(self, subscription: Subscription) -> None:
        live = self._subscriptions.get(subscription.event_name, [])
        if subscription in live:
            live.remove(subscription)

    def _is_failing(self, method: str, sender: str) -> bool:
        return (method, sender) in self._failing or (method, None) in self._failing

    async def call(
        self,
        method: str,
        args: Sequence[Any],
        sender: str,
    ) -> Dict[str, Any]:
        if self._latency:
            await asyncio.sleep(self._latency)

        if self._is_failing(method, sender):
            return {
                "success": False,
                "error": "call_failed",
                "message": f"{method} failed (mock: configured failure for {sender})",
            }

        if method == INDEXES_METHOD:
            if sender not in self._oracles:
                return {
                    "success": False,
                    "error": "reverted",
                    "message": "Not registered as an oracle",
                }
            return {"success": True, "value": list(self._oracles[sender])}

        return {
            "success": False,
            "error": "unknown_method",
            "message": f"Mock ledger has no read-only method {method}",
        }

    async def send(
        self,
        method: str,
        args: Sequence[Any],
        sender: str,
        value: Optional[int] = None,
    ) -> Dict[str, Any]:
        if self._latency:
            await asyncio.sleep(self._latency)

        record = {"method": method, "args": list(args), "sender": sender, "value": value}
        self.transactions.append(record)

        if self._fail_all or self._is_failing(method, sender):
            return {
                "success": False,
                "error": "transaction_failed",
                "message": f"{method} failed (mock: configured failure for {sender})",
            }

        if sender not in self._identities:
            return {
                "success": False,
                "error": "unknown_sender",
                "message": f"Sender {sender} is not an unlocked identity",
            }

        if method == REGISTER_METHOD:
            return self._register(sender, value or 0)
        if method == RESPONSE_METHOD:
            return self._respond(sender, list(args))

        return {
            "success": False,
            "error": "unknown_method",
            "message": f"Mock ledger has no transaction method {method}",
        }

    def _receipt(self) -> Dict[str, Any]:
        return {
            "success": True,
            "tx_hash": f"0x{uuid.uuid4().hex}{uuid.uuid4().hex}",
            "block_number": len(self.transactions),
        }

    def _register(self, sender: str, value: int) -> Dict[str, Any]:
        if value < self._min_stake:
            return {
                "success": False,
                "error": "reverted",
                "message": "Registration fee is required",
            }
        if sender in self._oracles:
            return {
                "success": False,
                "error": "reverted",
                "message": "Oracle is already registered",
            }

        pinned = self._pinned.get(sender)
        self._oracles[sender] = pinned or tuple(self._rng.sample(range(10), INDEXES_PER_ORACLE))
        logger.debug(f"Mock oracle registered: {sender} -> {self._oracles[sender]}")
        return self._receipt()

    def _respond(self, sender: str, args: List[Any]) -> Dict[str, Any]:
        index = args[0] if args else None
        if index not in self._oracles.get(sender, ()):
            return {
                "success": False,
                "error": "reverted",
                "message": "Index does not match oracle request",
            }

        index, airline, flight, timestamp, status_code = args
        self.responses.append({
            "sender": sender,
            "index": index,
            "airline": airline,
            "flight": flight,
            "timestamp": timestamp,
            "status_code": status_code,
        })
        return self._receipt()

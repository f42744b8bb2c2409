"""
Flight Oracle Relay Web3 Gateway

Production LedgerGateway backed by an Ethereum JSON-RPC node via web3's
asyncio API.

Requirements:
    - Node exposing unlocked accounts (eth_accounts / eth_sendTransaction),
      e.g. ganache or a dev node
    - Deployed FlightSuretyApp contract address
    - Contract ABI (truffle build artifact or the bundled minimal ABI)

Events are followed by polling eth_getLogs over new block ranges, which works
against any HTTP endpoint. Every transaction uses the configured fixed gas
price and gas limit; no fee estimation is performed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from ..config import LedgerConfig
from ..models import LedgerError
from .gateway import LedgerGateway, Subscription


logger = logging.getLogger(__name__)


BUNDLED_ABI_PATH = os.path.join(os.path.dirname(__file__), "flight_surety_app_abi.json")


def load_abi(path: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Load a contract ABI.

    Accepts either a bare ABI list or a build artifact with an "abi" key.

    Raises:
        LedgerError: If the file cannot be read or holds no ABI
    """
    path = path or BUNDLED_ABI_PATH
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError) as e:
        raise LedgerError(f"Cannot load contract ABI from {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("abi")
    if not isinstance(data, list):
        raise LedgerError(f"No ABI found in {path}")
    return data


class Web3LedgerGateway(LedgerGateway):
    """
    LedgerGateway over web3.AsyncWeb3.

    Example:
        gateway = Web3LedgerGateway.from_config(config.ledger)
        identities = await gateway.list_identities()
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        app_address: str,
        abi: List[Dict[str, Any]],
        gas_price_wei: int = 100_000_000_000,
        gas_limit: int = 2_500_000,
        poll_interval_seconds: float = 2.0,
        receipt_timeout_seconds: float = 120.0,
    ):
        """
        Initialize the gateway.

        Args:
            w3: Connected AsyncWeb3 instance
            app_address: Application contract address
            abi: Application contract ABI
            gas_price_wei: Fixed gas price for every transaction
            gas_limit: Fixed gas limit for every transaction
            poll_interval_seconds: Delay between eth_getLogs polls
            receipt_timeout_seconds: How long to wait for inclusion
        """
        if not app_address or not AsyncWeb3.is_address(app_address):
            raise LedgerError(f"Invalid application contract address: {app_address!r}")

        self._w3 = w3
        self._contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(app_address),
            abi=abi,
        )
        self._gas_price = gas_price_wei
        self._gas_limit = gas_limit
        self._poll_interval = poll_interval_seconds
        self._receipt_timeout = receipt_timeout_seconds
        self._pollers: Dict[Subscription, asyncio.Task] = {}

    @classmethod
    def from_config(cls, config: LedgerConfig) -> "Web3LedgerGateway":
        """Build a gateway from LedgerConfig."""
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.url))
        return cls(
            w3=w3,
            app_address=config.app_address,
            abi=load_abi(config.abi_path),
            gas_price_wei=config.gas_price_wei,
            gas_limit=config.gas_limit,
            poll_interval_seconds=config.poll_interval_seconds,
            receipt_timeout_seconds=config.receipt_timeout_seconds,
        )

    async def close(self) -> None:
        """Stop pollers and close the provider session."""
        for subscription in list(self._pollers):
            subscription.cancel()
        await self._w3.provider.disconnect()

    async def health_check(self) -> bool:
        """Check node availability."""
        try:
            return await self._w3.is_connected()
        except Exception:
            return False

    async def list_identities(self) -> List[str]:
        return list(await self._w3.eth.accounts)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    async def subscribe(self, event_name: str) -> Subscription:
        if event_name not in {e["name"] for e in self._contract.abi if e.get("type") == "event"}:
            raise LedgerError(f"Contract ABI has no event {event_name}")

        try:
            latest = await self._w3.eth.block_number
        except Exception as e:
            raise LedgerError(f"Cannot read block number to subscribe to {event_name}: {e}") from e

        subscription = Subscription(event_name, on_cancel=self._stop_poller)
        self._pollers[subscription] = asyncio.create_task(
            self._poll(subscription, latest + 1),
            name=f"poll-{event_name}",
        )
        logger.info(
            f"Subscribed to {event_name} events from block {latest + 1} "
            f"(polling every {self._poll_interval}s)"
        )
        return subscription

    def _stop_poller(self, subscription: Subscription) -> None:
        task = self._pollers.pop(subscription, None)
        if task is not None:
            task.cancel()

    async def _poll(self, subscription: Subscription, next_block: int) -> None:
        """Follow new blocks from `next_block` and push decoded event arguments."""
        event = getattr(self._contract.events, subscription.event_name)

        while not subscription.cancelled:
            try:
                latest = await self._w3.eth.block_number
                if latest >= next_block:
                    logs = await event.get_logs(from_block=next_block, to_block=latest)
                    for log in logs:
                        subscription.push(dict(log["args"]))
                    next_block = latest + 1
            except Exception as e:
                logger.debug(f"Polling {subscription.event_name} failed: {e}")
                subscription.push_error(f"{subscription.event_name} poll failed: {e}", e)

            await asyncio.sleep(self._poll_interval)

    # -------------------------------------------------------------------------
    # Calls and transactions
    # -------------------------------------------------------------------------

    def _function(self, method: str, args: Sequence[Any]) -> Any:
        return getattr(self._contract.functions, method)(*args)

    async def call(
        self,
        method: str,
        args: Sequence[Any],
        sender: str,
    ) -> Dict[str, Any]:
        try:
            value = await self._function(method, args).call({"from": sender})
            return {"success": True, "value": value}

        except ContractLogicError as e:
            return {
                "success": False,
                "error": "reverted",
                "message": str(e),
            }
        except Exception as e:
            logger.error(f"Ledger call {method} from {sender} failed: {e}")
            return {
                "success": False,
                "error": "call_failed",
                "message": str(e),
            }

    async def send(
        self,
        method: str,
        args: Sequence[Any],
        sender: str,
        value: Optional[int] = None,
    ) -> Dict[str, Any]:
        tx: Dict[str, Any] = {
            "from": sender,
            "gas": self._gas_limit,
            "gasPrice": self._gas_price,
        }
        if value:
            tx["value"] = value

        try:
            tx_hash = await self._function(method, args).transact(tx)
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self._receipt_timeout,
            )

        except ContractLogicError as e:
            return {
                "success": False,
                "error": "reverted",
                "message": str(e),
            }
        except TimeExhausted as e:
            return {
                "success": False,
                "error": "receipt_timeout",
                "message": str(e),
            }
        except Exception as e:
            return {
                "success": False,
                "error": "transaction_failed",
                "message": str(e),
            }

        tx_hex = AsyncWeb3.to_hex(tx_hash)
        if receipt["status"] != 1:
            return {
                "success": False,
                "error": "reverted",
                "message": f"Transaction {tx_hex} reverted",
                "tx_hash": tx_hex,
            }

        return {
            "success": True,
            "tx_hash": tx_hex,
            "block_number": receipt["blockNumber"],
        }

"""
Flight Oracle Relay Test - Oracle Registry

Tests for oracle registration bookkeeping.
Validates:
- One registration per identity with a 3-index triple from the ledger
- Failed identities are excluded without stopping the rest
- Duplicate registrations fail only the duplicate identity
"""

import pytest
from pydantic import ValidationError
from unittest.mock import AsyncMock

from oracle_relay.ledger.gateway import LedgerGateway
from oracle_relay.models import FailureKind, OracleRegistration
from oracle_relay.oracles.registry import OracleRegistry


STAKE_WEI = 10 * 10**18

OK_SEND = {"success": True, "tx_hash": "0xabc", "block_number": 1}


# =============================================================================
# HELPERS
# =============================================================================

def gateway_returning(send_result, call_result) -> AsyncMock:
    """Create a gateway mock with canned send/call results."""
    gateway = AsyncMock(spec=LedgerGateway)
    gateway.send.return_value = send_result
    gateway.call.return_value = call_result
    return gateway


# =============================================================================
# REGISTRATION
# =============================================================================

class TestRegisterAll:
    """Tests for bulk registration."""

    @pytest.mark.asyncio
    async def test_registers_every_identity(self, ledger, registry):
        identities = await ledger.list_identities()

        result = await registry.register_all(identities)

        assert result is registry
        assert len(registry) == len(identities)
        assert set(registry.identities) == set(identities)

    @pytest.mark.asyncio
    async def test_each_registration_holds_ledger_triple(self, ledger, registry):
        identities = await ledger.list_identities()
        await registry.register_all(identities)

        for identity in identities:
            registration = registry.get(identity)
            assert registration is not None
            assert len(registration.index_group) == 3
            assert len(set(registration.index_group)) == 3
            assert registration.index_group == ledger.indexes_of(identity)

    @pytest.mark.asyncio
    async def test_no_identity_appears_twice(self, ledger, registry):
        identities = await ledger.list_identities()

        await registry.register_all(identities + identities[:2])

        snapshot = registry.snapshot()
        assert len(snapshot) == len(identities)
        assert len({r.identity for r in snapshot}) == len(snapshot)

    @pytest.mark.asyncio
    async def test_sends_stake_once_per_identity(self, ledger, registry):
        identities = await ledger.list_identities()
        await registry.register_all(identities)

        registrations = [t for t in ledger.transactions if t["method"] == "registerOracle"]
        assert len(registrations) == len(identities)
        assert all(t["value"] == STAKE_WEI for t in registrations)

    @pytest.mark.asyncio
    async def test_zero_identities_is_not_an_error(self, registry):
        await registry.register_all([])

        assert len(registry) == 0
        assert registry.snapshot() == ()

    @pytest.mark.asyncio
    async def test_insufficient_stake_registers_nobody(self, ledger):
        registry = OracleRegistry(ledger, stake_wei=1)

        await registry.register_all(await ledger.list_identities())

        assert len(registry) == 0


class TestRegistrationFailures:
    """Per-identity failures are isolated."""

    @pytest.mark.asyncio
    async def test_duplicate_in_registry_is_not_resent(self, ledger, registry):
        identity = (await ledger.list_identities())[0]

        first = await registry.register(identity)
        second = await registry.register(identity)

        assert first.success
        assert not second.success
        assert second.failure == FailureKind.ALREADY_REGISTERED
        assert len(ledger.transactions) == 1

    @pytest.mark.asyncio
    async def test_identity_already_staked_on_ledger(self, ledger):
        identities = await ledger.list_identities()

        # Another process already staked identities[2]
        await OracleRegistry(ledger, stake_wei=STAKE_WEI).register(identities[2])

        registry = OracleRegistry(ledger, stake_wei=STAKE_WEI)
        await registry.register_all(identities)

        assert identities[2] not in registry
        assert len(registry) == len(identities) - 1
        for identity in identities[:2] + identities[3:]:
            assert identity in registry

    @pytest.mark.asyncio
    async def test_duplicate_reports_transaction_failure(self, ledger):
        identity = (await ledger.list_identities())[0]
        await OracleRegistry(ledger, stake_wei=STAKE_WEI).register(identity)

        result = await OracleRegistry(ledger, stake_wei=STAKE_WEI).register(identity)

        assert not result.success
        assert result.failure == FailureKind.TRANSACTION_FAILED
        assert "already registered" in result.error_message

    @pytest.mark.asyncio
    async def test_failed_send_skips_only_that_identity(self, ledger, registry):
        identities = await ledger.list_identities()
        ledger.fail_method("registerOracle", identities[1])

        await registry.register_all(identities)

        assert identities[1] not in registry
        assert len(registry) == len(identities) - 1

    @pytest.mark.asyncio
    async def test_index_query_failure_excludes_identity(self, ledger, registry):
        identities = await ledger.list_identities()
        ledger.fail_method("getMyIndexes", identities[0])

        result = await registry.register(identities[0])

        assert not result.success
        assert result.failure == FailureKind.INDEX_QUERY_FAILED
        assert result.tx_hash is not None
        assert identities[0] not in registry

    @pytest.mark.asyncio
    async def test_gateway_exception_is_contained(self):
        gateway = AsyncMock(spec=LedgerGateway)
        gateway.send.side_effect = ConnectionError("node unreachable")
        registry = OracleRegistry(gateway, stake_wei=STAKE_WEI)

        result = await registry.register("0x01")

        assert not result.success
        assert result.failure == FailureKind.TRANSPORT_ERROR
        assert "node unreachable" in result.error_message
        assert len(registry) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [[1, 2], [1, 2, 3, 4], [1, 1, 2], [1, 2, 300], None])
    async def test_unusable_indexes_are_rejected(self, value):
        gateway = gateway_returning(OK_SEND, {"success": True, "value": value})
        registry = OracleRegistry(gateway, stake_wei=STAKE_WEI)

        result = await registry.register("0x01")

        assert not result.success
        assert result.failure == FailureKind.INVALID_INDEXES
        assert "0x01" not in registry

    @pytest.mark.asyncio
    async def test_accepts_tuple_indexes(self):
        gateway = gateway_returning(OK_SEND, {"success": True, "value": (7, 0, 3)})
        registry = OracleRegistry(gateway, stake_wei=STAKE_WEI)

        result = await registry.register("0x01")

        assert result.success
        assert result.registration == OracleRegistration(identity="0x01", index_group=(7, 0, 3))
        gateway.send.assert_awaited_once_with(
            "registerOracle", [], sender="0x01", value=STAKE_WEI
        )
        gateway.call.assert_awaited_once_with("getMyIndexes", [], sender="0x01")


class TestSnapshot:
    """Snapshots are detached from later registrations."""

    @pytest.mark.asyncio
    async def test_snapshot_does_not_see_later_registrations(self, ledger, registry):
        identities = await ledger.list_identities()
        await registry.register_all(identities[:3])

        snapshot = registry.snapshot()
        await registry.register(identities[3])

        assert len(snapshot) == 3
        assert len(registry) == 4

    def test_registration_is_immutable(self):
        registration = OracleRegistration(identity="0x01", index_group=(1, 2, 3))

        with pytest.raises(ValidationError):
            registration.identity = "0x02"

    @pytest.mark.asyncio
    async def test_membership_and_iteration(self, ledger, registry):
        identities = await ledger.list_identities()
        await registry.register_all(identities[:2])

        assert identities[0] in registry
        assert identities[4] not in registry
        assert [r.identity for r in registry] == identities[:2]
        assert registry.get(identities[4]) is None

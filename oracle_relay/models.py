"""
Flight Oracle Relay Core Data Models

This module defines the data structures that flow between the ledger gateway,
the oracle registry, the request dispatcher and the response submitter.

Design Philosophy:
    - Immutable pydantic models for everything that crosses a boundary
    - Result dataclasses instead of raised exceptions for per-call failures
    - Validation at the boundary (inbound events, ledger-assigned indices)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Annotated, Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# CONSTANTS
# =============================================================================

REQUEST_EVENT = "OracleRequest"

REGISTER_METHOD = "registerOracle"
INDEXES_METHOD = "getMyIndexes"
RESPONSE_METHOD = "submitOracleResponse"

INDEXES_PER_ORACLE = 3

Uint8 = Annotated[int, Field(ge=0, le=255)]


# =============================================================================
# ENUMS
# =============================================================================

class FlightStatus(IntEnum):
    """
    Flight status buckets an oracle may report.

    Each oracle draws one of these uniformly at random per response so that
    the ledger-side consensus logic sees realistic disagreement.
    """
    UNKNOWN = 0
    ON_TIME = 10
    LATE_AIRLINE = 20
    LATE_WEATHER = 30
    LATE_TECHNICAL = 40


STATUS_CODES: Tuple[int, ...] = tuple(int(status) for status in FlightStatus)


class FailureKind(str, Enum):
    """
    Why a registration or submission attempt did not succeed.

    ALREADY_REGISTERED: Identity is already present in the registry
    TRANSACTION_FAILED: The ledger rejected or reverted the transaction
    INDEX_QUERY_FAILED: getMyIndexes could not be read after registering
    INVALID_INDEXES: getMyIndexes returned something other than 3 uint8s
    TRANSPORT_ERROR: The gateway raised instead of returning a result
    """
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    INDEX_QUERY_FAILED = "INDEX_QUERY_FAILED"
    INVALID_INDEXES = "INVALID_INDEXES"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class RelayError(Exception):
    """Base class for relay errors."""


class DecodeError(RelayError):
    """An inbound event payload could not be decoded into a RequestEvent."""


class LedgerError(RelayError):
    """The ledger gateway could not be set up (address, ABI, provider)."""


# =============================================================================
# CORE DATA MODELS
# =============================================================================

class OracleRegistration(BaseModel):
    """
    A successfully registered oracle identity.

    Attributes:
        identity: Signing address that paid the registration stake
        index_group: The three indices the ledger assigned at registration
    """
    model_config = ConfigDict(frozen=True)

    identity: str = Field(..., min_length=1)
    index_group: Tuple[Uint8, Uint8, Uint8]

    @field_validator("index_group")
    @classmethod
    def _indices_distinct(cls, value: Tuple[int, int, int]) -> Tuple[int, int, int]:
        if len(set(value)) != INDEXES_PER_ORACLE:
            raise ValueError(f"index group must hold distinct indices, got {value}")
        return value


class RequestEvent(BaseModel):
    """
    An inbound OracleRequest event from the application contract.

    `index` is only present when the ledger event carries it; the relay
    fans out to every registered index regardless and leaves matching to
    the contract.
    """
    model_config = ConfigDict(frozen=True)

    airline: str = Field(..., min_length=1)
    flight: str
    timestamp: int = Field(..., ge=0)
    index: Optional[Uint8] = None


class ResponseAttempt(BaseModel):
    """One oracle response for one of the oracle's indices."""
    model_config = ConfigDict(frozen=True)

    index: Uint8
    event: RequestEvent
    status_code: int

    @field_validator("status_code")
    @classmethod
    def _known_status(cls, value: int) -> int:
        if value not in STATUS_CODES:
            raise ValueError(f"status code must be one of {STATUS_CODES}, got {value}")
        return value

    def to_args(self) -> List[Any]:
        """Positional arguments for submitOracleResponse."""
        return [
            self.index,
            self.event.airline,
            self.event.flight,
            self.event.timestamp,
            self.status_code,
        ]


@dataclass(frozen=True)
class StreamError:
    """
    A transport fault on an event subscription.

    Subscriptions yield these in-band so that a fault never ends iteration.
    """
    message: str
    exception: Optional[BaseException] = None


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class RegistrationResult:
    """Outcome of registering a single identity."""
    identity: str
    success: bool
    registration: Optional[OracleRegistration] = None
    failure: Optional[FailureKind] = None
    error_message: Optional[str] = None
    tx_hash: Optional[str] = None


@dataclass
class SubmissionResult:
    """Outcome of a single submitOracleResponse attempt."""
    attempt: ResponseAttempt
    sender: str
    success: bool
    failure: Optional[FailureKind] = None
    error_message: Optional[str] = None
    tx_hash: Optional[str] = None

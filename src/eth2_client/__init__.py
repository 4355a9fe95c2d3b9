"""
Uniform asynchronous client for Ethereum consensus-layer nodes.

Backends:
- prysmgrpc: Prysm over gRPC
- tekuhttp: Teku (or any Beacon API node) over HTTP, including validator
  queries against beacon states

Every backend lazily fetches and caches the chain parameters that never
change for the lifetime of a connection.
"""

from .cache import ImmutableParameter
from .events import BeaconChainHeadEvent, BeaconChainHeadUpdatedHandler, EventHandlerRegistry
from .exceptions import (
    ConfigFormatError,
    Eth2ClientError,
    InvalidParametersError,
    MissingKeyError,
    NodeConnectionError,
    ParseFailure,
    UpstreamUnavailableError,
)
from .service import (
    BeaconChainHeadUpdatedSource,
    BeaconNodeClient,
    DomainProvider,
    FarFutureEpochProvider,
    GenesisTimeProvider,
    GenesisValidatorsRootProvider,
    Service,
    SlotDurationProvider,
    SlotsPerEpochProvider,
    TargetAggregatorsPerCommitteeProvider,
    ValidatorsProvider,
)
from .validators import StateValidator, Validator, ValidatorStatus

__all__ = [
    # Contract
    "Service",
    "BeaconNodeClient",
    "GenesisTimeProvider",
    "GenesisValidatorsRootProvider",
    "SlotDurationProvider",
    "SlotsPerEpochProvider",
    "FarFutureEpochProvider",
    "TargetAggregatorsPerCommitteeProvider",
    "DomainProvider",
    "BeaconChainHeadUpdatedSource",
    "ValidatorsProvider",
    # Validators
    "StateValidator",
    "Validator",
    "ValidatorStatus",
    # Events
    "BeaconChainHeadEvent",
    "BeaconChainHeadUpdatedHandler",
    "EventHandlerRegistry",
    # Parameters
    "ImmutableParameter",
    # Exceptions
    "Eth2ClientError",
    "ParseFailure",
    "MissingKeyError",
    "ConfigFormatError",
    "UpstreamUnavailableError",
    "NodeConnectionError",
    "InvalidParametersError",
]

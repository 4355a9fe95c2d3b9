"""
Prysm v1alpha1 message types.

Only the handful of messages this client exchanges are described here.
They are declared as descriptor protos and turned into message classes by
the protobuf runtime, in a private descriptor pool so they never clash with
a generated copy of the same schema loaded elsewhere in the process.

Schema (subset of ethereum/eth/v1alpha1)::

    message Genesis {
        google.protobuf.Timestamp genesis_time = 1;
        bytes deposit_contract_address = 2;
        bytes genesis_validators_root = 3;
    }

    message BeaconConfig {
        map<string, string> config = 1;
    }

    message ChainHead {
        uint64 head_slot = 1;
        uint64 head_epoch = 2;
        bytes head_block_root = 3;
        uint64 finalized_slot = 4;
        uint64 finalized_epoch = 5;
        bytes finalized_block_root = 6;
        uint64 justified_slot = 7;
        uint64 justified_epoch = 8;
        bytes justified_block_root = 9;
    }
"""

from __future__ import annotations

from typing import Any, Final

from google.protobuf import (
    descriptor_pb2,
    descriptor_pool,
    empty_pb2,
    message_factory,
    timestamp_pb2,
)

PACKAGE: Final = "ethereum.eth.v1alpha1"
"""Protobuf package of the Prysm API."""

GET_GENESIS: Final = f"/{PACKAGE}.Node/GetGenesis"
"""Unary: Empty -> Genesis."""

GET_BEACON_CONFIG: Final = f"/{PACKAGE}.BeaconChain/GetBeaconConfig"
"""Unary: Empty -> BeaconConfig."""

STREAM_CHAIN_HEAD: Final = f"/{PACKAGE}.BeaconChain/StreamChainHead"
"""Server streaming: Empty -> stream ChainHead."""

_F = descriptor_pb2.FieldDescriptorProto


def _add_field(
    message: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    field_type: int,
    *,
    type_name: str = "",
    repeated: bool = False,
) -> None:
    field = message.field.add(
        name=name,
        number=number,
        type=field_type,  # type: ignore[arg-type]
        label=_F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL,
    )
    # proto2 presence: an empty type_name still counts as set on scalar fields.
    if type_name:
        field.type_name = type_name


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    """Describe the message subset as a proto3 file."""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="eth2_client/prysm_v1alpha1_subset.proto",
        package=PACKAGE,
        syntax="proto3",
        dependency=[timestamp_pb2.DESCRIPTOR.name],
    )

    genesis = file_proto.message_type.add(name="Genesis")
    _add_field(
        genesis, "genesis_time", 1, _F.TYPE_MESSAGE, type_name=".google.protobuf.Timestamp"
    )
    _add_field(genesis, "deposit_contract_address", 2, _F.TYPE_BYTES)
    _add_field(genesis, "genesis_validators_root", 3, _F.TYPE_BYTES)

    # Maps are encoded as a repeated nested entry message flagged as a map entry.
    beacon_config = file_proto.message_type.add(name="BeaconConfig")
    entry = beacon_config.nested_type.add(name="ConfigEntry")
    _add_field(entry, "key", 1, _F.TYPE_STRING)
    _add_field(entry, "value", 2, _F.TYPE_STRING)
    entry.options.map_entry = True
    _add_field(
        beacon_config,
        "config",
        1,
        _F.TYPE_MESSAGE,
        type_name=f".{PACKAGE}.BeaconConfig.ConfigEntry",
        repeated=True,
    )

    chain_head = file_proto.message_type.add(name="ChainHead")
    for number, prefix in ((1, "head"), (4, "finalized"), (7, "justified")):
        _add_field(chain_head, f"{prefix}_slot", number, _F.TYPE_UINT64)
        _add_field(chain_head, f"{prefix}_epoch", number + 1, _F.TYPE_UINT64)
        _add_field(chain_head, f"{prefix}_block_root", number + 2, _F.TYPE_BYTES)

    return file_proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(timestamp_pb2.DESCRIPTOR.serialized_pb)
_POOL.AddSerializedFile(_build_file().SerializeToString())


def _message_class(name: str) -> Any:
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{PACKAGE}.{name}"))


Genesis: Any = _message_class("Genesis")
"""Genesis information of the chain."""

BeaconConfig: Any = _message_class("BeaconConfig")
"""The node's chain configuration as a string map."""

ChainHead: Any = _message_class("ChainHead")
"""A chain head update."""

Empty = empty_pb2.Empty
"""Request message for every call used here."""


def serialize(message: Any) -> bytes:
    """Request serializer for grpc."""
    return message.SerializeToString()

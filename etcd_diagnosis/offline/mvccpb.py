"""`mvccpb.KeyValue`, the protobuf message stored as the value of every `key` bucket entry.

The message class is built at import time from a descriptor so no generated `_pb2` module is needed.
"""

from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError

_FDP = descriptor_pb2.FieldDescriptorProto

# name, field number, wire type (mirrors api/mvccpb/kv.proto)
_KEY_VALUE_FIELDS = (
    ("key", 1, _FDP.TYPE_BYTES),
    ("create_revision", 2, _FDP.TYPE_INT64),
    ("mod_revision", 3, _FDP.TYPE_INT64),
    ("version", 4, _FDP.TYPE_INT64),
    ("value", 5, _FDP.TYPE_BYTES),
    ("lease", 6, _FDP.TYPE_INT64),
)


def _build_key_value_class():
    fdp = descriptor_pb2.FileDescriptorProto(name="mvccpb/kv.proto", package="mvccpb", syntax="proto3")
    msg = fdp.message_type.add(name="KeyValue")
    for name, number, ftype in _KEY_VALUE_FIELDS:
        msg.field.add(name=name, number=number, type=ftype, label=_FDP.LABEL_OPTIONAL)

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(fdp.SerializeToString())
    return message_factory.GetMessageClass(pool.FindMessageTypeByName("mvccpb.KeyValue"))


KeyValue = _build_key_value_class()


def unmarshal_key_value(raw: bytes):
    """Parse a stored KeyValue. Raises DecodeError on malformed input."""
    kv = KeyValue()
    kv.ParseFromString(raw)
    return kv


__all__ = ["DecodeError", "KeyValue", "unmarshal_key_value"]

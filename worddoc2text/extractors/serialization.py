import typing
from dataclasses import fields, is_dataclass
from enum import Enum

# Type marker key added to every serialized dataclass
_TYPE_KEY = "_type"


def _serialize_for_json(value: typing.Any) -> typing.Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (bytes, bytearray)):
        return {"_bytes_length": len(value)}
    if is_dataclass(value) and not isinstance(value, type):
        result = {
            _TYPE_KEY: type(value).__name__,
        }
        for item in fields(value):
            result[item.name] = _serialize_for_json(getattr(value, item.name))
        return result
    if isinstance(value, dict):
        return {str(key): _serialize_for_json(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialize_for_json(item) for item in value]
    return value


def serialize_extraction(value: typing.Any) -> dict:
    """
    Convert an extraction result into a JSON-safe dict.

    Dataclasses become dicts carrying their class name under ``_type``,
    enums become their value and raw buffers are replaced by their length.
    """
    serialized = _serialize_for_json(value)
    if isinstance(serialized, dict):
        return serialized
    return {"value": serialized}

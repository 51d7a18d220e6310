from enum import Enum

from pydantic import BaseModel


def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def to_document(model: BaseModel) -> dict:
    """Dump a model for storage: enums become their values, datetimes stay native."""
    return _plain(model.model_dump())

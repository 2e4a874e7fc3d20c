"""
Serializers for session payloads.

Two flavors are provided:

- :class:`JSONSerializer` writes portable JSON. Keys must be strings, and
  values come back the way JSON sees them: tuples become lists, and anything
  JSON can't represent (bytes, sets, datetimes) is refused. This widening is
  expected; store plain JSON types if exact round trips matter.
- :class:`PickleSerializer` keeps exact Python types and allows any hashable
  key, at the cost of portability. Records are only ever written by this
  store, so they are trusted input to :func:`pickle.loads`.
"""

import json
import pickle
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping

from .domain import Session
from .exceptions import SerializationError


class SessionSerializer(ABC):
    """Encodes session payloads for the remote store."""

    @abstractmethod
    def serialize(self, session: Session) -> bytes:
        """Encode the payload of ``session``."""

    @abstractmethod
    def deserialize(self, data: bytes, session: Session) -> None:
        """Decode ``data`` into the payload of ``session``."""

    @abstractmethod
    def serialize_data(self, data: Mapping[str, Any]) -> bytes:
        """Encode a bare mapping."""

    @abstractmethod
    def deserialize_data(self, data: bytes) -> Dict[str, Any]:
        """Decode a bare mapping."""


class JSONSerializer(SessionSerializer):
    """Encode the session payload as JSON."""

    def serialize(self, session: Session) -> bytes:
        """Encode the payload of ``session`` as JSON."""
        return self.serialize_data(session.values)

    def deserialize(self, data: bytes, session: Session) -> None:
        session.values.update(self.deserialize_data(data))

    def serialize_data(self, data: Mapping[str, Any]) -> bytes:
        """
        Encode a mapping as JSON.

        Raises
        ------
        :class:`SerializationError`
            Raised if a key is not a string, or a value can't be expressed in
            JSON.

        """
        for key in data:
            if not isinstance(key, str):
                raise SerializationError(
                    f'Non-string key value, cannot serialize session to '
                    f'JSON: {key!r}'
                )
        try:
            return json.dumps(data, separators=(',', ':')).encode('utf-8')
        except (TypeError, ValueError) as e:
            raise SerializationError(f'Cannot encode as JSON: {e}') from e

    def deserialize_data(self, data: bytes) -> Dict[str, Any]:
        try:
            decoded = json.loads(data)
        except (TypeError, ValueError) as e:   # JSONDecodeError, bad UTF-8
            raise SerializationError(f'Cannot decode JSON: {e}') from e
        if not isinstance(decoded, dict):
            raise SerializationError('Stored JSON is not an object')
        return decoded


class PickleSerializer(SessionSerializer):
    """Encode the session payload with :mod:`pickle`."""

    protocol = pickle.HIGHEST_PROTOCOL

    def serialize(self, session: Session) -> bytes:
        return self.serialize_data(session.values)

    def deserialize(self, data: bytes, session: Session) -> None:
        session.values.update(self.deserialize_data(data))

    def serialize_data(self, data: Mapping[Any, Any]) -> bytes:
        try:
            return pickle.dumps(dict(data), protocol=self.protocol)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise SerializationError(f'Cannot pickle payload: {e}') from e

    def deserialize_data(self, data: bytes) -> Dict[Any, Any]:
        try:
            decoded = pickle.loads(data)
        except Exception as e:  # unpickling raises nearly anything
            raise SerializationError(f'Cannot unpickle payload: {e}') from e
        if not isinstance(decoded, dict):
            raise SerializationError('Stored payload is not a mapping')
        return decoded


SERIALIZERS = {
    'json': JSONSerializer,
    'pickle': PickleSerializer,
}
"""Serializers by configuration name."""

"""
Redis-backed sessions bound to signed cookies.

Session payloads live in Redis, serialized as JSON or pickle. The cookie holds
only a signed envelope with the session ID and creation stamp, which is
checked against the record on every load. See :mod:`.store`.
"""

from .cookies import CookieCodec, CodecSet, Envelope, codecs_from_pairs
from .domain import CookieOptions, Session
from .exceptions import (ConfigurationError, InvalidToken, SerializationError,
                         SessionLoadFailed, SessionStoreError, SessionTooLarge)
from .serializers import JSONSerializer, PickleSerializer, SessionSerializer
from .store import RediStore, init_app

"""
Signed (and optionally encrypted) session cookies.

The cookie carries only an :class:`Envelope`: the session ID and its creation
stamp. Each :class:`CookieCodec` signs the envelope as an HS256 JSON web token
and, when it has a block key, wraps that token with Fernet so the envelope
can't be read by the client either.

Codecs are used as an ordered :class:`CodecSet` to support secret rotation:
new cookies are always minted with the first codec, while cookies minted with
any codec in the set are still accepted.
"""

import base64
import secrets
import time
from typing import Iterator, NamedTuple, Optional, Sequence, Tuple, Union

import jwt
from cryptography.fernet import Fernet, InvalidToken as FernetInvalidToken

from .domain import SESSION_EXPIRE, canonical_stamp
from .exceptions import InvalidToken

Key = Union[str, bytes]

ALGORITHM = 'HS256'


class Envelope(NamedTuple):
    """The only session data that is placed in the cookie."""

    session_id: str
    created: str


def _as_bytes(key: Key) -> bytes:
    if isinstance(key, str):
        return key.encode('utf-8')
    return key


def generate_random_key(length: int = 32) -> bytes:
    """Generate a random key suitable for signing or encryption."""
    return secrets.token_bytes(length)


class CookieCodec(object):
    """
    Signs and optionally encrypts cookie envelopes.

    Parameters
    ----------
    hash_key : str or bytes
        Secret used to sign the token.
    block_key : str or bytes or None
        If provided, must be 32 bytes; the signed token is encrypted with it.
    max_age : int
        Tokens older than this many seconds are rejected. 0 or less disables
        the check.

    """

    def __init__(self, hash_key: Key, block_key: Optional[Key] = None,
                 max_age: int = 86400 * 30) -> None:
        if not hash_key:
            raise ValueError('hash_key is required')
        self._hash_key = _as_bytes(hash_key)
        self._block_key = _as_bytes(block_key) if block_key else None
        self._fernet: Optional[Fernet] = None
        if self._block_key is not None:
            if len(self._block_key) != 32:
                raise ValueError('block_key must be 32 bytes')
            self._fernet = Fernet(base64.urlsafe_b64encode(self._block_key))
        self.max_age = max_age

    def with_max_age(self, max_age: int) -> 'CookieCodec':
        """Get a copy of this codec that enforces ``max_age``."""
        return CookieCodec(self._hash_key, self._block_key, max_age=max_age)

    def encode(self, name: str, envelope: Envelope) -> str:
        """Encode ``envelope`` as a token for the cookie ``name``."""
        claims = {
            'nam': name,
            'sid': envelope.session_id,
            'ctm': envelope.created,
            'iat': int(time.time()),
        }
        token: str = jwt.encode(claims, self._hash_key, algorithm=ALGORITHM)
        if self._fernet is not None:
            return self._fernet.encrypt(token.encode('ascii')).decode('ascii')
        return token

    def decode(self, name: str, token: str) -> Envelope:
        """
        Decode and authenticate a token minted for the cookie ``name``.

        Raises
        ------
        :class:`InvalidToken`
            Raised if the token can't be decrypted, fails signature or claim
            checks, was minted for another cookie, or is too old.

        """
        if self._fernet is not None:
            try:
                token = self._fernet.decrypt(token.encode('ascii')) \
                    .decode('ascii')
            except (FernetInvalidToken, UnicodeError) as e:
                raise InvalidToken('Cannot decrypt token') from e
        try:
            claims = jwt.decode(token, self._hash_key, algorithms=[ALGORITHM],
                                options={'require': ['iat']})
        except jwt.exceptions.InvalidTokenError as e:
            raise InvalidToken('Token is malformed or forged') from e

        if claims.get('nam') != name:
            raise InvalidToken('Token was issued for another cookie')
        if self.max_age > 0 and time.time() - claims['iat'] > self.max_age:
            raise InvalidToken('Token has expired')

        session_id = claims.get('sid')
        created = canonical_stamp(claims.get('ctm'))
        if not isinstance(session_id, str) or not session_id \
                or created is None:
            raise InvalidToken('Token payload malformed')
        return Envelope(session_id, created)


class CodecSet(object):
    """An ordered, immutable set of codecs that share one ``max_age``."""

    def __init__(self, codecs: Sequence[CookieCodec],
                 max_age: Optional[int] = None) -> None:
        if max_age is not None:
            codecs = [codec.with_max_age(max_age) for codec in codecs]
        self._codecs: Tuple[CookieCodec, ...] = tuple(codecs)

    @property
    def max_age(self) -> Optional[int]:
        """The ``max_age`` enforced by every codec, if there are any."""
        return self._codecs[0].max_age if self._codecs else None

    def with_max_age(self, max_age: int) -> 'CodecSet':
        """Get a new set in which every codec enforces ``max_age``."""
        return CodecSet(self._codecs, max_age=max_age)

    def __iter__(self) -> Iterator[CookieCodec]:
        return iter(self._codecs)

    def __len__(self) -> int:
        return len(self._codecs)

    def __getitem__(self, index: int) -> CookieCodec:
        return self._codecs[index]


def codecs_from_pairs(*keys: Optional[Key],
                      max_age: int = SESSION_EXPIRE) -> CodecSet:
    """
    Build a :class:`CodecSet` from alternating hash and block keys.

    A missing or empty block key gives a codec that signs without encrypting.
    An odd number of keys means the last hash key has no block key.

    Examples
    --------
    >>> codecs = codecs_from_pairs(b'new-hash-key', None, b'old-hash-key')
    >>> len(codecs)
    2

    """
    codecs = []
    for i in range(0, len(keys), 2):
        hash_key = keys[i]
        block_key = keys[i + 1] if i + 1 < len(keys) else None
        if not hash_key:
            raise ValueError(f'Missing hash key at position {i}')
        codecs.append(CookieCodec(hash_key, block_key, max_age=max_age))
    return CodecSet(codecs)


def encode_multi(name: str, envelope: Envelope,
                 codecs: Union[CodecSet, Sequence[CookieCodec]]) -> str:
    """Encode ``envelope`` with the first codec in ``codecs``."""
    for codec in codecs:
        return codec.encode(name, envelope)
    raise InvalidToken('No codecs were provided')


def decode_multi(name: str, token: str,
                 codecs: Union[CodecSet, Sequence[CookieCodec]]) -> Envelope:
    """
    Decode ``token`` with the first codec in ``codecs`` that accepts it.

    Raises
    ------
    :class:`InvalidToken`
        Raised if no codec accepts the token. The message is the same however
        and wherever decoding failed.

    """
    for codec in codecs:
        try:
            return codec.decode(name, token)
        except InvalidToken:
            continue
    raise InvalidToken('Invalid or expired session cookie')

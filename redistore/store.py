"""
Service API for the Redis-backed session store.

Session payloads are kept in Redis under ``<key_prefix><session ID>``. The
browser only receives a signed cookie that names the session and carries its
creation stamp; when the stamp in the cookie no longer matches the stamp in
the record (the record expired and was recreated, say), the cookie is treated
as stale and the request starts over with an empty session.

A :class:`RediStore` holds no per-session state, so one instance serves every
request in the process.
"""

import base64
import logging
from typing import (Any, Dict, MutableMapping, NamedTuple, Optional, Tuple,
                    Union)

import redis
from flask import Flask, Request, Response, current_app, g, \
    has_app_context, has_request_context

from . import logs
from .backend import Client, RecordStore, dial
from .cookies import (CodecSet, Envelope, Key, codecs_from_pairs,
                      decode_multi, encode_multi)
from .domain import (CREATED_KEY, DEFAULT_KEY_PREFIX, DEFAULT_MAX_AGE,
                     DEFAULT_MAX_LENGTH, SESSION_EXPIRE, CookieOptions,
                     Session, new_session_id, new_stamp)
from .exceptions import (ConfigurationError, InvalidToken, SerializationError,
                         SessionLoadFailed, SessionTooLarge)
from .serializers import SERIALIZERS, JSONSerializer, SessionSerializer

logger = logging.getLogger(__name__)

_MISSING = object()


class _Settings(NamedTuple):
    """Cookie defaults and codecs, swapped together by ``set_max_age``."""

    options: CookieOptions
    codecs: CodecSet


class RediStore(object):
    """
    Stores sessions in Redis, bound to signed cookies.

    Parameters
    ----------
    client : :class:`redis.StrictRedis`
        A connected client, e.g. from :func:`.backend.dial`.
    key_pairs : str or bytes
        Alternating hash and block keys; see :func:`.codecs_from_pairs`.
    serializer : :class:`.SessionSerializer`
        Defaults to :class:`.JSONSerializer`.
    options : :class:`.CookieOptions`
        Default cookie attributes, copied to each new session.

    """

    def __init__(self, client: Client, *key_pairs: Optional[Key],
                 serializer: Optional[SessionSerializer] = None,
                 options: Optional[CookieOptions] = None) -> None:
        if options is None:
            options = CookieOptions(path='/', max_age=SESSION_EXPIRE)
        self._settings = _Settings(
            options,
            codecs_from_pairs(*key_pairs, max_age=options.max_age)
        )
        self.default_max_age = DEFAULT_MAX_AGE
        self.max_length = DEFAULT_MAX_LENGTH
        self.serializer: SessionSerializer = serializer or JSONSerializer()
        self.records = RecordStore(client, key_prefix=DEFAULT_KEY_PREFIX,
                                   default_ttl=SESSION_EXPIRE)

    @property
    def options(self) -> CookieOptions:
        """Default cookie attributes for new sessions."""
        return self._settings.options

    @property
    def codecs(self) -> CodecSet:
        """Codecs used to mint and read session cookies."""
        return self._settings.codecs

    @property
    def key_prefix(self) -> str:
        return self.records.key_prefix

    def set_max_length(self, length: int) -> None:
        """
        Restrict the serialized size of new records to ``length`` bytes.

        0 removes the limit, which should be used with caution; Redis accepts
        values of up to 512MB. Negative values are ignored.
        """
        if length >= 0:
            self.max_length = length

    def set_key_prefix(self, prefix: str) -> None:
        self.records.key_prefix = prefix

    def set_serializer(self, serializer: SessionSerializer) -> None:
        self.serializer = serializer

    def set_max_age(self, max_age: int) -> None:
        """
        Set the maximum age, in seconds, of records and cookies.

        Codecs enforce the same age on the cookies they read, so they are
        rebuilt here; cookie defaults and codecs are replaced together in one
        assignment. To end a single session, set its ``max_age`` to -1 and
        :meth:`save` it instead.
        """
        settings = self._settings
        self._settings = _Settings(
            settings.options._replace(max_age=max_age),
            settings.codecs.with_max_age(max_age)
        )

    def close(self) -> None:
        """Close the connection pool of the Redis client."""
        self.records.client.close()

    def new(self, request: Request, name: str) -> Session:
        """
        Get the session for ``name`` from the request cookie.

        A missing cookie, one that does not authenticate, a missing record or
        a record with a different creation stamp all give a new, empty
        session.

        Parameters
        ----------
        request : :class:`flask.Request`
        name : str
            Name of the session cookie.

        Returns
        -------
        :class:`.Session`

        Raises
        ------
        :class:`.SessionLoadFailed`
            Raised if the record could not be read or decoded. The fresh
            session is available as ``.session``.

        """
        settings = self._settings
        session = Session(name, options=settings.options)
        token = request.cookies.get(name)
        if not token:
            return session
        try:
            envelope = decode_multi(name, token, settings.codecs)
        except InvalidToken as e:
            logger.debug('Ignoring session cookie %s: %s', name, e)
            return session

        session.id = envelope.session_id
        try:
            found = self._load(session)
        except (redis.exceptions.RedisError, SerializationError) as e:
            logger.error('Failed to load session %s: %s', session.id, e)
            session.values = {}
            raise SessionLoadFailed(f'Failed to load session {session.id}',
                                    session) from e
        if not found:
            return session
        if session.created != envelope.created:
            logger.debug('Session %s is stale; starting over', session.id)
            session.values = {}
            return session
        session.is_new = False
        return session

    def get(self, request: Request, name: str) -> Session:
        """
        Get the session for ``name``, once per request.

        Within a Flask request context the session is kept on :data:`flask.g`,
        so repeated calls return the same object.
        """
        if not has_request_context():
            return self.new(request, name)
        registry: Dict[str, Session] = g.setdefault('redistore_sessions', {})
        if name not in registry:
            try:
                registry[name] = self.new(request, name)
            except SessionLoadFailed as e:
                registry[name] = e.session
                raise
        return registry[name]

    def save(self, request: Request, response: Response,
             session: Session) -> None:
        """
        Persist ``session`` and set its cookie on ``response``.

        A session with a negative ``max_age`` is deleted and its cookie
        cleared instead.

        Raises
        ------
        :class:`.SessionTooLarge`
            Raised if the serialized session exceeds ``max_length``. Nothing
            is written.
        :class:`.SerializationError`
            Raised if the payload can't be serialized. Nothing is written.
        :class:`redis.exceptions.RedisError`
            Raised if Redis fails. No cookie is set.

        """
        if session.options.max_age < 0:
            if session.id:
                self.records.delete(session.id)
            self._set_cookie(response, session.name, '', session.options)
            return

        if not session.id:
            session.id = new_session_id()
        created = session.created or new_stamp()
        previous = session.values.get(CREATED_KEY, _MISSING)
        session.values[CREATED_KEY] = created
        try:
            self._save(session)
        except (SessionTooLarge, SerializationError):
            if previous is _MISSING:
                del session.values[CREATED_KEY]
            else:
                session.values[CREATED_KEY] = previous
            raise

        token = encode_multi(session.name, Envelope(session.id, created),
                             self.codecs)
        self._set_cookie(response, session.name, token, session.options)

    def delete(self, request: Request, response: Response,
               session: Session) -> None:
        """
        Remove ``session`` from Redis and expire its cookie.

        The cookie is expired and the payload cleared even if Redis fails, in
        which case the error is raised afterwards. Prefer setting ``max_age``
        to -1 and calling :meth:`save`.
        """
        try:
            if session.id:
                self.records.delete(session.id)
        finally:
            options = session.options._replace(max_age=-1)
            self._set_cookie(response, session.name, '', options)
            session.values.clear()

    def store(self, record_id: str, data: MutableMapping[str, Any]) -> None:
        """
        Store a bare mapping under ``record_id``, without any cookie.

        Uses the same serializer, size limit and key prefix as sessions, and
        a fixed TTL of :data:`.SESSION_EXPIRE`.
        """
        encoded = self.serializer.serialize_data(data)
        self._check_length(encoded)
        self.records.set(record_id, encoded, SESSION_EXPIRE)

    def load(self, record_id: str, into: Any = None) \
            -> Tuple[Optional[Dict[str, Any]], bool]:
        """
        Load a mapping stored with :meth:`store`.

        Parameters
        ----------
        record_id : str
        into : dict
            If given, updated in place with the stored mapping.

        Returns
        -------
        dict or None
            The stored mapping (``into``, if it was given).
        bool
            ``False`` if there is no record, or if ``into`` is not a mutable
            mapping.

        """
        data, found = self.records.get(record_id)
        if not found or data is None:
            return None, False
        if into is not None and not isinstance(into, MutableMapping):
            return None, False
        decoded = self.serializer.deserialize_data(data)
        if into is None:
            return decoded, True
        into.update(decoded)
        return into, True

    def _check_length(self, data: bytes) -> None:
        if self.max_length and len(data) > self.max_length:
            raise SessionTooLarge()

    def _load(self, session: Session) -> bool:
        data, found = self.records.get(session.id)
        if not found or data is None:
            return False
        self.serializer.deserialize(data, session)
        return True

    def _save(self, session: Session) -> None:
        data = self.serializer.serialize(session)
        self._check_length(data)
        ttl = session.options.max_age or self.default_max_age
        self.records.set(session.id, data, ttl)

    def _set_cookie(self, response: Response, name: str, value: str,
                    options: CookieOptions) -> None:
        max_age: Optional[int] = options.max_age
        expires: Optional[int] = None
        if max_age == 0:
            max_age = None      # Browser-session cookie.
        elif max_age is not None and max_age < 0:
            expires = 0
        response.set_cookie(name, value, max_age=max_age, expires=expires,
                            path=options.path, domain=options.domain,
                            secure=options.secure, httponly=options.http_only,
                            samesite=options.same_site)


def _split(value: Union[str, list, tuple, None]) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [part.strip() for part in value.split(',')]


def _key_pairs(config: MutableMapping) -> list:
    secrets = [s for s in _split(config.get('SESSION_SECRETS')) if s]
    if not secrets:
        raise ConfigurationError('SESSION_SECRETS is required')
    block_keys = _split(config.get('SESSION_ENCRYPTION_KEYS'))
    pairs: list = []
    for i, secret in enumerate(secrets):
        block_key = block_keys[i] if i < len(block_keys) else ''
        try:
            decoded = base64.urlsafe_b64decode(block_key) \
                if block_key else None
        except ValueError as e:
            raise ConfigurationError('Bad SESSION_ENCRYPTION_KEYS') from e
        pairs.extend([secret, decoded])
    return pairs


def _get_config(app: Optional[Flask] = None) -> MutableMapping:
    if app is not None:
        return app.config
    if has_app_context():
        return current_app.config
    from . import config
    return {k: getattr(config, k) for k in dir(config) if k.isupper()}


def init_app(app: Flask) -> None:
    """Set default configuration parameters for an application instance."""
    from . import config as defaults
    for key in dir(defaults):
        if key.isupper():
            app.config.setdefault(key, getattr(defaults, key))
    if str(app.config.get('LOG_JSON')) == '1':
        logs.setup_logger(logging.INFO)


def get_redis_store(app: Optional[Flask] = None) -> RediStore:
    """Get a new :class:`RediStore` configured for ``app``."""
    config = _get_config(app)
    serializer_name = config.get('SESSION_SERIALIZER', 'json')
    try:
        serializer = SERIALIZERS[serializer_name]()
    except KeyError as e:
        raise ConfigurationError(
            f'Unknown SESSION_SERIALIZER: {serializer_name}'
        ) from e
    key_pairs = _key_pairs(config)
    try:
        codecs_from_pairs(*key_pairs)
    except ValueError as e:
        raise ConfigurationError(f'Bad session secrets: {e}') from e
    try:
        port = int(config.get('REDIS_PORT', '6379'))
        db = int(config.get('REDIS_DATABASE', '0'))
        max_length = int(config.get('SESSION_MAX_LENGTH', DEFAULT_MAX_LENGTH))
        max_age = int(config.get('SESSION_MAX_AGE', SESSION_EXPIRE))
        default_max_age = int(config.get('SESSION_DEFAULT_MAX_AGE',
                                         DEFAULT_MAX_AGE))
    except ValueError as e:
        raise ConfigurationError(f'Bad session store config: {e}') from e

    # Only connect once the configuration is known to be usable.
    client = dial(
        host=config.get('REDIS_HOST', 'localhost'),
        port=port,
        db=db,
        password=config.get('REDIS_PASSWORD') or None,
        cluster=str(config.get('REDIS_CLUSTER', '0')) == '1'
    )
    store = RediStore(client, *key_pairs, serializer=serializer)
    store.set_key_prefix(config.get('SESSION_KEY_PREFIX', DEFAULT_KEY_PREFIX))
    store.set_max_length(max_length)
    store.set_max_age(max_age)
    store.default_max_age = default_max_age
    return store


def current_store() -> RediStore:
    """Get the :class:`RediStore` for the current application."""
    if not has_app_context():
        return get_redis_store()
    extensions = current_app.extensions
    if 'redistore' not in extensions:
        extensions['redistore'] = get_redis_store(current_app)
    return extensions['redistore']      # type: ignore


def new(request: Request, name: str) -> Session:
    """Get the session for ``name``, without registering it."""
    return current_store().new(request, name)


def get(request: Request, name: str) -> Session:
    """Get the session for ``name`` for this request."""
    return current_store().get(request, name)


def save(request: Request, response: Response, session: Session) -> None:
    """Persist ``session`` and set its cookie on ``response``."""
    current_store().save(request, response, session)


def delete(request: Request, response: Response, session: Session) -> None:
    """Remove ``session`` and expire its cookie."""
    current_store().delete(request, response, session)


def store(record_id: str, data: MutableMapping[str, Any]) -> None:
    """Store a bare mapping under ``record_id``."""
    current_store().store(record_id, data)


def load(record_id: str, into: Any = None) \
        -> Tuple[Optional[Dict[str, Any]], bool]:
    """Load a bare mapping stored under ``record_id``."""
    return current_store().load(record_id, into=into)

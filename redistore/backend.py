"""
Thin record store over Redis.

The StrictRedis instance is thread safe and borrows a pooled connection for
each command, so a single :class:`RecordStore` is shared by every request.
Transport errors (:class:`redis.exceptions.RedisError`) are not caught here.
"""

import logging
from typing import Any, Optional, Tuple, Union

import redis
from redis.cluster import RedisCluster

from .domain import DEFAULT_KEY_PREFIX, SESSION_EXPIRE

logger = logging.getLogger(__name__)

Client = Union[redis.StrictRedis, RedisCluster]


def dial(host: str = 'localhost', port: int = 6379, db: int = 0,
         password: Optional[str] = None, cluster: bool = False,
         **kwargs: Any) -> Client:
    """
    Open a pooled connection to Redis and make sure it answers.

    Parameters
    ----------
    host : str
    port : int
    db : int
        Ignored for a cluster, which only has database 0.
    password : str or None
    cluster : bool
        Connect to a Redis cluster rather than a single node.
    kwargs
        Passed on to the client, overriding the pool defaults.

    Returns
    -------
    :class:`redis.StrictRedis` or :class:`redis.cluster.RedisCluster`

    Raises
    ------
    :class:`redis.exceptions.ConnectionError`
        Raised if the server can't be reached.

    """
    params = dict(
        password=password,
        socket_connect_timeout=2,
        socket_timeout=2,
        retry_on_timeout=True,
        max_connections=100,
    )
    params.update(kwargs)
    logger.debug('New Redis connection at %s, port %s', host, port)
    client: Client
    if cluster:
        client = RedisCluster(host=host, port=int(port), **params)
    else:
        client = redis.StrictRedis(host=host, port=int(port), db=int(db),
                                   **params)
    client.ping()
    return client


class RecordStore(object):
    """
    Reads and writes serialized records under namespaced keys.

    Parameters
    ----------
    client : :class:`redis.StrictRedis`
        Anything with redis-py's ``get``, ``set`` and ``delete``.
    key_prefix : str
        Prepended to every record ID.
    default_ttl : int
        Used whenever a caller asks for a TTL of zero or less, so that no
        record is ever written without an expiry.

    """

    def __init__(self, client: Client, key_prefix: str = DEFAULT_KEY_PREFIX,
                 default_ttl: int = SESSION_EXPIRE) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl

    def key(self, record_id: str) -> str:
        """Get the namespaced key for ``record_id``."""
        return f'{self.key_prefix}{record_id}'

    def set(self, record_id: str, data: bytes, ttl: int) -> None:
        """Write ``data`` unconditionally, expiring after ``ttl`` seconds."""
        if ttl <= 0:
            ttl = self.default_ttl
        self.client.set(self.key(record_id), data, ex=ttl)

    def get(self, record_id: str) -> Tuple[Optional[bytes], bool]:
        """
        Read the record for ``record_id``.

        Returns
        -------
        bytes or None
            The record, or ``None`` if there is none.
        bool
            Whether the record was found.

        """
        data = self.client.get(self.key(record_id))
        if data is None:
            return None, False
        if isinstance(data, str):   # Client created with decode_responses.
            data = data.encode('utf-8')
        return data, True

    def delete(self, record_id: str) -> None:
        """Delete the record for ``record_id``; absent records are fine."""
        self.client.delete(self.key(record_id))

"""Defines the session concepts shared by the store, codecs and serializers."""

import base64
import secrets
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

import dateutil.parser
from pytz import UTC

SESSION_EXPIRE = 86400 * 3000
"""Lifetime (seconds) of cookies and records when nothing else is set."""

DEFAULT_MAX_AGE = 60 * 20
"""Record TTL used for a session whose ``max_age`` is 0."""

DEFAULT_MAX_LENGTH = 4096
"""Largest serialized record accepted by default; 0 means no limit."""

DEFAULT_KEY_PREFIX = 'session_'

CREATED_KEY = 'created_time'
"""Payload entry that holds the creation stamp of a session."""

TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'


class CookieOptions(NamedTuple):
    """Attributes of the session cookie."""

    path: str = '/'
    domain: Optional[str] = None

    max_age: int = SESSION_EXPIRE
    """
    Seconds until the cookie and the record expire.

    0 means "use the store default" for the record and sends a browser-session
    cookie; a negative value deletes the session on save.
    """

    secure: bool = False
    http_only: bool = True
    same_site: Optional[str] = None


class Session(object):
    """
    Per-request session state.

    Only ``id`` and the creation stamp travel in the cookie; ``values`` lives
    in the remote store. A session belongs to the request that loaded it and
    is never shared between requests.
    """

    def __init__(self, name: str, options: Optional[CookieOptions] = None,
                 session_id: str = '') -> None:
        self.name = name
        self.id = session_id
        self.values: Dict[Any, Any] = {}
        self.options = options if options is not None else CookieOptions()
        self.is_new = True

    @property
    def created(self) -> Optional[str]:
        """Canonical creation stamp held in the payload, if any."""
        return canonical_stamp(self.values.get(CREATED_KEY))

    @property
    def max_age(self) -> int:
        return self.options.max_age

    @max_age.setter
    def max_age(self, value: int) -> None:
        self.options = self.options._replace(max_age=value)

    def __repr__(self) -> str:
        return (f'Session(name={self.name!r}, id={self.id!r}, '
                f'is_new={self.is_new!r}, values={self.values!r})')


def new_stamp() -> str:
    """Get the current time as a creation stamp."""
    return datetime.now(tz=UTC).strftime(TIMESTAMP_FORMAT)


def canonical_stamp(value: Any) -> Optional[str]:
    """
    Normalize a creation stamp to its ``YYYYMMDDHHMMSS`` text form.

    Stamps may come back from a serializer as text, bytes, an integer (JSON
    and friends are happy to turn ``"20240101120000"`` into a number along
    the way) or a :class:`datetime`.

    Parameters
    ----------
    value : Any

    Returns
    -------
    str or None
        ``None`` if ``value`` is missing or cannot be read as a stamp.

    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.strftime(TIMESTAMP_FORMAT)
    if isinstance(value, bytes):
        try:
            value = value.decode('ascii')
        except UnicodeDecodeError:
            return None
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT) \
            .strftime(TIMESTAMP_FORMAT)
    except ValueError:
        pass
    try:
        return canonical_stamp(dateutil.parser.isoparse(value))
    except (ValueError, OverflowError):
        return None


def new_session_id() -> str:
    """Generate an alphanumeric, URL-safe session ID."""
    return base64.b32encode(secrets.token_bytes(32)).decode('ascii') \
        .rstrip('=')

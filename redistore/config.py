"""Flask configuration for the Redis session store."""

import os

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
REDIS_PASSWORD = os.environ.get('REDIS_PASSWORD')
REDIS_CLUSTER = os.environ.get('REDIS_CLUSTER', '0')
"""Set to ``1`` to connect to a Redis cluster."""

SESSION_SECRETS = os.environ.get('SESSION_SECRETS', 'foosecret')
"""
Comma-separated signing secrets, newest first.

To rotate, prepend a new secret; cookies signed with the old one keep working
until it is removed.
"""

SESSION_ENCRYPTION_KEYS = os.environ.get('SESSION_ENCRYPTION_KEYS', '')
"""
Comma-separated, URL-safe base64 encryption keys (32 bytes each), matched by
position with ``SESSION_SECRETS``. Leave a position empty to sign only.
"""

SESSION_KEY_PREFIX = os.environ.get('SESSION_KEY_PREFIX', 'session_')
SESSION_MAX_LENGTH = os.environ.get('SESSION_MAX_LENGTH', '4096')
SESSION_MAX_AGE = os.environ.get('SESSION_MAX_AGE', str(86400 * 3000))
SESSION_DEFAULT_MAX_AGE = os.environ.get('SESSION_DEFAULT_MAX_AGE', '1200')
SESSION_SERIALIZER = os.environ.get('SESSION_SERIALIZER', 'json')
"""One of ``json`` or ``pickle``."""

LOG_JSON = os.environ.get('LOG_JSON', '0')
"""Set to ``1`` to emit JSON logs."""

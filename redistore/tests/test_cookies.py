"""Tests for :mod:`redistore.cookies`."""

import time
from unittest import TestCase, mock

import jwt

from .. import cookies
from ..exceptions import InvalidToken

HASH_KEY = b'0123456789abcdef0123456789abcdef'
OTHER_HASH_KEY = b'fedcba9876543210fedcba9876543210'
BLOCK_KEY = b'abcdefghijklmnopqrstuvwxyz012345'
ENVELOPE = cookies.Envelope('SOMESESSIONID', '20240102030405')


class TestCookieCodec(TestCase):
    """A codec signs, and optionally encrypts, the cookie envelope."""

    def test_signed(self):
        """A signed token decodes back to the envelope."""
        codec = cookies.CookieCodec(HASH_KEY)
        token = codec.encode('sess', ENVELOPE)
        self.assertEqual(codec.decode('sess', token), ENVELOPE)

        # Signed tokens are readable, but not forgeable.
        claims = jwt.decode(token, options={'verify_signature': False})
        self.assertEqual(claims['sid'], 'SOMESESSIONID')

    def test_encrypted(self):
        """An encrypted token hides the envelope."""
        codec = cookies.CookieCodec(HASH_KEY, BLOCK_KEY)
        token = codec.encode('sess', ENVELOPE)
        self.assertNotIn('.', token.rstrip('='))
        self.assertEqual(codec.decode('sess', token), ENVELOPE)
        with self.assertRaises(InvalidToken):
            cookies.CookieCodec(HASH_KEY).decode('sess', token)

    def test_bad_block_key(self):
        """Block keys must be 32 bytes."""
        with self.assertRaises(ValueError):
            cookies.CookieCodec(HASH_KEY, b'short')
        with self.assertRaises(ValueError):
            cookies.CookieCodec(b'')

    def test_wrong_secret(self):
        """A token signed with another secret is rejected."""
        token = cookies.CookieCodec(OTHER_HASH_KEY).encode('sess', ENVELOPE)
        with self.assertRaises(InvalidToken):
            cookies.CookieCodec(HASH_KEY).decode('sess', token)

    def test_wrong_name(self):
        """A token minted for one cookie can't be used as another."""
        codec = cookies.CookieCodec(HASH_KEY)
        token = codec.encode('sess', ENVELOPE)
        with self.assertRaises(InvalidToken):
            codec.decode('other', token)

    def test_not_a_token(self):
        """Garbage is rejected."""
        for codec in [cookies.CookieCodec(HASH_KEY),
                      cookies.CookieCodec(HASH_KEY, BLOCK_KEY)]:
            for token in ['notatoken', '', 'a.b.c', 'café']:
                with self.assertRaises(InvalidToken):
                    codec.decode('sess', token)

    def test_missing_claims(self):
        """A properly signed token without the envelope is rejected."""
        codec = cookies.CookieCodec(HASH_KEY)
        now = int(time.time())
        for claims in [{'nam': 'sess', 'sid': 'foo', 'iat': now},
                       {'nam': 'sess', 'ctm': '20240102030405', 'iat': now},
                       {'nam': 'sess', 'sid': 'foo', 'ctm': 'whenever',
                        'iat': now},
                       {'nam': 'sess', 'sid': 'foo', 'ctm': '20240102030405'}]:
            token = jwt.encode(claims, HASH_KEY, algorithm='HS256')
            with self.assertRaises(InvalidToken):
                codec.decode('sess', token)

    @mock.patch(f'{cookies.__name__}.time')
    def test_expired(self, mock_time):
        """Tokens older than ``max_age`` are rejected."""
        now = time.time()
        mock_time.time.return_value = now
        codec = cookies.CookieCodec(HASH_KEY, max_age=60)
        token = codec.encode('sess', ENVELOPE)

        mock_time.time.return_value = now + 30
        self.assertEqual(codec.decode('sess', token), ENVELOPE)

        mock_time.time.return_value = now + 120
        with self.assertRaises(InvalidToken):
            codec.decode('sess', token)

        # No age limit.
        self.assertEqual(codec.with_max_age(0).decode('sess', token),
                         ENVELOPE)


class TestCodecSet(TestCase):
    """Codec sets support key rotation."""

    def test_from_pairs(self):
        """Pairs are hash/block keys; a missing block key means sign only."""
        codecs = cookies.codecs_from_pairs(HASH_KEY, BLOCK_KEY,
                                           OTHER_HASH_KEY, max_age=42)
        self.assertEqual(len(codecs), 2)
        self.assertEqual(codecs.max_age, 42)
        self.assertEqual([c.max_age for c in codecs], [42, 42])

    def test_missing_hash_key(self):
        """Every pair needs a hash key."""
        with self.assertRaises(ValueError):
            cookies.codecs_from_pairs(HASH_KEY, None, None, BLOCK_KEY)

    def test_with_max_age(self):
        """Changing the max age gives a new set; the old one is untouched."""
        codecs = cookies.codecs_from_pairs(HASH_KEY, None, OTHER_HASH_KEY,
                                           max_age=42)
        updated = codecs.with_max_age(7)
        self.assertEqual([c.max_age for c in updated], [7, 7])
        self.assertEqual([c.max_age for c in codecs], [42, 42])

    def test_encode_uses_first(self):
        """New tokens are always minted with the first codec."""
        codecs = cookies.codecs_from_pairs(HASH_KEY, None, OTHER_HASH_KEY)
        token = cookies.encode_multi('sess', ENVELOPE, codecs)
        self.assertEqual(codecs[0].decode('sess', token), ENVELOPE)
        with self.assertRaises(InvalidToken):
            codecs[1].decode('sess', token)

    def test_decode_rotated(self):
        """Tokens minted with an older secret are still accepted."""
        old = cookies.codecs_from_pairs(OTHER_HASH_KEY)
        token = cookies.encode_multi('sess', ENVELOPE, old)
        rotated = cookies.codecs_from_pairs(HASH_KEY, BLOCK_KEY,
                                            OTHER_HASH_KEY)
        self.assertEqual(cookies.decode_multi('sess', token, rotated),
                         ENVELOPE)

    def test_decode_rotated_out(self):
        """Once a secret is removed, its tokens are rejected uniformly."""
        old = cookies.codecs_from_pairs(OTHER_HASH_KEY)
        token = cookies.encode_multi('sess', ENVELOPE, old)
        current = cookies.codecs_from_pairs(HASH_KEY, BLOCK_KEY, HASH_KEY)
        with self.assertRaises(InvalidToken) as ctx:
            cookies.decode_multi('sess', token, current)
        self.assertEqual(str(ctx.exception),
                         'Invalid or expired session cookie')
        with self.assertRaises(InvalidToken) as ctx:
            cookies.decode_multi('sess', 'garbage', current)
        self.assertEqual(str(ctx.exception),
                         'Invalid or expired session cookie')

    def test_no_codecs(self):
        """Nothing can be encoded or decoded without codecs."""
        with self.assertRaises(InvalidToken):
            cookies.encode_multi('sess', ENVELOPE, cookies.CodecSet([]))
        with self.assertRaises(InvalidToken):
            cookies.decode_multi('sess', 'token', cookies.CodecSet([]))

    def test_random_key(self):
        """Random keys have the requested length."""
        self.assertEqual(len(cookies.generate_random_key()), 32)
        self.assertNotEqual(cookies.generate_random_key(),
                            cookies.generate_random_key())

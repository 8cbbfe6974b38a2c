"""
Survey entry tokens.

A token names the (survey, vendor, country) a respondent enters through.
Current tokens are encrypted and authenticated::

    psv1.<base64url IV>.<base64url ciphertext>.<base64url HMAC>

- key:        SHA-256 of the configured secret
- plaintext:  compact JSON ``{"s": survey_id, "v": vendor_id, "c": country}``
- cipher:     AES-256-CBC with PKCS#7 padding and a fresh 16-byte IV
- MAC:        HMAC-SHA256 over IV || ciphertext with the same key

Segments are unpadded URL-safe base64. Tokens issued before this format are
plain HS256 JWTs carrying ``survey_id``, ``vendor_id`` and ``country``; they
are still accepted. Neither format carries an expiry added by this module,
so issued start links stay valid.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
from typing import Any, Mapping, Optional

import jwt
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from pydantic import BaseModel, ConfigDict

from .config import Settings

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "psv1"
IV_SIZE = 16
LEGACY_ALGORITHMS = ["HS256", "HS384", "HS512"]


class SurveyToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    survey_id: str
    vendor_id: str
    country: str


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(segment: str) -> bytes:
    """Decodes an unpadded base64url segment, rejecting non-canonical input."""
    padded = segment + "=" * (-len(segment) % 4)
    data = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    # Unused trailing bits or '+'/'/' would otherwise alias another token
    if b64url_encode(data) != segment:
        raise ValueError("non-canonical base64url segment")
    return data


def derive_key(secret: str) -> bytes:
    return hashlib.sha256(secret.encode("utf-8")).digest()


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value != ""


class SurveyTokenCodec:
    """Encodes and verifies survey entry tokens for one secret."""

    def __init__(self, secret: str, legacy_secret: Optional[str] = None):
        if not secret:
            raise ValueError("survey token secret must not be empty")
        self._key = derive_key(secret)
        self._legacy_secret = legacy_secret or secret

    @classmethod
    def from_settings(cls, settings: Settings) -> "SurveyTokenCodec":
        return cls(settings.secret, settings.legacy_secret)

    def _mac(self, iv: bytes, ciphertext: bytes) -> str:
        digest = hmac.new(self._key, iv + ciphertext, hashlib.sha256).digest()
        return b64url_encode(digest)

    def encode(self, survey_id: str, vendor_id: str, country: str) -> str:
        plaintext = json.dumps(
            {"s": survey_id, "v": vendor_id, "c": country},
            separators=(",", ":"),
            ensure_ascii=False,
        ).encode("utf-8")

        iv = secrets.token_bytes(IV_SIZE)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return ".".join(
            [
                TOKEN_PREFIX,
                b64url_encode(iv),
                b64url_encode(ciphertext),
                self._mac(iv, ciphertext),
            ]
        )

    def decode(self, token: Optional[str]) -> Optional[SurveyToken]:
        """Returns the token's triple, or None for any invalid token."""
        if not token:
            return None
        if token.startswith(f"{TOKEN_PREFIX}."):
            return self._decode_encrypted(token)
        return self._decode_legacy(token)

    def _decode_encrypted(self, token: str) -> Optional[SurveyToken]:
        parts = token.split(".")
        if len(parts) != 4 or parts[0] != TOKEN_PREFIX:
            return None
        _, iv_part, ct_part, mac_part = parts

        try:
            iv = b64url_decode(iv_part)
            ciphertext = b64url_decode(ct_part)
        except (ValueError, binascii.Error, UnicodeEncodeError):
            return None
        if len(iv) != IV_SIZE or not ciphertext:
            return None

        expected_mac = self._mac(iv, ciphertext)
        if not hmac.compare_digest(
            mac_part.encode("utf-8"), expected_mac.encode("utf-8")
        ):
            return None

        try:
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            compact = json.loads(plaintext.decode("utf-8"))
        except ValueError:
            # Covers block misalignment, bad padding, bad UTF-8 and bad JSON
            return None

        if not isinstance(compact, dict):
            return None
        return self._to_token(compact, "s", "v", "c")

    def _decode_legacy(self, token: str) -> Optional[SurveyToken]:
        try:
            claims = jwt.decode(token, self._legacy_secret, algorithms=LEGACY_ALGORITHMS)
        except jwt.InvalidTokenError as e:
            logger.debug(f"Legacy survey token rejected: {e}")
            return None
        return self._to_token(claims, "survey_id", "vendor_id", "country")

    @staticmethod
    def _to_token(
        payload: Mapping[str, Any], survey_key: str, vendor_key: str, country_key: str
    ) -> Optional[SurveyToken]:
        survey_id = payload.get(survey_key)
        vendor_id = payload.get(vendor_key)
        country = payload.get(country_key)
        if not all(_non_empty_str(v) for v in (survey_id, vendor_id, country)):
            return None
        return SurveyToken(survey_id=survey_id, vendor_id=vendor_id, country=country)


def generate_legacy_token(
    secret: str, survey_id: str, vendor_id: str, country: str
) -> str:
    """Issues a token in the pre-psv1 JWT format (used for migrations and tests)."""
    payload = {"survey_id": survey_id, "vendor_id": vendor_id, "country": country}
    return jwt.encode(payload, secret, algorithm="HS256")

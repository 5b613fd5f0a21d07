"""
Client-side field encryption.

Vault fields are encrypted before they leave the client. The master secret
lives only in the caller's memory; the server stores the resulting tokens
as opaque strings.

Each call derives a fresh AES-256 key with PBKDF2-HMAC-SHA256 from the
secret and a random per-field salt, then encrypts with AES-256-GCM under a
random nonce. Equal plaintexts therefore never produce equal ciphertexts,
and a wrong secret fails GCM authentication instead of yielding garbage.

Token layout (URL-safe base64):

    [version 1B][iterations 4B uint32 BE][salt 16B][nonce 12B][ciphertext + tag]

Losing the master secret makes every token encrypted under it unrecoverable.
"""

import base64
import os
import struct

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

FORMAT_VERSION = 1
PBKDF2_ITERATIONS = 600_000  # OWASP 2023 guidance for PBKDF2-SHA256
MAX_ITERATIONS = 10_000_000  # upper bound accepted from a token header
MIN_SECRET_LENGTH = 8
KEY_LENGTH = 32  # AES-256
SALT_LENGTH = 16
NONCE_LENGTH = 12  # 96-bit nonce for GCM
TAG_LENGTH = 16

_HEADER = struct.Struct("!BI")
_MIN_TOKEN_LENGTH = _HEADER.size + SALT_LENGTH + NONCE_LENGTH + TAG_LENGTH


class CryptoError(Exception):
    """Encryption could not be performed"""


class DecryptionError(CryptoError):
    """Wrong secret, tampered token, or not a token at all"""


def _check_secret(secret: str) -> None:
    if not isinstance(secret, str) or len(secret) < MIN_SECRET_LENGTH:
        raise CryptoError(f"Master secret must be at least {MIN_SECRET_LENGTH} characters")


def derive_key(secret: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(secret.encode("utf-8"))


def encrypt(plaintext: str, secret: str, *, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Encrypt one field value under the master secret"""
    _check_secret(secret)
    if not 1 <= iterations <= MAX_ITERATIONS:
        raise CryptoError(f"iterations must be between 1 and {MAX_ITERATIONS}")

    salt = os.urandom(SALT_LENGTH)
    nonce = os.urandom(NONCE_LENGTH)
    header = _HEADER.pack(FORMAT_VERSION, iterations)
    key = derive_key(secret, salt, iterations)
    # The header is bound as associated data so the iteration count can't be swapped
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), header)
    return base64.urlsafe_b64encode(header + salt + nonce + ciphertext).decode("ascii")


def decrypt(token: str, secret: str) -> str:
    """Decrypt a field value; raises DecryptionError on any mismatch"""
    _check_secret(secret)
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
    except (ValueError, TypeError, AttributeError) as e:
        raise DecryptionError("Malformed ciphertext") from e

    if len(raw) < _MIN_TOKEN_LENGTH:
        raise DecryptionError("Malformed ciphertext")

    header = raw[:_HEADER.size]
    version, iterations = _HEADER.unpack(header)
    if version != FORMAT_VERSION or not 1 <= iterations <= MAX_ITERATIONS:
        raise DecryptionError("Unsupported ciphertext format")

    offset = _HEADER.size
    salt = raw[offset:offset + SALT_LENGTH]
    offset += SALT_LENGTH
    nonce = raw[offset:offset + NONCE_LENGTH]
    offset += NONCE_LENGTH

    key = derive_key(secret, salt, iterations)
    try:
        plaintext = AESGCM(key).decrypt(nonce, raw[offset:], header)
    except InvalidTag as e:
        raise DecryptionError("Decryption failed") from e
    return plaintext.decode("utf-8")

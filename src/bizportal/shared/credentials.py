"""Credential generation and one-way digests for portal secrets.

Raw session tokens and invite codes exist only transiently: they are
returned to the caller once at creation time and only their SHA-256
digests are persisted.
"""

import hashlib
import secrets
import uuid

# 32 bytes = 256 bits of entropy per session token
SESSION_TOKEN_BYTES = 32

INVITE_CODE_LENGTH = 12
# No 0/O, 1/I/L: codes are read and typed by hand
INVITE_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


class CredentialCodec:
    """Generates unguessable secrets and computes their storage digests."""

    @staticmethod
    def new_session_token() -> str:
        """Return a URL-safe, unpadded token carrying 256 bits of randomness."""
        return secrets.token_urlsafe(SESSION_TOKEN_BYTES)

    @staticmethod
    def new_invite_code() -> str:
        """Return a 12-character human-transcribable invite code."""
        return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))

    @staticmethod
    def new_public_handle() -> str:
        """Return a non-guessable 32 hex character public handle."""
        return uuid.uuid4().hex

    @staticmethod
    def digest(secret: str) -> str:
        """Deterministic SHA-256 hex digest of a secret."""
        return hashlib.sha256(secret.encode("utf-8", errors="surrogatepass")).hexdigest()

    @classmethod
    def contract_body_digest(cls, title: str, body: str) -> str:
        """Digest of a contract's legally relevant text as signed."""
        return cls.digest(f"{title}\n{body}")

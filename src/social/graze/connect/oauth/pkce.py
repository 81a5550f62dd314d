import base64
import hashlib
import secrets
from dataclasses import dataclass

PKCE_VERIFIER_BYTES = 32
PKCE_CHALLENGE_METHOD = "S256"


@dataclass(frozen=True)
class PKCEPair:
    """
    A one-time PKCE verifier and the challenge derived from it (RFC 7636).

    The verifier stays on the server (inside the state record) and is only sent with the token
    request. The challenge is placed on the authorization URL.
    """

    code_verifier: str
    code_challenge: str


def _urlsafe_b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def derive_code_challenge(code_verifier: str) -> str:
    """Return the S256 challenge for a verifier: unpadded base64url of its SHA-256 digest."""
    return _urlsafe_b64(hashlib.sha256(code_verifier.encode("ascii")).digest())


def generate_pkce_pair() -> PKCEPair:
    """
    Generate a fresh PKCE verifier and its S256 challenge.

    The verifier encodes 256 bits from the operating system CSPRNG as unpadded base64url
    (43 characters, inside the 43 to 128 range RFC 7636 section 4.1 requires).
    """
    code_verifier = _urlsafe_b64(secrets.token_bytes(PKCE_VERIFIER_BYTES))
    return PKCEPair(
        code_verifier=code_verifier,
        code_challenge=derive_code_challenge(code_verifier),
    )

"""
Unit tests for PKCE pair generation (RFC 7636, S256).
"""

import base64
import hashlib
import re

from social.graze.connect.oauth.pkce import (
    PKCE_CHALLENGE_METHOD,
    derive_code_challenge,
    generate_pkce_pair,
)

BASE64URL_NOPAD = re.compile(r"^[A-Za-z0-9_-]+$")


class TestDeriveCodeChallenge:
    """Challenge derivation from a verifier."""

    def test_rfc7636_appendix_b_vector(self):
        """The worked example from RFC 7636 Appendix B must match exactly."""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert (
            derive_code_challenge(verifier)
            == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
        )

    def test_challenge_is_sha256_of_verifier_ascii(self):
        verifier = generate_pkce_pair().code_verifier
        expected = (
            base64.urlsafe_b64encode(hashlib.sha256(verifier.encode("ascii")).digest())
            .decode("ascii")
            .rstrip("=")
        )
        assert derive_code_challenge(verifier) == expected


class TestGeneratePkcePair:
    """Fresh pair generation."""

    def test_pair_is_consistent(self):
        pair = generate_pkce_pair()
        assert pair.code_challenge == derive_code_challenge(pair.code_verifier)

    def test_verifier_encodes_256_bits_without_padding(self):
        pair = generate_pkce_pair()
        assert len(pair.code_verifier) == 43
        assert BASE64URL_NOPAD.match(pair.code_verifier)
        assert BASE64URL_NOPAD.match(pair.code_challenge)
        assert "=" not in pair.code_challenge

    def test_pairs_are_fresh(self):
        verifiers = {generate_pkce_pair().code_verifier for _ in range(50)}
        assert len(verifiers) == 50

    def test_method_is_s256(self):
        assert PKCE_CHALLENGE_METHOD == "S256"

"""
Tests for PKCE verifier / challenge and state generation.
"""

import base64
import hashlib

from connectors.pkce import code_challenge, generate_pkce, generate_state


def _s256(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode()).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")


class TestPKCE:
    def test_challenge_is_s256_of_verifier(self):
        for _ in range(20):
            pair = generate_pkce()
            assert pair.challenge == _s256(pair.verifier)
            assert code_challenge(pair.verifier) == pair.challenge

    def test_rfc7636_example(self):
        # Appendix B of RFC 7636
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_verifier_is_url_safe_without_padding(self):
        pair = generate_pkce()
        assert len(pair.verifier) >= 43
        assert "=" not in pair.verifier
        assert "+" not in pair.verifier and "/" not in pair.verifier

    def test_verifiers_and_states_unique(self):
        verifiers = {generate_pkce().verifier for _ in range(200)}
        states = {generate_state() for _ in range(200)}
        assert len(verifiers) == 200
        assert len(states) == 200

    def test_state_independent_of_verifier(self):
        pair = generate_pkce()
        state = generate_state()
        assert state != pair.verifier
        assert len(state) >= 43
        assert ":" not in state

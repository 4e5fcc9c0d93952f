"""Tests for cookie-based redirect loop detection."""
from __future__ import annotations

from tradetrends.services.loop_detector import LoopDetector, LoopState, LoopVerdict

from conftest import START_MS


def _detector() -> LoopDetector:
    return LoopDetector(secret="test-secret", window_seconds=5, max_hits=3)


class TestToken:
    def test_roundtrip(self):
        det = _detector()
        state = LoopState(id="amz-echo", time=START_MS, hits=2)
        assert det.decode(det.encode(state)) == state

    def test_signature_is_16_hex_chars(self):
        token = _detector().encode(LoopState(id="x", time=START_MS))
        body, sig = token.rsplit(".", 1)
        assert len(sig) == 16
        assert all(c in "0123456789abcdef" for c in sig)

    def test_tampered_body_rejected(self):
        det = _detector()
        token = det.encode(LoopState(id="x", time=START_MS))
        body, sig = token.rsplit(".", 1)
        forged = det.encode(LoopState(id="y", time=START_MS)).rsplit(".", 1)[0]
        assert det.decode(f"{forged}.{sig}") is None

    def test_other_secret_rejected(self):
        token = LoopDetector(secret="other").encode(LoopState(id="x", time=START_MS))
        assert _detector().decode(token) is None

    def test_garbage_ignored(self):
        det = _detector()
        assert det.decode(None) is None
        assert det.decode("") is None
        assert det.decode("no-dot") is None
        assert det.decode("@@@.0123456789abcdef") is None

    def test_cookie_max_age_matches_window(self):
        assert _detector().cookie_max_age == 5


class TestCheck:
    def test_third_rapid_hit_is_loop(self):
        det = _detector()
        first = det.check("amz-echo", None, START_MS)
        assert first.verdict == LoopVerdict.NORMAL
        assert first.state.hits == 1

        second = det.check("amz-echo", det.encode(first.state), START_MS + 1000)
        assert second.verdict == LoopVerdict.NORMAL
        assert second.state.hits == 2

        third = det.check("amz-echo", det.encode(second.state), START_MS + 2000)
        assert third.verdict == LoopVerdict.LOOP

    def test_different_deal_resets(self):
        det = _detector()
        token = det.encode(LoopState(id="amz-echo", time=START_MS, hits=2))
        result = det.check("trv-hawaii", token, START_MS + 100)
        assert result.verdict == LoopVerdict.NORMAL
        assert result.state.hits == 1

    def test_outside_window_resets(self):
        det = _detector()
        token = det.encode(LoopState(id="amz-echo", time=START_MS, hits=2))
        result = det.check("amz-echo", token, START_MS + 5000)
        assert result.verdict == LoopVerdict.NORMAL
        assert result.state.hits == 1

    def test_invalid_token_treated_as_absent(self):
        det = _detector()
        result = det.check("amz-echo", "forged.0000000000000000", START_MS)
        assert result.verdict == LoopVerdict.NORMAL
        assert result.state == LoopState(id="amz-echo", time=START_MS, hits=1)

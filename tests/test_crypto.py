"""Tests for token generation, hashing and comparison."""

import re

import pytest

from app.crypto import constant_time_equals, generate_token, hash_token

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestGenerateToken:

    def test_tokens_are_unique(self):
        tokens = {generate_token(32) for _ in range(10_000)}
        assert len(tokens) == 10_000

    def test_token_is_url_safe_without_padding(self):
        for _ in range(100):
            token = generate_token(32)
            assert URL_SAFE.match(token)
            assert "=" not in token

    def test_token_length_matches_entropy(self):
        # 32 bytes -> 43 base64 characters once padding is stripped
        assert len(generate_token(32)) == 43
        assert len(generate_token(16)) == 22

    def test_invalid_length(self):
        with pytest.raises(ValueError):
            generate_token(0)
        with pytest.raises(ValueError):
            generate_token(-1)


class TestHashToken:

    def test_known_digest(self):
        assert hash_token("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_deterministic_hex(self):
        token = generate_token()
        digest = hash_token(token)
        assert digest == hash_token(token)
        assert len(digest) == 64
        assert re.match(r"^[0-9a-f]{64}$", digest)

    def test_different_tokens_hash_differently(self):
        assert hash_token("token-a") != hash_token("token-b")


class TestConstantTimeEquals:

    def test_equal(self):
        assert constant_time_equals("same-value", "same-value")

    def test_different_content_same_length(self):
        assert not constant_time_equals("value-one", "value-two")

    def test_different_length(self):
        assert not constant_time_equals("short", "much-longer-value")
        assert not constant_time_equals("", "x")

    def test_empty_strings_are_equal(self):
        assert constant_time_equals("", "")

    def test_accepts_bytes(self):
        assert constant_time_equals(b"abc", "abc")
        assert not constant_time_equals(b"abc", b"abd")

"""
Tests for shared input validators.
"""
import re

import pytest

from parley.core.errors import ErrorKind, SecurityViolationError
from parley.utils.validators import generate_friend_code, is_base64, validate_signal_payload


class TestBase64:
    @pytest.mark.parametrize("value", ["aGVsbG8=", "aGVsbG8gd29ybGQ=", "AAAA", "ab+/"])
    def test_accepts_standard_base64(self, value):
        assert is_base64(value)

    @pytest.mark.parametrize("value", [None, "", "hello world", "aGVsbG8", "aGVs*G8=", "a==="])
    def test_rejects_everything_else(self, value):
        assert not is_base64(value)

    @pytest.mark.parametrize("value", ["AAA\n", "AA=\n", "aGVsbG8gd29ybA\n\n"])
    def test_rejects_trailing_newline(self, value):
        assert len(value) % 4 == 0
        assert not is_base64(value)

    def test_signal_payload_violation_kind(self):
        with pytest.raises(SecurityViolationError) as exc_info:
            validate_signal_payload("plaintext!")

        assert exc_info.value.kind == ErrorKind.SECURITY_VIOLATION
        assert exc_info.value.status_code == 400


class TestFriendCode:
    def test_format(self):
        code = generate_friend_code("Alice.Smith")
        assert re.fullmatch(r"alicesmith#\d{4}", code)

    def test_base_is_truncated(self):
        code = generate_friend_code("averyveryverylongusername")
        assert code.split("#")[0] == "averyveryver"

    def test_username_without_alphanumerics_falls_back(self):
        assert generate_friend_code("___").startswith("user#")

    def test_rejects_empty_username(self):
        with pytest.raises(ValueError):
            generate_friend_code("")

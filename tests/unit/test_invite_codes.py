"""Unit tests for club invite code generation."""

import string

from fitvibe.clubs.invite_codes import (
    INVITE_CHARSET,
    INVITE_LENGTH,
    generate_invite_code,
    normalize_invite_code,
)


class TestInviteCodes:
    def test_code_is_8_chars(self):
        assert len(generate_invite_code()) == INVITE_LENGTH == 8

    def test_code_charset_is_uppercase_alphanumeric(self):
        assert INVITE_CHARSET == string.ascii_uppercase + string.digits

    def test_code_only_contains_valid_chars(self):
        for _ in range(100):
            assert all(c in INVITE_CHARSET for c in generate_invite_code())

    def test_codes_are_unique(self):
        codes = {generate_invite_code() for _ in range(1000)}
        assert len(codes) == 1000

    def test_normalize_uppercases(self):
        assert normalize_invite_code("abc12345") == "ABC12345"
        assert normalize_invite_code("Abc12345") == "ABC12345"

    def test_normalize_strips_whitespace(self):
        assert normalize_invite_code("  abc12345\n") == "ABC12345"

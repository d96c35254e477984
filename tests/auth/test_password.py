"""Password hashing, policy and generation."""

import pytest

from fitvibe.auth.password import (
    PasswordStrengthError,
    generate_password,
    hash_password,
    is_password_strong,
    password_strength,
    validate_password_strength,
    verify_password,
)
from fitvibe.exceptions import DomainValidationError


class TestHashing:
    def test_hash_is_argon2id(self):
        assert hash_password("SecureP@ss1").startswith("$argon2id$")

    def test_hashes_are_salted(self):
        assert hash_password("SecureP@ss1") != hash_password("SecureP@ss1")

    def test_verify_correct_password(self):
        assert verify_password("SecureP@ss1", hash_password("SecureP@ss1"))

    def test_verify_wrong_password(self):
        assert not verify_password("WrongP@ss1", hash_password("SecureP@ss1"))

    def test_verify_garbage_hash_returns_false(self):
        assert not verify_password("SecureP@ss1", "not-a-hash")

    def test_verify_empty_inputs(self):
        assert not verify_password("", "anything")
        assert not verify_password("SecureP@ss1", "")

    def test_empty_password_cannot_be_hashed(self):
        with pytest.raises(PasswordStrengthError):
            hash_password("")


class TestPolicy:
    @pytest.mark.parametrize(
        ("password", "problem"),
        [
            ("Sh0rt!", "at least 8"),
            ("alllowercase1!", "uppercase"),
            ("ALLUPPERCASE1!", "lowercase"),
            ("NoDigitsHere!", "digit"),
            ("NoSpecial123", "special"),
            ("   ", "empty"),
        ],
    )
    def test_rejections(self, password, problem):
        with pytest.raises(PasswordStrengthError, match=problem):
            validate_password_strength(password)

    def test_too_long(self):
        with pytest.raises(PasswordStrengthError, match="exceed"):
            validate_password_strength("Aa1!" * 40)

    def test_strong_password_accepted(self):
        validate_password_strength("SecureP@ss1")
        assert is_password_strong("SecureP@ss1")

    def test_policy_error_is_a_validation_error(self):
        assert issubclass(PasswordStrengthError, DomainValidationError)


class TestStrengthScore:
    def test_empty_scores_zero(self):
        assert password_strength("") == 0

    def test_score_is_bounded(self):
        for pw in ("a", "password", "Tr0ub4dor&3", "correct horse battery staple", "X9#kL2$mQ7!vR4@z"):
            assert 0 <= password_strength(pw) <= 100

    def test_longer_and_more_varied_scores_higher(self):
        assert password_strength("X9#kL2$mQ7!vR4@z") > password_strength("abcdefgh")

    def test_common_password_penalised(self):
        assert password_strength("password") < password_strength("pzsxwrqd")

    def test_sequences_penalised(self):
        assert password_strength("Kmq9!abcT") < password_strength("Kmq9!axcT")


class TestGeneration:
    def test_generated_password_meets_policy(self):
        for _ in range(20):
            assert is_password_strong(generate_password())

    def test_requested_length(self):
        assert len(generate_password(24)) == 24

    def test_without_special_characters(self):
        pw = generate_password(12, include_special=False)
        assert pw.isalnum()

    def test_too_short_rejected(self):
        with pytest.raises(DomainValidationError):
            generate_password(6)

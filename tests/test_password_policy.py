from security.password import hash_password, verify_password
from security.password_policy import password_strength, validate_password


def test_validate_password_defaults_outside_app():
    ok, errors = validate_password("Abcdefg1")
    assert ok and errors == []


def test_validate_password_collects_all_errors():
    ok, errors = validate_password("abc")
    assert not ok
    assert "Password must be at least 8 characters" in errors
    assert "Password must include at least 1 uppercase letter" in errors
    assert "Password must include at least 1 number" in errors


def test_validate_password_rejects_non_strings():
    assert validate_password(None) == (False, ["Password must be a string"])


def test_validate_password_respects_app_config(app):
    app.config["PASSWORD_REQUIRE_SYMBOL"] = True
    ok, errors = validate_password("Abcdefg1")
    assert not ok
    assert errors == ["Password must include at least 1 symbol"]


def test_password_longer_than_bcrypt_limit_rejected():
    ok, errors = validate_password("Aa1" + "x" * 80)
    assert not ok
    assert errors == ["Password must be at most 72 bytes"]


def test_password_strength_feedback():
    result = password_strength("Abcdefg1")
    assert result["valid"] is True
    assert "Use a longer passphrase for extra strength" in result["feedback"]


def test_hash_and_verify():
    hashed = hash_password("Correct-Horse-9", rounds=4)
    assert hashed != "Correct-Horse-9"
    assert verify_password("Correct-Horse-9", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("Correct-Horse-9", "not-a-bcrypt-hash")
    assert not verify_password("", hashed)

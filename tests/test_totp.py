from app.shaderhouse.totp import (
    generate_backup_codes,
    generate_secret,
    generate_totp,
    match_totp_counter,
    normalize_backup_code,
    provisioning_uri,
    time_counter,
    totp_now,
    verify_totp,
)

# RFC 6238 SHA1 seed "12345678901234567890" in base32
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


def test_rfc6238_vectors():
    assert totp_now(RFC_SECRET, for_time=59) == "287082"
    assert totp_now(RFC_SECRET, for_time=1111111109) == "081804"
    assert totp_now(RFC_SECRET, for_time=1234567890) == "005924"


def test_verify_accepts_adjacent_steps_only():
    now = 1_700_000_000
    current = totp_now(RFC_SECRET, for_time=now)
    previous = generate_totp(RFC_SECRET, time_counter(now) - 1)
    stale = generate_totp(RFC_SECRET, time_counter(now) - 3)

    assert verify_totp(RFC_SECRET, current, for_time=now)
    assert verify_totp(RFC_SECRET, previous, for_time=now)
    assert not verify_totp(RFC_SECRET, stale, for_time=now)


def test_verify_rejects_malformed_codes():
    assert not verify_totp(RFC_SECRET, "12345")
    assert not verify_totp(RFC_SECRET, "abcdef")
    assert not verify_totp("", "123456")


def test_secret_is_base32_without_padding():
    secret = generate_secret()
    assert "=" not in secret
    assert len(secret) == 32
    assert len(totp_now(secret)) == 6


def test_provisioning_uri_escapes_account():
    uri = provisioning_uri("ABC", "player@example.com")
    assert uri.startswith("otpauth://totp/Shader%20House:player%40example.com?secret=ABC")
    assert "period=30" in uri


def test_backup_codes_format_and_normalize():
    codes = generate_backup_codes()
    assert len(codes) == 10
    assert len(set(codes)) == 10
    for code in codes:
        assert len(code) == 9 and code[4] == "-"
    assert normalize_backup_code("ab12 cd34") == "AB12-CD34"
    assert normalize_backup_code("short") == ""


def test_match_reports_the_accepted_step():
    now = 1_700_000_000
    counter = time_counter(now)
    previous = generate_totp(RFC_SECRET, counter - 1)

    assert match_totp_counter(RFC_SECRET, totp_now(RFC_SECRET, for_time=now), for_time=now) == counter
    assert match_totp_counter(RFC_SECRET, previous, for_time=now) == counter - 1
    assert match_totp_counter(RFC_SECRET, "abc", for_time=now) is None

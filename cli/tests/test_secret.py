from __future__ import annotations

import urllib.parse

import pytest

from mtproxy_host.errors import InvalidInputError
from mtproxy_host.secret import build_links, decode_domain, from_raw, normalize_domain, synthesize


def _fixed(n: int) -> bytes:
    return bytes(range(n))


def test_full_secret_layout() -> None:
    secret = synthesize("example.com", token_bytes=_fixed)
    assert secret.full.startswith("ee")
    assert secret.raw == "000102030405060708090a0b0c0d0e0f"
    assert secret.full == "ee" + secret.raw + "6578616d706c652e636f6d"
    assert len(secret.full) == 34 + 2 * len("example.com")


@pytest.mark.parametrize("domain", ["api.vk.com", "example.com", "a.b.c.d.example.org"])
def test_domain_round_trip(domain: str) -> None:
    secret = synthesize(domain)
    assert decode_domain(secret.full) == domain
    assert len(secret.raw) == 32


def test_synthesize_uses_fresh_randomness() -> None:
    first = synthesize("example.com")
    second = synthesize("example.com")
    assert first.raw != second.raw
    assert first.encoded_domain == second.encoded_domain


def test_synthesize_rejects_short_random_source() -> None:
    with pytest.raises(ValueError):
        synthesize("example.com", token_bytes=lambda n: b"\x00" * (n - 1))


def test_decode_domain_rejects_untagged_secret() -> None:
    with pytest.raises(ValueError):
        decode_domain("dd" + "00" * 16 + "6162")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("example.com", "example.com"),
        ("  Example.COM ", "example.com"),
        ("https://www.google.com/search?q=1", "www.google.com"),
        ("http://cdn.example.net:8443/path", "cdn.example.net"),
    ],
)
def test_normalize_domain(raw: str, expected: str) -> None:
    assert normalize_domain(raw) == expected


@pytest.mark.parametrize(
    "raw", ["", "   ", "пример.рф", "https://", "exa mple.com", "bad_host.example.com", "-lead.example.com"]
)
def test_normalize_domain_rejects_bad_input(raw: str) -> None:
    with pytest.raises(InvalidInputError):
        normalize_domain(raw)


def test_from_raw_rebuilds_persisted_secret() -> None:
    original = synthesize("example.com")
    rebuilt = from_raw(original.raw.upper(), "example.com")
    assert rebuilt.full == original.full


def test_from_raw_rejects_wrong_length() -> None:
    with pytest.raises(ValueError):
        from_raw("abcd", "example.com")


def test_links_share_query_string() -> None:
    links = build_links("203.0.113.7", 443, "ee" + "00" * 16 + "6162")
    assert links.tg.startswith("tg://proxy?")
    assert links.https.startswith("https://t.me/proxy?")
    assert links.tg.split("?", 1)[1] == links.https.split("?", 1)[1]
    query = urllib.parse.parse_qs(links.tg.split("?", 1)[1])
    assert query == {"server": ["203.0.113.7"], "port": ["443"], "secret": ["ee" + "00" * 16 + "6162"]}

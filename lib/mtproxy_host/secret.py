from __future__ import annotations

import re
import secrets
import urllib.parse
from dataclasses import dataclass
from typing import Callable

from .config_types import Secret
from .errors import InvalidInputError

RANDOM_BYTES = 16
PREFIX_LEN = len(Secret.TAG) + RANDOM_BYTES * 2

_HOST_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")


@dataclass(frozen=True)
class ConnectionLinks:
    tg: str
    https: str


def normalize_domain(raw: str) -> str:
    """Reduce operator input (possibly a pasted URL) to a bare hostname."""
    value = (raw or "").strip()
    if not value:
        raise InvalidInputError("Domain cannot be empty.")
    if not value.isascii():
        raise InvalidInputError(f"Domain must be an ASCII hostname: {value}")
    if "://" not in value:
        value = f"http://{value}"
    try:
        host = urllib.parse.urlparse(value).hostname or ""
    except ValueError as exc:
        raise InvalidInputError(f"Invalid domain or URL: {raw.strip()}") from exc
    if not host:
        raise InvalidInputError(f"Invalid domain or URL: {raw.strip()}")
    host = host.rstrip(".")
    if len(host) > 253 or not all(_HOST_LABEL_RE.match(label) for label in host.split(".")):
        raise InvalidInputError(f"Not a valid hostname: {host}")
    return host


def synthesize(domain: str, *, token_bytes: Callable[[int], bytes] = secrets.token_bytes) -> Secret:
    random_bytes = token_bytes(RANDOM_BYTES)
    if len(random_bytes) != RANDOM_BYTES:
        raise ValueError(f"Random source returned {len(random_bytes)} bytes, expected {RANDOM_BYTES}.")
    return Secret(random_bytes=random_bytes, encoded_domain=domain.encode("utf-8").hex())


def decode_domain(full_secret: str) -> str:
    value = (full_secret or "").strip().lower()
    if not value.startswith(Secret.TAG) or len(value) <= PREFIX_LEN:
        raise ValueError("Not a tagged secret with a domain suffix.")
    return bytes.fromhex(value[PREFIX_LEN:]).decode("utf-8")


def from_raw(raw: str, domain: str) -> Secret:
    """Rebuild a Secret from a persisted 32-hex credential."""
    value = (raw or "").strip().lower()
    try:
        random_bytes = bytes.fromhex(value)
    except ValueError as exc:
        raise ValueError(f"Stored secret is not hex: {value!r}") from exc
    if len(random_bytes) != RANDOM_BYTES:
        raise ValueError(f"Stored secret must be {RANDOM_BYTES * 2} hex characters.")
    return Secret(random_bytes=random_bytes, encoded_domain=domain.encode("utf-8").hex())


def build_links(server: str, port: int, full_secret: str) -> ConnectionLinks:
    query = urllib.parse.urlencode({"server": server, "port": port, "secret": full_secret})
    return ConnectionLinks(
        tg=f"tg://proxy?{query}",
        https=f"https://t.me/proxy?{query}",
    )

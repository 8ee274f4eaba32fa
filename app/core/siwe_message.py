"""SIWE Message — parse and check EIP-4361 "Sign-In with Ethereum" messages.

Invariants:
    - parse_siwe_message raises SiweMessageError for anything not shaped like EIP-4361
    - Required fields: domain, address, uri, version, chain_id, nonce, issued_at
    - Timestamps parsed to timezone-aware datetimes (naive values assumed UTC)
    - Signature recovery is NOT done here (needs eth_account, lives in services/)

Design Decisions:
    - Hand parser over a SIWE package: the message grammar is a dozen lines,
      the available packages pull in a full web3 stack (ADR: keep dependency set small)
    - origin_allowed mirrors browser-facing rules: exact domain, URI prefix,
      or "*.example.com" suffix wildcard
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

_HEADER = re.compile(
    r"^(?:(?P<scheme>[a-zA-Z][a-zA-Z0-9+\-.]*)://)?"
    r"(?P<domain>\S+) wants you to sign in with your Ethereum account:$"
)
_ADDRESS = re.compile(r"^0x[a-fA-F0-9]{40}$")
_NONCE = re.compile(r"^[A-Za-z0-9]{8,}$")

_TAGS = {
    "URI": "uri",
    "Version": "version",
    "Chain ID": "chain_id",
    "Nonce": "nonce",
    "Issued At": "issued_at",
    "Expiration Time": "expiration_time",
    "Not Before": "not_before",
    "Request ID": "request_id",
}


class SiweMessageError(ValueError):
    """Raised when a message does not follow the EIP-4361 layout."""


@dataclass
class SiweMessage:
    domain: str
    address: str
    uri: str
    version: str
    chain_id: int
    nonce: str
    issued_at: datetime
    statement: str | None = None
    scheme: str | None = None
    expiration_time: datetime | None = None
    not_before: datetime | None = None
    request_id: str | None = None
    resources: list[str] = field(default_factory=list)


def _parse_timestamp(raw: str, name: str) -> datetime:
    value = raw.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise SiweMessageError(f"Invalid {name}: {raw}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_siwe_message(text: str) -> SiweMessage:
    """Parse an EIP-4361 message into a SiweMessage."""
    lines = text.replace("\r\n", "\n").split("\n")
    if len(lines) < 2:
        raise SiweMessageError("Message too short")

    header = _HEADER.match(lines[0].strip())
    if not header:
        raise SiweMessageError("Missing sign-in header line")
    address = lines[1].strip()
    if not _ADDRESS.match(address):
        raise SiweMessageError("Invalid Ethereum address")

    fields: dict[str, str] = {}
    statement_lines: list[str] = []
    resources: list[str] = []
    in_resources = False

    for line in lines[2:]:
        stripped = line.strip()
        if in_resources:
            if stripped.startswith("- "):
                resources.append(stripped[2:].strip())
                continue
            in_resources = False
        if stripped == "Resources:":
            in_resources = True
            continue
        tag, sep, value = stripped.partition(": ")
        if sep and tag in _TAGS:
            fields[_TAGS[tag]] = value.strip()
        elif stripped and not fields:
            # Free text before the first tag is the statement
            statement_lines.append(stripped)

    missing = [
        name for name in ("uri", "version", "chain_id", "nonce", "issued_at")
        if not fields.get(name)
    ]
    if missing:
        raise SiweMessageError(f"Missing required fields: {', '.join(missing)}")
    if fields["version"] != "1":
        raise SiweMessageError("Unsupported SIWE version")
    if not _NONCE.match(fields["nonce"]):
        raise SiweMessageError("Nonce must be at least 8 alphanumeric characters")
    try:
        chain_id = int(fields["chain_id"])
    except ValueError as e:
        raise SiweMessageError("Chain ID must be an integer") from e

    return SiweMessage(
        domain=header.group("domain"),
        scheme=header.group("scheme"),
        address=address,
        statement=" ".join(statement_lines) or None,
        uri=fields["uri"],
        version=fields["version"],
        chain_id=chain_id,
        nonce=fields["nonce"],
        issued_at=_parse_timestamp(fields["issued_at"], "Issued At"),
        expiration_time=(
            _parse_timestamp(fields["expiration_time"], "Expiration Time")
            if fields.get("expiration_time") else None
        ),
        not_before=(
            _parse_timestamp(fields["not_before"], "Not Before")
            if fields.get("not_before") else None
        ),
        request_id=fields.get("request_id"),
        resources=resources,
    )


def origin_allowed(message: SiweMessage, allowed_origins: list[str]) -> bool:
    """True if the message domain/URI matches any allowed origin.

    An empty allow-list accepts everything (client keys without origin pinning).
    """
    if not allowed_origins:
        return True
    for origin in allowed_origins:
        if message.domain == origin:
            return True
        if message.uri and message.uri.startswith(origin):
            return True
        if origin.startswith("*.") and message.domain.endswith(origin[2:]):
            return True
    return False


def validity_error(message: SiweMessage, now: datetime) -> str | None:
    """Return a client-facing reason if the message is outside its validity window."""
    if message.expiration_time and message.expiration_time < now:
        return "Message expired"
    if message.not_before and message.not_before > now:
        return "Message not yet valid"
    return None

"""
Input sanitization and validation - Table-driven rules for untrusted fields.

Every string that reaches the engine passes through ``sanitize`` and then
``validate``. Both are pure and deterministic.

Sanitization by field category:
- text:    drop ``< > " ' &``, collapse whitespace, truncate to the field
           maximum (never beyond MAX_TEXT_LENGTH)
- url:     prepend ``https://`` when there is no http(s) scheme
- address: strip all whitespace, nothing else (a corrected address is a
           different address)
- handle:  canonical presentation per platform, identifier untouched

Validation checks required, then length, then the exact format grammar.
Unknown kinds are always invalid.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from .models import Platform

MAX_TEXT_LENGTH = 2000
MAX_PROOF_URL_LENGTH = 2048


class FieldKind(str, Enum):
    COMPANY_NAME = "company_name"
    DESCRIPTION = "description"
    WEBSITE_URL = "website_url"
    DOMAIN = "domain"
    GITHUB_ORG = "github_org"
    TWITTER_HANDLE = "twitter_handle"
    DISCORD_SERVER = "discord_server"
    TELEGRAM_CHANNEL = "telegram_channel"
    TEAM_MEMBER_NAME = "team_member_name"
    TEAM_MEMBER_ROLE = "team_member_role"
    AUTHOR_NAME = "author_name"
    ENDORSEMENT_MESSAGE = "endorsement_message"
    TESTIMONIAL_MESSAGE = "testimonial_message"
    VOUCH_MESSAGE = "vouch_message"
    REPORT_EVIDENCE = "report_evidence"
    ETHEREUM = "ethereum"
    POLYGON = "polygon"
    BITCOIN = "bitcoin"
    ICP = "icp"
    SOLANA = "solana"
    SUI = "sui"
    TON = "ton"


class InvalidReason(str, Enum):
    REQUIRED = "required"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    INVALID_FORMAT = "invalid_format"
    UNKNOWN_KIND = "unknown_kind"


@dataclass(frozen=True)
class FieldRule:
    category: str
    min_length: int
    max_length: int
    label: str
    pattern: re.Pattern[str] | None = None


@dataclass(frozen=True)
class ValidationOutcome:
    reason: InvalidReason | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.reason is None


VALID = ValidationOutcome()

_WEBSITE_PATTERN = re.compile(
    r"^https?://(?:[-\w.])+(?::[0-9]+)?"
    r"(?:/(?:[\w._~!$&'()*+,;=:@]|%[0-9a-fA-F]{2})*)*"
    r"(?:\?(?:[\w._~!$&'()*+,;=:@/?]|%[0-9a-fA-F]{2})*)?"
    r"(?:#(?:[\w._~!$&'()*+,;=:@/?]|%[0-9a-fA-F]{2})*)?$"
)

FIELD_RULES: dict[FieldKind, FieldRule] = {
    FieldKind.COMPANY_NAME: FieldRule("text", 2, 100, "company name"),
    FieldKind.DESCRIPTION: FieldRule("text", 10, 2000, "description"),
    FieldKind.WEBSITE_URL: FieldRule("url", 7, 500, "website", _WEBSITE_PATTERN),
    FieldKind.DOMAIN: FieldRule(
        "domain",
        4,
        253,
        "domain",
        re.compile(r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"),
    ),
    FieldKind.GITHUB_ORG: FieldRule(
        "handle", 1, 39, "github organization", re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]){0,38}$")
    ),
    FieldKind.TWITTER_HANDLE: FieldRule(
        "handle", 1, 15, "twitter handle", re.compile(r"^@?[a-zA-Z0-9_]{1,15}$")
    ),
    FieldKind.DISCORD_SERVER: FieldRule(
        "handle",
        7,
        100,
        "discord invite",
        re.compile(
            r"^(?:https?://)?(?:www\.)?(?:discord\.gg/|discordapp\.com/invite/|discord\.com/invite/)"
            r"[a-zA-Z0-9\-._~:/?#\[\]@!$&'()*+,;=%]+$"
        ),
    ),
    FieldKind.TELEGRAM_CHANNEL: FieldRule(
        "handle",
        5,
        100,
        "telegram channel",
        re.compile(r"^(?:https?://)?(?:www\.)?(?:t\.me/|telegram\.me/)[a-zA-Z0-9_]{5,32}$"),
    ),
    FieldKind.TEAM_MEMBER_NAME: FieldRule("text", 2, 50, "team member name"),
    FieldKind.TEAM_MEMBER_ROLE: FieldRule("text", 2, 50, "role"),
    FieldKind.AUTHOR_NAME: FieldRule("text", 2, 50, "author name"),
    FieldKind.ENDORSEMENT_MESSAGE: FieldRule("text", 10, 1000, "endorsement message"),
    FieldKind.TESTIMONIAL_MESSAGE: FieldRule("text", 10, 1000, "testimonial message"),
    FieldKind.VOUCH_MESSAGE: FieldRule("text", 10, 1000, "vouch message"),
    FieldKind.REPORT_EVIDENCE: FieldRule("text", 10, 2000, "evidence"),
    # Chain formats are public, well-known grammars.
    FieldKind.ETHEREUM: FieldRule("address", 42, 42, "ethereum", re.compile(r"^0x[a-fA-F0-9]{40}$")),
    FieldKind.POLYGON: FieldRule("address", 42, 42, "polygon", re.compile(r"^0x[a-fA-F0-9]{40}$")),
    FieldKind.SUI: FieldRule("address", 66, 66, "sui", re.compile(r"^0x[a-fA-F0-9]{64}$")),
    FieldKind.BITCOIN: FieldRule(
        "address",
        26,
        62,
        "bitcoin",
        re.compile(r"^(?:[13][a-km-zA-HJ-NP-Z1-9]{25,34}|bc1[a-z0-9]{39,59})$"),
    ),
    FieldKind.ICP: FieldRule(
        "address",
        27,
        27,
        "icp canister",
        re.compile(r"^[a-z0-9]{5}-[a-z0-9]{5}-[a-z0-9]{5}-[a-z0-9]{5}-[a-z0-9]{3}$"),
    ),
    FieldKind.SOLANA: FieldRule(
        "address", 32, 44, "solana", re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
    ),
    FieldKind.TON: FieldRule("address", 48, 48, "ton", re.compile(r"^[A-Za-z0-9_-]{48}$")),
}

PLATFORM_FIELD_KINDS: dict[Platform, FieldKind] = {
    Platform.DOMAIN: FieldKind.DOMAIN,
    Platform.GITHUB: FieldKind.GITHUB_ORG,
    Platform.TWITTER: FieldKind.TWITTER_HANDLE,
    Platform.DISCORD: FieldKind.DISCORD_SERVER,
    Platform.TELEGRAM: FieldKind.TELEGRAM_CHANNEL,
    Platform.ETHEREUM: FieldKind.ETHEREUM,
    Platform.POLYGON: FieldKind.POLYGON,
    Platform.BITCOIN: FieldKind.BITCOIN,
    Platform.ICP: FieldKind.ICP,
    Platform.SOLANA: FieldKind.SOLANA,
    Platform.SUI: FieldKind.SUI,
    Platform.TON: FieldKind.TON,
}

# Hosts a social proof URL may point at (subdomains allowed).
PROOF_URL_HOSTS: dict[Platform, tuple[str, ...]] = {
    Platform.TWITTER: ("twitter.com", "x.com", "mobile.twitter.com"),
    Platform.DISCORD: ("discord.gg", "discord.com", "discordapp.com"),
    Platform.TELEGRAM: ("t.me", "telegram.me"),
    Platform.GITHUB: ("github.com",),
}

_TEXT_STRIP = re.compile(r"[<>\"'&]")
_WHITESPACE = re.compile(r"\s+")
_HTTP_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def _lookup(kind: FieldKind | str) -> FieldRule | None:
    try:
        return FIELD_RULES[FieldKind(kind)]
    except ValueError:
        return None


def sanitize_text(raw: str, max_length: int = MAX_TEXT_LENGTH) -> str:
    if not raw:
        return ""
    cleaned = _WHITESPACE.sub(" ", _TEXT_STRIP.sub("", raw)).strip()
    return cleaned[: min(max_length, MAX_TEXT_LENGTH)]


def sanitize_url(raw: str) -> str:
    trimmed = (raw or "").strip()
    if not trimmed:
        return ""
    if not _HTTP_SCHEME.match(trimmed):
        return f"https://{trimmed}"
    return trimmed


def sanitize_address(raw: str) -> str:
    if not raw:
        return ""
    return _WHITESPACE.sub("", raw)


def sanitize_domain(raw: str) -> str:
    """Reduce a domain or URL to its lowercase host name."""
    if not raw:
        return ""
    try:
        host = urlsplit(sanitize_url(raw)).hostname or ""
    except ValueError:
        # Unparseable (e.g. an unclosed IPv6 bracket); left for validate to reject.
        return raw.strip().lower()
    return host.strip(".").lower()


def sanitize_handle(raw: str, kind: FieldKind) -> str:
    trimmed = (raw or "").strip()
    if not trimmed:
        return ""
    if kind is FieldKind.TWITTER_HANDLE:
        return trimmed if trimmed.startswith("@") else f"@{trimmed}"
    if kind is FieldKind.DISCORD_SERVER:
        return f"https://{trimmed}" if trimmed.startswith("discord.gg/") else trimmed
    if kind is FieldKind.TELEGRAM_CHANNEL:
        return f"https://{trimmed}" if trimmed.startswith("t.me/") else trimmed
    if kind is FieldKind.GITHUB_ORG:
        match = re.match(r"^(?:https?://)?(?:www\.)?github\.com/([^/?#]+)/?$", trimmed)
        return match.group(1) if match else trimmed
    return trimmed


def sanitize(kind: FieldKind | str, raw: str | None) -> str:
    """Clean ``raw`` according to the category of ``kind``."""
    rule = _lookup(kind)
    raw = raw or ""
    if rule is None:
        return sanitize_text(raw)
    if rule.category == "text":
        return sanitize_text(raw, rule.max_length)
    if rule.category == "url":
        return sanitize_url(raw)
    if rule.category == "address":
        return sanitize_address(raw)
    if rule.category == "domain":
        return sanitize_domain(raw)
    return sanitize_handle(raw, FieldKind(kind))


def validate(kind: FieldKind | str, cleaned: str | None) -> ValidationOutcome:
    """Check an already-sanitized value against its table rule."""
    rule = _lookup(kind)
    if rule is None:
        return ValidationOutcome(InvalidReason.UNKNOWN_KIND, f"Unsupported field kind: {kind}")
    if not cleaned:
        return ValidationOutcome(InvalidReason.REQUIRED, "Field is required")

    measured = cleaned
    if FieldKind(kind) is FieldKind.TWITTER_HANDLE:
        measured = cleaned.removeprefix("@")
    if len(measured) < rule.min_length:
        return ValidationOutcome(
            InvalidReason.TOO_SHORT, f"Minimum {rule.min_length} characters required"
        )
    if len(measured) > rule.max_length:
        return ValidationOutcome(
            InvalidReason.TOO_LONG, f"Maximum {rule.max_length} characters allowed"
        )
    if rule.pattern is not None and not rule.pattern.match(cleaned):
        return ValidationOutcome(InvalidReason.INVALID_FORMAT, f"Invalid {rule.label} format")
    return VALID


def clean(kind: FieldKind | str, raw: str | None) -> tuple[str, ValidationOutcome]:
    """Sanitize then validate in one step."""
    cleaned = sanitize(kind, raw)
    return cleaned, validate(kind, cleaned)


def validate_claim(platform: Platform, raw: str | None) -> tuple[str, ValidationOutcome]:
    return clean(PLATFORM_FIELD_KINDS[platform], raw)


def validate_proof_url(platform: Platform, url: str) -> ValidationOutcome:
    """Accept only https URLs on the platform's own hosts."""
    allowed = PROOF_URL_HOSTS.get(platform)
    if allowed is None:
        return ValidationOutcome(
            InvalidReason.UNKNOWN_KIND, f"Proof URLs are not supported for {platform.value}"
        )
    if not url:
        return ValidationOutcome(InvalidReason.REQUIRED, "Proof URL is required")
    if not url.startswith("https://"):
        return ValidationOutcome(InvalidReason.INVALID_FORMAT, "URL must use HTTPS protocol")
    if len(url) > MAX_PROOF_URL_LENGTH:
        return ValidationOutcome(InvalidReason.TOO_LONG, "URL exceeds maximum length")

    host = url.removeprefix("https://").split("/")[0].split("?")[0].split("#")[0].lower()
    if not host.isascii():
        return ValidationOutcome(
            InvalidReason.INVALID_FORMAT, "Non-ASCII characters in domain not allowed"
        )
    if not any(host == domain or host.endswith(f".{domain}") for domain in allowed):
        return ValidationOutcome(
            InvalidReason.INVALID_FORMAT,
            f"URL must be from authorized domains: {', '.join(allowed)}",
        )
    if ".." in host or "--" in host:
        return ValidationOutcome(InvalidReason.INVALID_FORMAT, "Suspicious hostname pattern detected")
    return VALID


def account_of_url(platform: Platform, url: str) -> str | None:
    """
    Account a social URL belongs to.

    Twitter: the author segment of ``/<user>/status/<id>``. Discord: the
    invite code of ``discord.gg/<code>`` or ``/invite/<code>``. Telegram:
    the channel of ``t.me/<channel>[/<post>]`` (``/s/`` previews included).
    """
    try:
        parts = urlsplit(sanitize_url(url))
    except ValueError:
        return None
    host = (parts.hostname or "").lower()
    segments = [segment for segment in parts.path.split("/") if segment]
    if platform is Platform.DISCORD and host in ("discord.gg", "www.discord.gg"):
        return segments[0] if segments else None
    if platform is Platform.DISCORD:
        return segments[1] if len(segments) >= 2 and segments[0] == "invite" else None
    if platform is Platform.TELEGRAM and segments[:1] == ["s"]:
        segments = segments[1:]
    return segments[0] if segments else None


def claimed_account(platform: Platform, target: str) -> str | None:
    """Account name carried by a social claim (handle without ``@``, invite code, channel)."""
    if platform is Platform.TWITTER:
        return target.removeprefix("@") or None
    return account_of_url(platform, target)


def proof_url_matches_claim(platform: Platform, url: str, target: str) -> bool:
    """True when a social proof URL points at the claimed account (case-insensitive)."""
    posted_by = account_of_url(platform, url)
    claimed = claimed_account(platform, target)
    return posted_by is not None and claimed is not None and posted_by.casefold() == claimed.casefold()


# Repeated address fields: form key -> (kind, positional error prefix)
ADDRESS_LIST_FIELDS: dict[str, tuple[FieldKind, str]] = {
    "ethereum_contracts": (FieldKind.ETHEREUM, "ethereum_contract"),
    "polygon_contracts": (FieldKind.POLYGON, "polygon_contract"),
    "bitcoin_addresses": (FieldKind.BITCOIN, "bitcoin_address"),
    "icp_canisters": (FieldKind.ICP, "icp_canister"),
    "solana_addresses": (FieldKind.SOLANA, "solana_address"),
    "sui_addresses": (FieldKind.SUI, "sui_address"),
    "ton_addresses": (FieldKind.TON, "ton_address"),
}

# Optional identity fields: form key -> kind
IDENTITY_FIELDS: dict[str, FieldKind] = {
    "github_org": FieldKind.GITHUB_ORG,
    "twitter_handle": FieldKind.TWITTER_HANDLE,
    "discord_server": FieldKind.DISCORD_SERVER,
    "telegram_channel": FieldKind.TELEGRAM_CHANNEL,
    "domain": FieldKind.DOMAIN,
}


def sanitize_registration_form(form: Mapping[str, Any]) -> dict[str, Any]:
    """Return a sanitized copy of a registration form."""
    basic = form.get("basic_info") or {}
    identity = form.get("web3_identity") or {}
    presence = form.get("cross_chain_presence") or {}
    return {
        "basic_info": {
            "name": sanitize(FieldKind.COMPANY_NAME, basic.get("name")),
            "description": sanitize(FieldKind.DESCRIPTION, basic.get("description")),
            "website": sanitize(FieldKind.WEBSITE_URL, basic.get("website")),
            "team_size": basic.get("team_size"),
        },
        "web3_identity": {
            key: sanitize(kind, identity.get(key))
            for key, kind in IDENTITY_FIELDS.items()
            if identity.get(key)
        },
        "cross_chain_presence": {
            key: [sanitize(kind, value) for value in presence.get(key) or []]
            for key, (kind, _) in ADDRESS_LIST_FIELDS.items()
        },
    }


def validate_registration_form(form: Mapping[str, Any]) -> dict[str, str]:
    """
    Validate a sanitized registration form.

    Returns:
        Mapping of field path to error message; empty when the form is valid
    """
    errors: dict[str, str] = {}
    basic = form.get("basic_info") or {}
    identity = form.get("web3_identity") or {}
    presence = form.get("cross_chain_presence") or {}

    for key, kind in (
        ("name", FieldKind.COMPANY_NAME),
        ("description", FieldKind.DESCRIPTION),
        ("website", FieldKind.WEBSITE_URL),
    ):
        outcome = validate(kind, basic.get(key))
        if not outcome.ok:
            errors[f"basic_info.{key}"] = outcome.message

    team_size = basic.get("team_size")
    if not isinstance(team_size, int) or team_size < 1:
        errors["basic_info.team_size"] = "Team size must be at least 1"
    elif team_size > 10000:
        errors["basic_info.team_size"] = "Team size cannot exceed 10,000"

    for key, kind in IDENTITY_FIELDS.items():
        if identity.get(key):
            outcome = validate(kind, identity[key])
            if not outcome.ok:
                errors[f"web3_identity.{key}"] = outcome.message

    for key, (kind, prefix) in ADDRESS_LIST_FIELDS.items():
        for index, address in enumerate(presence.get(key) or []):
            outcome = validate(kind, address)
            if not outcome.ok:
                errors[f"{prefix}_{index}"] = outcome.message

    return errors


def validate_fields(fields: Mapping[str, tuple[FieldKind, str | None]]) -> tuple[dict[str, str], dict[str, str]]:
    """
    Sanitize and validate a flat set of named fields.

    Returns:
        Tuple of (cleaned values, errors by field name)
    """
    cleaned: dict[str, str] = {}
    errors: dict[str, str] = {}
    for name, (kind, raw) in fields.items():
        value, outcome = clean(kind, raw)
        cleaned[name] = value
        if not outcome.ok:
            errors[name] = outcome.message
    return cleaned, errors

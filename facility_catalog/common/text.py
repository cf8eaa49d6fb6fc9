"""Text normalisation shared by fingerprinting, slugs and place parsing."""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")
_FINGERPRINT_STRIP_RE = re.compile(r"[^\w\s\-#&/.,]")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")
_ADDRESS_PUNCT_RE = re.compile(r"[.,]")
# "... Amarillo TX 79106" / "... HOUSTON TX 77078-1234"
_CITY_TAIL_TEMPLATE = r"(?:^|\s)([A-Za-z.'-]+(?:\s+[A-Za-z.'-]+)*)\s+{state}\s+\d{{5}}(?:-\d{{4}})?\s*$"


def clean_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def collapse_whitespace(value: object) -> str:
    return _WHITESPACE_RE.sub(" ", clean_str(value))


def norm_str(value: object) -> str:
    """Lower-cased, whitespace-collapsed form used inside fingerprints."""
    return _FINGERPRINT_STRIP_RE.sub("", collapse_whitespace(value).lower())


def normalise_address(value: object) -> str:
    return collapse_whitespace(_ADDRESS_PUNCT_RE.sub("", clean_str(value).lower()))


def slugify(value: object, max_length: int | None = 80) -> str:
    slug = clean_str(value).lower().replace("&", " and ")
    slug = _NON_SLUG_RE.sub("-", slug).strip("-")
    if max_length is not None:
        slug = slug[:max_length].strip("-")
    return slug


def slug_tokens(slug: str) -> list[str]:
    return [token for token in clean_str(slug).lower().split("-") if token]


def title_case_from_slug(slug: str) -> str:
    return " ".join(token[:1].upper() + token[1:] for token in slug_tokens(slug))


def title_case(value: str) -> str:
    return " ".join(part[:1].upper() + part[1:].lower() for part in collapse_whitespace(value).split(" ") if part)


def extract_city_from_address(address: object, state_code: str) -> str:
    text = clean_str(address)
    if not text or not state_code:
        return ""
    pattern = re.compile(_CITY_TAIL_TEMPLATE.format(state=re.escape(state_code)), re.IGNORECASE)
    match = pattern.search(text)
    if not match:
        return ""
    return clean_str(match.group(1))

"""Rule-table driven quality gate for free-text place labels."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Iterable, Mapping

from facility_catalog.common.models import PlaceDecision
from facility_catalog.common.text import collapse_whitespace, slug_tokens, slugify, title_case, title_case_from_slug

REASON_EMPTY = "empty"
REASON_FAILED_GATE = "failed-quality-gate"
MAX_SALVAGE_TOKENS = 3

_LETTERS_RE = re.compile(r"(?:[^\W\d_]|[ '\-])+")
_SHORT_CODE_RE = re.compile(r"[A-Z]{1,3}")


@dataclass(frozen=True)
class PlaceRules:
    max_length: int
    max_tokens: int
    directional_re: re.Pattern
    block_tokens: frozenset[str]
    sentence_tokens: frozenset[str]
    addressy_patterns: tuple[re.Pattern, ...]
    noise_tokens: frozenset[str] = frozenset()
    noise_prefix_tokens: frozenset[str] = frozenset()
    state_tokens: frozenset[str] = frozenset()
    aliases: Mapping[str, str] = field(default_factory=dict)
    fragment_tokens: frozenset[str] = frozenset()
    drop_tokens: frozenset[str] = frozenset()
    trusted: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(
        cls,
        rules_cfg: dict,
        group_cfg: dict,
        extra_trusted: Iterable[str] = (),
    ) -> "PlaceRules":
        group = group_cfg["place_group"]
        slug = group["slug"]
        prefixes = sorted((str(p).lower() for p in rules_cfg["directional_prefixes"]), key=lambda p: (-len(p), p))
        directional_re = re.compile(r"^(?:%s)\.?\s+" % "|".join(re.escape(p) for p in prefixes), re.IGNORECASE)

        trusted: dict[str, str] = {}
        for name in [*(rules_cfg.get("hard_include") or {}).get(slug, []), *extra_trusted]:
            display = collapse_whitespace(name)
            key = slugify(display)
            if key and key not in trusted:
                trusted[key] = display

        return cls(
            max_length=int(rules_cfg["max_length"]),
            max_tokens=int(rules_cfg["max_tokens"]),
            directional_re=directional_re,
            block_tokens=frozenset(str(t).lower() for t in rules_cfg["block_tokens"]),
            sentence_tokens=frozenset(str(t).lower() for t in rules_cfg["sentence_tokens"]),
            addressy_patterns=tuple(re.compile(p, re.IGNORECASE) for p in rules_cfg["addressy_patterns"]),
            noise_tokens=frozenset(str(t).lower() for t in rules_cfg["noise_tokens"]),
            noise_prefix_tokens=frozenset(str(t).lower() for t in rules_cfg["noise_prefix_tokens"]),
            state_tokens=frozenset([str(group["state_code"]).lower(), *slug_tokens(slugify(group["name"]))]),
            aliases=dict((rules_cfg.get("aliases") or {}).get(slug, {})),
            fragment_tokens=frozenset((rules_cfg.get("fragment_tokens") or {}).get(slug, [])),
            drop_tokens=frozenset((rules_cfg.get("drop_tokens") or {}).get(slug, [])),
            trusted=trusted,
        )

    def with_trusted(self, names: Iterable[str]) -> "PlaceRules":
        trusted = dict(self.trusted)
        for name in names:
            display = collapse_whitespace(name)
            key = slugify(display)
            if key and key not in trusted:
                trusted[key] = display
        return replace(self, trusted=trusted)


def strip_directional_prefix(label: str, rules: PlaceRules) -> str:
    stripped = collapse_whitespace(rules.directional_re.sub("", label, count=1))
    return stripped or label


def _display_name(label: str) -> str:
    if label.isupper() or label.islower():
        return title_case(label)
    return label


def _tokens(label: str) -> list[str]:
    return slug_tokens(slugify(label, None))


def passes_plausibility_gate(label: str, rules: PlaceRules) -> bool:
    if len(label) > rules.max_length:
        return False
    if len(label.split(" ")) > rules.max_tokens:
        return False
    if not _LETTERS_RE.fullmatch(label):
        return False
    return not _SHORT_CODE_RE.fullmatch(label)


def looks_like_fragment(label: str, rules: PlaceRules) -> bool:
    if any(pattern.search(label) for pattern in rules.addressy_patterns):
        return True
    tokens = _tokens(label)
    if any(token in rules.sentence_tokens for token in tokens):
        return True
    if any(a == b for a, b in zip(tokens, tokens[1:])):
        return True
    return len(tokens) == 1 and (tokens[0] in rules.fragment_tokens or tokens[0] in rules.drop_tokens)


def has_blocked_token(label: str, rules: PlaceRules) -> bool:
    return any(token in rules.block_tokens for token in _tokens(label))


def _has_repeats(tokens: list[str]) -> bool:
    return len(set(tokens)) < len(tokens)


def score_slug(slug: str, rules: PlaceRules) -> int:
    tokens = slug_tokens(slug)
    score = 100
    if any(token in rules.state_tokens for token in tokens):
        score -= 25
    if _has_repeats(tokens):
        score -= 25
    if tokens and tokens[0] in rules.noise_prefix_tokens:
        score -= 25
    if len(tokens) > 2:
        score -= (len(tokens) - 2) * 8
    score -= 6 * sum(1 for token in tokens if token in rules.noise_tokens)
    if len(tokens) == 1 and tokens[0] in rules.fragment_tokens:
        score -= 35
    return score


def _normalize_tokens(tokens: list[str], rules: PlaceRules) -> list[str]:
    out: list[str] = []
    for token in tokens:
        if token in rules.state_tokens or token in out:
            continue
        out.append(token)
    return out


def _rank(candidates: Iterable[str], rules: PlaceRules) -> list[str]:
    return sorted(set(candidates), key=lambda slug: (-score_slug(slug, rules), len(slug_tokens(slug)), slug))


def salvage_candidates(tokens: list[str], known_slugs: Iterable[str], rules: PlaceRules) -> list[str]:
    """Suffix and prefix sub-sequences (up to three tokens) that name a known place, best first."""
    known = set(known_slugs)
    normalized = _normalize_tokens(tokens, rules)
    candidates = set()
    for size in range(min(MAX_SALVAGE_TOKENS, len(normalized)), 0, -1):
        for part in (normalized[-size:], normalized[:size]):
            slug = "-".join(part)
            if slug in known and slug not in rules.drop_tokens and not any(t in rules.block_tokens for t in part):
                candidates.add(slug)
    return _rank(candidates, rules)


def _trusted_decision(label: str, rules: PlaceRules, known: set[str]) -> PlaceDecision | None:
    slug = slugify(label)
    if slug in rules.trusted:
        return PlaceDecision(accepted=True, name=rules.trusted[slug], slug=slug, trusted=True)
    alias = rules.aliases.get(slug)
    if alias and (alias in rules.trusted or alias in known):
        return PlaceDecision(
            accepted=True,
            name=rules.trusted.get(alias) or title_case_from_slug(alias),
            slug=alias,
            trusted=True,
        )
    return None


def classify_place_label(label: object, rules: PlaceRules, known_slugs: Iterable[str] = ()) -> PlaceDecision:
    """Accept, salvage, or reject one place label.

    Pure: the result depends only on ``label``, the rule table and ``known_slugs``.
    """
    text = collapse_whitespace(label)
    if not text or not slugify(text):
        return PlaceDecision(accepted=False, reason=REASON_EMPTY)
    known = set(known_slugs) | set(rules.trusted)

    stripped = strip_directional_prefix(text, rules)
    for form in (text, stripped):
        decision = _trusted_decision(form, rules, known)
        if decision is not None:
            return decision

    if (
        passes_plausibility_gate(stripped, rules)
        and not looks_like_fragment(stripped, rules)
        and not has_blocked_token(stripped, rules)
    ):
        return PlaceDecision(accepted=True, name=_display_name(stripped), slug=slugify(stripped))

    for slug in salvage_candidates(_tokens(text), known, rules):
        return PlaceDecision(
            accepted=True,
            name=rules.trusted.get(slug) or title_case_from_slug(slug),
            slug=slug,
            salvaged=True,
        )
    return PlaceDecision(accepted=False, reason=REASON_FAILED_GATE)


def pick_canonical_slug(raw_slug: str, slug_set: set[str], rules: PlaceRules) -> str:
    raw = raw_slug.strip().lower()
    if not raw:
        return ""
    tokens = slug_tokens(raw)
    alias = rules.aliases.get(raw)
    if len(tokens) == 1 and alias and alias in slug_set:
        return alias

    normalized = "-".join(_normalize_tokens(tokens, rules))
    candidates = {raw}
    if normalized and normalized in slug_set:
        candidates.add(normalized)

    noisy = (
        len(tokens) >= 3
        or any(t in rules.state_tokens for t in tokens)
        or _has_repeats(tokens)
        or (bool(tokens) and tokens[0] in rules.noise_prefix_tokens)
    )
    if noisy:
        candidates.update(salvage_candidates(tokens, slug_set, rules))

    for slug in _rank(candidates, rules):
        if slug not in rules.drop_tokens:
            return slug
    return ""


def canonicalize_place_slugs(slugs: Iterable[str], rules: PlaceRules) -> dict[str, str]:
    """Map every slug of a place list onto its canonical form ("" drops it)."""
    slug_set = {s for s in slugs if s}
    return {slug: pick_canonical_slug(slug, slug_set, rules) for slug in sorted(slug_set)}

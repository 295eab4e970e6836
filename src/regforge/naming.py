"""Resource name derivation."""

from __future__ import annotations

import re
from dataclasses import dataclass

RESTRICTED_MAX_LENGTH = 64
SIGNING_PROFILE_PREFIX = "ecr-container-signing-"

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


@dataclass(frozen=True, slots=True)
class NamingResult:
    canonical: str
    restricted: str


def compose(env_abbr: str, base_name: str) -> str:
    """Prefix ``base_name`` with the environment abbreviation when one is set."""
    if env_abbr:
        return f"{env_abbr}-{base_name}"
    return base_name


def compose_restricted(raw_name: str) -> str:
    """Alphanumeric-only variant of ``raw_name``, at most 64 characters.

    Characters are stripped before truncating so the length budget is spent on
    characters that survive.
    """
    stripped = _NON_ALNUM_RE.sub("", raw_name)
    return stripped[:RESTRICTED_MAX_LENGTH]


def derive_names(env_abbr: str, base_name: str) -> NamingResult:
    canonical = compose(env_abbr, base_name)
    return NamingResult(
        canonical=canonical,
        restricted=compose_restricted(f"{SIGNING_PROFILE_PREFIX}{canonical}"),
    )


def audit_log_group_name(canonical: str) -> str:
    return f"/aws/cloudtrail/{canonical}"


def audit_trail_name(canonical: str) -> str:
    return f"{canonical}-ecr-audit"


def kms_alias_name(canonical: str) -> str:
    return f"alias/ecr/{canonical}"

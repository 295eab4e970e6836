"""Resolution of conditional identifiers.

Every reference to a resource that may or may not be created passes through
``resolve``. A consumer never touches a created handle directly, so a toggle
that skips creation yields ``None`` or the caller's override instead of a
dangling reference.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

T = TypeVar("T")


class Provenance(str, Enum):
    EXTERNAL_OVERRIDE = "external-override"
    INTERNALLY_CREATED = "internally-created"
    ABSENT = "absent"


@dataclass(frozen=True, slots=True)
class EffectiveValue:
    # str for external identifiers, IntentRef for identifiers the engine generates
    value: object | None
    provenance: Provenance

    @property
    def present(self) -> bool:
        return self.value is not None


ABSENT = EffectiveValue(value=None, provenance=Provenance.ABSENT)


def resolve(toggle_on: bool, override: T | None, created: T | None) -> T | None:
    """Pick the identifier a consumer should use.

    Toggle off returns ``override`` and never looks at ``created``. Toggle on
    returns ``created``; an override passed alongside it is ignored.
    """
    if not toggle_on:
        return override
    return created


def resolve_effective(
    toggle_on: bool,
    override: object | None,
    created: object | None,
) -> EffectiveValue:
    value = resolve(toggle_on, override, created)
    if value is None:
        return ABSENT
    if toggle_on:
        return EffectiveValue(value=value, provenance=Provenance.INTERNALLY_CREATED)
    return EffectiveValue(value=value, provenance=Provenance.EXTERNAL_OVERRIDE)

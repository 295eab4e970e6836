"""Create-or-reuse handling for resources with an external lifecycle.

The customer-managed key and the signing profile can either be created by
this registry or referenced from elsewhere. Switching a created resource to
reuse mode orphans it; nothing here ever schedules its deletion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from regforge.effective import ABSENT, EffectiveValue, resolve_effective
from regforge.errors import MissingReferenceError

logger = logging.getLogger(__name__)


class ReuseMode(str, Enum):
    CREATE = "create"
    REUSE = "reuse"
    ABSENT = "absent"


class TransitionAction(str, Enum):
    CREATE = "create"
    KEEP = "keep"
    UPDATE = "update"
    ORPHAN = "orphan"
    DESTROY = "destroy"
    NOOP = "noop"


@dataclass(frozen=True, slots=True)
class Lifecycle:
    prevent_destroy: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {"prevent_destroy": self.prevent_destroy}


UNGUARDED = Lifecycle()
GUARDED = Lifecycle(prevent_destroy=True)


@dataclass(frozen=True, slots=True)
class ReuseDecision:
    resource: str
    mode: ReuseMode
    override: str | None
    lifecycle: Lifecycle = GUARDED

    @property
    def cardinality(self) -> int:
        return 1 if self.mode is ReuseMode.CREATE else 0

    def effective(self, created: object | None) -> EffectiveValue:
        if self.mode is ReuseMode.ABSENT:
            return ABSENT
        return resolve_effective(self.mode is ReuseMode.CREATE, self.override, created)


class ReuseModeController:
    def __init__(self, resource: str, override_field: str = "") -> None:
        self.resource = resource
        self.override_field = override_field

    def decide(self, toggle_on: bool, override: str | None, *, required: bool) -> ReuseDecision:
        """Choose create, reuse or absent for this resource.

        ``required`` says whether a consumer needs an identifier when the
        create toggle is off. Reuse without an override is an error, never an
        implicit creation.
        """
        if toggle_on:
            if override is not None:
                logger.warning(
                    "%s: override %s ignored because creation is enabled",
                    self.resource,
                    override,
                )
            return ReuseDecision(resource=self.resource, mode=ReuseMode.CREATE, override=None)
        if override is None:
            if required:
                raise MissingReferenceError(self.resource, self.override_field)
            return ReuseDecision(resource=self.resource, mode=ReuseMode.ABSENT, override=None)
        return ReuseDecision(resource=self.resource, mode=ReuseMode.REUSE, override=override)


def plan_transition(
    previous: int,
    current: int,
    lifecycle: Lifecycle,
    *,
    changed: bool = False,
) -> TransitionAction:
    """Map a cardinality change between runs to the action an engine may take.

    ``changed`` marks a node that exists on both sides with different inputs.
    """
    if previous == 0 and current == 0:
        return TransitionAction.NOOP
    if previous == 0:
        return TransitionAction.CREATE
    if current > 0:
        return TransitionAction.UPDATE if changed else TransitionAction.KEEP
    if lifecycle.prevent_destroy:
        return TransitionAction.ORPHAN
    return TransitionAction.DESTROY

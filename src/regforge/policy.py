"""Repository access policy synthesis."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

POLICY_VERSION = "2012-10-17"

PULL_ACTIONS = (
    "ecr:GetDownloadUrlForLayer",
    "ecr:BatchGetImage",
    "ecr:BatchCheckLayerAvailability",
)
PUSH_ACTIONS = (
    "ecr:PutImage",
    "ecr:InitiateLayerUpload",
    "ecr:UploadLayerPart",
    "ecr:CompleteLayerUpload",
)


class AccessLevel(str, Enum):
    READ_ONLY = "ReadOnly"
    READ_WRITE = "ReadWrite"


_STATEMENT_SID = {
    AccessLevel.READ_ONLY: "AllowPull",
    AccessLevel.READ_WRITE: "AllowPushPull",
}


@dataclass(frozen=True, slots=True)
class PolicyStatement:
    sid: str
    effect: str
    principals: tuple[str, ...]
    actions: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "Sid": self.sid,
            "Effect": self.effect,
            "Principal": {"AWS": list(self.principals)},
            "Action": list(self.actions),
        }


@dataclass(frozen=True, slots=True)
class PolicyDocument:
    version: str
    statements: tuple[PolicyStatement, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "Version": self.version,
            "Statement": [statement.to_dict() for statement in self.statements],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def actions_for(access_level: AccessLevel) -> tuple[str, ...]:
    if access_level is AccessLevel.READ_WRITE:
        return PULL_ACTIONS + PUSH_ACTIONS
    return PULL_ACTIONS


def _statement(principals: set[str], access_level: AccessLevel) -> PolicyStatement:
    return PolicyStatement(
        sid=_STATEMENT_SID[access_level],
        effect="Allow",
        principals=tuple(sorted(principals)),
        actions=actions_for(access_level),
    )


def synthesize(principals: Iterable[str], access_level: AccessLevel) -> PolicyDocument | None:
    """Single-statement policy granting ``access_level`` to ``principals``.

    Returns None for an empty principal set; an empty document is never built.
    Principals are used as given; trimming and rejecting blanks happens when
    the configuration is resolved.
    """
    members = set(principals)
    if not members:
        return None
    return PolicyDocument(version=POLICY_VERSION, statements=(_statement(members, access_level),))


def synthesize_access_policy(
    read_only: Iterable[str],
    read_write: Iterable[str],
) -> PolicyDocument | None:
    """Combined policy for pull-only and push/pull principals.

    A principal listed at both levels appears once, under read-write.
    """
    writers = set(read_write)
    readers = set(read_only) - writers
    statements: list[PolicyStatement] = []
    if readers:
        statements.append(_statement(readers, AccessLevel.READ_ONLY))
    if writers:
        statements.append(_statement(writers, AccessLevel.READ_WRITE))
    if not statements:
        return None
    return PolicyDocument(version=POLICY_VERSION, statements=tuple(statements))

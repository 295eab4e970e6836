"""Driving an external provisioning engine over a built graph.

The engine is anything with a ``materialize`` method. ``apply_graph`` walks
the dependency layers, substitutes IntentRefs with identifiers returned for
earlier nodes, and records per-node failures. A node that fails leaves no
identifier behind; every node depending on it is reported as blocked with the
chain back to the failure. Nothing that already succeeded is rolled back.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from regforge.config import RunContext
from regforge.effective import EffectiveValue
from regforge.errors import ProvisioningError
from regforge.graph import (
    FrozenMap,
    GraphOutputs,
    IntentRef,
    ResourceGraph,
    ResourceIntent,
    ResourceKind,
)

logger = logging.getLogger(__name__)


class ProvisioningEngine(Protocol):
    def materialize(self, intent: ResourceIntent, inputs: dict[str, Any]) -> Mapping[str, str]:
        """Create ``intent`` and return its generated attributes (arn, id, ...)."""


@dataclass(slots=True)
class NodeFailure:
    address: str
    message: str
    retryable: bool


@dataclass(slots=True)
class BlockedNode:
    address: str
    chain: tuple[str, ...]


@dataclass(slots=True)
class ProvisioningReport:
    materialized: dict[str, dict[str, str]] = field(default_factory=dict)
    failures: list[NodeFailure] = field(default_factory=list)
    blocked: list[BlockedNode] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.blocked

    def lookup(self, ref: IntentRef | None) -> str | None:
        if ref is None:
            return None
        attrs = self.materialized.get(ref.address)
        if attrs is None:
            return None
        return attrs.get(ref.attribute)

    def _effective(self, value: EffectiveValue) -> str | None:
        if isinstance(value.value, IntentRef):
            return self.lookup(value.value)
        return value.value if isinstance(value.value, str) else None

    def resolve_outputs(self, outputs: GraphOutputs) -> dict[str, Any]:
        endpoint_ids = [self.lookup(ref) for ref in outputs.endpoint_ids]
        return {
            "repository_url": self.lookup(outputs.repository_url),
            "repository_arn": self.lookup(outputs.repository_arn),
            "public_repository_uri": self.lookup(outputs.public_repository_uri),
            "kms_key": self._effective(outputs.kms_key),
            "signing_profile": self._effective(outputs.signing_profile),
            "endpoint_ids": [item for item in endpoint_ids if item is not None],
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "materialized": self.materialized,
            "failures": [
                {"address": item.address, "message": item.message, "retryable": item.retryable}
                for item in self.failures
            ],
            "blocked": [
                {"address": item.address, "chain": list(item.chain)} for item in self.blocked
            ],
        }


def _substitute(value: object, materialized: Mapping[str, Mapping[str, str]], owner: str) -> object:
    if isinstance(value, IntentRef):
        attrs = materialized.get(value.address, {})
        if value.attribute not in attrs:
            raise ProvisioningError(
                owner,
                f"{owner}: {value.address} did not report attribute {value.attribute!r}",
                retryable=False,
            )
        return attrs[value.attribute]
    if isinstance(value, FrozenMap):
        return {key: _substitute(item, materialized, owner) for key, item in value.items}
    if isinstance(value, tuple):
        return tuple(_substitute(item, materialized, owner) for item in value)
    return value


def apply_graph(graph: ResourceGraph, engine: ProvisioningEngine) -> ProvisioningReport:
    report = ProvisioningReport()
    chains: dict[str, tuple[str, ...]] = {}

    for layer in graph.layers():
        for address in layer:
            intent = graph.get(address)
            broken = [dep for dep in intent.depends_on if dep in chains]
            if broken:
                chain = (*chains[broken[0]], address)
                chains[address] = chain
                report.blocked.append(BlockedNode(address=address, chain=chain))
                logger.warning("%s blocked by %s", address, " -> ".join(chain[:-1]))
                continue
            try:
                inputs = {
                    key: _substitute(value, report.materialized, address)
                    for key, value in intent.inputs
                }
                attrs = engine.materialize(intent, inputs)
            except ProvisioningError as exc:
                chains[address] = (address,)
                report.failures.append(
                    NodeFailure(address=address, message=str(exc), retryable=exc.retryable)
                )
                logger.error("%s failed: %s", address, exc)
                continue
            report.materialized[address] = dict(attrs)
            logger.debug("%s materialized", address)

    logger.info(
        "apply finished: %d materialized, %d failed, %d blocked",
        len(report.materialized),
        len(report.failures),
        len(report.blocked),
    )
    return report


class DryRunEngine:
    """Engine that fabricates stable identifiers instead of calling the cloud."""

    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.calls: list[str] = []

    def _arn(self, service: str, resource: str) -> str:
        ctx = self.context
        return f"arn:{ctx.partition}:{service}:{ctx.region}:{ctx.account_id}:{resource}"

    def materialize(self, intent: ResourceIntent, inputs: dict[str, Any]) -> Mapping[str, str]:
        self.calls.append(intent.address)
        digest = hashlib.sha256(intent.address.encode("utf-8")).hexdigest()
        name = str(inputs.get("name") or intent.address)
        attrs = {"id": digest[:12], "name": name}
        kind = intent.kind
        if kind is ResourceKind.KMS_KEY:
            key_id = str(uuid.UUID(hex=digest[:32]))
            attrs.update(key_id=key_id, arn=self._arn("kms", f"key/{key_id}"))
        elif kind is ResourceKind.KMS_ALIAS:
            attrs["arn"] = self._arn("kms", name)
        elif kind is ResourceKind.REPOSITORY:
            attrs.update(
                arn=self._arn("ecr", f"repository/{name}"),
                repository_url=f"{self.context.registry_host()}/{name}",
            )
        elif kind is ResourceKind.PUBLIC_REPOSITORY:
            attrs.update(
                arn=f"arn:{self.context.partition}:ecr-public::{self.context.account_id}"
                f":repository/{name}",
                repository_uri=f"public.ecr.aws/{digest[:8]}/{name}",
            )
        elif kind is ResourceKind.VPC_ENDPOINT:
            attrs["id"] = f"vpce-{digest[:17]}"
            attrs["arn"] = self._arn("ec2", f"vpc-endpoint/{attrs['id']}")
        elif kind is ResourceKind.SIGNING_PROFILE:
            attrs["arn"] = self._arn("signer", f"/signing-profiles/{name}")
        elif kind is ResourceKind.LOG_GROUP:
            attrs["arn"] = self._arn("logs", f"log-group:{name}")
        elif kind is ResourceKind.AUDIT_TRAIL:
            attrs["arn"] = self._arn("cloudtrail", f"trail/{name}")
        else:
            attrs["arn"] = self._arn("ecr", f"{kind.value}/{digest[:12]}")
        return attrs

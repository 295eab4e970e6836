"""Resource graph assembly.

``build_graph`` turns a ResolvedConfig into an ordered, immutable set of
ResourceIntents. Conditional nodes are always emitted (cardinality 0 or 1) so
their addresses stay stable between runs; list-derived nodes are keyed by
content, not position. References to generated identifiers are IntentRefs and
only ever point at nodes with cardinality 1.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from regforge.config import RunContext
from regforge.effective import EffectiveValue, resolve
from regforge.errors import GraphInvariantError, ValidationError
from regforge.naming import (
    audit_log_group_name,
    audit_trail_name,
    derive_names,
    kms_alias_name,
)
from regforge.policy import synthesize_access_policy
from regforge.reuse import (
    GUARDED,
    UNGUARDED,
    Lifecycle,
    ReuseModeController,
    TransitionAction,
    plan_transition,
)
from regforge.toggles import EncryptionType, ResolvedConfig, ScanType

logger = logging.getLogger(__name__)

PUBLIC_REGISTRY_REGION = "us-east-1"
SIGNING_PLATFORM_ID = "Notation-OCI-SHA384-ECDSA"
ENDPOINT_SERVICES = ("ecr.api", "ecr.dkr")

KMS_KEY_CONTROLLER = ReuseModeController("kms_key", "kmsKeyOverride")
SIGNING_PROFILE_CONTROLLER = ReuseModeController(
    "signing_profile", "existingSigningProfileOverride"
)


class ResourceKind(str, Enum):
    KMS_KEY = "kms_key"
    KMS_ALIAS = "kms_alias"
    REPOSITORY = "repository"
    PUBLIC_REPOSITORY = "public_repository"
    LIFECYCLE_POLICY = "lifecycle_policy"
    REPOSITORY_POLICY = "repository_policy"
    PULL_THROUGH_CACHE_RULE = "pull_through_cache_rule"
    REGISTRY_POLICY = "registry_policy"
    SCANNING_CONFIGURATION = "registry_scanning_configuration"
    REPLICATION_DESTINATION = "replication_destination"
    VPC_ENDPOINT = "vpc_endpoint"
    SIGNING_PROFILE = "signing_profile"
    LOG_GROUP = "log_group"
    AUDIT_TRAIL = "audit_trail"


def singleton_address(kind: ResourceKind, name: str = "this") -> str:
    return f"{kind.value}.{name}"


def keyed_address(kind: ResourceKind, key: str) -> str:
    return f'{kind.value}["{key}"]'


@dataclass(frozen=True, slots=True)
class IntentRef:
    """Identifier the engine generates for ``address`` once it exists."""

    address: str
    attribute: str = "arn"

    def __str__(self) -> str:
        return f"${{{self.address}.{self.attribute}}}"


@dataclass(frozen=True, slots=True)
class FrozenMap:
    """Mapping-valued input (tags), hashable and rendered back as an object."""

    items: tuple[tuple[str, Any], ...] = ()


InputValue = str | int | bool | None | IntentRef | FrozenMap | tuple[Any, ...]


def _refs_in(value: object) -> list[IntentRef]:
    if isinstance(value, IntentRef):
        return [value]
    if isinstance(value, FrozenMap):
        return _refs_in(tuple(item for _key, item in value.items))
    if isinstance(value, tuple):
        found: list[IntentRef] = []
        for item in value:
            found.extend(_refs_in(item))
        return found
    return []


def _render(value: object) -> object:
    if isinstance(value, IntentRef):
        return str(value)
    if isinstance(value, FrozenMap):
        return {key: _render(item) for key, item in value.items}
    if isinstance(value, tuple):
        return [_render(item) for item in value]
    if isinstance(value, EffectiveValue):
        return {"value": _render(value.value), "provenance": value.provenance.value}
    return value


def _freeze(value: object) -> InputValue:
    if isinstance(value, Mapping):
        return FrozenMap(tuple((str(key), _freeze(item)) for key, item in sorted(value.items())))
    if isinstance(value, list | tuple):
        return tuple(_freeze(item) for item in value)
    if value is None or isinstance(value, str | int | bool | IntentRef):
        return value
    raise TypeError(f"unsupported intent input: {value!r}")


@dataclass(frozen=True, slots=True)
class ResourceIntent:
    address: str
    kind: ResourceKind
    cardinality: int
    inputs: tuple[tuple[str, InputValue], ...] = ()
    depends_on: tuple[str, ...] = ()
    lifecycle: Lifecycle = UNGUARDED

    def input(self, name: str) -> InputValue:
        for key, value in self.inputs:
            if key == name:
                return value
        raise KeyError(name)

    def references(self) -> list[IntentRef]:
        found: list[IntentRef] = []
        for _key, value in self.inputs:
            found.extend(_refs_in(value))
        return found

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "kind": self.kind.value,
            "cardinality": self.cardinality,
            "inputs": {key: _render(value) for key, value in self.inputs},
            "depends_on": list(self.depends_on),
            "lifecycle": self.lifecycle.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class GraphOutputs:
    repository_url: IntentRef
    repository_arn: IntentRef
    public_repository_uri: IntentRef | None
    kms_key: EffectiveValue
    signing_profile: EffectiveValue
    endpoint_ids: tuple[IntentRef, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository_url": _render(self.repository_url),
            "repository_arn": _render(self.repository_arn),
            "public_repository_uri": _render(self.public_repository_uri),
            "kms_key": _render(self.kms_key),
            "signing_profile": _render(self.signing_profile),
            "endpoint_ids": _render(self.endpoint_ids),
        }


@dataclass(frozen=True, slots=True)
class ResourceGraph:
    intents: tuple[ResourceIntent, ...]
    outputs: GraphOutputs
    _index: dict[str, ResourceIntent] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        position: dict[str, int] = {}
        for idx, intent in enumerate(self.intents):
            if intent.address in position:
                raise GraphInvariantError(f"duplicate address {intent.address}")
            position[intent.address] = idx
            self._index[intent.address] = intent
        for intent in self.intents:
            for dep in intent.depends_on:
                target = self._index.get(dep)
                if target is None:
                    raise GraphInvariantError(f"{intent.address} depends on unknown {dep}")
                if target.cardinality == 0:
                    raise GraphInvariantError(
                        f"{intent.address} references {dep}, which is not created"
                    )
                if position[dep] >= position[intent.address]:
                    raise GraphInvariantError(f"{intent.address} is ordered before {dep}")
            for ref in intent.references():
                if ref.address not in intent.depends_on:
                    raise GraphInvariantError(
                        f"{intent.address} references {ref.address} without depending on it"
                    )

    def get(self, address: str) -> ResourceIntent:
        return self._index[address]

    def created(self) -> list[ResourceIntent]:
        return [intent for intent in self.intents if intent.cardinality > 0]

    def of_kind(self, kind: ResourceKind) -> list[ResourceIntent]:
        return [intent for intent in self.intents if intent.kind is kind]

    def dependants(self, address: str) -> list[str]:
        return [intent.address for intent in self.intents if address in intent.depends_on]

    def layers(self) -> list[list[str]]:
        """Created intents grouped so each layer depends only on earlier ones."""
        remaining = {intent.address: set(intent.depends_on) for intent in self.created()}
        order = [intent.address for intent in self.created()]
        layers: list[list[str]] = []
        done: set[str] = set()
        while remaining:
            ready = [
                address
                for address in order
                if address in remaining and remaining[address] <= done
            ]
            if not ready:
                raise GraphInvariantError("dependency cycle in resource graph")
            for address in ready:
                del remaining[address]
            done.update(ready)
            layers.append(ready)
        return layers

    def to_dict(self) -> dict[str, Any]:
        return {
            "intents": [intent.to_dict() for intent in self.intents],
            "layers": self.layers(),
            "outputs": self.outputs.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


class _GraphBuilder:
    def __init__(self) -> None:
        self._intents: list[ResourceIntent] = []

    def add(
        self,
        address: str,
        kind: ResourceKind,
        cardinality: int,
        inputs: Mapping[str, object],
        *,
        after: Iterable[IntentRef | None] = (),
        lifecycle: Lifecycle = UNGUARDED,
    ) -> ResourceIntent:
        frozen = tuple((key, _freeze(value)) for key, value in inputs.items())
        deps = {ref.address for _key, value in frozen for ref in _refs_in(value)}
        deps.update(ref.address for ref in after if ref is not None)
        intent = ResourceIntent(
            address=address,
            kind=kind,
            cardinality=cardinality,
            inputs=frozen,
            depends_on=tuple(sorted(deps)),
            lifecycle=lifecycle,
        )
        self._intents.append(intent)
        return intent

    @staticmethod
    def handle(intent: ResourceIntent, attribute: str = "arn") -> IntentRef | None:
        if intent.cardinality == 0:
            return None
        return IntentRef(intent.address, attribute)

    def finish(self, outputs: GraphOutputs) -> ResourceGraph:
        return ResourceGraph(intents=tuple(self._intents), outputs=outputs)


def build_graph(config: ResolvedConfig, context: RunContext) -> ResourceGraph:
    """Assemble every resource intent for one registry.

    Raises MissingReferenceError when a reuse-mode resource has no override,
    ValidationError when a replication destination is the home region, and
    GraphInvariantError if the wiring ever points at a node that is not
    created.
    """
    if context.region in config.replication_regions:
        raise ValidationError(
            "replicationRegions",
            context.region,
            message=f"replicationRegions: {context.region} is the home region",
        )
    toggles = config.toggles
    names = derive_names(config.env_abbr, config.name)
    canonical = names.canonical
    tags = dict(config.tags)
    builder = _GraphBuilder()

    key_decision = KMS_KEY_CONTROLLER.decide(
        toggles.create_kms_key,
        config.kms_key_override,
        required=toggles.encryption_is_kms,
    )
    key = builder.add(
        singleton_address(ResourceKind.KMS_KEY),
        ResourceKind.KMS_KEY,
        key_decision.cardinality,
        {
            "description": f"ECR encryption key for {canonical}",
            "enable_key_rotation": True,
            "deletion_window_in_days": 30,
            "tags": tags,
        },
        lifecycle=key_decision.lifecycle,
    )
    effective_key = key_decision.effective(builder.handle(key))
    builder.add(
        singleton_address(ResourceKind.KMS_ALIAS),
        ResourceKind.KMS_ALIAS,
        key.cardinality,
        {"name": kms_alias_name(canonical), "target_key_id": builder.handle(key, "key_id")},
    )

    encryption = EncryptionType.KMS if toggles.encryption_is_kms else EncryptionType.AES256
    repository = builder.add(
        singleton_address(ResourceKind.REPOSITORY),
        ResourceKind.REPOSITORY,
        1,
        {
            "name": canonical,
            "image_tag_mutability": toggles.image_tag_mutability.value,
            "encryption_type": encryption.value,
            "kms_key": effective_key.value,
            "scan_on_push": toggles.scan_on_push,
            "force_delete": config.force_delete,
            "tags": tags,
        },
    )
    repo_name = builder.handle(repository, "name")

    public = builder.add(
        singleton_address(ResourceKind.PUBLIC_REPOSITORY),
        ResourceKind.PUBLIC_REPOSITORY,
        int(toggles.create_public_repo),
        {
            "name": canonical,
            "region": PUBLIC_REGISTRY_REGION,
            "description": config.public_repo_description,
            "tags": tags,
        },
    )

    builder.add(
        singleton_address(ResourceKind.LIFECYCLE_POLICY),
        ResourceKind.LIFECYCLE_POLICY,
        int(toggles.create_lifecycle_policy),
        {"repository": repo_name, "policy": config.lifecycle_policy_body},
    )

    access_policy = synthesize_access_policy(
        config.read_only_principals, config.read_write_principals
    )
    builder.add(
        singleton_address(ResourceKind.REPOSITORY_POLICY),
        ResourceKind.REPOSITORY_POLICY,
        int(toggles.attach_repository_policy),
        {
            "repository": repo_name,
            "policy": access_policy.to_json() if access_policy is not None else None,
        },
    )

    for rule in sorted(config.pull_through_rules, key=lambda item: item.prefix):
        builder.add(
            keyed_address(ResourceKind.PULL_THROUGH_CACHE_RULE, rule.prefix),
            ResourceKind.PULL_THROUGH_CACHE_RULE,
            1,
            {
                "ecr_repository_prefix": rule.prefix,
                "upstream_registry_url": rule.upstream_url,
                "credential_arn": rule.credential_arn,
                "registry_id": context.account_id,
            },
            after=(repo_name,),
        )

    builder.add(
        singleton_address(ResourceKind.REGISTRY_POLICY),
        ResourceKind.REGISTRY_POLICY,
        int(toggles.attach_registry_policy),
        {"registry_id": context.account_id, "policy": config.registry_policy_body},
        after=(repo_name,),
    )

    builder.add(
        singleton_address(ResourceKind.SCANNING_CONFIGURATION),
        ResourceKind.SCANNING_CONFIGURATION,
        int(toggles.scan_type is ScanType.ENHANCED),
        {
            "scan_type": toggles.scan_type.value,
            "scan_frequency": toggles.scan_frequency.value,
            "repository_filter": repo_name,
        },
    )

    for region in sorted(config.replication_regions):
        builder.add(
            keyed_address(ResourceKind.REPLICATION_DESTINATION, region),
            ResourceKind.REPLICATION_DESTINATION,
            1,
            {
                "region": region,
                "registry_id": context.account_id,
                "repository_filter": repo_name,
            },
        )

    network = config.network
    endpoint_ids: list[IntentRef] = []
    for service in ENDPOINT_SERVICES:
        endpoint = builder.add(
            keyed_address(ResourceKind.VPC_ENDPOINT, service),
            ResourceKind.VPC_ENDPOINT,
            int(toggles.create_vpc_endpoints),
            {
                "service_name": context.service_name(service),
                "vpc_endpoint_type": "Interface",
                "vpc_id": network.vpc_id if network else None,
                "subnet_ids": network.subnet_ids if network else (),
                "security_group_ids": network.security_group_ids if network else (),
                "private_dns_enabled": True,
                "tags": tags,
            },
        )
        endpoint_ref = builder.handle(endpoint, "id")
        if endpoint_ref is not None:
            endpoint_ids.append(endpoint_ref)

    signing_decision = SIGNING_PROFILE_CONTROLLER.decide(
        toggles.enable_signing_profile,
        config.signing_profile_override,
        required=False,
    )
    signing = builder.add(
        singleton_address(ResourceKind.SIGNING_PROFILE),
        ResourceKind.SIGNING_PROFILE,
        signing_decision.cardinality,
        {
            "name": names.restricted,
            "platform_id": SIGNING_PLATFORM_ID,
            "signature_validity_months": config.signature_validity_months,
            "tags": tags,
        },
        lifecycle=signing_decision.lifecycle,
    )
    effective_signing = signing_decision.effective(builder.handle(signing))

    audit = config.audit
    log_group = builder.add(
        singleton_address(ResourceKind.LOG_GROUP, "audit"),
        ResourceKind.LOG_GROUP,
        int(toggles.create_cloud_trail),
        {
            "name": audit_log_group_name(canonical),
            "retention_in_days": audit.retention_days if audit else None,
            "tags": tags,
        },
    )
    log_group_arn = resolve(toggles.create_cloud_trail, None, builder.handle(log_group))
    builder.add(
        singleton_address(ResourceKind.AUDIT_TRAIL, "audit"),
        ResourceKind.AUDIT_TRAIL,
        int(toggles.create_cloud_trail),
        {
            "name": audit_trail_name(canonical),
            "s3_bucket_name": audit.bucket_name if audit else None,
            "cloud_watch_logs_group_arn": log_group_arn,
            "cloud_watch_logs_role_arn": audit.role_arn if audit else None,
            "include_global_service_events": False,
            "is_multi_region_trail": False,
            "tags": tags,
        },
    )

    outputs = GraphOutputs(
        repository_url=IntentRef(repository.address, "repository_url"),
        repository_arn=IntentRef(repository.address, "arn"),
        public_repository_uri=builder.handle(public, "repository_uri"),
        kms_key=effective_key,
        signing_profile=effective_signing,
        endpoint_ids=tuple(endpoint_ids),
    )
    graph = builder.finish(outputs)
    logger.info(
        "built resource graph for %s: %d intents, %d created",
        canonical,
        len(graph.intents),
        len(graph.created()),
    )
    return graph


@dataclass(frozen=True, slots=True)
class Transition:
    address: str
    action: TransitionAction


def diff_graphs(previous: ResourceGraph | None, current: ResourceGraph) -> list[Transition]:
    """Actions an engine may take to move from ``previous`` to ``current``.

    Nodes created on both sides are kept, or updated when their inputs
    differ. Guarded resources (customer-managed key, signing profile) that
    drop to cardinality 0 are orphaned, never destroyed.
    """
    before = {intent.address: intent for intent in previous.intents} if previous else {}
    after = {intent.address: intent for intent in current.intents}
    addresses = [intent.address for intent in current.intents]
    addresses.extend(address for address in before if address not in after)

    transitions: list[Transition] = []
    for address in addresses:
        old = before.get(address)
        new = after.get(address)
        guarded = any(item is not None and item.lifecycle.prevent_destroy for item in (old, new))
        action = plan_transition(
            old.cardinality if old else 0,
            new.cardinality if new else 0,
            GUARDED if guarded else UNGUARDED,
            changed=old is not None and new is not None and old.inputs != new.inputs,
        )
        if action is not TransitionAction.NOOP:
            transitions.append(Transition(address=address, action=action))
    return transitions

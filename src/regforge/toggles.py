"""Raw configuration parsing and the canonical toggle set."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from regforge.errors import ValidationError
from regforge.policy import AccessLevel, synthesize_access_policy

logger = logging.getLogger(__name__)


class ImageTagMutability(str, Enum):
    IMMUTABLE = "IMMUTABLE"
    MUTABLE = "MUTABLE"


class EncryptionType(str, Enum):
    AES256 = "AES256"
    KMS = "KMS"


class ScanType(str, Enum):
    BASIC = "BASIC"
    ENHANCED = "ENHANCED"


class ScanFrequency(str, Enum):
    CONTINUOUS = "CONTINUOUS"
    DAILY = "DAILY"


LOG_RETENTION_DAYS = (
    1, 3, 5, 7, 14, 30, 60, 90, 120, 150, 180, 365, 400, 545, 731,
    1096, 1827, 2192, 2557, 2922, 3288, 3653,
)

DEFAULT_LIFECYCLE_POLICY = json.dumps(
    {
        "rules": [
            {
                "rulePriority": 1,
                "description": "Expire untagged images after 14 days",
                "selection": {
                    "tagStatus": "untagged",
                    "countType": "sinceImagePushed",
                    "countUnit": "days",
                    "countNumber": 14,
                },
                "action": {"type": "expire"},
            },
            {
                "rulePriority": 2,
                "description": "Keep the last 30 images",
                "selection": {
                    "tagStatus": "any",
                    "countType": "imageCountMoreThan",
                    "countNumber": 30,
                },
                "action": {"type": "expire"},
            },
        ]
    },
    sort_keys=True,
)


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )


class PullThroughRuleInput(_ConfigModel):
    prefix: str = Field(min_length=1)
    upstream_url: str = Field(min_length=1)
    credential_arn: str | None = None


class RegistryConfig(_ConfigModel):
    name: str
    env_abbr: str = ""
    image_tag_mutability: str = ImageTagMutability.IMMUTABLE.value
    encryption_type: str = EncryptionType.AES256.value
    kms_key_override: str | None = None
    create_kms_key: bool | None = None
    enable_scanning_on_push: bool = True
    scan_type: str = ScanType.BASIC.value
    scan_frequency: str = ScanFrequency.CONTINUOUS.value
    create_lifecycle_policy: bool = False
    lifecycle_policy_body: str | None = None
    replication_regions: list[str] = Field(default_factory=list)
    pull_through_cache_rules: list[PullThroughRuleInput] = Field(default_factory=list)
    allowed_principals: list[str] = Field(default_factory=list)
    access_level: str = AccessLevel.READ_ONLY.value
    read_write_principals: list[str] = Field(default_factory=list)
    registry_policy_body: str | None = None
    create_public_repo: bool = False
    public_repo_description: str = ""
    force_delete: bool = False
    create_vpc_endpoints: bool = False
    vpc_id: str | None = None
    subnet_ids: list[str] = Field(default_factory=list)
    security_group_ids: list[str] = Field(default_factory=list)
    enable_signing_profile: bool = False
    existing_signing_profile_override: str | None = None
    signature_validity_months: int = Field(default=135, ge=1, le=135)
    create_audit_trail: bool = False
    audit_bucket_name: str | None = None
    audit_role_arn: str | None = None
    audit_retention_days: int = 90
    tags: dict[str, str] = Field(default_factory=dict)


def _coerce_enum(field: str, value: object, enum_cls: type[Enum]) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(field, value, [member.value for member in enum_cls]) from None


@dataclass(frozen=True, slots=True)
class ToggleSet:
    encryption_is_kms: bool = False
    create_kms_key: bool = False
    create_public_repo: bool = False
    create_lifecycle_policy: bool = False
    create_vpc_endpoints: bool = False
    enable_signing_profile: bool = False
    create_cloud_trail: bool = False
    attach_repository_policy: bool = False
    attach_registry_policy: bool = False
    scan_on_push: bool = True
    image_tag_mutability: ImageTagMutability = ImageTagMutability.IMMUTABLE
    scan_type: ScanType = ScanType.BASIC
    scan_frequency: ScanFrequency = ScanFrequency.CONTINUOUS

    def __post_init__(self) -> None:
        enum_fields = (
            ("image_tag_mutability", "imageTagMutability", ImageTagMutability),
            ("scan_type", "scanType", ScanType),
            ("scan_frequency", "scanFrequency", ScanFrequency),
        )
        for attr, field, enum_cls in enum_fields:
            object.__setattr__(self, attr, _coerce_enum(field, getattr(self, attr), enum_cls))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            out[item.name] = value.value if isinstance(value, Enum) else value
        return out


@dataclass(frozen=True, slots=True)
class PullThroughRule:
    prefix: str
    upstream_url: str
    credential_arn: str | None = None


@dataclass(frozen=True, slots=True)
class NetworkInputs:
    vpc_id: str
    subnet_ids: tuple[str, ...]
    security_group_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class AuditInputs:
    bucket_name: str
    role_arn: str | None
    retention_days: int


@dataclass(frozen=True, slots=True)
class ResolvedConfig:
    name: str
    env_abbr: str
    toggles: ToggleSet
    kms_key_override: str | None = None
    signing_profile_override: str | None = None
    lifecycle_policy_body: str | None = None
    registry_policy_body: str | None = None
    replication_regions: tuple[str, ...] = ()
    pull_through_rules: tuple[PullThroughRule, ...] = ()
    read_only_principals: tuple[str, ...] = ()
    read_write_principals: tuple[str, ...] = ()
    public_repo_description: str = ""
    force_delete: bool = False
    network: NetworkInputs | None = None
    audit: AuditInputs | None = None
    signature_validity_months: int = 135
    tags: tuple[tuple[str, str], ...] = ()


def _parse(raw: Mapping[str, Any]) -> RegistryConfig:
    try:
        return RegistryConfig.model_validate(dict(raw))
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "config"
        raise ValidationError(
            field,
            first.get("input"),
            message=f"{field}: {first['msg']}",
        ) from exc


def _require_json(field: str, body: str) -> None:
    try:
        json.loads(body)
    except json.JSONDecodeError as exc:
        raise ValidationError(field, body, message=f"{field}: not valid JSON ({exc.msg})") from exc


def _unique(field: str, values: list[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    for value in values:
        if value in seen:
            raise ValidationError(field, value, message=f"{field}: duplicate entry {value!r}")
        seen.add(value)
    return tuple(values)


def _principals(field: str, values: list[str]) -> list[str]:
    cleaned = [value.strip() for value in values]
    for value in cleaned:
        if not value:
            raise ValidationError(field, value, message=f"{field}: blank principal")
    return cleaned


def _network(cfg: RegistryConfig) -> NetworkInputs | None:
    if not cfg.create_vpc_endpoints:
        return None
    if not cfg.vpc_id:
        raise ValidationError("vpcId", cfg.vpc_id, message="vpcId: required for VPC endpoints")
    if not cfg.subnet_ids:
        raise ValidationError(
            "subnetIds", cfg.subnet_ids, message="subnetIds: at least one subnet required"
        )
    return NetworkInputs(
        vpc_id=cfg.vpc_id,
        subnet_ids=tuple(sorted(set(cfg.subnet_ids))),
        security_group_ids=tuple(sorted(set(cfg.security_group_ids))),
    )


def _audit(cfg: RegistryConfig) -> AuditInputs | None:
    if not cfg.create_audit_trail:
        return None
    if not cfg.audit_bucket_name:
        raise ValidationError(
            "auditBucketName",
            cfg.audit_bucket_name,
            message="auditBucketName: required for the audit trail",
        )
    if cfg.audit_retention_days not in LOG_RETENTION_DAYS:
        raise ValidationError("auditRetentionDays", cfg.audit_retention_days, LOG_RETENTION_DAYS)
    return AuditInputs(
        bucket_name=cfg.audit_bucket_name,
        role_arn=cfg.audit_role_arn,
        retention_days=cfg.audit_retention_days,
    )


def resolve_toggles(raw: Mapping[str, Any]) -> ResolvedConfig:
    """Validate a raw configuration mapping into a ResolvedConfig.

    Raises ValidationError on the first bad field; nothing is partially
    resolved.
    """
    cfg = _parse(raw)
    if not cfg.name:
        raise ValidationError("name", cfg.name, message="name: must be non-empty")

    encryption = _coerce_enum("encryptionType", cfg.encryption_type, EncryptionType)
    access_level = _coerce_enum("accessLevel", cfg.access_level, AccessLevel)
    encryption_is_kms = encryption is EncryptionType.KMS

    kms_override = cfg.kms_key_override or None
    if kms_override is not None and not encryption_is_kms:
        logger.warning("kmsKeyOverride ignored: encryptionType is %s", encryption.value)
        kms_override = None
    if cfg.create_kms_key is None:
        create_kms_key = encryption_is_kms and kms_override is None
    else:
        create_kms_key = encryption_is_kms and cfg.create_kms_key

    allowed = _principals("allowedPrincipals", cfg.allowed_principals)
    writers = _principals("readWritePrincipals", cfg.read_write_principals)
    if access_level is AccessLevel.READ_WRITE:
        read_only: list[str] = []
        read_write = [*allowed, *writers]
    else:
        read_only = allowed
        read_write = writers
    access_policy = synthesize_access_policy(read_only, read_write)

    lifecycle_body = cfg.lifecycle_policy_body
    if cfg.create_lifecycle_policy:
        lifecycle_body = lifecycle_body or DEFAULT_LIFECYCLE_POLICY
        _require_json("lifecyclePolicyBody", lifecycle_body)
    else:
        lifecycle_body = None
    if cfg.registry_policy_body is not None:
        _require_json("registryPolicyBody", cfg.registry_policy_body)

    toggles = ToggleSet(
        encryption_is_kms=encryption_is_kms,
        create_kms_key=create_kms_key,
        create_public_repo=cfg.create_public_repo,
        create_lifecycle_policy=cfg.create_lifecycle_policy,
        create_vpc_endpoints=cfg.create_vpc_endpoints,
        enable_signing_profile=cfg.enable_signing_profile,
        create_cloud_trail=cfg.create_audit_trail,
        attach_repository_policy=access_policy is not None,
        attach_registry_policy=cfg.registry_policy_body is not None,
        scan_on_push=cfg.enable_scanning_on_push,
        image_tag_mutability=cfg.image_tag_mutability,
        scan_type=cfg.scan_type,
        scan_frequency=cfg.scan_frequency,
    )

    _unique("pullThroughCacheRules.prefix", [rule.prefix for rule in cfg.pull_through_cache_rules])
    rules = tuple(
        PullThroughRule(
            prefix=rule.prefix,
            upstream_url=rule.upstream_url,
            credential_arn=rule.credential_arn,
        )
        for rule in cfg.pull_through_cache_rules
    )
    return ResolvedConfig(
        name=cfg.name,
        env_abbr=cfg.env_abbr,
        toggles=toggles,
        kms_key_override=kms_override,
        signing_profile_override=cfg.existing_signing_profile_override or None,
        lifecycle_policy_body=lifecycle_body,
        registry_policy_body=cfg.registry_policy_body,
        replication_regions=_unique("replicationRegions", cfg.replication_regions),
        pull_through_rules=rules,
        read_only_principals=tuple(read_only),
        read_write_principals=tuple(read_write),
        public_repo_description=cfg.public_repo_description,
        force_delete=cfg.force_delete,
        network=_network(cfg),
        audit=_audit(cfg),
        signature_validity_months=cfg.signature_validity_months,
        tags=tuple(sorted(cfg.tags.items())),
    )

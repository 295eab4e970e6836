"""End-to-end: config file -> validated toggles -> graph -> dry-run apply."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import structlog

from regforge.config import RunContext, get_settings
from regforge.errors import ConfigError
from regforge.planner import load_config, plan_registry
from regforge.provisioning import DryRunEngine, apply_graph


def _config_file(tmp_path: Path) -> Path:
    path = tmp_path / "registry.json"
    path.write_text(
        json.dumps(
            {
                "name": "payments-api",
                "envAbbr": "stg",
                "encryptionType": "KMS",
                "createPublicRepo": True,
                "createLifecyclePolicy": True,
                "replicationRegions": ["us-west-2"],
                "pullThroughCacheRules": [
                    {"prefix": "docker-hub", "upstreamUrl": "registry-1.docker.io"}
                ],
                "allowedPrincipals": ["arn:aws:iam::111111111111:root"],
                "createVpcEndpoints": True,
                "vpcId": "vpc-0abc",
                "subnetIds": ["subnet-1", "subnet-2"],
                "enableSigningProfile": True,
                "createAuditTrail": True,
                "auditBucketName": "org-audit",
            }
        ),
        encoding="utf-8",
    )
    return path


def test_full_flow(tmp_path: Path) -> None:
    context = RunContext.from_settings(get_settings())
    config, graph = plan_registry(load_config(_config_file(tmp_path)), context)
    assert config.name == "payments-api"
    assert structlog.contextvars.get_contextvars()["registry"] == "payments-api"

    report = apply_graph(graph, DryRunEngine(context))
    assert report.ok
    assert set(report.materialized) == {intent.address for intent in graph.created()}

    outputs = report.resolve_outputs(graph.outputs)
    assert outputs["repository_url"].endswith("/stg-payments-api")
    assert outputs["public_repository_uri"].endswith("/stg-payments-api")
    assert outputs["kms_key"] == report.materialized["kms_key.this"]["arn"]
    assert len(outputs["endpoint_ids"]) == 2
    assert all(item.startswith("vpce-") for item in outputs["endpoint_ids"])
    assert outputs["signing_profile"].endswith("ecrcontainersigningstgpaymentsapi")


def test_replanning_is_stable(tmp_path: Path) -> None:
    context = RunContext.from_settings(get_settings())
    raw = load_config(_config_file(tmp_path))
    first = plan_registry(raw, context)[1]
    second = plan_registry(raw, context)[1]
    assert first.to_json() == second.to_json()


def test_load_config_errors(tmp_path: Path) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid JSON"):
        load_config(bad)
    with pytest.raises(ConfigError, match="cannot read"):
        load_config(tmp_path / "missing.json")

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from regforge.cli.main import cli


def _write(tmp_path: Path, name: str, payload: object) -> str:
    path = tmp_path / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_validate_prints_toggles(tmp_path: Path) -> None:
    path = _write(tmp_path, "cfg.json", {"name": "myrepo", "encryptionType": "KMS"})
    result = CliRunner().invoke(cli, ["validate", path])
    assert result.exit_code == 0
    assert "config ok: myrepo" in result.output
    assert "create_kms_key: True" in result.output


def test_validate_reports_enum_violation(tmp_path: Path) -> None:
    path = _write(tmp_path, "cfg.json", {"name": "myrepo", "scanType": "DEEP"})
    result = CliRunner().invoke(cli, ["validate", path])
    assert result.exit_code == 1
    assert "scanType" in result.output
    assert "BASIC, ENHANCED" in result.output


def test_validate_rejects_non_object(tmp_path: Path) -> None:
    path = _write(tmp_path, "cfg.json", ["name"])
    result = CliRunner().invoke(cli, ["validate", path])
    assert result.exit_code == 1
    assert "top-level value must be an object" in result.output


def test_plan_lists_created_resources(tmp_path: Path) -> None:
    path = _write(tmp_path, "cfg.json", {"name": "myrepo", "encryptionType": "KMS"})
    result = CliRunner().invoke(cli, ["plan", path])
    assert result.exit_code == 0
    assert "+ kms_key.this [retain]" in result.output
    assert "+ repository.this <- kms_key.this" in result.output
    assert "3 of" in result.output


def test_plan_json_is_parseable(tmp_path: Path) -> None:
    path = _write(tmp_path, "cfg.json", {"name": "myrepo"})
    result = CliRunner().invoke(cli, ["plan", path, "--json"])
    assert result.exit_code == 0
    rendered = json.loads(result.output)
    assert rendered["layers"] == [["repository.this"]]
    assert rendered["outputs"]["public_repository_uri"] is None


def test_plan_reports_missing_reference(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "cfg.json",
        {"name": "myrepo", "encryptionType": "KMS", "createKmsKey": False},
    )
    result = CliRunner().invoke(cli, ["plan", path])
    assert result.exit_code == 1
    assert "kmsKeyOverride" in result.output


def test_preview_uses_region_override(tmp_path: Path) -> None:
    path = _write(tmp_path, "cfg.json", {"name": "myrepo", "envAbbr": "dev"})
    result = CliRunner().invoke(cli, ["--region", "us-east-2", "preview", path])
    assert result.exit_code == 0
    outputs = json.loads(result.output)
    assert outputs["repository_url"] == "123456789012.dkr.ecr.us-east-2.amazonaws.com/dev-myrepo"


def test_diff_shows_orphaned_signing_profile(tmp_path: Path) -> None:
    before = _write(tmp_path, "before.json", {"name": "myrepo", "enableSigningProfile": True})
    after = _write(
        tmp_path,
        "after.json",
        {"name": "myrepo", "existingSigningProfileOverride": "arn:x"},
    )
    result = CliRunner().invoke(cli, ["diff", before, after])
    assert result.exit_code == 0
    assert "orphan   signing_profile.this" in result.output
    assert "destroy" not in result.output


def test_diff_no_changes(tmp_path: Path) -> None:
    path = _write(tmp_path, "cfg.json", {"name": "myrepo"})
    result = CliRunner().invoke(cli, ["diff", path, path])
    assert result.exit_code == 0
    assert "no changes" in result.output


def test_prod_requires_real_account(tmp_path: Path, monkeypatch) -> None:
    from regforge.config import get_settings

    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("AWS_ACCOUNT_ID", "000000000000")
    get_settings.cache_clear()
    path = _write(tmp_path, "cfg.json", {"name": "myrepo"})
    result = CliRunner().invoke(cli, ["plan", path])
    assert result.exit_code == 1
    assert "invalid production configuration" in result.output


def test_diff_reports_repository_update(tmp_path: Path) -> None:
    before = _write(tmp_path, "before.json", {"name": "a"})
    after = _write(tmp_path, "after.json", {"name": "b", "imageTagMutability": "MUTABLE"})
    result = CliRunner().invoke(cli, ["diff", before, after])
    assert result.exit_code == 0
    assert "update   repository.this" in result.output
    assert "no changes" not in result.output


def test_plan_rejects_home_region_replication(tmp_path: Path) -> None:
    path = _write(tmp_path, "cfg.json", {"name": "myrepo", "replicationRegions": ["eu-west-1"]})
    result = CliRunner().invoke(cli, ["plan", path])
    assert result.exit_code == 1
    assert "home region" in result.output

import json

import pytest

from regforge.policy import (
    PULL_ACTIONS,
    PUSH_ACTIONS,
    AccessLevel,
    synthesize,
    synthesize_access_policy,
)


@pytest.mark.parametrize("level", list(AccessLevel))
def test_empty_principals_yield_no_document(level: AccessLevel) -> None:
    assert synthesize([], level) is None


@pytest.mark.parametrize("level", list(AccessLevel))
def test_single_statement_for_principals(level: AccessLevel) -> None:
    principals = {"arn:aws:iam::111111111111:root", "arn:aws:iam::222222222222:role/ci"}
    doc = synthesize(principals, level)
    assert doc is not None
    assert len(doc.statements) == 1
    statement = doc.statements[0]
    assert statement.effect == "Allow"
    assert set(statement.principals) == principals


@pytest.mark.parametrize(
    "principals",
    [
        {"arn:a"},
        {"arn:a ", "arn:b"},
        {"", "arn:a"},
        {"arn:aws:iam::111111111111:root", "arn:aws:iam::222222222222:role/ci", "*"},
    ],
)
@pytest.mark.parametrize("level", list(AccessLevel))
def test_statement_principals_equal_input_set(principals: set[str], level: AccessLevel) -> None:
    doc = synthesize(principals, level)
    assert doc is not None
    assert len(doc.statements) == 1
    assert set(doc.statements[0].principals) == principals


def test_read_only_actions() -> None:
    doc = synthesize(["arn:a"], AccessLevel.READ_ONLY)
    assert doc is not None
    assert doc.statements[0].actions == PULL_ACTIONS


def test_read_write_actions_are_pull_then_push() -> None:
    doc = synthesize(["arn:a"], AccessLevel.READ_WRITE)
    assert doc is not None
    assert doc.statements[0].actions == PULL_ACTIONS + PUSH_ACTIONS


def test_rendering_is_stable_across_input_order() -> None:
    first = synthesize(["arn:b", "arn:a"], AccessLevel.READ_WRITE)
    second = synthesize(["arn:a", "arn:b"], AccessLevel.READ_WRITE)
    assert first is not None and second is not None
    assert first == second
    assert first.to_json() == second.to_json()


def test_to_dict_shape() -> None:
    doc = synthesize(["arn:a"], AccessLevel.READ_ONLY)
    assert doc is not None
    rendered = json.loads(doc.to_json())
    assert rendered["Version"] == "2012-10-17"
    assert rendered["Statement"][0]["Principal"] == {"AWS": ["arn:a"]}
    assert rendered["Statement"][0]["Action"][0] == "ecr:GetDownloadUrlForLayer"


def test_overlapping_principals_get_read_write_only() -> None:
    doc = synthesize_access_policy(["arn:a", "arn:shared"], ["arn:shared", "arn:w"])
    assert doc is not None
    by_sid = {statement.sid: statement for statement in doc.statements}
    assert by_sid["AllowPull"].principals == ("arn:a",)
    assert by_sid["AllowPushPull"].principals == ("arn:shared", "arn:w")
    assert by_sid["AllowPushPull"].actions == PULL_ACTIONS + PUSH_ACTIONS


def test_fully_overlapping_read_set_collapses_to_one_statement() -> None:
    doc = synthesize_access_policy(["arn:shared"], ["arn:shared"])
    assert doc is not None
    assert len(doc.statements) == 1
    assert doc.statements[0].principals == ("arn:shared",)
    assert "ecr:PutImage" in doc.statements[0].actions


def test_access_policy_absent_when_both_empty() -> None:
    assert synthesize_access_policy([], []) is None

import pytest

from regforge.effective import ABSENT, Provenance, resolve, resolve_effective


@pytest.mark.parametrize("created", [None, "arn:created"])
def test_resolve_toggle_off_returns_override(created: str | None) -> None:
    assert resolve(False, "arn:override", created) == "arn:override"
    assert resolve(False, None, created) is None


@pytest.mark.parametrize("override", [None, "arn:override"])
def test_resolve_toggle_on_returns_created(override: str | None) -> None:
    assert resolve(True, override, "arn:created") == "arn:created"
    assert resolve(True, override, None) is None


def test_resolve_effective_provenance() -> None:
    assert resolve_effective(True, None, "arn:k").provenance is Provenance.INTERNALLY_CREATED
    assert resolve_effective(False, "arn:x", None).provenance is Provenance.EXTERNAL_OVERRIDE
    assert resolve_effective(False, None, None) == ABSENT
    assert resolve_effective(True, "arn:x", None) == ABSENT


def test_effective_value_present() -> None:
    assert resolve_effective(False, "arn:x", None).present is True
    assert ABSENT.present is False

"""Tests for error hierarchy."""

from regforge.errors import (
    ConfigError,
    GraphInvariantError,
    MissingReferenceError,
    ProvisioningError,
    RegforgeError,
    ValidationError,
)


def test_hierarchy() -> None:
    assert issubclass(ValidationError, RegforgeError)
    assert issubclass(MissingReferenceError, RegforgeError)
    assert issubclass(GraphInvariantError, RegforgeError)
    assert issubclass(ConfigError, RegforgeError)
    assert issubclass(ProvisioningError, RegforgeError)


def test_retryable_default() -> None:
    assert RegforgeError("test").retryable is False
    assert ValidationError("scanType", "X", ["BASIC"]).retryable is False
    assert MissingReferenceError("kms_key").retryable is False
    assert ProvisioningError("repository.this").retryable is True
    assert ProvisioningError("repository.this", retryable=False).retryable is False


def test_validation_error_message_lists_allowed() -> None:
    err = ValidationError("imageTagMutability", "SOMETIMES", ["IMMUTABLE", "MUTABLE"])
    assert err.field == "imageTagMutability"
    assert err.allowed == ("IMMUTABLE", "MUTABLE")
    assert str(err) == "imageTagMutability: 'SOMETIMES' is not one of [IMMUTABLE, MUTABLE]"


def test_missing_reference_names_override_field() -> None:
    err = MissingReferenceError("kms_key", "kmsKeyOverride")
    assert "kmsKeyOverride" in str(err)
    assert err.resource == "kms_key"


def test_catch_as_regforge_error() -> None:
    try:
        raise ProvisioningError("kms_key.this", "throttled")
    except RegforgeError as exc:
        assert exc.retryable is True
        assert str(exc) == "throttled"

"""Regforge exception hierarchy.

All regforge-specific exceptions inherit from RegforgeError. Validation and
reference errors are raised before any graph exists; provisioning errors are
reported per node by ``regforge.provisioning.apply_graph``.
"""

from __future__ import annotations

from collections.abc import Iterable


class RegforgeError(Exception):
    """Base exception for all regforge errors."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ValidationError(RegforgeError):
    """A configuration field holds a value outside its allowed set."""

    def __init__(
        self,
        field: str,
        value: object,
        allowed: Iterable[object] = (),
        message: str = "",
    ) -> None:
        self.field = field
        self.value = value
        self.allowed = tuple(allowed)
        if not message:
            if self.allowed:
                choices = ", ".join(str(item) for item in self.allowed)
                message = f"{field}: {value!r} is not one of [{choices}]"
            else:
                message = f"{field}: invalid value {value!r}"
        super().__init__(message)


class MissingReferenceError(RegforgeError):
    """Reuse mode was selected without an override identifier."""

    def __init__(self, resource: str, override_field: str = "") -> None:
        self.resource = resource
        self.override_field = override_field
        hint = f" (set {override_field})" if override_field else ""
        super().__init__(f"{resource}: reuse mode requires an existing identifier{hint}")


class GraphInvariantError(RegforgeError):
    """A built graph references a node that was not created."""


class ConfigError(RegforgeError):
    """Invalid or missing process configuration."""


class ProvisioningError(RegforgeError):
    """The provisioning engine failed to materialize a single node."""

    def __init__(self, address: str, message: str = "", *, retryable: bool = True) -> None:
        self.address = address
        super().__init__(message or f"{address}: provisioning failed", retryable=retryable)

"""Per-kind rules for preliminary context requests."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import assert_never

from backforge_schemas.artifacts import Artifact
from backforge_schemas.primitives import PhaseName, PreliminaryKind


@dataclass(frozen=True, slots=True)
class KindSpec:
    """Static description of a requestable kind.

    Attributes:
        kind: Kind described.
        phase: Phase whose snapshot supplies the items.
        previous: Whether items come from the superseded snapshot.
        label: Singular human-readable item label.
        request_type: Discriminator value of the request arm.
        selects: Predicate choosing artifacts of this kind.
        identify: Identifier of an artifact as the model requests it.
        normalize: Canonicalizes a requested identifier before lookup.
    """

    kind: PreliminaryKind
    phase: PhaseName
    previous: bool
    label: str
    request_type: str
    selects: Callable[[Artifact], bool]
    identify: Callable[[Artifact], str]
    normalize: Callable[[str], str]

    @property
    def arm_name(self) -> str:
        """Name of the request arm definition in the tool schema."""
        return self.request_type[:1].upper() + self.request_type[1:]

    @property
    def current_kind(self) -> PreliminaryKind:
        """Kind serving the same items from the latest snapshot."""
        return PreliminaryKind(self.kind.removeprefix("previous_"))


def _any_artifact(artifact: Artifact) -> bool:
    return True


def _has_endpoint(artifact: Artifact) -> bool:
    return artifact.endpoint is not None


def _has_no_endpoint(artifact: Artifact) -> bool:
    return artifact.endpoint is None


def _by_name(artifact: Artifact) -> str:
    return artifact.name


def _by_endpoint(artifact: Artifact) -> str:
    if artifact.endpoint is None:
        raise ValueError(f"artifact {artifact.name} does not implement an endpoint")
    return artifact.endpoint.key


def _strip(value: str) -> str:
    return value.strip()


def normalize_endpoint_id(value: str) -> str:
    """Canonicalize ``"GET /users"`` style identifiers to ``"get /users"``.

    Args:
        value: Requested endpoint identifier.

    Returns:
        str: Identifier with a lowercase method and single separator.
    """
    method, _, path = value.strip().partition(" ")
    if not path:
        return value.strip()
    return f"{method.lower()} {path.strip()}"


def _request_type(kind: PreliminaryKind) -> str:
    head, *rest = kind.value.split("_")
    return "get" + head.capitalize() + "".join(part.capitalize() for part in rest)


def _build_spec(kind: PreliminaryKind) -> KindSpec:
    match kind:
        case PreliminaryKind.ANALYSIS_FILES | PreliminaryKind.PREVIOUS_ANALYSIS_FILES:
            phase, label = PhaseName.ANALYZE, "analysis file"
            selects, identify, normalize = _any_artifact, _by_name, _strip
        case (
            PreliminaryKind.DATABASE_SCHEMAS | PreliminaryKind.PREVIOUS_DATABASE_SCHEMAS
        ):
            phase, label = PhaseName.SCHEMA, "database schema"
            selects, identify, normalize = _any_artifact, _by_name, _strip
        case (
            PreliminaryKind.INTERFACE_OPERATIONS
            | PreliminaryKind.PREVIOUS_INTERFACE_OPERATIONS
        ):
            phase, label = PhaseName.INTERFACE, "interface operation"
            selects, identify = _has_endpoint, _by_endpoint
            normalize = normalize_endpoint_id
        case (
            PreliminaryKind.INTERFACE_SCHEMAS
            | PreliminaryKind.PREVIOUS_INTERFACE_SCHEMAS
        ):
            phase, label = PhaseName.INTERFACE, "interface schema"
            selects, identify, normalize = _has_no_endpoint, _by_name, _strip
        case _:
            assert_never(kind)
    previous = kind.value.startswith("previous_")
    if previous:
        label = f"previous {label}"
    return KindSpec(
        kind=kind,
        phase=phase,
        previous=previous,
        label=label,
        request_type=_request_type(kind),
        selects=selects,
        identify=identify,
        normalize=normalize,
    )


KIND_SPECS: dict[PreliminaryKind, KindSpec] = {
    kind: _build_spec(kind) for kind in PreliminaryKind
}
REQUEST_TYPE_TO_KIND: dict[str, PreliminaryKind] = {
    spec.request_type: kind for kind, spec in KIND_SPECS.items()
}

# Kinds whose loaded items pull in the items they reference.
REFERENCING_KINDS = frozenset({
    PreliminaryKind.INTERFACE_OPERATIONS,
    PreliminaryKind.INTERFACE_SCHEMAS,
})
# Kinds searched, in order, when resolving a reference.
REFERENCED_KINDS = (
    PreliminaryKind.INTERFACE_SCHEMAS,
    PreliminaryKind.DATABASE_SCHEMAS,
)

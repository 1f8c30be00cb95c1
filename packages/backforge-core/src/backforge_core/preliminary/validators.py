"""Validator closures for requested preliminary identifiers."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence

from backforge_core.preliminary.kinds import KIND_SPECS, KindSpec
from backforge_schemas.preliminary import PreliminaryIssue, PreliminaryItem
from backforge_schemas.primitives import PreliminaryKind

type IdValidator = Callable[
    [Sequence[str], Mapping[str, PreliminaryItem], Mapping[str, PreliminaryItem]],
    list[PreliminaryIssue],
]


def _describe_missing(spec: KindSpec, value: str, remaining: int) -> str:
    description = (
        f'The {spec.label} "{value}" does not exist. '
        "Request only identifiers listed in `expected`."
    )
    if remaining == 0:
        description += (
            f" Every {spec.label} is already loaded; do not call"
            f" {spec.request_type} again."
        )
    return description


def _make_id_validator(spec: KindSpec) -> IdValidator:
    def validate_ids(
        ids: Sequence[str],
        all_items: Mapping[str, PreliminaryItem],
        local_items: Mapping[str, PreliminaryItem],
    ) -> list[PreliminaryIssue]:
        expected = " | ".join(all_items)
        remaining = len(all_items) - len(local_items)
        issues: list[PreliminaryIssue] = []
        for index, raw in enumerate(ids):
            if spec.normalize(raw) in all_items:
                continue
            issues.append(
                PreliminaryIssue(
                    path=f"$input.request.ids[{index}]",
                    expected=expected,
                    value=raw,
                    description=_describe_missing(spec, raw, remaining),
                )
            )
        return issues

    return validate_ids


ID_VALIDATORS: dict[PreliminaryKind, IdValidator] = {
    kind: _make_id_validator(spec) for kind, spec in KIND_SPECS.items()
}

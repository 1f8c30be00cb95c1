"""Unit tests for the exit code registry."""

from __future__ import annotations

import pytest

from backforge_core.ports import (
    BatchErrorCode,
    CorrectionErrorCode,
    ModelErrorCode,
    PipelineErrorCode,
    PreliminaryErrorCode,
    StorageErrorCode,
)
from backforge_schemas.exit_codes import (
    DOMAIN_PREFIXES,
    ERROR_CODE_TO_EXIT_CODE,
    ExitCode,
    resolve_exit_code,
)


@pytest.mark.parametrize(
    ("error_code", "domain", "expected"),
    [
        ("config_error", None, ExitCode.CONFIG_ERROR),
        ("validation_error", None, ExitCode.VALIDATION_ERROR),
        ("prerequisite_violation", "pipeline", ExitCode.PIPELINE_ERROR),
        ("validator_exception", "correction", ExitCode.VALIDATOR_ERROR),
        ("rag_limit_exceeded", "preliminary", ExitCode.PRELIMINARY_ERROR),
        ("invalid_limit", "batch", ExitCode.CONFIG_ERROR),
        ("duplicate_name", "naming", ExitCode.NAMING_ERROR),
        ("validation_error", "storage", ExitCode.STORAGE_ERROR),
        ("retries_exhausted", "model", ExitCode.MODEL_ERROR),
    ],
)
def test_resolve_exit_code(
    error_code: str, domain: str | None, expected: ExitCode
) -> None:
    """Known codes resolve to their category."""
    assert resolve_exit_code(error_code, domain=domain) == expected


def test_unknown_code_is_runtime_error() -> None:
    """Unmapped codes fall back to the runtime error exit code."""
    assert resolve_exit_code("mystery", domain="pipeline") == ExitCode.RUNTIME_ERROR


def test_qualified_lookup_falls_back_to_unqualified() -> None:
    """A domain without a qualified entry uses the bare code."""
    assert resolve_exit_code("config_error", domain="pipeline") == (
        ExitCode.CONFIG_ERROR
    )


@pytest.mark.parametrize(
    "code_enum",
    [
        BatchErrorCode,
        CorrectionErrorCode,
        ModelErrorCode,
        PipelineErrorCode,
        PreliminaryErrorCode,
        StorageErrorCode,
    ],
)
def test_every_domain_error_code_is_mapped(code_enum: type) -> None:
    """Every domain error code has an explicit exit code."""
    domain = DOMAIN_PREFIXES[code_enum.__name__]
    for code in code_enum:
        assert f"{domain}.{code.value}" in ERROR_CODE_TO_EXIT_CODE


def test_exit_codes_are_unique() -> None:
    """Exit code values do not collide."""
    values = [member.value for member in ExitCode]
    assert len(values) == len(set(values))

"""CLI exit code taxonomy and error-to-exit-code registry.

Exit code ranges:
- 0: Success
- 10-19: Client/input errors (config, validation)
- 20-29: Domain errors (pipeline sequencing, correction, preliminary, batch,
  naming, storage)
- 30-39: External service errors (model, validator)
- 99: Unexpected runtime errors
"""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """CLI exit codes by failure category."""

    SUCCESS = 0
    CONFIG_ERROR = 10
    VALIDATION_ERROR = 11
    PIPELINE_ERROR = 20
    CORRECTION_ERROR = 21
    PRELIMINARY_ERROR = 22
    BATCH_ERROR = 23
    NAMING_ERROR = 24
    STORAGE_ERROR = 25
    VALIDATOR_ERROR = 30
    MODEL_ERROR = 31
    RUNTIME_ERROR = 99


# Domain error codes are qualified with a domain prefix to avoid collisions.
# CLI-level codes are stored without a prefix for direct lookup.
ERROR_CODE_TO_EXIT_CODE: dict[str, ExitCode] = {
    # --- CLI-level codes (no prefix) ---
    "config_error": ExitCode.CONFIG_ERROR,
    "validation_error": ExitCode.VALIDATION_ERROR,
    "runtime_error": ExitCode.RUNTIME_ERROR,
    # --- Pipeline domain ---
    "pipeline.prerequisite_violation": ExitCode.PIPELINE_ERROR,
    "pipeline.phase_execution_failed": ExitCode.PIPELINE_ERROR,
    "pipeline.executor_missing": ExitCode.CONFIG_ERROR,
    # --- Correction domain ---
    "correction.validator_exception": ExitCode.VALIDATOR_ERROR,
    "correction.invalid_state": ExitCode.CORRECTION_ERROR,
    # --- Preliminary domain ---
    "preliminary.rag_limit_exceeded": ExitCode.PRELIMINARY_ERROR,
    "preliminary.invalid_tool_call": ExitCode.PRELIMINARY_ERROR,
    "preliminary.invalid_schema": ExitCode.CONFIG_ERROR,
    # --- Batch domain ---
    "batch.invalid_limit": ExitCode.CONFIG_ERROR,
    # --- Naming domain ---
    "naming.duplicate_name": ExitCode.NAMING_ERROR,
    # --- Storage domain ---
    "storage.not_found": ExitCode.STORAGE_ERROR,
    "storage.io_error": ExitCode.STORAGE_ERROR,
    "storage.validation_error": ExitCode.STORAGE_ERROR,
    # --- Model domain ---
    "model.request_failed": ExitCode.MODEL_ERROR,
    "model.retries_exhausted": ExitCode.MODEL_ERROR,
}

# Domain prefix for each error code enum (used by resolve_exit_code).
DOMAIN_PREFIXES: dict[str, str] = {
    "PipelineErrorCode": "pipeline",
    "CorrectionErrorCode": "correction",
    "PreliminaryErrorCode": "preliminary",
    "BatchErrorCode": "batch",
    "ModelErrorCode": "model",
    "StorageErrorCode": "storage",
}


def resolve_exit_code(error_code: str, *, domain: str | None = None) -> ExitCode:
    """Resolve an error code string to its ExitCode.

    Args:
        error_code: The error code string (e.g. "validation_error",
            "prerequisite_violation").
        domain: Optional domain prefix (e.g. "pipeline", "correction").
            When provided, the lookup uses ``"{domain}.{error_code}"``
            first, falling back to an unqualified lookup.

    Returns:
        The matching ExitCode, or RUNTIME_ERROR if no mapping is found.
    """
    if domain:
        qualified = f"{domain}.{error_code}"
        if qualified in ERROR_CODE_TO_EXIT_CODE:
            return ERROR_CODE_TO_EXIT_CODE[qualified]

    if error_code in ERROR_CODE_TO_EXIT_CODE:
        return ERROR_CODE_TO_EXIT_CODE[error_code]

    return ExitCode.RUNTIME_ERROR

"""Port definitions for backforge-core."""

from backforge_core.ports.batch import (
    BatchError,
    BatchErrorCode,
    BatchErrorInfo,
    build_batch_log,
)
from backforge_core.ports.correction import (
    CorrectionError,
    CorrectionErrorCode,
    CorrectionErrorDetails,
    CorrectionErrorInfo,
    ValidatorProtocol,
    WriterProtocol,
    build_correction_event_data,
    build_correction_log,
)
from backforge_core.ports.llm import (
    ModelError,
    ModelErrorCode,
    ModelErrorInfo,
    ModelProtocol,
)
from backforge_core.ports.orchestrator import (
    LogSinkProtocol,
    PhaseExecutorProtocol,
    PipelineError,
    PipelineErrorCode,
    PipelineErrorDetails,
    PipelineErrorInfo,
    build_phase_event_name,
    build_phase_log,
    build_run_cancelled_log,
    build_run_completed_log,
    build_run_failed_log,
    build_run_started_log,
    format_status_label,
)
from backforge_core.ports.preliminary import (
    PreliminaryError,
    PreliminaryErrorCode,
    PreliminaryErrorInfo,
    build_preliminary_log,
)
from backforge_core.ports.storage import (
    LogStoreProtocol,
    PipelineStateStoreProtocol,
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)

__all__ = [
    "BatchError",
    "BatchErrorCode",
    "BatchErrorInfo",
    "CorrectionError",
    "CorrectionErrorCode",
    "CorrectionErrorDetails",
    "CorrectionErrorInfo",
    "LogSinkProtocol",
    "LogStoreProtocol",
    "ModelError",
    "ModelErrorCode",
    "ModelErrorInfo",
    "ModelProtocol",
    "PhaseExecutorProtocol",
    "PipelineError",
    "PipelineErrorCode",
    "PipelineErrorDetails",
    "PipelineErrorInfo",
    "PipelineStateStoreProtocol",
    "PreliminaryError",
    "PreliminaryErrorCode",
    "PreliminaryErrorInfo",
    "StorageError",
    "StorageErrorCode",
    "StorageErrorDetails",
    "StorageErrorInfo",
    "ValidatorProtocol",
    "WriterProtocol",
    "build_batch_log",
    "build_correction_event_data",
    "build_correction_log",
    "build_phase_event_name",
    "build_phase_log",
    "build_preliminary_log",
    "build_run_cancelled_log",
    "build_run_completed_log",
    "build_run_failed_log",
    "build_run_started_log",
    "format_status_label",
]

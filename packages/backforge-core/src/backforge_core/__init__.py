"""backforge-core: Generation pipeline machinery for backforge."""

from backforge_core.batch import BatchTask, CachedBatchExecutor
from backforge_core.correction import CorrectionLoop
from backforge_core.history import History, build_history_entry
from backforge_core.naming import choose_canonical, find_duplicate_names
from backforge_core.pipeline import PhasePipeline
from backforge_core.ports import (
    BatchError,
    BatchErrorCode,
    CorrectionError,
    CorrectionErrorCode,
    LogSinkProtocol,
    ModelError,
    ModelErrorCode,
    ModelProtocol,
    PhaseExecutorProtocol,
    PipelineError,
    PipelineErrorCode,
    PreliminaryError,
    PreliminaryErrorCode,
    ValidatorProtocol,
    WriterProtocol,
)
from backforge_core.preliminary import PreliminaryController
from backforge_core.retry import run_with_backoff
from backforge_core.state_message import (
    build_status_lines,
    predicate_state_message,
)
from backforge_core.writer import PreliminaryWriter

__version__ = "0.1.0"

__all__ = [
    "BatchError",
    "BatchErrorCode",
    "BatchTask",
    "CachedBatchExecutor",
    "CorrectionError",
    "CorrectionErrorCode",
    "CorrectionLoop",
    "History",
    "LogSinkProtocol",
    "ModelError",
    "ModelErrorCode",
    "ModelProtocol",
    "PhaseExecutorProtocol",
    "PhasePipeline",
    "PipelineError",
    "PipelineErrorCode",
    "PreliminaryController",
    "PreliminaryError",
    "PreliminaryErrorCode",
    "PreliminaryWriter",
    "ValidatorProtocol",
    "WriterProtocol",
    "build_history_entry",
    "build_status_lines",
    "choose_canonical",
    "find_duplicate_names",
    "predicate_state_message",
    "run_with_backoff",
]

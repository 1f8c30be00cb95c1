"""Incremental disclosure of preliminary context to a generating model."""

from backforge_core.preliminary.application import (
    build_process_tool,
    narrow_process_tool,
)
from backforge_core.preliminary.controller import KindState, PreliminaryController
from backforge_core.preliminary.kinds import (
    KIND_SPECS,
    REQUEST_TYPE_TO_KIND,
    KindSpec,
    normalize_endpoint_id,
)
from backforge_core.preliminary.validators import ID_VALIDATORS, IdValidator

__all__ = [
    "ID_VALIDATORS",
    "KIND_SPECS",
    "REQUEST_TYPE_TO_KIND",
    "IdValidator",
    "KindSpec",
    "KindState",
    "PreliminaryController",
    "build_process_tool",
    "narrow_process_tool",
    "normalize_endpoint_id",
]

"""Pipeline orchestration for LazyCoder.

This package implements the project state machine, the sequential stage
runner, the parallel enrichment barrier, the file set merger, module context
loading, and the top-level orchestrator.
"""

from __future__ import annotations

from lazycoder.pipeline.barrier import EnrichmentBarrier, EnrichmentResult
from lazycoder.pipeline.merger import changed_filenames, merge_files
from lazycoder.pipeline.modules import (
    ModuleExtractionError,
    load_module_context,
    read_archive,
    select_context_files,
)
from lazycoder.pipeline.orchestrator import PipelineOrchestrator, RefinementUnavailableError
from lazycoder.pipeline.runner import (
    PipelineAbortedError,
    SequentialResult,
    SequentialStageRunner,
)
from lazycoder.pipeline.state_machine import (
    SEQUENTIAL_STATES,
    VALID_TRANSITIONS,
    InvalidTransitionError,
    PipelineStateMachine,
    validate_transition,
)

__all__ = [
    # Barrier
    "EnrichmentBarrier",
    "EnrichmentResult",
    # Merger
    "changed_filenames",
    "merge_files",
    # Modules
    "ModuleExtractionError",
    "load_module_context",
    "read_archive",
    "select_context_files",
    # Orchestrator
    "PipelineOrchestrator",
    "RefinementUnavailableError",
    # Runner
    "PipelineAbortedError",
    "SequentialResult",
    "SequentialStageRunner",
    # State machine
    "InvalidTransitionError",
    "PipelineStateMachine",
    "SEQUENTIAL_STATES",
    "VALID_TRANSITIONS",
    "validate_transition",
]

"""Generation stages for LazyCoder.

This package holds the generation service client, the response extractor,
prompt templates, and the stage contract with its ten stage definitions.
"""

from lazycoder.agents.client import (
    GeminiClient,
    GenerationClient,
    GenerationRequest,
    GenerationServiceError,
)
from lazycoder.agents.extractor import ExtractionError, clean_and_parse_json
from lazycoder.agents.prompts import PromptLoader, format_code_context
from lazycoder.agents.stages import (
    AnalyzeStage,
    CostStage,
    DevOpsStage,
    DiagramStage,
    DocumentStage,
    FinalizeStage,
    GenerateStage,
    RefineStage,
    ReviewStage,
    SecurityStage,
    Stage,
    StageError,
    StageOutcome,
    StageSet,
)

__all__ = [
    # Client
    "GeminiClient",
    "GenerationClient",
    "GenerationRequest",
    "GenerationServiceError",
    # Extraction
    "ExtractionError",
    "clean_and_parse_json",
    # Prompts
    "PromptLoader",
    "format_code_context",
    # Stages
    "AnalyzeStage",
    "CostStage",
    "DevOpsStage",
    "DiagramStage",
    "DocumentStage",
    "FinalizeStage",
    "GenerateStage",
    "RefineStage",
    "ReviewStage",
    "SecurityStage",
    "Stage",
    "StageError",
    "StageOutcome",
    "StageSet",
]

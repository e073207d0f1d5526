"""Stage contract and the ten pipeline stages.

A stage turns a typed input into a typed output through one call to the
generation service, followed by mandatory validation: the response text is
run through the extractor and the result must match the stage's declared
output model. Any violation raises :class:`StageError` naming the stage.

The caller picks how a failure is treated by the method it calls:

- :meth:`Stage.run` lets ``StageError`` propagate. The sequential runner
  calls it for analyze, generate, review and finalize and turns a failure
  into a pipeline abort.
- :meth:`Stage.run_contained` is used for document, cost, security,
  diagram, devops and refine. It catches the failure at
  the stage boundary and returns a :class:`StageOutcome` carrying the
  stage's documented default and the recorded warning.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar

import structlog
from pydantic import TypeAdapter

from lazycoder.agents.client import GenerationClient, GenerationRequest
from lazycoder.agents.extractor import clean_and_parse_json
from lazycoder.agents.prompts import PromptLoader, format_code_context, get_prompt_loader
from lazycoder.config import GenerationConfig
from lazycoder.models import (
    AgentConfig,
    AnalysisResult,
    ChatMessage,
    CostEstimate,
    ImagePayload,
    RefineResult,
    SecurityFinding,
    TerraformFile,
    ValidationResult,
)

logger = structlog.get_logger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")

README_FILENAME = "README.md"
CHAT_ERROR_TEXT = "I encountered an error trying to process your request. Please try again."
CHAT_APPLY_ERROR_SUFFIX = "\n(Error applying code changes automatically)"
DEVOPS_CONTEXT_FILES = 3
DEVOPS_CONTEXT_CHARS = 5000


class StageError(Exception):
    """Raised when a stage violates its contract.

    Attributes:
        stage: Machine name of the failing stage (e.g. ``"analyze"``)
        label: Human label of the failing stage (e.g. ``"Agent 1 (Architect)"``)
        reason: Underlying failure description
    """

    def __init__(self, stage: str, label: str, reason: str) -> None:
        self.stage = stage
        self.label = label
        self.reason = reason
        super().__init__(f"{label} failed: {reason}")


@dataclass
class StageOutcome(Generic[OutputT]):
    """Result of a contained stage: the value plus how it was obtained.

    Attributes:
        stage: Machine name of the stage
        value: Stage output, or the documented default when degraded
        degraded: True when ``value`` is the default because the stage failed
        skipped: True when the stage was not needed and made no service call
        warning: Failure description when degraded
    """

    stage: str
    value: OutputT
    degraded: bool = False
    skipped: bool = False
    warning: str | None = None


# ---------------------------------------------------------------------------
# Stage inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalyzeInput:
    image: ImagePayload


@dataclass(frozen=True)
class GenerateInput:
    analysis: AnalysisResult
    config: AgentConfig
    modules: list[TerraformFile] = field(default_factory=list)


@dataclass(frozen=True)
class ReviewInput:
    files: list[TerraformFile]


@dataclass(frozen=True)
class FinalizeInput:
    files: list[TerraformFile]
    validation: ValidationResult
    config: AgentConfig


@dataclass(frozen=True)
class DocumentInput:
    files: list[TerraformFile]
    analysis: AnalysisResult


@dataclass(frozen=True)
class CodeInput:
    """Input for stages that only need the finalized code."""

    files: list[TerraformFile]


@dataclass(frozen=True)
class DevOpsInput:
    files: list[TerraformFile]
    config: AgentConfig


@dataclass(frozen=True)
class RefineInput:
    """Chat refinement input. ``history`` holds the turns before ``message``."""

    history: list[ChatMessage]
    files: list[TerraformFile]
    message: str


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def files_from_mapping(data: Any, allow_empty: bool = False) -> list[TerraformFile]:
    """Convert a ``{filename: content}`` payload into TerraformFiles.

    Args:
        data: Parsed JSON payload
        allow_empty: Accept an empty mapping instead of raising

    Returns:
        Files in the payload's key order

    Raises:
        ValueError: If the payload is not an object, or is empty when
            ``allow_empty`` is False
    """
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a JSON object mapping filenames to content, got {type(data).__name__}"
        )
    if not data and not allow_empty:
        raise ValueError("Response contained no files")

    files = []
    for filename, content in data.items():
        if not isinstance(content, str):
            content = json.dumps(content, indent=2) if isinstance(content, (dict, list)) else str(content)
        files.append(TerraformFile(filename=str(filename), content=content))
    return files


def sanitize_mermaid_code(text: str) -> str:
    """Strip Markdown fences from a Mermaid diagram response."""
    if not text:
        return ""
    return text.replace("```mermaid", "").replace("```", "").strip()


# ---------------------------------------------------------------------------
# Stage contract
# ---------------------------------------------------------------------------


class Stage(ABC, Generic[InputT, OutputT]):
    """Base class for a single generation-service-backed pipeline stage.

    Subclasses declare ``name``, ``label`` and ``template`` and
    implement :meth:`build_request` and :meth:`parse`. Contained stages also
    implement :meth:`default`.

    Attributes:
        client: Generation service client
        settings: Generation settings (models, thinking budgets)
        prompts: Prompt template loader
    """

    name: ClassVar[str]
    label: ClassVar[str]
    template: ClassVar[str]

    def __init__(
        self,
        client: GenerationClient,
        settings: GenerationConfig,
        prompts: PromptLoader | None = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.prompts = prompts or get_prompt_loader()
        self._logger = logger.bind(component=type(self).__name__, stage=self.name)

    @abstractmethod
    def build_request(self, stage_input: InputT) -> GenerationRequest:
        """Build the generation request for this stage."""

    @abstractmethod
    def parse(self, text: str) -> OutputT:
        """Validate a non-empty response and convert it to the output type.

        Raises:
            ValueError: If the response violates the output contract
                (ExtractionError and pydantic ValidationError included)
        """

    def default(self) -> OutputT:
        """Documented safe value used when a contained stage fails."""
        raise NotImplementedError(f"Stage {self.name} has no default value")

    def should_skip(self, stage_input: InputT) -> bool:
        """Whether the stage can be answered with its default without a call."""
        return False

    def fail(self, reason: str) -> StageError:
        return StageError(self.name, self.label, reason)

    async def run(self, stage_input: InputT) -> OutputT:
        """Execute the stage and enforce its output contract.

        Args:
            stage_input: Typed stage input

        Returns:
            Validated stage output

        Raises:
            StageError: If the service call fails, returns no text, or the
                response does not match the declared output shape
        """
        if self.should_skip(stage_input):
            self._logger.info("stage_skipped")
            return self.default()

        request = self.build_request(stage_input)
        self._logger.info("stage_started", model=request.model)

        # CancelledError is a BaseException and passes through untouched
        try:
            text = await self.client.generate(request)
        except Exception as e:
            raise self.fail(str(e) or type(e).__name__) from e

        if not text or not text.strip():
            raise self.fail("Received empty response from the generation service.")

        try:
            result = self.parse(text)
        except Exception as e:
            raise self.fail(str(e) or type(e).__name__) from e

        self._logger.info("stage_completed")
        return result

    async def run_contained(self, stage_input: InputT) -> StageOutcome[OutputT]:
        """Execute the stage, substituting its default on failure.

        Never raises for stage failures; the outcome carries either the real
        value or the default together with the recorded warning.

        Args:
            stage_input: Typed stage input

        Returns:
            StageOutcome describing the value and whether it degraded
        """
        if self.should_skip(stage_input):
            self._logger.info("stage_skipped")
            return StageOutcome(stage=self.name, value=self.default(), skipped=True)

        try:
            value = await self.run(stage_input)
        except Exception as e:
            self._logger.warning("stage_degraded", error=str(e), error_type=type(e).__name__)
            return StageOutcome(
                stage=self.name,
                value=self.default(),
                degraded=True,
                warning=str(e),
            )
        return StageOutcome(stage=self.name, value=value)


# ---------------------------------------------------------------------------
# Sequential (fatal) stages
# ---------------------------------------------------------------------------


class AnalyzeStage(Stage[AnalyzeInput, AnalysisResult]):
    """Agent 1: read the diagram and list provider, region and resources."""

    name = "analyze"
    label = "Agent 1 (Architect)"
    template = "analyze.j2"

    def build_request(self, stage_input: AnalyzeInput) -> GenerationRequest:
        return GenerationRequest(
            model=self.settings.analysis_model,
            prompt=self.prompts.render(self.template),
            image=stage_input.image,
            response_schema=AnalysisResult,
        )

    def parse(self, text: str) -> AnalysisResult:
        return AnalysisResult.model_validate(clean_and_parse_json(text))


class GenerateStage(Stage[GenerateInput, list[TerraformFile]]):
    """Agent 2: write the Terraform project, using module context when given."""

    name = "generate"
    label = "Agent 2 (Generator)"
    template = "generate.j2"

    def build_request(self, stage_input: GenerateInput) -> GenerationRequest:
        config = stage_input.config
        prompt = self.prompts.render(
            self.template,
            analysis_json=stage_input.analysis.model_dump_json(),
            template=config.template.value,
            custom_instructions=config.custom_instructions,
            modules=stage_input.modules,
        )
        return GenerationRequest(
            model=self.settings.code_model,
            prompt=prompt,
            json_mode=True,
            thinking_budget=self.settings.thinking_budget(config.thinking_level),
        )

    def parse(self, text: str) -> list[TerraformFile]:
        return files_from_mapping(clean_and_parse_json(text))


class ReviewStage(Stage[ReviewInput, ValidationResult]):
    """Agent 3: score the generated code and list issues and suggestions."""

    name = "review"
    label = "Agent 3 (Validator)"
    template = "review.j2"

    def build_request(self, stage_input: ReviewInput) -> GenerationRequest:
        return GenerationRequest(
            model=self.settings.code_model,
            prompt=self.prompts.render(
                self.template, code_context=format_code_context(stage_input.files)
            ),
            response_schema=ValidationResult,
        )

    def parse(self, text: str) -> ValidationResult:
        return ValidationResult.model_validate(clean_and_parse_json(text))


class FinalizeStage(Stage[FinalizeInput, list[TerraformFile]]):
    """Agent 4: rewrite the code to resolve the review's issues."""

    name = "finalize"
    label = "Agent 4 (Finalizer)"
    template = "finalize.j2"

    def build_request(self, stage_input: FinalizeInput) -> GenerationRequest:
        validation = stage_input.validation
        prompt = self.prompts.render(
            self.template,
            issues_json=json.dumps(validation.issues),
            suggestions_json=json.dumps(validation.suggestions),
            code_context=format_code_context(stage_input.files),
        )
        return GenerationRequest(
            model=self.settings.code_model,
            prompt=prompt,
            json_mode=True,
            thinking_budget=self.settings.thinking_budget(stage_input.config.thinking_level),
        )

    def parse(self, text: str) -> list[TerraformFile]:
        return files_from_mapping(clean_and_parse_json(text))


# ---------------------------------------------------------------------------
# Enrichment (contained) stages
# ---------------------------------------------------------------------------


class DocumentStage(Stage[DocumentInput, TerraformFile]):
    """Agent 5: produce README.md for the project."""

    name = "document"
    label = "Agent 5 (Documentor)"
    template = "document.j2"

    def build_request(self, stage_input: DocumentInput) -> GenerationRequest:
        return GenerationRequest(
            model=self.settings.fast_model,
            prompt=self.prompts.render(
                self.template,
                summary=stage_input.analysis.summary,
                code_context=format_code_context(stage_input.files),
            ),
        )

    def parse(self, text: str) -> TerraformFile:
        return TerraformFile(filename=README_FILENAME, content=text.strip())

    def default(self) -> TerraformFile:
        return TerraformFile(
            filename=README_FILENAME,
            content="# Documentation Error\nCould not generate documentation.",
        )


class CostStage(Stage[CodeInput, CostEstimate]):
    """Agent 6: estimate monthly cost."""

    name = "cost"
    label = "Agent 6 (FinOps)"
    template = "cost.j2"

    def build_request(self, stage_input: CodeInput) -> GenerationRequest:
        return GenerationRequest(
            model=self.settings.code_model,
            prompt=self.prompts.render(
                self.template, code_context=format_code_context(stage_input.files)
            ),
            response_schema=CostEstimate,
        )

    def parse(self, text: str) -> CostEstimate:
        return CostEstimate.model_validate(clean_and_parse_json(text))

    def default(self) -> CostEstimate:
        return CostEstimate(total_monthly_cost="N/A", currency="USD", breakdown=[])


class SecurityStage(Stage[CodeInput, list[SecurityFinding]]):
    """Agent 7: audit the code against common security baselines."""

    name = "security"
    label = "Agent 7 (Sentinel)"
    template = "security.j2"

    _adapter: ClassVar[TypeAdapter[list[SecurityFinding]]] = TypeAdapter(list[SecurityFinding])

    def build_request(self, stage_input: CodeInput) -> GenerationRequest:
        return GenerationRequest(
            model=self.settings.code_model,
            prompt=self.prompts.render(
                self.template, code_context=format_code_context(stage_input.files)
            ),
            response_schema=list[SecurityFinding],
        )

    def parse(self, text: str) -> list[SecurityFinding]:
        return self._adapter.validate_python(clean_and_parse_json(text))

    def default(self) -> list[SecurityFinding]:
        return []


class DiagramStage(Stage[CodeInput, str]):
    """Agent 8: reverse-engineer the code into a Mermaid diagram."""

    name = "diagram"
    label = "Agent 8 (Visualizer)"
    template = "diagram.j2"

    def build_request(self, stage_input: CodeInput) -> GenerationRequest:
        return GenerationRequest(
            model=self.settings.fast_model,
            prompt=self.prompts.render(
                self.template, code_context=format_code_context(stage_input.files)
            ),
        )

    def parse(self, text: str) -> str:
        return sanitize_mermaid_code(text)

    def default(self) -> str:
        return ""


class DevOpsStage(Stage[DevOpsInput, list[TerraformFile]]):
    """Agent 9: CI/CD workflow and Ansible playbook, when requested."""

    name = "devops"
    label = "Agent 9 (DevOps)"
    template = "devops.j2"

    def should_skip(self, stage_input: DevOpsInput) -> bool:
        return not stage_input.config.wants_devops

    def build_request(self, stage_input: DevOpsInput) -> GenerationRequest:
        excerpt = "\n".join(
            f.content for f in stage_input.files[:DEVOPS_CONTEXT_FILES]
        )[:DEVOPS_CONTEXT_CHARS]
        return GenerationRequest(
            model=self.settings.fast_model,
            prompt=self.prompts.render(
                self.template,
                generate_cicd=stage_input.config.generate_cicd,
                generate_ansible=stage_input.config.generate_ansible,
                code_excerpt=excerpt,
            ),
            json_mode=True,
        )

    def parse(self, text: str) -> list[TerraformFile]:
        return files_from_mapping(clean_and_parse_json(text), allow_empty=True)

    def default(self) -> list[TerraformFile]:
        return []


# ---------------------------------------------------------------------------
# Refinement (chat) stage
# ---------------------------------------------------------------------------


class RefineStage(Stage[RefineInput, RefineResult]):
    """Agent 10: answer a chat request, optionally rewriting files.

    The response is explanation text optionally followed by a
    ``JSON_START ... JSON_END`` block mapping filenames to new content.
    """

    name = "refine"
    label = "Agent 10 (Refiner)"
    template = "refine.j2"

    start_marker: ClassVar[str] = "JSON_START"
    end_marker: ClassVar[str] = "JSON_END"

    def build_request(self, stage_input: RefineInput) -> GenerationRequest:
        return GenerationRequest(
            model=self.settings.code_model,
            prompt=self.prompts.render(
                self.template,
                code_context=format_code_context(stage_input.files),
                history=stage_input.history,
                user_message=stage_input.message,
            ),
        )

    def parse(self, text: str) -> RefineResult:
        start = text.find(self.start_marker)
        end = text.rfind(self.end_marker)
        if start == -1 or end == -1:
            return RefineResult(text=text.strip())

        explanation = text[:start].strip()
        block = text[start + len(self.start_marker) : end].strip()
        try:
            if end < start:
                raise ValueError("JSON_END appears before JSON_START")
            files = files_from_mapping(clean_and_parse_json(block), allow_empty=True)
        except ValueError as e:
            self._logger.warning("refine_update_unparseable", error=str(e))
            return RefineResult(text=explanation + CHAT_APPLY_ERROR_SUFFIX)
        return RefineResult(text=explanation, files=files)

    def default(self) -> RefineResult:
        return RefineResult(text=CHAT_ERROR_TEXT)


# ---------------------------------------------------------------------------
# Stage set
# ---------------------------------------------------------------------------


@dataclass
class StageSet:
    """All ten stages wired to one client, ready for the orchestrator."""

    analyze: Stage[AnalyzeInput, AnalysisResult]
    generate: Stage[GenerateInput, list[TerraformFile]]
    review: Stage[ReviewInput, ValidationResult]
    finalize: Stage[FinalizeInput, list[TerraformFile]]
    document: Stage[DocumentInput, TerraformFile]
    cost: Stage[CodeInput, CostEstimate]
    security: Stage[CodeInput, list[SecurityFinding]]
    diagram: Stage[CodeInput, str]
    devops: Stage[DevOpsInput, list[TerraformFile]]
    refine: Stage[RefineInput, RefineResult]

    @classmethod
    def build(
        cls,
        client: GenerationClient,
        settings: GenerationConfig,
        prompts: PromptLoader | None = None,
    ) -> StageSet:
        """Instantiate every stage against the same client and settings."""
        args = (client, settings, prompts)
        return cls(
            analyze=AnalyzeStage(*args),
            generate=GenerateStage(*args),
            review=ReviewStage(*args),
            finalize=FinalizeStage(*args),
            document=DocumentStage(*args),
            cost=CostStage(*args),
            security=SecurityStage(*args),
            diagram=DiagramStage(*args),
            devops=DevOpsStage(*args),
            refine=RefineStage(*args),
        )

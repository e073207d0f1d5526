"""Data model for a LazyCoder pipeline run.

A Project is the single value that carries everything a run produces: the
diagram analysis, the generated Terraform files, review and enrichment results,
the chat transcript and the human-readable log trail. Projects are replaced,
not mutated, as the pipeline advances; each replacement bumps ``version``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProjectStatus(str, Enum):
    """Pipeline lifecycle states.

    State transitions:
        IDLE → ANALYZING → GENERATING → REVIEWING → FINALIZING
             → POST_PROCESSING → COMPLETED

    Any of the four sequential stages may move to ERROR instead.
    """

    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    GENERATING = "GENERATING"
    REVIEWING = "REVIEWING"
    FINALIZING = "FINALIZING"
    POST_PROCESSING = "POST_PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class ProjectTemplate(str, Enum):
    """Layout style requested for the generated Terraform project."""

    STANDARD = "standard"
    MICROSERVICES = "microservices"
    SERVERLESS = "serverless"


class ThinkingLevel(str, Enum):
    """Reasoning depth for the code-writing stages."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Severity(str, Enum):
    """Security finding severity levels."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"


class AgentConfig(BaseModel):
    """Immutable per-run agent settings.

    Attributes:
        template: Project template (standard, microservices, serverless)
        thinking_level: Reasoning depth for generation and finalization
        custom_instructions: Extra free-text instructions for generation
        generate_cicd: Produce a GitHub Actions workflow
        generate_ansible: Produce an Ansible playbook
    """

    model_config = ConfigDict(frozen=True)

    template: ProjectTemplate = ProjectTemplate.STANDARD
    thinking_level: ThinkingLevel = ThinkingLevel.MEDIUM
    custom_instructions: str = ""
    generate_cicd: bool = False
    generate_ansible: bool = False

    @property
    def wants_devops(self) -> bool:
        """True when any DevOps artifact was requested."""
        return self.generate_cicd or self.generate_ansible


class TerraformFile(BaseModel):
    """A generated (or uploaded) text file keyed by filename."""

    filename: str = Field(..., min_length=1)
    content: str


class AnalysisResult(BaseModel):
    """Architecture analysis produced from the diagram.

    Attributes:
        summary: Prose description of the architecture
        provider: Cloud provider (AWS, Azure, GCP)
        resources: Every resource identified in the diagram
        region: Region, when it can be inferred
    """

    summary: str
    provider: str
    resources: list[str]
    region: str | None = None


class ValidationResult(BaseModel):
    """Review verdict for a set of Terraform files."""

    is_valid: bool = Field(..., alias="isValid")
    score: float = Field(..., ge=0, le=100)
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def needs_fixes(self) -> bool:
        """Whether the finalizer has anything to correct."""
        return self.score < 100 or len(self.issues) > 0


class CostItem(BaseModel):
    resource: str
    cost: str
    notes: str | None = None


class CostEstimate(BaseModel):
    """Monthly cost estimate for the generated infrastructure."""

    total_monthly_cost: str = Field(..., alias="totalMonthlyCost")
    currency: str = "USD"
    breakdown: list[CostItem] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class SecurityFinding(BaseModel):
    """A single security or compliance finding."""

    severity: Severity
    title: str
    description: str
    compliance: list[str] = Field(default_factory=list)

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: object) -> object:
        """Accept severities in any case.

        Args:
            v: Raw severity value

        Returns:
            Upper-cased severity string (validated against Severity afterwards)
        """
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("compliance", mode="before")
    @classmethod
    def dedupe_compliance(cls, v: object) -> object:
        """Compliance standards form a set; drop repeats, keep first-seen order."""
        if isinstance(v, list):
            return list(dict.fromkeys(v))
        return v


class ChatMessage(BaseModel):
    role: ChatRole
    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RefineResult(BaseModel):
    """Explanation text plus any files the refiner rewrote."""

    text: str
    files: list[TerraformFile] = Field(default_factory=list)


class ImagePayload(BaseModel):
    """Raw diagram image bytes and their MIME type."""

    data: bytes
    mime_type: str = "image/png"


class Project(BaseModel):
    """State of a single pipeline run.

    Attributes:
        id: Unique project identifier
        name: Human-friendly name, derived from the diagram filename
        created_at: Creation timestamp
        image_ref: Reference to the source diagram (path or upload name)
        status: Current lifecycle status
        analysis: Stage 1 output
        code: Ordered Terraform (and auxiliary) files, filenames unique
        custom_modules: Files loaded from the module archive
        validation: Stage 3 output
        cost: Stage 6 output
        security: Stage 7 output
        mermaid_diagram: Stage 8 output
        chat_history: Refinement transcript
        error: Terminal error message when status is ERROR
        logs: Append-only human-readable log trail
        config: AgentConfig snapshot captured at run start
        version: Incremented on every update
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "project"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    image_ref: str | None = None
    status: ProjectStatus = ProjectStatus.IDLE
    analysis: AnalysisResult | None = None
    code: list[TerraformFile] = Field(default_factory=list)
    custom_modules: list[TerraformFile] = Field(default_factory=list)
    validation: ValidationResult | None = None
    cost: CostEstimate | None = None
    security: list[SecurityFinding] = Field(default_factory=list)
    mermaid_diagram: str | None = None
    chat_history: list[ChatMessage] = Field(default_factory=list)
    error: str | None = None
    logs: list[str] = Field(default_factory=list)
    config: AgentConfig = Field(default_factory=AgentConfig)
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in (ProjectStatus.COMPLETED, ProjectStatus.ERROR)

    def next_chat_timestamp(self) -> datetime:
        """Timestamp for the next chat message, strictly after the last one."""
        now = datetime.now(timezone.utc)
        if self.chat_history and now <= self.chat_history[-1].timestamp:
            return self.chat_history[-1].timestamp + timedelta(microseconds=1)
        return now

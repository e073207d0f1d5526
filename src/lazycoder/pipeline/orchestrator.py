"""Top-level controller for LazyCoder runs and chat refinement.

The orchestrator owns the single active Project. ``run`` creates a fresh
Project (replacing any previous one), optionally loads module context,
drives the sequential phase, then the enrichment barrier, and merges the
barrier's result in a single update. ``refine`` runs the chat stage against
the current files and merges any returned files by filename.
"""

from __future__ import annotations

import asyncio

import structlog

from lazycoder.agents.client import GeminiClient, GenerationClient
from lazycoder.agents.stages import RefineInput, StageSet
from lazycoder.config import LazyCoderConfig
from lazycoder.logging import bind_project_context
from lazycoder.models import (
    AgentConfig,
    ChatRole,
    ImagePayload,
    Project,
    ProjectStatus,
    RefineResult,
    TerraformFile,
)
from lazycoder.pipeline.barrier import EnrichmentBarrier, EnrichmentResult
from lazycoder.pipeline.merger import changed_filenames, merge_files
from lazycoder.pipeline.modules import ModuleExtractionError, load_module_context
from lazycoder.pipeline.runner import PipelineAbortedError, SequentialStageRunner
from lazycoder.pipeline.state_machine import PipelineStateMachine

logger = structlog.get_logger(__name__)


class RefinementUnavailableError(Exception):
    """Raised when chat refinement is requested before any code exists."""

    pass


class PipelineOrchestrator:
    """Runs the diagram-to-Terraform pipeline and the refinement loop.

    Attributes:
        config: Application configuration
        stages: The ten stages, bound to one generation client
        last_enrichment: Enrichment result of the most recent completed run
    """

    def __init__(
        self,
        config: LazyCoderConfig,
        client: GenerationClient | None = None,
        stages: StageSet | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Application configuration
            client: Generation client; a GeminiClient is built when omitted
                and no stage set is given
            stages: Pre-built stage set (overrides ``client``)
        """
        self.config = config
        if stages is None:
            stages = StageSet.build(client or GeminiClient(config.generation), config.generation)
        self.stages = stages
        self.last_enrichment: EnrichmentResult | None = None
        self._machine: PipelineStateMachine | None = None
        self._chat_lock = asyncio.Lock()
        self._logger = logger.bind(component="PipelineOrchestrator")

    @property
    def project(self) -> Project | None:
        """The active Project, or None before the first run."""
        return self._machine.project if self._machine is not None else None

    def new_project(
        self,
        name: str = "project",
        image_ref: str | None = None,
        agent_config: AgentConfig | None = None,
    ) -> Project:
        """Replace the active Project with a fresh IDLE one."""
        project = Project(
            name=name,
            image_ref=image_ref,
            config=agent_config or self.config.pipeline.to_agent_config(),
        )
        self._machine = PipelineStateMachine(project)
        self.last_enrichment = None
        bind_project_context(project.id, name)
        self._logger.info("project_created", project_id=project.id, name=name)
        return project

    async def run(
        self,
        image: ImagePayload,
        *,
        name: str = "project",
        image_ref: str | None = None,
        agent_config: AgentConfig | None = None,
        module_archive: bytes | None = None,
    ) -> Project:
        """Execute a complete pipeline run.

        Args:
            image: Architecture diagram
            name: Project name
            image_ref: Reference to the diagram source (e.g. its path)
            agent_config: Run configuration; defaults from ``config.pipeline``
            module_archive: Optional zip of custom modules used as context

        Returns:
            The final Project, in COMPLETED or ERROR status
        """
        self.new_project(name=name, image_ref=image_ref, agent_config=agent_config)
        machine = self._require_machine()
        run_config = machine.project.config

        machine.transition(ProjectStatus.ANALYZING, logs=["Starting enterprise pipeline..."])

        modules: list[TerraformFile] = []
        if module_archive is not None:
            modules = self._load_modules(machine, module_archive)

        try:
            sequential = await SequentialStageRunner(self.stages, machine).run(
                image, run_config, modules
            )
        except PipelineAbortedError as e:
            self._logger.error("pipeline_failed", stage=e.stage, error=str(e))
            return machine.project

        enrichment = await EnrichmentBarrier(self.stages).run(
            sequential.final_files, sequential.analysis, run_config
        )
        self.last_enrichment = enrichment

        machine.transition(
            ProjectStatus.COMPLETED,
            logs=[*enrichment.log_lines(), "Pipeline Successfully Completed."],
            code=enrichment.merged_files(sequential.final_files),
            cost=enrichment.cost,
            security=enrichment.security,
            mermaid_diagram=enrichment.diagram,
        )
        self._logger.info(
            "pipeline_completed",
            files=len(machine.project.code),
            degraded=enrichment.degraded,
        )
        return machine.project

    async def refine(self, message: str) -> RefineResult:
        """Apply one chat refinement request to the current files.

        The user message is recorded before the stage call and the model's
        explanation after it, whether or not any files changed.

        Args:
            message: Free-text user request

        Returns:
            The refine stage result (explanation and updated files)

        Raises:
            RefinementUnavailableError: If no code has been generated yet
        """
        async with self._chat_lock:
            machine = self._machine
            if machine is None or not machine.project.code:
                raise RefinementUnavailableError(
                    "Refinement is available once code has been generated."
                )

            machine.record_chat(ChatRole.USER, message)
            project = machine.project
            outcome = await self.stages.refine.run_contained(
                RefineInput(
                    history=project.chat_history[:-1], files=project.code, message=message
                )
            )
            result = outcome.value
            machine.record_chat(ChatRole.MODEL, result.text)

            if result.files:
                current = machine.project.code
                changed = changed_filenames(current, result.files)
                machine.update(
                    logs=[
                        f"{self.stages.refine.label}: Updated {len(result.files)} "
                        "files based on chat."
                    ],
                    code=merge_files(current, result.files),
                )
                self._logger.info("refinement_applied", changed=changed)

            return result

    def _load_modules(self, machine: PipelineStateMachine, archive: bytes) -> list[TerraformFile]:
        machine.log("System: Extracting custom modules context...")
        try:
            modules = load_module_context(archive, self.config.modules)
        except ModuleExtractionError as e:
            self._logger.warning("module_context_unavailable", error=str(e))
            machine.log(f"System Error: Failed to load modules - {e}")
            return []
        machine.update(
            logs=[f"System: Loaded {len(modules)} custom module files."],
            custom_modules=modules,
        )
        return modules

    def _require_machine(self) -> PipelineStateMachine:
        if self._machine is None:
            raise RuntimeError("No active project. Call new_project() first.")
        return self._machine

"""Sequential stage runner: Analyze → Generate → Review → Finalize.

Stages run strictly one after another. The first StageError stops the run:
later stages are never invoked and the state machine records the failure
text verbatim as the Project's terminal error.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from lazycoder.agents.stages import (
    AnalyzeInput,
    FinalizeInput,
    GenerateInput,
    ReviewInput,
    StageError,
    StageSet,
)
from lazycoder.models import (
    AgentConfig,
    AnalysisResult,
    ImagePayload,
    ProjectStatus,
    TerraformFile,
    ValidationResult,
)
from lazycoder.pipeline.state_machine import PipelineStateMachine

logger = structlog.get_logger(__name__)

DEFAULT_REGION = "us-east-1"


class PipelineAbortedError(Exception):
    """Raised after a fatal stage failure has been recorded on the Project.

    Attributes:
        stage: Machine name of the stage that failed
    """

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(message)


@dataclass
class SequentialResult:
    """Outputs of the four sequential stages.

    Attributes:
        analysis: Stage 1 output
        validation: Stage 3 output
        final_files: Stage 4 output, the reviewed code with any fixes applied
    """

    analysis: AnalysisResult
    validation: ValidationResult
    final_files: list[TerraformFile]


class SequentialStageRunner:
    """Runs stages 1-4 under the fatal failure policy.

    Attributes:
        stages: Stage set providing the four sequential stages
        machine: State machine for the active Project (expected in ANALYZING)
    """

    def __init__(self, stages: StageSet, machine: PipelineStateMachine) -> None:
        self.stages = stages
        self.machine = machine
        self._logger = logger.bind(component="SequentialStageRunner")

    async def run(
        self,
        image: ImagePayload,
        config: AgentConfig,
        modules: list[TerraformFile] | None = None,
    ) -> SequentialResult:
        """Execute the sequential phase, leaving the Project in POST_PROCESSING.

        Args:
            image: Diagram image
            config: Run configuration snapshot
            modules: Optional module context for the generation stage

        Returns:
            Outputs of the four stages

        Raises:
            PipelineAbortedError: If any stage failed; the Project is already
                in ERROR with the stage's message recorded
        """
        try:
            return await self._run(image, config, modules or [])
        except StageError as e:
            self._logger.error("sequential_stage_failed", stage=e.stage, error=str(e))
            self.machine.fail(str(e))
            raise PipelineAbortedError(e.stage, str(e)) from e

    async def _run(
        self,
        image: ImagePayload,
        config: AgentConfig,
        modules: list[TerraformFile],
    ) -> SequentialResult:
        machine = self.machine
        stages = self.stages

        machine.log(f"{stages.analyze.label}: Analyzing diagram topology...")
        analysis = await stages.analyze.run(AnalyzeInput(image=image))
        machine.transition(
            ProjectStatus.GENERATING,
            logs=[
                f"Agent 1: Detected {analysis.provider} architecture in "
                f"{analysis.region or DEFAULT_REGION}.",
                f"{stages.generate.label}: Drafting Infrastructure as Code...",
            ],
            analysis=analysis,
        )

        generated = await stages.generate.run(
            GenerateInput(analysis=analysis, config=config, modules=modules)
        )
        machine.transition(
            ProjectStatus.REVIEWING,
            logs=[
                "Agent 2: Code generated.",
                f"{stages.review.label}: Reviewing for compliance...",
            ],
            code=generated,
        )

        validation = await stages.review.run(ReviewInput(files=generated))
        machine.transition(
            ProjectStatus.FINALIZING,
            logs=[
                f"Agent 3: Review Score: {validation.score:g}/100.",
                f"{stages.finalize.label}: Polishing and formatting...",
            ],
            validation=validation,
        )

        if validation.needs_fixes:
            final = await stages.finalize.run(
                FinalizeInput(files=generated, validation=validation, config=config)
            )
            fix_log = "Agent 4: Applied fixes."
        else:
            final = generated
            fix_log = "Agent 4: No fixes necessary."

        machine.transition(
            ProjectStatus.POST_PROCESSING,
            logs=[
                fix_log,
                "Starting Parallel Agents: Documentation, FinOps, Security, Visualization...",
            ],
            code=final,
        )

        return SequentialResult(
            analysis=analysis,
            validation=validation,
            final_files=final,
        )

"""Parallel enrichment barrier for stages 5-9.

The five enrichment stages (document, cost, security, diagram, devops) are
launched together and joined with :func:`asyncio.gather`. Each one runs under
the contained failure policy, so the join has no error channel: every member
settles to either its real value or its documented default. Stages never
touch the Project; the caller merges the returned result in one step.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import structlog

from lazycoder.agents.stages import (
    CodeInput,
    DevOpsInput,
    DocumentInput,
    Stage,
    StageOutcome,
    StageSet,
)
from lazycoder.models import (
    AgentConfig,
    AnalysisResult,
    CostEstimate,
    SecurityFinding,
    TerraformFile,
)

logger = structlog.get_logger(__name__)


@dataclass
class EnrichmentResult:
    """Settled outputs of the enrichment phase.

    Attributes:
        readme: Documentation file
        cost: Cost estimate
        security: Security findings
        diagram: Mermaid diagram text
        devops_files: CI/CD and Ansible files
        outcomes: Per-stage outcomes in fixed order (document, cost,
            security, diagram, devops)
    """

    readme: TerraformFile
    cost: CostEstimate
    security: list[SecurityFinding]
    diagram: str
    devops_files: list[TerraformFile]
    outcomes: list[StageOutcome[Any]] = field(default_factory=list)

    @property
    def degraded(self) -> list[str]:
        """Names of stages whose value is a fallback default."""
        return [o.stage for o in self.outcomes if o.degraded]

    def merged_files(self, final_code: list[TerraformFile]) -> list[TerraformFile]:
        """Final code, then DevOps files, then the README, in that order."""
        return [*final_code, *self.devops_files, self.readme]

    def log_lines(self) -> list[str]:
        """Human-readable summary lines for the Project log trail."""
        return [
            "Agent 5 (Documentor): README created.",
            f"Agent 6 (FinOps): Estimated cost {self.cost.total_monthly_cost}.",
            f"Agent 7 (Sentinel): Found {len(self.security)} findings.",
            "Agent 8 (Visualizer): Diagram rendered.",
            "Agent 9 (DevOps): CI/CD & Automation files added.",
        ]


class EnrichmentBarrier:
    """Runs the five enrichment stages concurrently and joins them.

    Attributes:
        stages: Stage set providing the enrichment stages
    """

    def __init__(self, stages: StageSet) -> None:
        self.stages = stages
        self._logger = logger.bind(component="EnrichmentBarrier")

    async def run(
        self,
        files: list[TerraformFile],
        analysis: AnalysisResult,
        config: AgentConfig,
    ) -> EnrichmentResult:
        """Launch all five stages and wait for every one to settle.

        Args:
            files: Finalized code from the sequential phase
            analysis: Stage 1 analysis (used for documentation)
            config: Run configuration snapshot

        Returns:
            EnrichmentResult; never raises for stage failures
        """
        s = self.stages
        members: list[tuple[Stage[Any, Any], Any]] = [
            (s.document, DocumentInput(files=files, analysis=analysis)),
            (s.cost, CodeInput(files=files)),
            (s.security, CodeInput(files=files)),
            (s.diagram, CodeInput(files=files)),
            (s.devops, DevOpsInput(files=files, config=config)),
        ]

        self._logger.info("enrichment_started", stages=[stage.name for stage, _ in members])

        results = await asyncio.gather(
            *(stage.run_contained(stage_input) for stage, stage_input in members),
            return_exceptions=True,
        )

        outcomes: list[StageOutcome[Any]] = []
        for (stage, _), result in zip(members, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                # run_contained already absorbs stage errors; this covers
                # failures outside the stage call itself
                self._logger.warning(
                    "enrichment_member_crashed", stage=stage.name, error=str(result)
                )
                result = StageOutcome(
                    stage=stage.name,
                    value=stage.default(),
                    degraded=True,
                    warning=str(result),
                )
            outcomes.append(result)

        document, cost, security, diagram, devops = outcomes
        enrichment = EnrichmentResult(
            readme=document.value,
            cost=cost.value,
            security=security.value,
            diagram=diagram.value,
            devops_files=devops.value,
            outcomes=outcomes,
        )

        self._logger.info(
            "enrichment_completed",
            degraded=enrichment.degraded,
            skipped=[o.stage for o in outcomes if o.skipped],
        )
        return enrichment

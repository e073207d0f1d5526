"""Pipeline state machine for LazyCoder.

This module owns the active Project's lifecycle status and log trail. The
Project is treated as a versioned value: every update produces a new Project
(``version + 1``) and the previous value is never mutated.

Lifecycle:
    IDLE → ANALYZING → GENERATING → REVIEWING → FINALIZING
         → POST_PROCESSING → COMPLETED

Each of the four sequential states may move to ERROR instead of advancing.
COMPLETED and ERROR are terminal.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from lazycoder.models import ChatMessage, ChatRole, Project, ProjectStatus

logger = structlog.get_logger(__name__)

FAILURE_LOG_PREFIX = "CRITICAL FAILURE: "

SEQUENTIAL_STATES: tuple[ProjectStatus, ...] = (
    ProjectStatus.ANALYZING,
    ProjectStatus.GENERATING,
    ProjectStatus.REVIEWING,
    ProjectStatus.FINALIZING,
)


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted.

    Attributes:
        current: The current project status.
        target: The attempted target status.
        project_id: The ID of the project that failed to transition.
    """

    def __init__(
        self,
        current: ProjectStatus,
        target: ProjectStatus,
        project_id: str | None = None,
        detail: str | None = None,
    ):
        self.current = current
        self.target = target
        self.project_id = project_id
        msg = f"Invalid transition from {current.value} to {target.value}"
        if project_id:
            msg += f" for project {project_id}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


# Authoritative state machine definition
VALID_TRANSITIONS: dict[ProjectStatus, set[ProjectStatus]] = {
    ProjectStatus.IDLE: {ProjectStatus.ANALYZING},
    ProjectStatus.ANALYZING: {ProjectStatus.GENERATING, ProjectStatus.ERROR},
    ProjectStatus.GENERATING: {ProjectStatus.REVIEWING, ProjectStatus.ERROR},
    ProjectStatus.REVIEWING: {ProjectStatus.FINALIZING, ProjectStatus.ERROR},
    ProjectStatus.FINALIZING: {ProjectStatus.POST_PROCESSING, ProjectStatus.ERROR},
    ProjectStatus.POST_PROCESSING: {ProjectStatus.COMPLETED},
    ProjectStatus.COMPLETED: set(),  # Terminal
    ProjectStatus.ERROR: set(),  # Terminal
}


def validate_transition(current: ProjectStatus, target: ProjectStatus) -> bool:
    """Validate if a state transition is allowed.

    Args:
        current: Current project status.
        target: Target project status.

    Returns:
        True if the transition is valid according to VALID_TRANSITIONS.
    """
    return target in VALID_TRANSITIONS.get(current, set())


class PipelineStateMachine:
    """Drives a Project through its lifecycle.

    Responsible for:
    - Validating status transitions
    - Recording which sequential stages completed
    - Appending log lines and chat messages
    - Producing a new Project version on every change

    Attributes:
        project: The current Project value.
        completed_stages: Sequential states that finished successfully, in order.
    """

    def __init__(self, project: Project) -> None:
        self._project = project
        self.completed_stages: list[ProjectStatus] = []
        self.logger = logger.bind(component="PipelineStateMachine", project_id=project.id)

    @property
    def project(self) -> Project:
        return self._project

    @property
    def status(self) -> ProjectStatus:
        return self._project.status

    def update(self, logs: Iterable[str] = (), **fields: Any) -> Project:
        """Replace the Project with a new version carrying ``fields``.

        Args:
            logs: Lines appended to the log trail
            **fields: Project fields to replace (``status`` is not allowed here)

        Returns:
            The new Project value
        """
        if "status" in fields:
            raise ValueError("Use transition() to change status")
        return self._replace(logs, fields)

    def log(self, *lines: str) -> Project:
        """Append lines to the log trail."""
        return self._replace(lines, {})

    def record_chat(self, role: ChatRole, text: str) -> ChatMessage:
        """Append one chat message with a strictly increasing timestamp."""
        message = ChatMessage(
            role=role, text=text, timestamp=self._project.next_chat_timestamp()
        )
        self._replace((), {"chat_history": [*self._project.chat_history, message]})
        return message

    def transition(
        self,
        target: ProjectStatus,
        logs: Iterable[str] = (),
        **fields: Any,
    ) -> Project:
        """Move the Project to ``target``, applying ``fields`` and ``logs`` atomically.

        Args:
            target: Target status
            logs: Lines appended to the log trail
            **fields: Other Project fields to replace in the same version

        Returns:
            The new Project value

        Raises:
            InvalidTransitionError: If the transition is not valid, or if
                POST_PROCESSING is requested before all four sequential
                stages completed
        """
        current = self._project.status
        if not validate_transition(current, target):
            raise InvalidTransitionError(current, target, self._project.id)

        completed = list(self.completed_stages)
        if current in SEQUENTIAL_STATES and target != ProjectStatus.ERROR:
            completed.append(current)

        if target == ProjectStatus.POST_PROCESSING:
            missing = [s.value for s in SEQUENTIAL_STATES if s not in completed]
            if missing:
                raise InvalidTransitionError(
                    current,
                    target,
                    self._project.id,
                    detail=f"sequential stages not completed: {', '.join(missing)}",
                )

        fields["status"] = target
        project = self._replace(logs, fields)
        self.completed_stages = completed

        self.logger.info(
            "project_transition",
            from_status=current.value,
            to_status=target.value,
            version=project.version,
        )
        return project

    def fail(self, error: str) -> Project:
        """Abort the run: move to ERROR and record ``error`` verbatim.

        Args:
            error: The triggering stage failure text

        Returns:
            The new (terminal) Project value
        """
        self.logger.error("pipeline_aborted", failed_status=self.status.value, error=error)
        return self.transition(
            ProjectStatus.ERROR,
            logs=[f"{FAILURE_LOG_PREFIX}{error}"],
            error=error,
        )

    def _replace(self, logs: Iterable[str], fields: dict[str, Any]) -> Project:
        new_logs = list(logs)
        update = dict(fields)
        update["version"] = self._project.version + 1
        if new_logs:
            update["logs"] = [*self._project.logs, *new_logs]
        self._project = self._project.model_copy(update=update)
        return self._project

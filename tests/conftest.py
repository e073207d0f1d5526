"""Shared pytest fixtures for LazyCoder tests.

Provides a scripted fake generation client that recognises which stage is
calling from the prompt's opening line, plus default well-formed responses
for every stage.
"""

from __future__ import annotations

import json
from typing import Any, Callable

import pytest

from lazycoder.agents.client import GenerationRequest
from lazycoder.agents.stages import StageSet
from lazycoder.config import GenerationConfig, LazyCoderConfig
from lazycoder.models import (
    AgentConfig,
    AnalysisResult,
    ImagePayload,
    TerraformFile,
    ValidationResult,
)

STAGE_MARKERS: dict[str, str] = {
    "analyze": "You are an Expert Cloud Architect",
    "generate": "You are a Senior DevOps Engineer",
    "review": "You are a Terraform Code Reviewer",
    "finalize": "You are a Code Fixer Agent",
    "document": "Create a professional README.md",
    "cost": "You are a FinOps Cloud Economist",
    "security": "You are a DevSecOps Auditor",
    "diagram": "Analyze this Terraform code and generate a Mermaid",
    "devops": "Based on this Terraform project, generate DevOps",
    "refine": "You are a Coding Assistant",
}

DEFAULT_RESPONSES: dict[str, str] = {
    "analyze": json.dumps(
        {
            "summary": "Three-tier web application",
            "provider": "AWS",
            "region": "eu-west-1",
            "resources": ["aws_vpc", "aws_lb", "aws_instance", "aws_db_instance"],
        }
    ),
    "generate": "```json\n"
    + json.dumps(
        {
            "main.tf": 'resource "aws_vpc" "main" {\n  cidr_block = "10.0.0.0/16"\n}\n',
            "variables.tf": 'variable "region" {\n  default = "eu-west-1"\n}\n',
        }
    )
    + "\n```",
    "review": json.dumps(
        {
            "isValid": False,
            "score": 72,
            "issues": ["Missing outputs.tf"],
            "suggestions": ["Expose the VPC id as an output"],
        }
    ),
    "finalize": json.dumps(
        {
            "main.tf": 'resource "aws_vpc" "main" {\n  cidr_block = "10.0.0.0/16"\n}\n',
            "variables.tf": 'variable "region" {\n  default = "eu-west-1"\n}\n',
            "outputs.tf": 'output "vpc_id" {\n  value = aws_vpc.main.id\n}\n',
        }
    ),
    "document": "# Three-tier web application\n\nRun `terraform init`.",
    "cost": "Here is the estimate: "
    + json.dumps(
        {
            "totalMonthlyCost": "$412.50",
            "currency": "USD",
            "breakdown": [{"resource": "aws_db_instance", "cost": "$300.00"}],
        }
    ),
    "security": json.dumps(
        [
            {
                "severity": "high",
                "title": "Unencrypted database",
                "description": "storage_encrypted is not set",
                "compliance": ["HIPAA", "PCI-DSS"],
            }
        ]
    ),
    "diagram": "```mermaid\ngraph TD\n  ALB --> EC2\n  EC2 --> RDS\n```",
    "devops": json.dumps({".github/workflows/deploy.yml": "name: deploy\n"}),
    "refine": "I added tags to the VPC and a locals file.\n\nJSON_START\n"
    + json.dumps({"main.tf": "tagged main", "locals.tf": "locals {}"})
    + "\nJSON_END",
}

Response = Any  # str | None | Exception | Callable[[GenerationRequest], str | None]


def stage_for(request: GenerationRequest) -> str:
    """Identify the calling stage from the prompt's opening text."""
    for stage, marker in STAGE_MARKERS.items():
        if request.prompt.startswith(marker):
            return stage
    raise AssertionError(f"Unrecognised prompt: {request.prompt[:80]!r}")


class FakeGenerationClient:
    """GenerationClient that answers from a per-stage script.

    Attributes:
        responses: Per-stage response overrides. A value may be a string,
            None, an exception instance (raised), or a callable taking the
            request.
        calls: Stage names in call order
        requests: Requests in call order
    """

    def __init__(self, responses: dict[str, Response] | None = None) -> None:
        self.responses: dict[str, Response] = {**DEFAULT_RESPONSES, **(responses or {})}
        self.calls: list[str] = []
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> str | None:
        stage = stage_for(request)
        self.calls.append(stage)
        self.requests.append(request)
        response = self.responses[stage]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(request)
        return response

    def requests_for(self, stage: str) -> list[GenerationRequest]:
        return [r for s, r in zip(self.calls, self.requests) if s == stage]


@pytest.fixture
def generation_config() -> GenerationConfig:
    return GenerationConfig(api_key="test-key")


@pytest.fixture
def app_config(generation_config: GenerationConfig) -> LazyCoderConfig:
    return LazyCoderConfig(generation=generation_config)


@pytest.fixture
def make_client() -> Callable[..., FakeGenerationClient]:
    """Factory for FakeGenerationClient with per-stage overrides."""

    def _make(**responses: Response) -> FakeGenerationClient:
        return FakeGenerationClient(responses)

    return _make


@pytest.fixture
def fake_client(make_client: Callable[..., FakeGenerationClient]) -> FakeGenerationClient:
    return make_client()


@pytest.fixture
def make_stages(generation_config: GenerationConfig) -> Callable[[FakeGenerationClient], StageSet]:
    def _make(client: FakeGenerationClient) -> StageSet:
        return StageSet.build(client, generation_config)

    return _make


@pytest.fixture
def image() -> ImagePayload:
    return ImagePayload(data=b"\x89PNG\r\n\x1a\nfake", mime_type="image/png")


@pytest.fixture
def analysis() -> AnalysisResult:
    return AnalysisResult(
        summary="Three-tier web application",
        provider="AWS",
        region="eu-west-1",
        resources=["aws_vpc", "aws_instance"],
    )


@pytest.fixture
def tf_files() -> list[TerraformFile]:
    return [
        TerraformFile(filename="main.tf", content='resource "aws_vpc" "main" {}'),
        TerraformFile(filename="variables.tf", content='variable "region" {}'),
    ]


@pytest.fixture
def perfect_review() -> ValidationResult:
    return ValidationResult(is_valid=True, score=100, issues=[], suggestions=[])


@pytest.fixture
def agent_config() -> AgentConfig:
    return AgentConfig()

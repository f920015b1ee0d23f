"""Shared workflow definitions for the test suite."""

from __future__ import annotations

import pytest

from stepflow.contracts import StepDefinition, ValidationResult, WorkflowConfig
from stepflow.persistence import InMemoryStateStore


def require(*fields: str):
    """Validator requiring every field in ``fields`` to be truthy."""

    def check(data: dict) -> ValidationResult:
        errors = {f: f"{f} is required" for f in fields if not data.get(f)}
        if errors:
            return ValidationResult.failed(errors)
        return ValidationResult.ok()

    return check


class FlakyStore(InMemoryStateStore):
    """In-memory store whose first ``failures`` writes raise."""

    def __init__(self, failures: int = 0) -> None:
        super().__init__()
        self.failures = failures
        self.write_attempts = 0

    async def set(self, key: str, value: str) -> None:
        self.write_attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("disk full")
        await super().set(key, value)


@pytest.fixture
def abc_config() -> WorkflowConfig:
    return WorkflowConfig(
        id="abc",
        name="A-B-C",
        auto_save=False,
        steps=[
            StepDefinition(id="A", title="Step A", validation=require("name")),
            StepDefinition(
                id="B", title="Step B", dependencies=["A"], validation=require("level")
            ),
            StepDefinition(id="C", title="Step C", dependencies=["B"], can_skip=True),
        ],
    )


@pytest.fixture
def project_config() -> WorkflowConfig:
    return WorkflowConfig(
        id="project-creation",
        name="Project creation",
        auto_save=False,
        steps=[
            StepDefinition(
                id="skill-assessment",
                title="Skill assessment",
                validation=require("experience_level"),
                estimated_time=3,
            ),
            StepDefinition(
                id="technology-selection",
                title="Technology selection",
                dependencies=["skill-assessment"],
                validation=require("technologies"),
            ),
            StepDefinition(
                id="repository-selection",
                title="Repository selection",
                dependencies=["technology-selection"],
                can_skip=True,
            ),
            StepDefinition(id="preview", title="Preview", can_skip=True),
            StepDefinition(
                id="creation",
                title="Creation",
                dependencies=["technology-selection"],
            ),
        ],
    )


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def flaky_store():
    """Factory for stores that fail their first ``failures`` writes."""
    return FlakyStore

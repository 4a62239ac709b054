"""Result models for provisioning steps and workflows."""

from enum import Enum

from pydantic import BaseModel, Field


class Outcome(str, Enum):
    """Tri-state outcome for step chains that degrade instead of failing."""

    SUCCEEDED = "succeeded"
    SUCCEEDED_WITH_WARNINGS = "succeeded_with_warnings"
    FAILED = "failed"


class ProvisionResult(BaseModel):
    """Result of creating a bucket or KMS key."""

    outcome: Outcome
    resource_id: str | None = None
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        """The resource is usable, possibly with degraded configuration."""
        return self.outcome is not Outcome.FAILED

    @property
    def degraded(self) -> bool:
        return self.outcome is Outcome.SUCCEEDED_WITH_WARNINGS

    @classmethod
    def failed(cls, error: str) -> "ProvisionResult":
        return cls(outcome=Outcome.FAILED, error=error)

    @classmethod
    def from_warnings(cls, resource_id: str, warnings: list[str]) -> "ProvisionResult":
        outcome = Outcome.SUCCEEDED_WITH_WARNINGS if warnings else Outcome.SUCCEEDED
        return cls(outcome=outcome, resource_id=resource_id, warnings=list(warnings))


EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class WorkflowResult(BaseModel):
    """Outcome of a full CLI workflow."""

    workflow: str
    success: bool = False
    steps: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    hint: str | None = None
    details: dict[str, str] = Field(default_factory=dict)

    @property
    def exit_code(self) -> int:
        return EXIT_SUCCESS if self.success else EXIT_FAILURE

    def step(self, message: str) -> None:
        self.steps.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def fail(self, error: str, hint: str | None = None) -> "WorkflowResult":
        self.success = False
        self.error = error
        self.hint = hint
        return self

    def succeed(self) -> "WorkflowResult":
        self.success = True
        self.error = None
        return self

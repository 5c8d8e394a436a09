from __future__ import annotations

import asyncio
import logging

from taskflow_api.schemas import (
    ActionType,
    AntiPattern,
    QualityPattern,
    ValidationCheck,
    ValidationContext,
    WorkflowStepRead,
)
from taskflow_api.store import InMemoryStore

logger = logging.getLogger(__name__)

COMMON_QUALITY_PATTERNS: tuple[QualityPattern, ...] = (
    QualityPattern(
        id="solid-principles",
        name="SOLID Principles",
        description="Follow SOLID design principles for maintainable code",
        category="DESIGN",
        requirements=[
            "Single Responsibility Principle - One reason to change",
            "Open/Closed Principle - Open for extension, closed for modification",
            "Liskov Substitution Principle - Subtypes must be substitutable",
            "Interface Segregation Principle - Client-specific interfaces",
            "Dependency Inversion Principle - Depend on abstractions",
        ],
        examples=[
            "Separate concerns into different modules",
            "Depend on protocols rather than concrete classes",
            "Pass collaborators in through constructors",
        ],
        priority="HIGH",
    ),
)

ROLE_QUALITY_PATTERNS: dict[str, tuple[QualityPattern, ...]] = {
    "boomerang": (
        QualityPattern(
            id="requirements-clarity",
            name="Requirements Clarity",
            description="Ensure clear and complete requirements definition",
            category="ANALYSIS",
            requirements=[
                "All requirements are clearly defined",
                "Acceptance criteria are specific and measurable",
                "Business value is articulated",
            ],
            examples=["User stories with clear acceptance criteria", "Business value statements"],
            priority="HIGH",
        ),
    ),
    "senior-developer": (
        QualityPattern(
            id="testing-strategy",
            name="Comprehensive Testing",
            description="Implement thorough testing at all levels",
            category="TESTING",
            requirements=["Unit tests with high coverage", "Integration tests for critical paths"],
            examples=["Unit tests per module", "API tests against the running app"],
            priority="HIGH",
        ),
    ),
}

COMMON_VALIDATION_CHECKS: tuple[ValidationCheck, ...] = (
    ValidationCheck(
        id="code-compilation",
        name="Code Compilation",
        description="Verify code compiles without errors",
        check_type="AUTOMATED",
        criteria=["No compilation errors", "No type errors"],
        expected_outcome="Clean compilation with no errors",
        failure_actions=["Fix compilation errors", "Resolve dependencies"],
    ),
)

ROLE_VALIDATION_CHECKS: dict[str, tuple[ValidationCheck, ...]] = {
    "senior-developer": (
        ValidationCheck(
            id="test-coverage",
            name="Test Coverage",
            description="Adequate test coverage for new code",
            check_type="AUTOMATED",
            criteria=["Unit test coverage > 80%", "Critical paths tested"],
            expected_outcome="High test coverage with meaningful tests",
            failure_actions=["Add missing unit tests", "Test edge cases"],
        ),
    ),
}

COMMON_ANTI_PATTERNS: tuple[AntiPattern, ...] = (
    AntiPattern(
        id="god-object",
        name="God Object",
        description="Classes or functions that do too much",
        category="DESIGN",
        indicators=["Classes with too many responsibilities", "Functions longer than 50 lines"],
        consequences=["Difficult to maintain", "Hard to test"],
        remediation=["Break into smaller classes", "Extract methods"],
    ),
)

ROLE_ANTI_PATTERNS: dict[str, tuple[AntiPattern, ...]] = {
    "boomerang": (
        AntiPattern(
            id="vague-requirements",
            name="Vague Requirements",
            description="Acceptance criteria that cannot be verified",
            category="ANALYSIS",
            indicators=["Criteria without measurable outcomes", "Missing business value"],
            consequences=["Rework after review", "Scope creep"],
            remediation=["Rewrite criteria as testable statements", "State the business value"],
        ),
    ),
    "architect": (
        AntiPattern(
            id="big-bang-design",
            name="Big Bang Design",
            description="Plans that cannot be delivered or tested incrementally",
            category="ARCHITECTURE",
            indicators=["Single batch covering every change", "No subtask dependencies declared"],
            consequences=["Late integration failures", "Hard to review"],
            remediation=["Split the plan into independent batches", "Declare dependencies between subtasks"],
        ),
    ),
    "senior-developer": (
        AntiPattern(
            id="untested-code",
            name="Untested Code",
            description="Changes merged without tests covering them",
            category="TESTING",
            indicators=["New functions without tests", "Failing or skipped tests"],
            consequences=["Regressions", "Low confidence in refactoring"],
            remediation=["Add unit tests for new code", "Cover edge cases"],
        ),
    ),
    "code-review": (
        AntiPattern(
            id="rubber-stamp-review",
            name="Rubber Stamp Review",
            description="Approving changes without checking acceptance criteria",
            category="REVIEW",
            indicators=["Approval without comments", "Acceptance criteria not verified"],
            consequences=["Defects reach production"],
            remediation=["Verify each acceptance criterion", "Run the tests locally"],
        ),
    ),
}

ROLE_STANDARDS: dict[str, tuple[str, ...]] = {
    "boomerang": ("Ensure clear requirements", "Validate business value"),
    "researcher": ("Use credible sources", "Provide evidence-based conclusions"),
    "architect": ("Follow architectural principles", "Ensure scalability"),
    "senior-developer": ("Follow SOLID principles", "Implement comprehensive testing"),
    "code-review": ("Validate acceptance criteria", "Check code quality"),
}
DEFAULT_ROLE_STANDARDS: tuple[str, ...] = ("Follow best practices",)

PROJECT_STANDARDS: tuple[str, ...] = (
    "Follow the project's language conventions",
    "Maintain consistent code style",
    "Implement proper error handling",
    "Write comprehensive tests",
)


class ValidationContextBuilder:
    """Quality patterns, checks and anti-patterns for a role's step.

    Each part is derived from the configured workflow steps first. A part that
    comes out empty, or whose lookup fails, is replaced by the generic plus
    role-specific catalog so enrichment never fails the enclosing request.
    """

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def build(self, role_name: str, step_id: str | None, task_id: int) -> ValidationContext:
        patterns, checks, anti_patterns, step_criteria, project_standards = await asyncio.gather(
            self.quality_patterns(role_name, step_id),
            self.validation_checks(role_name, step_id),
            self.anti_patterns(role_name, step_id),
            self.step_criteria(step_id),
            self.project_standards(task_id),
        )
        return ValidationContext(
            quality_patterns=patterns,
            validation_checks=checks,
            anti_patterns=anti_patterns,
            role_standards=list(ROLE_STANDARDS.get(role_name, DEFAULT_ROLE_STANDARDS)),
            step_criteria=step_criteria,
            project_standards=project_standards,
        )

    async def quality_patterns(self, role_name: str, step_id: str | None) -> list[QualityPattern]:
        try:
            steps = await self._steps(role_name, step_id)
            patterns: list[QualityPattern] = []
            for step in steps:
                patterns.extend(_patterns_from_step(step))
        except Exception:
            logger.warning("quality pattern lookup failed for role %s", role_name, exc_info=True)
            patterns = []

        if not patterns:
            logger.warning("no quality patterns configured for role %s, using catalog", role_name)
            return [*COMMON_QUALITY_PATTERNS, *ROLE_QUALITY_PATTERNS.get(role_name, ())]
        return patterns

    async def validation_checks(self, role_name: str, step_id: str | None) -> list[ValidationCheck]:
        try:
            actions = await self._store.list_step_actions(
                step_id=step_id,
                role_name=role_name,
                action_type=ActionType.VALIDATION,
            )
            steps = {step.id: step for step in await self._steps(role_name, step_id)}
            checks: list[ValidationCheck] = []
            for action in actions:
                data = action.action_data or {}
                criteria = data.get("criteria")
                expected = data.get("expected_outcome", data.get("expectedOutcome"))
                failure_actions = data.get("failure_actions", data.get("failureActions"))
                step = steps.get(action.step_id)
                checks.append(
                    ValidationCheck(
                        id=str(action.id),
                        name=action.name,
                        description=f"Validation check for {step.name if step else action.step_id}",
                        check_type="AUTOMATED",
                        criteria=criteria if isinstance(criteria, list) else ["Validation criteria not specified"],
                        expected_outcome=expected if isinstance(expected, str) else "Validation should pass",
                        failure_actions=(
                            failure_actions
                            if isinstance(failure_actions, list)
                            else ["Review and fix validation errors"]
                        ),
                    )
                )
        except Exception:
            logger.warning("validation check lookup failed for role %s", role_name, exc_info=True)
            checks = []

        if not checks:
            logger.warning("no validation checks configured for role %s, using catalog", role_name)
            return [*COMMON_VALIDATION_CHECKS, *ROLE_VALIDATION_CHECKS.get(role_name, ())]
        return checks

    async def anti_patterns(self, role_name: str, step_id: str | None) -> list[AntiPattern]:
        try:
            steps = await self._steps(role_name, step_id)
            anti_patterns: list[AntiPattern] = []
            for step in steps:
                anti_patterns.extend(_anti_patterns_from_step(step))
        except Exception:
            logger.warning("anti-pattern lookup failed for role %s", role_name, exc_info=True)
            anti_patterns = []

        if not anti_patterns:
            logger.warning("no anti-patterns configured for role %s, using catalog", role_name)
            return [*COMMON_ANTI_PATTERNS, *ROLE_ANTI_PATTERNS.get(role_name, ())]
        return anti_patterns

    async def step_criteria(self, step_id: str | None) -> list[str]:
        if not step_id:
            return []
        try:
            step = await self._store.get_step(step_id)
        except Exception:
            logger.warning("step criteria lookup failed for step %s", step_id, exc_info=True)
            return []
        return list(step.quality_checklist.items) if step.quality_checklist else []

    async def project_standards(self, task_id: int) -> list[str]:
        standards = list(PROJECT_STANDARDS)
        try:
            description = await self._store.get_task_description(task_id)
        except Exception:
            logger.warning("project lookup failed for task %s, using default standards", task_id)
            return standards
        if description.technical_requirements:
            standards.append(f"Meet technical requirements: {description.technical_requirements}")
        return standards

    async def _steps(self, role_name: str, step_id: str | None) -> list[WorkflowStepRead]:
        return await self._store.list_steps(role_name=role_name, step_id=step_id)


def _patterns_from_step(step: WorkflowStepRead) -> list[QualityPattern]:
    patterns: list[QualityPattern] = []
    if step.behavioral_context and step.behavioral_context.principles:
        patterns.append(
            QualityPattern(
                id=f"{step.id}-principles",
                name=f"{step.name} Principles",
                description=f"Quality principles for {step.name}",
                category="BEHAVIORAL",
                requirements=list(step.behavioral_context.principles),
                priority="HIGH",
            )
        )
    if step.pattern_enforcement and step.pattern_enforcement.required_patterns:
        patterns.append(
            QualityPattern(
                id=f"{step.id}-patterns",
                name=f"{step.name} Required Patterns",
                description=f"Required patterns for {step.name}",
                category="ARCHITECTURAL",
                requirements=list(step.pattern_enforcement.required_patterns),
                priority="HIGH",
            )
        )
    if step.quality_checklist and step.quality_checklist.quality_gates:
        patterns.append(
            QualityPattern(
                id=f"{step.id}-quality",
                name=f"{step.name} Quality Gates",
                description=f"Quality requirements for {step.name}",
                category="QUALITY",
                requirements=list(step.quality_checklist.quality_gates),
                priority="MEDIUM",
            )
        )
    return patterns


def _anti_patterns_from_step(step: WorkflowStepRead) -> list[AntiPattern]:
    anti_patterns: list[AntiPattern] = []
    if step.pattern_enforcement:
        for rule in step.pattern_enforcement.anti_patterns:
            anti_patterns.append(
                AntiPattern(
                    id=f"{step.id}-{rule.name}",
                    name=rule.name,
                    description=rule.description,
                    category="PATTERN_VIOLATION",
                    indicators=list(rule.indicators),
                    consequences=list(rule.consequences),
                    remediation=list(rule.remediation),
                )
            )
    if step.context_validation:
        for check in step.context_validation.anti_pattern_checks:
            anti_patterns.append(
                AntiPattern(
                    id=f"{step.id}-validation-{check}",
                    name=f"Avoid {check}",
                    description=f"Anti-pattern check: {check}",
                    category="VALIDATION",
                    indicators=[check],
                    consequences=["Code quality degradation"],
                    remediation=["Follow established patterns"],
                )
            )
    return anti_patterns

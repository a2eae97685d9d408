"""
Decomposition Strategies

A strategy is a pure function ``(title, description, specification) ->
list[SubtaskDescriptor]``. Strategies are looked up by work item type in
DECOMPOSITION_STRATEGIES; types without an entry use the generic strategy.
New types are supported by calling register_strategy().
"""

from typing import Callable

from boardpilot.core.domain.models import SubtaskDescriptor

DecompositionStrategy = Callable[[str, str, str], list[SubtaskDescriptor]]


def breakdown_feature(title: str, description: str, specification: str) -> list[SubtaskDescriptor]:
    """Hierarchical breakdown for Features and Epics."""
    return [
        SubtaskDescriptor(
            key="analysis",
            title=f"[Analysis] Research and design for {title}",
            description="Research technical approach, design architecture, and identify dependencies",
            estimated_effort=5,
            priority=1,
        ),
        SubtaskDescriptor(
            key="implementation",
            title=f"[Implementation] Core implementation for {title}",
            description="Implement main functionality based on design",
            estimated_effort=13,
            depends_on=["analysis"],
            priority=1,
        ),
        SubtaskDescriptor(
            key="testing",
            title=f"[Testing] Test {title}",
            description="Write unit tests, integration tests, and perform QA",
            estimated_effort=8,
            depends_on=["implementation"],
            priority=2,
        ),
        SubtaskDescriptor(
            key="documentation",
            title=f"[Documentation] Document {title}",
            description="Update documentation, write user guides if needed",
            estimated_effort=3,
            depends_on=["implementation"],
            priority=3,
        ),
    ]


def breakdown_user_story(title: str, description: str, specification: str) -> list[SubtaskDescriptor]:
    return [
        SubtaskDescriptor(
            key="design",
            title=f"[Design] UI/UX design for {title}",
            description="Create mockups and define user interactions",
            estimated_effort=3,
            priority=1,
        ),
        SubtaskDescriptor(
            key="backend",
            title=f"[Backend] API implementation for {title}",
            description="Implement backend API endpoints and business logic",
            estimated_effort=5,
            priority=1,
        ),
        SubtaskDescriptor(
            key="frontend",
            title=f"[Frontend] UI implementation for {title}",
            description="Implement frontend components and integration",
            estimated_effort=5,
            depends_on=["design", "backend"],
            priority=2,
        ),
        SubtaskDescriptor(
            key="testing",
            title=f"[Testing] Test {title}",
            description="Write tests and validate acceptance criteria",
            estimated_effort=3,
            depends_on=["frontend"],
            priority=2,
        ),
    ]


def breakdown_bug(title: str, description: str, specification: str) -> list[SubtaskDescriptor]:
    return [
        SubtaskDescriptor(
            key="investigation",
            title=f"[Investigation] Root cause analysis for {title}",
            description="Investigate and identify root cause of the bug",
            estimated_effort=2,
            priority=1,
        ),
        SubtaskDescriptor(
            key="fix",
            title=f"[Fix] Implement fix for {title}",
            description="Implement and test the fix",
            estimated_effort=3,
            depends_on=["investigation"],
            priority=1,
        ),
        SubtaskDescriptor(
            key="verification",
            title=f"[Verification] Verify fix for {title}",
            description="Verify fix resolves the issue and doesn't introduce regressions",
            estimated_effort=2,
            depends_on=["fix"],
            priority=2,
        ),
    ]


def breakdown_generic(title: str, description: str, specification: str) -> list[SubtaskDescriptor]:
    return [
        SubtaskDescriptor(
            key="planning",
            title=f"[Planning] Plan {title}",
            description="Define scope and approach",
            estimated_effort=2,
            priority=1,
        ),
        SubtaskDescriptor(
            key="implementation",
            title=f"[Implementation] Implement {title}",
            description="Core implementation work",
            estimated_effort=8,
            depends_on=["planning"],
            priority=1,
        ),
        SubtaskDescriptor(
            key="review",
            title=f"[Review] Review {title}",
            description="Code review and testing",
            estimated_effort=3,
            depends_on=["implementation"],
            priority=2,
        ),
    ]


DECOMPOSITION_STRATEGIES: dict[str, DecompositionStrategy] = {
    "Feature": breakdown_feature,
    "Epic": breakdown_feature,
    "User Story": breakdown_user_story,
    "Bug": breakdown_bug,
}


def register_strategy(work_item_type: str, strategy: DecompositionStrategy) -> None:
    """Register (or replace) the strategy used for a work item type."""
    DECOMPOSITION_STRATEGIES[work_item_type] = strategy


def get_strategy(work_item_type: str) -> DecompositionStrategy:
    return DECOMPOSITION_STRATEGIES.get(work_item_type, breakdown_generic)


# keyword (matched case-insensitively) -> descriptor appended to the plan
APPROACH_TASKS: list[tuple[str, SubtaskDescriptor]] = [
    (
        "tdd",
        SubtaskDescriptor(
            key="tdd",
            title="[TDD] Write tests first",
            description="Write test cases before implementation",
            estimated_effort=3,
            priority=1,
        ),
    ),
    (
        "spike",
        SubtaskDescriptor(
            key="spike",
            title="[Spike] Technical investigation",
            description="Time-boxed technical investigation",
            estimated_effort=5,
            priority=1,
        ),
    ),
]


def approach_tasks(approach: str | None) -> list[SubtaskDescriptor]:
    """Descriptors for every approach keyword the hint mentions."""
    if not approach:
        return []
    hint = approach.lower()
    return [
        SubtaskDescriptor(
            key=task.key,
            title=task.title,
            description=task.description,
            work_item_type=task.work_item_type,
            estimated_effort=task.estimated_effort,
            priority=task.priority,
        )
        for keyword, task in APPROACH_TASKS
        if keyword in hint
    ]

"""
Specification analysis.

Pure functions that decide whether enough is known about a work item to
write a specification, pick the clarifying questions to ask otherwise, and
render the sectioned specification document.
"""

from typing import Mapping

from boardpilot.core.domain.models import SpecificationResult, SpecifyState, WorkItem

DESCRIPTION_MIN_LENGTH = 20

ANSWER_TOPICS = ("scenarios", "stakeholders", "reproduction", "acceptance", "constraints")

# answer topic -> specification section heading, in rendering order
_SECTIONS = [
    ("scenarios", "User Scenarios"),
    ("stakeholders", "Stakeholders"),
    ("reproduction", "Reproduction Steps"),
    ("acceptance", "Acceptance Criteria"),
    ("constraints", "Technical Constraints"),
]


def clarifying_questions(work_item_type: str, answers: Mapping[str, str]) -> list[str]:
    """Questions for an item that lacks both a description and answers."""
    questions = [
        "What is the detailed description and goal of this work item?",
        "What are the acceptance criteria?",
        "Are there any technical constraints or dependencies?",
    ]

    if work_item_type in ("User Story", "Feature"):
        if not answers.get("scenarios"):
            questions.append("What are the key user scenarios or use cases?")
        if not answers.get("stakeholders"):
            questions.append("Who are the stakeholders or end users?")

    if work_item_type == "Bug" and not answers.get("reproduction"):
        questions.append("What are the steps to reproduce the issue?")
        questions.append("What is the expected vs actual behavior?")

    return questions


def analyze_work_item(
    work_item: WorkItem,
    children: list[WorkItem],
    related: list[WorkItem],
    answers: Mapping[str, str],
) -> SpecificationResult:
    has_description = len(work_item.description) > DESCRIPTION_MIN_LENGTH
    has_answers = len(answers) > 0

    if not has_description and not has_answers:
        return SpecificationResult(
            state=SpecifyState.GATHERING,
            specification=f"Analyzing work item: {work_item.title}",
            needs_more_info=True,
            clarifying_questions=clarifying_questions(work_item.work_item_type, answers),
        )

    return SpecificationResult(
        state=SpecifyState.COMPLETE,
        specification=build_specification(
            work_item, answers, children_count=len(children), related_count=len(related)
        ),
        needs_more_info=False,
    )


def build_specification(
    work_item: WorkItem,
    answers: Mapping[str, str],
    children_count: int = 0,
    related_count: int = 0,
) -> str:
    sections = [f"# {work_item.title}", f"**Type:** {work_item.work_item_type}\n"]

    if work_item.description:
        sections.extend(["## Description", work_item.description, ""])

    for topic, heading in _SECTIONS:
        if answers.get(topic):
            sections.extend([f"## {heading}", answers[topic], ""])

    if children_count or related_count:
        sections.append("## Context")
        if children_count:
            sections.append(f"- Has {children_count} existing subtasks")
        if related_count:
            sections.append(f"- Related to {related_count} other work items")
        sections.append("")

    return "\n".join(sections)

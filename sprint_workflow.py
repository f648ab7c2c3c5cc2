"""
Workflow pattern detection over an issue's status-change history.

Status names differ per Jira project, so transitions are classified by
case-insensitive substring matches against small vocabularies. The result is
a best-effort heuristic: custom status names can slip through (false
negatives), and broad terms such as "test" or "new" can match unrelated
labels (false positives are not guarded against).
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sprint_models import StatusChange

QA_STATUSES = ('qa', 'testing', 'test', 'in qa', 'ready for qa', 'in testing')
REVIEW_STATUSES = ('review', 'code review', 'in review', 'pr review')
TODO_STATUSES = ('to do', 'todo', 'open', 'backlog', 'new')
IN_PROGRESS_STATUSES = ('in progress', 'in development', 'dev', 'development')
BLOCKED_STATUSES = ('blocked', 'on hold', 'waiting', 'impediment')
DONE_STATUSES = ('done', 'closed', 'resolved')

# More transitions than this counts as a complex workflow on its own
MAX_SIMPLE_TRANSITIONS = 4


@dataclass(frozen=True)
class WorkflowPattern:
    returned_from_qa: bool = False
    returned_from_review: bool = False
    reopened: bool = False
    blocked_at_some_point: bool = False
    back_and_forth: bool = False
    total_transitions: int = 0


def _matches(label: str, vocabulary: Iterable[str]) -> bool:
    return any(term in label for term in vocabulary)


def _is_rework_target(label: str) -> bool:
    return _matches(label, TODO_STATUSES) or _matches(label, IN_PROGRESS_STATUSES)


def analyze_workflow(status_changes: Optional[Sequence[StatusChange]]) -> Optional[WorkflowPattern]:
    """Classify a status-change sequence into workflow patterns.

    Args:
        status_changes: Transitions in the order supplied by the tracker

    Returns:
        WorkflowPattern, or None when there are no transitions at all

    Examples:
        >>> analyze_workflow([StatusChange("In QA", "To Do")]).returned_from_qa
        True
        >>> analyze_workflow([]) is None
        True
    """
    if not status_changes:
        return None

    returned_from_qa = returned_from_review = reopened = blocked = False

    for change in status_changes:
        source = (change.from_status or '').lower()
        target = (change.to_status or '').lower()

        if _matches(source, QA_STATUSES) and _is_rework_target(target):
            returned_from_qa = True

        if _matches(source, REVIEW_STATUSES) and _is_rework_target(target):
            returned_from_review = True

        if _matches(source, DONE_STATUSES) and 'done' not in target:
            reopened = True

        if _matches(source, BLOCKED_STATUSES) or _matches(target, BLOCKED_STATUSES):
            blocked = True

    total = len(status_changes)
    return WorkflowPattern(
        returned_from_qa=returned_from_qa,
        returned_from_review=returned_from_review,
        reopened=reopened,
        blocked_at_some_point=blocked,
        # A single return from QA or review already counts as rework
        back_and_forth=total > MAX_SIMPLE_TRANSITIONS or returned_from_qa or returned_from_review,
        total_transitions=total,
    )

"""
Rule-based sprint summary, used when no language model is reachable.

Only arithmetic over the enriched data and the workflow analysis is used, so
this never fails for valid input.
"""

import re
from typing import List

from sprint_models import EnrichedIssue, EnrichedSprintData
from sprint_text import strip_markdown
from sprint_workflow import analyze_workflow

BLOCKER_PATTERN = re.compile(r'block|waiting|depend|stuck|delay|impediment', re.IGNORECASE)
MAX_LISTED_ISSUES = 5
CLOSING_NOTE = "*Note: Add GEMINI_API_KEY for AI-powered deeper insights*"


def mentions_blocker(issue: EnrichedIssue) -> bool:
    """True if any comment talks about blockers, waiting or dependencies."""
    return any(BLOCKER_PATTERN.search(c.text or '') for c in issue.comments)


def _keys(issues: List[EnrichedIssue]) -> str:
    return ', '.join(i.key for i in issues)


def generate_rule_based_summary(data: EnrichedSprintData) -> str:
    """Produce the markdown narrative for a sprint without any model call."""
    sprint = data.sprint
    issues = list(data.issues)

    bugs = [i for i in issues if i.is_bug]
    over_time = [i for i in issues if i.is_over_estimate]
    blocker_mentions = [i for i in issues if mentions_blocker(i)]

    qa_returns: List[EnrichedIssue] = []
    review_returns: List[EnrichedIssue] = []
    reopened: List[EnrichedIssue] = []
    complex_workflows: List[EnrichedIssue] = []

    for issue in issues:
        workflow = analyze_workflow(issue.status_changes)
        if workflow is None:
            continue
        if workflow.returned_from_qa:
            qa_returns.append(issue)
        if workflow.returned_from_review:
            review_returns.append(issue)
        if workflow.reopened:
            reopened.append(issue)
        if workflow.back_and_forth:
            complex_workflows.append(issue)

    completed = sum(1 for i in issues if i.is_done)

    summary = "## 🎯 Sprint Accomplishments\n"
    summary += f"**{sprint.name}** - {completed}/{data.total_issues} issues completed.\n"
    if sprint.goal:
        summary += f"Goal: {sprint.goal}\n"
    summary += "\n"

    summary += "## ⚠️ Issues That Had Problems\n"
    problem_issues: List[EnrichedIssue] = []
    for issue in qa_returns + review_returns + reopened + blocker_mentions:
        if issue not in problem_issues:
            problem_issues.append(issue)
    if problem_issues:
        for issue in problem_issues[:MAX_LISTED_ISSUES]:
            reasons = []
            if issue in qa_returns:
                reasons.append('returned from QA')
            if issue in review_returns:
                reasons.append('returned from code review')
            if issue in reopened:
                reasons.append('was reopened')
            if issue in blocker_mentions:
                reasons.append('had blockers mentioned')
            summary += f"- **{issue.key}**: {strip_markdown(issue.summary)}\n  *Issue: {', '.join(reasons)}*\n"
    else:
        summary += "- No major workflow issues detected\n"

    summary += "\n## 🐛 Quality & Bugs\n"
    if bugs:
        summary += f"**Bugs logged:** {_keys(bugs)}\n"
    if qa_returns:
        summary += f"**Returned from QA:** {_keys(qa_returns)} - Check these for quality patterns\n"
    if review_returns:
        summary += f"**Returned from Code Review:** {_keys(review_returns)}\n"
    if not (bugs or qa_returns or review_returns):
        summary += "- No bugs or quality issues detected in workflow\n"

    summary += "\n## ⏰ Time Analysis\n"
    if over_time:
        for issue in over_time[:MAX_LISTED_ISSUES]:
            summary += f"- **{issue.key}**: Took {issue.estimate_ratio}% of estimated time\n"
    else:
        summary += "- Most issues completed within reasonable time estimates\n"

    summary += "\n## 💡 Key Observations\n"
    if complex_workflows:
        summary += f"- {len(complex_workflows)} issue(s) had complex workflows with multiple status changes\n"
    if blocker_mentions:
        summary += f"- {len(blocker_mentions)} issue(s) had blockers or dependencies mentioned in comments\n"
    if qa_returns:
        summary += f"- {len(qa_returns)} issue(s) returned from QA - consider improving testing before QA handoff\n"

    summary += f"\n{CLOSING_NOTE}"

    return summary

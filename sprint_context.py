"""
Builds the text block handed to the language-model backends.

The output is deterministic for a given EnrichedSprintData: sprint header,
one block per analyzed issue (time tracking, workflow history with insights,
recent comments) and a closing pattern summary across issues.
"""

from typing import List

from sprint_format import format_hours, format_short_date
from sprint_models import EnrichedIssue, EnrichedSprintData
from sprint_text import strip_markdown
from sprint_workflow import WorkflowPattern, analyze_workflow

MAX_COMMENTS_PER_ISSUE = 5
MAX_COMMENT_CHARS = 400
ISSUE_SEPARATOR = "─" * 40


def _time_line(issue: EnrichedIssue) -> str:
    estimate = format_hours(issue.original_estimate) if issue.original_estimate else "Not estimated"
    spent = format_hours(issue.time_spent) if issue.time_spent else "0h"
    ratio = issue.estimate_ratio
    variance = f" ({ratio}% of estimate)" if ratio is not None else ""
    return f"Time: Estimated {estimate} | Spent {spent}{variance}\n"


def _insight_lines(workflow: WorkflowPattern) -> List[str]:
    lines = []
    if workflow.returned_from_qa:
        lines.append("  ⚠️ RETURNED FROM QA - Bug found or requirements issue\n")
    if workflow.returned_from_review:
        lines.append("  ⚠️ RETURNED FROM CODE REVIEW - Code changes needed\n")
    if workflow.reopened:
        lines.append("  ⚠️ REOPENED - Was marked done but reopened\n")
    if workflow.blocked_at_some_point:
        lines.append("  ⚠️ WAS BLOCKED at some point during sprint\n")
    if workflow.back_and_forth:
        lines.append("  ⚠️ COMPLEX WORKFLOW - Multiple back-and-forth transitions\n")
    return lines


def _issue_block(issue: EnrichedIssue, workflow) -> str:
    block = f"\n{ISSUE_SEPARATOR}\n"
    block += f"ISSUE: {issue.key}\n"
    block += f"Summary: {issue.summary}\n"
    block += f"Type: {issue.type} | Current Status: {issue.status}\n"

    if issue.original_estimate or issue.time_spent:
        block += _time_line(issue)

    if issue.status_changes:
        block += f"\nWORKFLOW HISTORY ({len(issue.status_changes)} transitions):\n"
        for change in issue.status_changes:
            by = f", by {change.author}" if change.author else ""
            block += f"  • {change.from_status} → {change.to_status} ({format_short_date(change.date)}{by})\n"
        if workflow is not None:
            block += "\nWORKFLOW INSIGHTS:\n"
            block += "".join(_insight_lines(workflow))

    if issue.comments:
        block += f"\nCOMMENTS ({len(issue.comments)} total):\n"
        for comment in issue.comments[:MAX_COMMENTS_PER_ISSUE]:
            body = strip_markdown(comment.text or "")
            text = body[:MAX_COMMENT_CHARS] or "[empty]"
            ellipsis = "..." if len(body) > MAX_COMMENT_CHARS else ""
            block += f"  [{format_short_date(comment.date)}] {comment.author or 'Unknown'}:\n"
            block += f'    "{text}{ellipsis}"\n'

    return block


def build_sprint_context(data: EnrichedSprintData) -> str:
    """Serialize sprint, issues and their workflow analysis into one text block.

    Args:
        data: Enriched sprint data; issues beyond those supplied are only
            reflected in the "Total Issues Assigned" count.

    Returns:
        Plain text suitable as language-model input
    """
    sprint = data.sprint
    start = format_short_date(sprint.start_date) or "not set"
    end = format_short_date(sprint.end_date) or "not set"

    context = "=== SPRINT ANALYSIS DATA ===\n\n"
    context += "SPRINT INFO:\n"
    context += f"- Name: {sprint.name}\n"
    context += f"- Goal: {sprint.goal or 'No goal set'}\n"
    context += f"- Duration: {start} to {end}\n"
    context += f"- Total Issues Assigned: {data.total_issues}\n"
    context += f"- Issues Analyzed Below: {len(data.issues)}\n\n"

    qa_returns: List[str] = []
    review_returns: List[str] = []
    reopened: List[str] = []
    blocked: List[str] = []
    over_time: List[str] = []
    bugs: List[str] = []

    context += "=== DETAILED ISSUE BREAKDOWN ===\n"

    for issue in data.issues:
        workflow = analyze_workflow(issue.status_changes)

        if workflow is not None:
            if workflow.returned_from_qa:
                qa_returns.append(issue.key)
            if workflow.returned_from_review:
                review_returns.append(issue.key)
            if workflow.reopened:
                reopened.append(issue.key)
            if workflow.blocked_at_some_point:
                blocked.append(issue.key)
        if issue.is_over_estimate:
            over_time.append(f"{issue.key} ({issue.estimate_ratio}%)")
        if issue.is_bug:
            bugs.append(issue.key)

        context += _issue_block(issue, workflow)

    context += "\n\n=== PATTERN SUMMARY ===\n"
    buckets = (
        ("🔴 Issues returned from QA", qa_returns),
        ("🟠 Issues returned from Code Review", review_returns),
        ("🟡 Issues reopened after completion", reopened),
        ("⛔ Issues that were blocked", blocked),
        ("⏰ Issues over time estimate", over_time),
        ("🐛 Bugs in sprint", bugs),
    )
    for label, keys in buckets:
        if keys:
            context += f"{label}: {', '.join(keys)}\n"

    return context

"""
Jira Sprint AI Report
---------------------
Summarizes what happened in a sprint: status transitions, QA and review
returns, blockers, time overruns. The narrative comes from Gemini when a
GEMINI_API_KEY is configured, otherwise from a local Ollama server, and
falls back to a rule-based summary when neither answers.

Usage:
    python sprint_ai_report.py                    # active sprint of JT_JIRA_BOARD
    python sprint_ai_report.py --sprint 123 --backend ollama
    python sprint_ai_report.py --input enriched.json --format html --output report.html
    python sprint_ai_report.py --status
    python sprint_ai_report.py --list-sprints --months 6

Requirements:
    - Jira credentials in `.jira_environment` in the script directory
    - Optional: GEMINI_API_KEY, GEMINI_MODEL, OLLAMA_URL, OLLAMA_MODEL
"""

import argparse
import json
import logging
import os
import sys
from html import escape
from pathlib import Path

from ai_summarizer import SprintSummarizer
from sprint_config import get_setting, load_ai_config
from sprint_enrich import DEFAULT_JQL, fetch_enriched_sprint, get_active_sprint_id, list_sprints
from sprint_format import format_short_date
from sprint_models import Backend, EnrichedSprintData, SprintDataError
from sprint_security import get_safe_logger
from sprint_text import (
    format_inline_markdown,
    is_bullet_point,
    parse_summary_sections,
    remove_bullet_marker,
    strip_markdown,
)

logger = get_safe_logger("sprint_ai_report")


def configure_logging(verbose: bool = False):
    _log_level = os.environ.get("JPT_VERBOSE")
    if verbose or (_log_level and _log_level not in ("", "0", "False", "false")):
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


def render_plain(summary: str) -> str:
    """Markdown-free text: upper-cased section titles and '•' bullets."""
    blocks = []
    for section in parse_summary_sections(summary):
        lines = [section.title.upper()]
        for line in section.content:
            if is_bullet_point(line):
                lines.append(f"  • {strip_markdown(remove_bullet_marker(line))}")
            else:
                lines.append(f"  {strip_markdown(line)}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) if blocks else strip_markdown(summary)


def render_html(summary: str, title: str = "Sprint Summary") -> str:
    """Minimal standalone HTML page for the summary."""
    html = [
        "<html>",
        "<body style='font-family: Arial, sans-serif; font-size: 14px;'>",
        f"<h1>{escape(title)}</h1>",
    ]
    for section in parse_summary_sections(summary):
        html.append(f"<h2>{escape(section.title)}</h2>")
        in_list = False
        for line in section.content:
            if is_bullet_point(line):
                if not in_list:
                    html.append("<ul>")
                    in_list = True
                html.append(f"<li>{format_inline_markdown(escape(remove_bullet_marker(line), quote=False))}</li>")
                continue
            if in_list:
                html.append("</ul>")
                in_list = False
            html.append(f"<p>{format_inline_markdown(escape(line, quote=False))}</p>")
        if in_list:
            html.append("</ul>")
    html.extend(["</body>", "</html>"])
    return "\n".join(html)


def load_enriched_input(path: Path) -> EnrichedSprintData:
    with path.open(encoding="utf-8") as fh:
        return EnrichedSprintData.from_dict(json.load(fh))


def resolve_board_id(args) -> str:
    board_id = args.board or get_setting("JT_JIRA_BOARD")
    if not board_id:
        raise SprintDataError("No --board given and JT_JIRA_BOARD is not configured")
    return board_id


def format_sprint_list(sprints) -> str:
    """One line per sprint: id, state, start date, name."""
    if not sprints:
        return "No sprints found."
    lines = []
    for sprint in sprints:
        start = format_short_date(sprint.get("startDate")) or "-"
        lines.append(f"{sprint.get('id'):>6}  {sprint.get('state', ''):<7} {start:<10}  {sprint.get('name', '')}")
    return "\n".join(lines)


def resolve_sprint_data(args) -> EnrichedSprintData:
    if args.input:
        return load_enriched_input(Path(args.input))
    sprint_id = args.sprint
    if sprint_id is None:
        board_id = resolve_board_id(args)
        sprint_id = get_active_sprint_id(board_id)
        logger.info("Using active sprint %s of board %s", sprint_id, board_id)
    jql = None if args.all_assignees else DEFAULT_JQL
    return fetch_enriched_sprint(sprint_id, jql=jql)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Summarize a Jira sprint with AI (Gemini, Ollama) or rule-based fallback.")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--sprint", type=int, help="Sprint id (default: active sprint of JT_JIRA_BOARD).")
    source.add_argument("--input", help="Read enriched sprint JSON from this file instead of Jira.")
    parser.add_argument("--backend", choices=[b.value for b in Backend], help="Backend to try first.")
    parser.add_argument("--format", choices=["markdown", "plain", "html"], default="markdown", help="Output format.")
    parser.add_argument("--output", help="Write the summary to this file instead of stdout.")
    parser.add_argument("--save-enriched", help="Also write the enriched sprint JSON to this file.")
    parser.add_argument("--all-assignees", action="store_true", help="Analyze every issue, not only your own.")
    parser.add_argument("--status", action="store_true", help="Show backend availability as JSON and exit.")
    parser.add_argument("--list-sprints", action="store_true", help="List recent sprints of the board and exit.")
    parser.add_argument("--board", help="Board id for the active sprint and --list-sprints (default: JT_JIRA_BOARD).")
    parser.add_argument("--months", type=int, default=12, help="How many months back --list-sprints looks (default: 12).")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    summarizer = SprintSummarizer(load_ai_config())

    if args.status:
        print(json.dumps(summarizer.get_backend_status().to_dict(), indent=2))
        return 0

    if args.list_sprints:
        try:
            sprints = list_sprints(resolve_board_id(args), months_back=args.months)
        except (SprintDataError, ValueError, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2
        print(format_sprint_list(sprints))
        return 0

    try:
        data = resolve_sprint_data(args)
    except (SprintDataError, LookupError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.save_enriched:
        Path(args.save_enriched).write_text(json.dumps(data.to_dict(), indent=2), encoding="utf-8")

    result = summarizer.generate_summary(data, preferred=args.backend)
    print(f"Source: {result.source.value}", file=sys.stderr)

    if args.format == "plain":
        output = render_plain(result.summary)
    elif args.format == "html":
        output = render_html(result.summary, title=data.sprint.name)
    else:
        output = result.summary

    if args.output:
        Path(args.output).write_text(output + "\n", encoding="utf-8")
        logger.info("Summary written to %s", args.output)
    else:
        print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())

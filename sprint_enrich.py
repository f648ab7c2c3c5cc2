"""
Fetch a sprint from Jira and enrich its issues for summarization.

Sprint metadata and the issue list come through the shared retrying Jira
session. For the first MAX_ANALYZED_ISSUES issues the changelog and comments
are then fetched concurrently with aiohttp; each of those fetches may fail on
its own and simply leaves that issue with an empty history or comment list.
"""

import asyncio
import calendar
import ssl
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import aiohttp
import requests
from aiohttp import BasicAuth, ClientTimeout

from sprint_config import JiraConnection, build_jira_session, get_jira_session, load_jira_connection
from sprint_format import parse_iso8601_datetime
from sprint_models import CommentSummary, EnrichedIssue, EnrichedSprintData, Sprint, StatusChange
from sprint_security import get_safe_logger, validate_issue_key, validate_numeric_id

logger = get_safe_logger(__name__)

MAX_ANALYZED_ISSUES = 20
MAX_COMMENT_CHARS = 500
CHANGELOG_PAGE_SIZE = 50
COMMENT_PAGE_SIZE = 20
DEFAULT_JQL = "assignee = currentUser()"
SPRINT_PAGE_SIZE = 50
MAX_SPRINT_SCAN = 500


def extract_text_from_adf(body: Any) -> str:
    """Flatten an Atlassian Document Format body into plain text.

    Text nodes are joined with single spaces and the result is capped at
    500 characters. Plain string bodies (Jira Server, API v2) are capped the
    same way.

    Examples:
        >>> extract_text_from_adf({"type": "doc", "content": [
        ...     {"type": "paragraph", "content": [{"type": "text", "text": "Waiting on API"}]}]})
        'Waiting on API'
    """
    if isinstance(body, str):
        return body[:MAX_COMMENT_CHARS]
    if not isinstance(body, dict):
        return ''

    def extract(node: Any) -> str:
        if not isinstance(node, dict):
            return ''
        if node.get('type') == 'text':
            return node.get('text') or ''
        content = node.get('content')
        if isinstance(content, list):
            return ' '.join(extract(child) for child in content)
        return ''

    return extract(body)[:MAX_COMMENT_CHARS]


def parse_status_changes(changelog: Optional[Dict[str, Any]]) -> List[StatusChange]:
    """Flatten changelog entries into status transitions, oldest first as returned by Jira."""
    changes: List[StatusChange] = []
    for entry in (changelog or {}).get('values') or []:
        author = (entry.get('author') or {}).get('displayName')
        for item in entry.get('items') or []:
            if item.get('field') != 'status':
                continue
            changes.append(StatusChange(
                from_status=item.get('fromString') or '',
                to_status=item.get('toString') or '',
                date=entry.get('created'),
                author=author,
            ))
    return changes


def parse_comments(payload: Optional[Dict[str, Any]]) -> List[CommentSummary]:
    comments = []
    for comment in (payload or {}).get('comments') or []:
        comments.append(CommentSummary(
            text=extract_text_from_adf(comment.get('body')),
            date=comment.get('created'),
            author=(comment.get('author') or {}).get('displayName'),
        ))
    return comments


def base_issue(issue: Dict[str, Any]) -> EnrichedIssue:
    """Map a Jira issue JSON object to an EnrichedIssue without history or comments."""
    fields = issue.get('fields') or {}
    return EnrichedIssue(
        key=issue['key'],
        summary=fields.get('summary') or '',
        type=(fields.get('issuetype') or {}).get('name') or 'Task',
        status=(fields.get('status') or {}).get('name') or 'Unknown',
        original_estimate=fields.get('timeoriginalestimate'),
        time_spent=fields.get('timespent'),
    )


def _ssl_context(ssl_verify: Union[bool, str]):
    """Translate the requests-style verify setting for aiohttp."""
    if isinstance(ssl_verify, str):
        return ssl.create_default_context(cafile=ssl_verify)
    return True


async def enrich_issues_async(
    base_url: str,
    issues: List[Dict[str, Any]],
    auth: Union[Tuple[str, str], None] = None,
    ssl_verify: Union[bool, str] = True,
    headers: Optional[Dict[str, str]] = None,
    max_concurrent: int = 10,
) -> List[EnrichedIssue]:
    """Fetch changelog and comments for up to MAX_ANALYZED_ISSUES issues concurrently.

    Args:
        base_url: Jira REST base (e.g., "https://jira.example.com")
        issues: Issue JSON objects as returned by the sprint issue endpoint
        auth: Optional (username, api_token) for basic auth
        ssl_verify: SSL verification setting (True or path to CA bundle)
        headers: Extra request headers (e.g., a bearer Authorization header)
        max_concurrent: Maximum number of requests in flight

    Returns:
        EnrichedIssue list in the same order as the input issues. Issues whose
        changelog or comments could not be fetched get empty lists for that part.
    """
    selected = issues[:MAX_ANALYZED_ISSUES]
    if not selected:
        return []

    timeout = ClientTimeout(total=15, connect=10, sock_read=10)
    semaphore = asyncio.Semaphore(max_concurrent)
    basic_auth = BasicAuth(auth[0], auth[1]) if auth else None
    request_headers = {"Accept": "application/json"}
    request_headers.update(headers or {})

    async def get_json(session: aiohttp.ClientSession, url: str, params: Dict[str, Any]) -> Optional[dict]:
        async with semaphore:
            try:
                async with session.get(url, params=params) as resp:
                    if resp.status != 200:
                        logger.warning("GET %s returned %s", url, resp.status)
                        return None
                    return await resp.json()
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.warning("GET %s failed: %s", url, e)
                return None

    async def enrich_one(session: aiohttp.ClientSession, issue: Dict[str, Any]) -> EnrichedIssue:
        enriched = base_issue(issue)
        try:
            key = validate_issue_key(enriched.key)
        except ValueError as e:
            logger.warning("Skipping history for %s: %s", enriched.key, e)
            return enriched

        changelog, comments = await asyncio.gather(
            get_json(session, f"{base_url}/rest/api/3/issue/{key}/changelog",
                     {"maxResults": CHANGELOG_PAGE_SIZE}),
            get_json(session, f"{base_url}/rest/api/3/issue/{key}/comment",
                     {"maxResults": COMMENT_PAGE_SIZE, "orderBy": "-created"}),
        )
        return EnrichedIssue(
            key=enriched.key,
            summary=enriched.summary,
            type=enriched.type,
            status=enriched.status,
            original_estimate=enriched.original_estimate,
            time_spent=enriched.time_spent,
            status_changes=tuple(parse_status_changes(changelog)),
            comments=tuple(parse_comments(comments)),
        )

    connector = aiohttp.TCPConnector(limit=max_concurrent, limit_per_host=max_concurrent,
                                     ssl=_ssl_context(ssl_verify))

    async with aiohttp.ClientSession(
        auth=basic_auth,
        connector=connector,
        timeout=timeout,
        headers=request_headers,
    ) as session:
        return list(await asyncio.gather(*(enrich_one(session, issue) for issue in selected)))


def _jira_client(connection: Optional[JiraConnection],
                 session: Optional[requests.Session]) -> Tuple[JiraConnection, requests.Session]:
    """Fill in the configured connection and a session that matches it."""
    if connection is None:
        return load_jira_connection(), session or get_jira_session()
    return connection, session or build_jira_session(connection)


def get_active_sprint_id(board_id: Union[int, str], connection: Optional[JiraConnection] = None,
                         session: Optional[requests.Session] = None) -> int:
    """Return the id of the active sprint on the board.

    Raises:
        LookupError: If the board has no active sprint
    """
    connection, session = _jira_client(connection, session)
    url = f"{connection.base_url}/rest/agile/1.0/board/{validate_numeric_id(board_id, 'board id')}/sprint"
    resp = session.get(url, params={"state": "active"}, timeout=15)
    resp.raise_for_status()
    sprints = resp.json().get("values", [])
    if not sprints:
        raise LookupError(f"No active sprint found on board {board_id}.")
    return sprints[0]["id"]


def _months_before(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + moment.month - 1 - months
    year, month = divmod(month_index, 12)
    day = min(moment.day, calendar.monthrange(year, month + 1)[1])
    return moment.replace(year=year, month=month + 1, day=day)


def list_sprints(
    board_id: Union[int, str],
    months_back: int = 12,
    connection: Optional[JiraConnection] = None,
    session: Optional[requests.Session] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Return the board's active and closed sprints from the last few months.

    Pages through the board's sprint list until Jira reports the last page
    (at most MAX_SPRINT_SCAN sprints). A sprint is dated by its start date,
    or its end date when it never started; undated sprints are kept only
    while active. Newest first.

    Args:
        board_id: Numeric Jira board id
        months_back: How far back to look
        now: Reference time for the cutoff (defaults to the current UTC time)

    Raises:
        requests.HTTPError: If a page of the sprint list can't be fetched
    """
    connection, session = _jira_client(connection, session)
    url = f"{connection.base_url}/rest/agile/1.0/board/{validate_numeric_id(board_id, 'board id')}/sprint"
    sprints: List[Dict[str, Any]] = []
    start_at = 0
    while start_at < MAX_SPRINT_SCAN:
        params = {"state": "active,closed", "maxResults": SPRINT_PAGE_SIZE, "startAt": start_at}
        resp = session.get(url, params=params, timeout=15)
        resp.raise_for_status()
        data = resp.json()
        batch = data.get("values", [])
        sprints.extend(batch)
        if data.get("isLast", True) or not batch:
            break
        start_at += len(batch)

    cutoff = _months_before(now or datetime.now(timezone.utc), months_back)
    recent = []
    for sprint in sprints:
        stamp = sprint.get("startDate") or sprint.get("endDate")
        if not stamp:
            if sprint.get("state") == "active":
                recent.append(sprint)
            continue
        moment = parse_iso8601_datetime(stamp)
        if moment is None:
            logger.debug("Skipping sprint %s with unreadable date %s", sprint.get("id"), stamp)
            continue
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        if moment >= cutoff:
            recent.append(sprint)

    recent.sort(key=lambda s: s.get("startDate") or s.get("endDate") or "", reverse=True)
    logger.info("Board %s has %d sprints in the last %d months", board_id, len(recent), months_back)
    return recent


def get_sprint(sprint_id: Union[int, str], connection: Optional[JiraConnection] = None,
               session: Optional[requests.Session] = None) -> Dict[str, Any]:
    """Fetch sprint metadata (name, goal, dates)."""
    connection, session = _jira_client(connection, session)
    url = f"{connection.base_url}/rest/agile/1.0/sprint/{validate_numeric_id(sprint_id)}"
    resp = session.get(url, timeout=15)
    resp.raise_for_status()
    return resp.json()


def get_sprint_issues(
    sprint_id: Union[int, str],
    jql: Optional[str] = DEFAULT_JQL,
    page_size: int = 50,
    connection: Optional[JiraConnection] = None,
    session: Optional[requests.Session] = None,
) -> List[Dict[str, Any]]:
    """Return all issues in the given sprint, optionally narrowed by JQL."""
    connection, session = _jira_client(connection, session)
    url = f"{connection.base_url}/rest/agile/1.0/sprint/{validate_numeric_id(sprint_id)}/issue"
    issues: List[Dict[str, Any]] = []
    start_at = 0
    while True:
        params = {"startAt": start_at, "maxResults": page_size}
        if jql:
            params["jql"] = jql
        resp = session.get(url, params=params, timeout=15)
        resp.raise_for_status()
        data = resp.json()
        batch = data.get("issues", [])
        issues.extend(batch)
        if not batch or start_at + page_size >= data.get("total", 0):
            break
        start_at += page_size
    return issues


def fetch_enriched_sprint(
    sprint_id: Union[int, str],
    jql: Optional[str] = DEFAULT_JQL,
    connection: Optional[JiraConnection] = None,
    session: Optional[requests.Session] = None,
    max_concurrent: int = 10,
) -> EnrichedSprintData:
    """Fetch a sprint and build the EnrichedSprintData used for summarization.

    Only the first MAX_ANALYZED_ISSUES issues are enriched; total_issues
    still counts every issue in the sprint.

    Raises:
        requests.HTTPError: If the sprint or its issue list can't be fetched
    """
    connection, session = _jira_client(connection, session)
    sprint = Sprint.from_dict(get_sprint(sprint_id, connection, session))
    issues = get_sprint_issues(sprint_id, jql, connection=connection, session=session)
    logger.info("Sprint %s has %d issues, analyzing %d", sprint.name, len(issues),
                min(len(issues), MAX_ANALYZED_ISSUES))

    enriched = asyncio.run(enrich_issues_async(
        connection.base_url,
        issues,
        auth=connection.basic_auth,
        ssl_verify=connection.ssl_verify,
        headers=connection.auth_headers(),
        max_concurrent=max_concurrent,
    ))
    return EnrichedSprintData.create(sprint, enriched, total_issues=len(issues))

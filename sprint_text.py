"""
Text helpers for the lightweight markdown produced by the sprint summarizers.

Shared by the context builder, the rule-based summarizer and the report
renderers. Every helper returns its input unchanged when nothing matches.
"""

import re
from dataclasses import dataclass, field
from typing import List

_BOLD = re.compile(r'\*\*(.+?)\*\*')
_ITALIC = re.compile(r'\*(.+?)\*')
_CODE = re.compile(r'`(.+?)`')
_MARKUP_CHARS = re.compile(r'[*_`]')
_NUMBERED_BULLET = re.compile(r'^\d+\.\s')
_LEADING_EMOJI = re.compile(r'^[\U0001F300-\U0001F9FF\u2600-\u26FF\u2700-\u27BF]\ufe0f?\s*')


def strip_markdown(text: str) -> str:
    """Remove bold, italic and code markers, plus any stray markup characters.

    Examples:
        >>> strip_markdown("**PROJ-1**: fix `parser`")
        'PROJ-1: fix parser'
    """
    text = _BOLD.sub(r'\1', text)
    text = _ITALIC.sub(r'\1', text)
    text = _CODE.sub(r'\1', text)
    return _MARKUP_CHARS.sub('', text)


def format_inline_markdown(text: str) -> str:
    """Convert bold/italic/code markers to <strong>, <em> and <code> tags."""
    text = _BOLD.sub(r'<strong>\1</strong>', text)
    text = _ITALIC.sub(r'<em>\1</em>', text)
    return _CODE.sub(r'<code>\1</code>', text)


def is_bullet_point(line: str) -> bool:
    return line.startswith('- ') or line.startswith('* ') or bool(_NUMBERED_BULLET.match(line))


def remove_bullet_marker(line: str) -> str:
    if line.startswith('- ') or line.startswith('* '):
        return line[2:]
    if _NUMBERED_BULLET.match(line):
        return _NUMBERED_BULLET.sub('', line, count=1)
    return line


def remove_leading_emoji(text: str) -> str:
    """Strip a single leading emoji (and the whitespace after it) from a heading."""
    return _LEADING_EMOJI.sub('', text, count=1)


@dataclass
class SummarySection:
    title: str
    content: List[str] = field(default_factory=list)

    @property
    def bullets(self) -> List[str]:
        return [remove_bullet_marker(line) for line in self.content if is_bullet_point(line)]


def parse_summary_sections(text: str) -> List[SummarySection]:
    """Split a narrative into sections on its '## ' headings.

    Lines before the first heading are dropped, blank lines are skipped and
    the remaining lines are kept stripped, in order.
    """
    sections: List[SummarySection] = []
    current = None
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith('## '):
            if current is not None:
                sections.append(current)
            title = remove_leading_emoji(_MARKUP_CHARS.sub('', stripped[3:]))
            current = SummarySection(title=title.strip())
            continue
        if current is not None and stripped:
            current.content.append(stripped)
    if current is not None:
        sections.append(current)
    return sections

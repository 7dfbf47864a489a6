"""
Extract the Changelog entry a PR author filled in, for release notes.
"""

import re

# Match "Changelog entry (a ... of the changes that goes into/to CHANGELOG.md):"
# Middle part can be plain text or markdown link e.g. [user-readable short description](url)
# Supports both "goes into" and "goes to"; . matches newline so header can wrap
_ENTRY_PATTERN = re.compile(
    r"Changelog entry \(a\s+.+?\s+of the changes that goes (?:into|to) CHANGELOG\.md\):",
    re.IGNORECASE | re.DOTALL,
)
_NEXT_SECTION = [r"\n### ", r"\n## ", r"\n\n---"]


def _find_section_end(body: str, after_pos: int, next_patterns: list[str]) -> int:
    """Find the end index of a section (before the next header or end of body)."""
    end = len(body)
    for pattern in next_patterns:
        match = re.search(pattern, body[after_pos:])
        if match:
            end = min(end, after_pos + match.start())
    return end


def _first_line_after(body: str | None, pattern: re.Pattern) -> str | None:
    if not body:
        return None
    match = pattern.search(body)
    if not match:
        return None
    end = _find_section_end(body, match.end(), _NEXT_SECTION)
    # Skip blank lines after the header; any newline ends the value
    for line in body[match.end():end].split("\n"):
        line = line.strip()
        if line and not line.startswith("<!--"):
            return line
    return None


def changelog_entry(pr_body: str | None) -> str | None:
    """Return the one-line changelog entry from a PR body, if the author wrote one."""
    return _first_line_after(pr_body, _ENTRY_PATTERN)


def format_entry(text: str, url: str | None = None, author: str | None = None) -> str:
    """Append ' (<url> by @<author>)' when both are known."""
    if url and author:
        return f"{text} ({url} by @{author})"
    if url:
        return f"{text} ({url})"
    return text

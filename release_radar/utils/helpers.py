"""
Utility functions and helpers for Release Radar
Common functions for chunking, text formatting and tables
"""

from datetime import datetime
from typing import Any, Iterable, Iterator, List, Optional, Sequence, TypeVar, Union

T = TypeVar('T')


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """
    Split a sequence into consecutive chunks

    Args:
        items: Sequence to split
        size: Maximum chunk length (must be positive)

    Yields:
        Lists of at most size items, in order
    """
    if size < 1:
        raise ValueError("Chunk size must be positive")
    for index in range(0, len(items), size):
        yield list(items[index:index + size])


def format_duration(seconds: Union[int, float]) -> str:
    """
    Format duration in seconds to human-readable string

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 0:
        return "0:00"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate string to maximum length

    Args:
        text: Text to truncate
        max_length: Maximum length including suffix
        suffix: Suffix to add if truncated

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text
    return text[:max(0, max_length - len(suffix))] + suffix


def format_table(headers: Sequence[str], rows: Iterable[Sequence[Any]], max_width: int = 48) -> str:
    """
    Render rows as a plain-text table with a header rule

    Args:
        headers: Column titles
        rows: Row values, converted with str()
        max_width: Cells longer than this are truncated

    Returns:
        Table text without trailing newline
    """
    cells = [[truncate_string(str(value), max_width) for value in row] for row in rows]
    widths = [len(title) for title in headers]
    for row in cells:
        for index, value in enumerate(row):
            widths[index] = max(widths[index], len(value))

    def render(values: Sequence[str]) -> str:
        return "  ".join(value.ljust(widths[i]) for i, value in enumerate(values)).rstrip()

    lines = [render(headers), render(["-" * width for width in widths])]
    lines.extend(render(row) for row in cells)
    return "\n".join(lines)


def format_timestamp(timestamp: Optional[Union[str, datetime]]) -> str:
    """
    Format timestamp for display

    Args:
        timestamp: Timestamp string or datetime object

    Returns:
        Formatted timestamp string, "never" when missing
    """
    if not timestamp:
        return "never"

    if isinstance(timestamp, str):
        try:
            dt = datetime.fromisoformat(timestamp.replace('Z', '+00:00'))
        except ValueError:
            return timestamp
    else:
        dt = timestamp

    return dt.strftime('%Y-%m-%d %H:%M:%S')

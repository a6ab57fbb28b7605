"""Line unfolding for iCalendar content."""
import re
from typing import List

LINE_BREAK = re.compile(r'\r\n|\r|\n')


def unfold_lines(content: str) -> List[str]:
    """
    Reverse iCalendar line folding.

    A physical line starting with a space or a horizontal tab continues the
    previous logical line: its first character is dropped and the rest is
    appended as-is. Empty logical lines are discarded.

    Args:
        content: Raw iCalendar text using any of CRLF, CR or LF terminators

    Returns:
        List of logical lines in document order
    """
    lines = []
    buffer = ''

    for line in LINE_BREAK.split(content):
        if line.startswith((' ', '\t')):
            buffer += line[1:]
            continue

        if buffer:
            lines.append(buffer)
        buffer = line

    if buffer:
        lines.append(buffer)

    return lines

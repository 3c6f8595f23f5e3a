"""Pattern tables for vendor CLI text output.

Each known output layout is a TableFormat: a header pattern that identifies
it and a row pattern whose groups map to named fields. Lines that do not
match the row pattern are skipped, so extra or unknown columns never break
parsing.
"""
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple


@dataclass(frozen=True)
class TableFormat:
    """One known layout of a vendor CLI table."""
    name: str
    row: Pattern
    fields: Tuple[str, ...]
    header: Optional[Pattern] = None

    def parse_line(self, line: str) -> Optional[Dict[str, str]]:
        match = self.row.search(line.strip())
        if not match:
            return None
        return dict(zip(self.fields, match.groups()))


def split_lines(output: str) -> List[str]:
    """Normalize line endings and drop blank lines."""
    return [line for line in output.replace("\r\n", "\n").split("\n") if line.strip()]


def detect_format(lines: Iterable[str], formats: Sequence[TableFormat]) -> Optional[TableFormat]:
    """Return the format whose header appears first in the output."""
    for line in lines:
        for fmt in formats:
            if fmt.header is not None and fmt.header.search(line):
                return fmt
    return None


def parse_rows(lines: Iterable[str], fmt: TableFormat) -> List[Dict[str, str]]:
    rows = []
    for line in lines:
        row = fmt.parse_line(line)
        if row is not None:
            rows.append(row)
    return rows


def ci(pattern: str) -> Pattern:
    """Compile a case-insensitive pattern."""
    return re.compile(pattern, re.IGNORECASE)

"""CSV report output."""
import csv
import re
from pathlib import Path
from typing import Dict, List

from ..analyzer.aggregator import UsageAggregator
from ..analyzer.reference_resolver import UsageRecord

COLUMNS = ["ReferencedProject", "File", "Line", "Method", "CodeLine"]
LAYOUTS = ("flat", "sections")

_UNSAFE = re.compile(r'[^A-Za-z0-9._-]+')


def sanitize_filename(name: str) -> str:
    """File-system safe version of a component name."""
    cleaned = _UNSAFE.sub('_', name).strip('._')
    return cleaned or 'component'


def _row(record: UsageRecord) -> Dict[str, object]:
    return {
        "ReferencedProject": record.target,
        "File": record.file,
        "Line": record.line,
        "Method": record.enclosing_member,
        "CodeLine": record.code_line,
    }


class CsvReportWriter:
    """Writes usage records as CSV, one file (flat) or one file per consumer (sections).

    Every file is written to a temporary sibling first and then renamed over
    the destination, so a failed run never leaves a truncated report behind.
    """

    def __init__(self, layout: str = "flat"):
        if layout not in LAYOUTS:
            raise ValueError(f"Unknown layout {layout!r}, expected one of {', '.join(LAYOUTS)}")
        self.layout = layout

    def write(self, records: List[UsageRecord], output: str | Path) -> List[Path]:
        """Write the report.

        Args:
            records: Records in any order
            output: CSV file for the flat layout, directory for sections

        Returns:
            Paths of the files written
        """
        output = Path(output)
        if self.layout == "flat":
            self._write_file(UsageAggregator.flat(records), output)
            return [output]

        written = []
        used = set()
        for consumer, section in UsageAggregator.by_consumer(records):
            stem = sanitize_filename(consumer)
            candidate, n = stem, 1
            while candidate.casefold() in used:
                n += 1
                candidate = f"{stem}_{n}"
            used.add(candidate.casefold())
            path = output / f"{candidate}.csv"
            self._write_file(section, path)
            written.append(path)
        return written

    @staticmethod
    def _write_file(records: List[UsageRecord], path: Path):
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(path.name + '.tmp')
        with open(temp_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=COLUMNS)
            writer.writeheader()
            writer.writerows(_row(record) for record in records)

        temp_path.replace(path)

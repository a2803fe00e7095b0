"""Console summary of a scan."""
from collections import Counter
from typing import Iterable

from rich.markup import escape
from rich.table import Table

from ..analyzer.reference_resolver import UsageRecord


def render_summary(records: Iterable[UsageRecord]) -> Table:
    """Table of usage counts per referenced project, busiest first."""
    counts = Counter()
    consumers = {}
    for record in records:
        counts[record.target] += 1
        consumers.setdefault(record.target, set()).add(record.consumer.casefold())

    table = Table(title="Usages by Referenced Project", show_header=True, header_style="bold magenta")
    table.add_column("Referenced Project", style="cyan")
    table.add_column("Consumers", justify="right", style="green")
    table.add_column("Usages", justify="right", style="yellow")

    for target, count in sorted(counts.items(), key=lambda item: (-item[1], item[0].casefold())):
        table.add_row(escape(target), str(len(consumers[target])), str(count))
    return table

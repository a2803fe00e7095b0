"""Deterministic ordering of usage records."""
from itertools import groupby
from typing import Iterable, List, Tuple

from .reference_resolver import UsageRecord


def _tail(record: UsageRecord) -> tuple:
    # Remaining fields make the order total
    return (
        record.enclosing_member.casefold(), record.enclosing_member,
        record.code_line.casefold(), record.code_line,
        record.consumer.casefold(), record.consumer,
        record.target, record.file,
    )


def flat_key(record: UsageRecord) -> tuple:
    return (record.target.casefold(), record.file.casefold(), record.line) + _tail(record)


def section_key(record: UsageRecord) -> tuple:
    return (record.file.casefold(), record.line, record.target.casefold()) + _tail(record)


class UsageAggregator:
    """Orders records for the report. Duplicates are kept."""

    @staticmethod
    def flat(records: Iterable[UsageRecord]) -> List[UsageRecord]:
        """All records ordered by target, file and line."""
        return sorted(records, key=flat_key)

    @staticmethod
    def by_consumer(records: Iterable[UsageRecord]) -> List[Tuple[str, List[UsageRecord]]]:
        """Records grouped per consumer, groups in case-insensitive name order.

        Consumer names differing only in case share a group, named after the
        first spelling in sort order.
        """
        ordered = sorted(records, key=lambda r: (r.consumer.casefold(), r.consumer))
        sections = []
        for _, group in groupby(ordered, key=lambda r: r.consumer.casefold()):
            group = list(group)
            sections.append((group[0].consumer, sorted(group, key=section_key)))
        return sections

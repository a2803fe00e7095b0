"""Reference resolution: turns the references found in consumer components into UsageRecords."""
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from ..config import AMBIGUITY_POLICIES, ConfigurationError
from ..utils.logger import log_warning
from .component_index import ComponentIndex
from .program_model import ProgramModelProvider, Resolution, SourceDocument, Symbol, SyntaxReference
from .target_matcher import TargetMatcher
from .workspace import Component


@dataclass(frozen=True)
class CandidateReference:
    """A resolved reference before the owner/target checks."""
    consumer: str
    source_file: str
    line: int
    enclosing_member: str
    raw_source_line: str
    resolved_definition_unit_identity: Optional[str]


@dataclass(frozen=True)
class UsageRecord:
    """One use, in a consumer, of a declaration owned by a target component."""
    target: str
    consumer: str
    file: str
    line: int
    enclosing_member: str
    code_line: str


class ReferenceResolver:
    """Walks consumer documents and keeps the references that land in targets.

    Documents are processed by a thread pool; each task returns its own
    record list and the lists are concatenated once every task is done.
    """

    def __init__(self, provider: ProgramModelProvider, index: ComponentIndex, matcher: TargetMatcher,
                 base_dir: Optional[str | Path] = None, ambiguity: str = "first", workers: int = 4):
        if ambiguity not in AMBIGUITY_POLICIES:
            raise ConfigurationError(f"Unknown ambiguity policy: {ambiguity!r}")
        if workers < 1:
            raise ConfigurationError(f"workers must be positive, got {workers}")
        self.provider = provider
        self.index = index
        self.matcher = matcher
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.ambiguity = ambiguity
        self.workers = workers

    def scan(self, consumers: Iterable[Component],
             on_document: Optional[Callable[[int], None]] = None) -> List[UsageRecord]:
        """Resolve every reference of every consumer document.

        Args:
            consumers: Components whose sources are scanned
            on_document: Called with the number of documents once they are
                all listed, then with 0 after each finished document

        Returns:
            Unsorted records; a failing document or consumer is skipped with a warning
        """
        tasks: List[Tuple[Component, Path]] = []
        for consumer in consumers:
            try:
                paths = self.provider.documents(consumer)
            except Exception as e:
                log_warning("Resolver", f"Skipping {consumer.name}: cannot list documents ({e})")
                continue
            tasks.extend((consumer, path) for path in paths)

        if on_document:
            on_document(len(tasks))

        records: List[UsageRecord] = []
        if not tasks:
            return records

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = {executor.submit(self.scan_document, consumer, path): path for consumer, path in tasks}
            for future in as_completed(futures):
                try:
                    records.extend(future.result())
                except Exception as e:
                    log_warning("Resolver", f"Skipping {futures[future]}: {e}")
                if on_document:
                    on_document(0)
        return records

    def scan_document(self, consumer: Component, path: Path) -> List[UsageRecord]:
        """Records for a single document of a consumer."""
        document = self.provider.open_document(consumer, path)
        records = []
        for reference in self.provider.references(document):
            record = self._record(consumer, document, reference)
            if record is not None:
                records.append(record)
        return records

    def _record(self, consumer: Component, document: SourceDocument,
                reference: SyntaxReference) -> Optional[UsageRecord]:
        symbol = self._select(self.provider.resolve(document, reference))
        if symbol is None:
            return None

        definition = symbol.original_definition()
        if not definition.in_source:
            return None

        candidate = CandidateReference(
            consumer=consumer.name,
            source_file=self._display_path(document.path),
            line=reference.line,
            enclosing_member=reference.enclosing_member,
            raw_source_line=document.line_text(reference.line),
            resolved_definition_unit_identity=definition.unit_identity,
        )
        return self._match(candidate)

    def _select(self, resolution: Resolution) -> Optional[Symbol]:
        if resolution.symbol is not None:
            return resolution.symbol
        if resolution.is_ambiguous and self.ambiguity == "first":
            return resolution.candidates[0]
        return None

    def _match(self, candidate: CandidateReference) -> Optional[UsageRecord]:
        """Attribute a candidate to its owning component and apply the target rules."""
        owner = self.index.resolve(candidate.resolved_definition_unit_identity)
        if owner is None:
            return None
        if not self.matcher.matches(owner.name, owner.path):
            return None
        return UsageRecord(
            target=owner.name,
            consumer=candidate.consumer,
            file=candidate.source_file,
            line=candidate.line,
            enclosing_member=candidate.enclosing_member,
            code_line=candidate.raw_source_line.strip(),
        )

    def _display_path(self, path: Path) -> str:
        try:
            return os.path.relpath(path, self.base_dir)
        except ValueError:
            # Different drive on Windows
            return str(Path(path).resolve())

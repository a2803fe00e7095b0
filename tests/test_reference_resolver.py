"""Tests for ReferenceResolver against a scripted program model."""
import os
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from usage_scanner.analyzer.aggregator import UsageAggregator
from usage_scanner.analyzer.component_index import ComponentIndex
from usage_scanner.analyzer.program_model import (
    DefinitionLocation,
    ProgramModelError,
    ProgramModelProvider,
    Resolution,
    SourceDocument,
    Symbol,
    SyntaxReference,
)
from usage_scanner.analyzer.reference_resolver import ReferenceResolver, UsageRecord
from usage_scanner.analyzer.target_matcher import TargetMatcher
from usage_scanner.analyzer.workspace import Component
from usage_scanner.config import ConfigurationError


class FakeProvider(ProgramModelProvider):
    """Returns scripted documents, references and resolutions."""

    def __init__(self):
        self.files: Dict[str, List[Path]] = {}
        self.lines: Dict[Path, List[str]] = {}
        self.scripts: Dict[Path, List[Tuple[SyntaxReference, Resolution]]] = {}
        self.broken_documents = set()
        self.broken_components = set()

    def add(self, component: Component, path: Path, lines: List[str]):
        self.files.setdefault(component.name, []).append(path)
        self.lines[path] = lines
        self.scripts[path] = []

    def script(self, path: Path, line: int, member: str, resolution: Resolution):
        reference = SyntaxReference(node=object(), line=line, enclosing_member=member)
        self.scripts[path].append((reference, resolution))

    def documents(self, component):
        if component.name in self.broken_components:
            raise ProgramModelError("listing failed")
        return list(self.files.get(component.name, []))

    def open_document(self, component, path):
        if path in self.broken_documents:
            raise ProgramModelError(f"Cannot read {path}")
        return SourceDocument(path=path, module_name=path.stem, lines=self.lines[path])

    def references(self, document):
        return [reference for reference, _ in self.scripts[document.path]]

    def resolve(self, document, reference):
        for scripted, resolution in self.scripts[document.path]:
            if scripted is reference:
                return resolution
        return Resolution.unresolved()


def make_component(root: Path, name: str, identity: str) -> Component:
    return Component(name=name, path=str(root / name / "pyproject.toml"), unit_identity=identity,
                     identities=(identity,))


def symbol(root: Path, qualified_name: str, kind: str = "method") -> Symbol:
    identity = qualified_name.split(".")[0]
    return Symbol(qualified_name, kind, identity, DefinitionLocation(str(root / identity / "mod.py"), 3))


@pytest.fixture
def setup(tmp_path):
    app = make_component(tmp_path, "App", "app")
    lib_core = make_component(tmp_path, "Lib.Core", "lib_core")
    lib_other = make_component(tmp_path, "Lib.Other", "lib_other")
    provider = FakeProvider()
    index = ComponentIndex([app, lib_core, lib_other])
    return tmp_path, provider, index, app


def service_file(root: Path, provider: FakeProvider, app: Component) -> Path:
    path = root / "App" / "app" / "service.py"
    lines = [""] * 50
    lines[41] = "        Helper.do_work(x)"
    provider.add(app, path, lines)
    return path


def resolver_for(provider, index, root, target="Lib.Core", **kwargs) -> ReferenceResolver:
    return ReferenceResolver(provider, index, TargetMatcher([target]), base_dir=root, **kwargs)


class TestScenarios:

    def test_call_into_target_yields_one_record(self, setup):
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        provider.script(path, 42, "app.service.Service.run(self, x)",
                        Resolution.exact(symbol(root, "lib_core.helpers.Helper.do_work")))

        records = resolver_for(provider, index, root).scan([app])

        assert records == [UsageRecord(
            target="Lib.Core",
            consumer="App",
            file=os.path.join("App", "app", "service.py"),
            line=42,
            enclosing_member="app.service.Service.run(self, x)",
            code_line="Helper.do_work(x)",
        )]

    def test_call_into_non_target_yields_nothing(self, setup):
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        provider.script(path, 42, "m", Resolution.exact(symbol(root, "lib_other.helpers.Helper.do_work")))

        assert resolver_for(provider, index, root).scan([app]) == []

    def test_two_references_on_one_line(self, setup):
        """Both rows are kept, each with its own enclosing member."""
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        provider.script(path, 42, "first", Resolution.exact(symbol(root, "lib_core.a")))
        provider.script(path, 42, "second", Resolution.exact(symbol(root, "lib_core.b")))

        records = resolver_for(provider, index, root).scan([app])

        assert [(r.line, r.enclosing_member, r.code_line) for r in records] == [
            (42, "first", "Helper.do_work(x)"),
            (42, "second", "Helper.do_work(x)"),
        ]


class TestAttribution:

    def test_external_symbols_are_dropped(self, setup):
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        provider.script(path, 42, "m", Resolution.exact(Symbol("lib_core.shadow", "external", "lib_core")))

        assert resolver_for(provider, index, root).scan([app]) == []

    def test_unknown_owner_is_dropped(self, setup):
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        provider.script(path, 42, "m", Resolution.exact(symbol(root, "vendored.thing")))

        assert resolver_for(provider, index, root, target=str(root)).scan([app]) == []

    def test_unresolved_reference_is_dropped(self, setup):
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        provider.script(path, 42, "m", Resolution.unresolved())

        assert resolver_for(provider, index, root).scan([app]) == []

    def test_alias_is_attributed_to_original_definition(self, setup):
        """An import alias declared in the consumer counts for the defining component."""
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        original = symbol(root, "lib_core.helpers.Helper", "class")
        alias = Symbol("app.service.Helper", "alias", "app",
                       DefinitionLocation(str(path), 1), original=original)
        provider.script(path, 42, "m", Resolution.exact(alias))

        records = resolver_for(provider, index, root).scan([app])
        assert [r.target for r in records] == ["Lib.Core"]

    def test_override_is_attributed_to_base_declaration(self, setup):
        """A method overriding a target declaration counts for the target."""
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        base = symbol(root, "lib_core.base.Base.run")
        override = Symbol("lib_other.sub.Sub.run", "method", "lib_other",
                          DefinitionLocation(str(root / "lib_other" / "sub.py"), 5), original=base)
        provider.script(path, 42, "m", Resolution.exact(override))

        records = resolver_for(provider, index, root).scan([app])
        assert [r.target for r in records] == ["Lib.Core"]

    def test_folder_prefix_target(self, setup):
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        provider.script(path, 42, "m", Resolution.exact(symbol(root, "lib_core.x")))
        provider.script(path, 42, "m", Resolution.exact(symbol(root, "lib_other.x")))

        records = resolver_for(provider, index, root, target=str(root / "Lib.Other")).scan([app])
        assert [r.target for r in records] == ["Lib.Other"]

    def test_code_line_empty_when_line_unavailable(self, setup):
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        provider.script(path, 500, "m", Resolution.exact(symbol(root, "lib_core.x")))

        records = resolver_for(provider, index, root).scan([app])
        assert records[0].line == 500
        assert records[0].code_line == ""


class TestAmbiguity:

    def candidates(self, root):
        return Resolution.ambiguous([symbol(root, "lib_core.a"), symbol(root, "lib_other.a")])

    def test_first_policy_keeps_first_candidate(self, setup):
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        provider.script(path, 42, "m", self.candidates(root))

        records = resolver_for(provider, index, root, ambiguity="first").scan([app])
        assert [r.target for r in records] == ["Lib.Core"]

    def test_drop_policy_discards(self, setup):
        root, provider, index, app = setup
        path = service_file(root, provider, app)
        provider.script(path, 42, "m", self.candidates(root))

        assert resolver_for(provider, index, root, ambiguity="drop").scan([app]) == []

    def test_unknown_policy_rejected(self, setup):
        root, provider, index, _ = setup
        with pytest.raises(ConfigurationError):
            resolver_for(provider, index, root, ambiguity="random")


class TestFailures:

    def test_unreadable_document_is_skipped(self, setup, capsys):
        root, provider, index, app = setup
        good = service_file(root, provider, app)
        bad = root / "App" / "app" / "broken.py"
        provider.add(app, bad, ["x"])
        provider.script(good, 42, "m", Resolution.exact(symbol(root, "lib_core.x")))
        provider.script(bad, 1, "m", Resolution.exact(symbol(root, "lib_core.x")))
        provider.broken_documents.add(bad)

        records = resolver_for(provider, index, root).scan([app])

        assert [r.file for r in records] == [os.path.join("App", "app", "service.py")]
        assert "Skipping" in capsys.readouterr().err

    def test_consumer_that_cannot_be_listed_is_skipped(self, setup):
        root, provider, index, app = setup
        other = make_component(root, "Other", "other")
        index.register(other)
        path = service_file(root, provider, app)
        provider.script(path, 42, "m", Resolution.exact(symbol(root, "lib_core.x")))
        provider.broken_components.add("Other")

        records = resolver_for(provider, index, root).scan([other, app])
        assert [r.consumer for r in records] == ["App"]

    def test_progress_callback(self, setup):
        root, provider, index, app = setup
        service_file(root, provider, app)
        calls = []

        resolver_for(provider, index, root).scan([app], on_document=calls.append)
        assert calls == [1, 0]


class TestDeterminism:

    def test_output_independent_of_worker_count(self, setup):
        root, provider, index, app = setup
        for n in range(20):
            path = root / "App" / "app" / f"mod{n}.py"
            provider.add(app, path, [f"use_{n}()"] * 5)
            for line in (5, 1, 3):
                provider.script(path, line, f"m{line}", Resolution.exact(symbol(root, f"lib_core.f{n}")))

        serial = UsageAggregator.flat(resolver_for(provider, index, root, workers=1).scan([app]))
        parallel = UsageAggregator.flat(resolver_for(provider, index, root, workers=8).scan([app]))

        assert len(serial) == 60
        assert serial == parallel

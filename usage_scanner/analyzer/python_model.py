"""Tree-sitter backed program model for Python workspaces.

Resolution is static and name based:
- module scopes are built from definitions, assignments and imports;
- function scopes add parameters and locals, ``global``/``nonlocal`` names
  fall through to the enclosing scopes;
- member access walks modules, submodules and the class hierarchy
  (a networkx DiGraph of class -> base edges, searched depth first);
- ``self``/``cls``, annotated parameters, ``x = Cls()`` assignments and
  return annotations give instances a class to look members up on.

Names bound more than once in a scope (conditional imports, re-definitions,
competing star imports) resolve to every candidate, in source order.
"""
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import networkx as nx
from tree_sitter import Node

from .parser import LanguageParser
from .program_model import (
    DefinitionLocation,
    ProgramModelError,
    ProgramModelProvider,
    Resolution,
    SourceDocument,
    Symbol,
    SyntaxReference,
)
from .workspace import Component, Workspace

MAX_DEPTH = 32
# Bindings evaluated inside one another before giving up
MAX_BINDING_NESTING = 16

REFERENCE_NODES = {'identifier', 'attribute', 'call'}
IMPORT_STATEMENTS = {'import_statement', 'import_from_statement'}
COMPREHENSIONS = {'list_comprehension', 'set_comprehension', 'dictionary_comprehension', 'generator_expression'}
SCOPE_BARRIERS = {'lambda'} | COMPREHENSIONS
TARGET_PATTERNS = {'pattern_list', 'tuple_pattern', 'list_pattern', 'list_splat_pattern', 'parenthesized_expression'}

# Parents whose identifier children are always names being bound
BINDING_PARENTS = {
    'parameters', 'lambda_parameters', 'typed_parameter',
    'list_splat_pattern', 'dictionary_splat_pattern',
    'pattern_list', 'tuple_pattern', 'list_pattern', 'as_pattern_target',
    'global_statement', 'nonlocal_statement',
    'dotted_name', 'aliased_import', 'relative_import', 'import_prefix',
}
# (parent type, field) pairs naming a bound identifier
BINDING_FIELDS = {
    ('function_definition', 'name'), ('class_definition', 'name'),
    ('default_parameter', 'name'), ('typed_default_parameter', 'name'),
    ('keyword_argument', 'name'), ('named_expression', 'name'),
    ('assignment', 'left'), ('for_statement', 'left'), ('for_in_clause', 'left'),
    ('attribute', 'attribute'),
}


def _text(node: Optional[Node]) -> str:
    if node is None:
        return ''
    return node.text.decode('utf-8', errors='replace')


def _field_text(node: Node, field_name: str) -> str:
    return _text(node.child_by_field_name(field_name))


def _contains(outer: Node, inner: Node) -> bool:
    return outer.start_byte <= inner.start_byte and inner.end_byte <= outer.end_byte


@dataclass(eq=False)
class Binding:
    """One way a name is bound in a scope.

    Bindings compare by identity; their evaluated values are memoized per binding.
    """
    kind: str  # definition, assignment, parameter, import
    module: 'ModuleInfo'
    symbol: Symbol
    value: Optional[Node] = None
    annotation: Optional[Node] = None
    target: Optional[str] = None  # dotted import target
    target_is_module: bool = False
    namespace: Optional[Symbol] = None  # fixed class for self/cls parameters
    is_instance: bool = False
    position: int = 0  # end byte of the binding statement, 0 for parameters


@dataclass
class ModuleInfo:
    name: str
    path: Path
    is_package: bool
    tree: object
    source: bytes
    lines: List[str]
    symbol: Symbol
    bindings: Dict[str, List[Binding]] = field(default_factory=dict)
    star_imports: List[str] = field(default_factory=list)

    @property
    def unit_identity(self) -> str:
        return self.name.split('.')[0]


@dataclass
class ClassInfo:
    name: str
    symbol: Symbol
    node: Node
    module: ModuleInfo
    body_bindings: Optional[Dict[str, List[Binding]]] = None
    members: Optional[Dict[str, List[Binding]]] = None


@dataclass(frozen=True)
class _Value:
    """What an expression evaluates to.

    ``symbol`` is the declaration the expression denotes. Member lookups go
    to ``namespace`` when set, to the bound value when ``binding`` is set,
    and to the symbol's own definition otherwise. Opaque values have no
    known members.
    """
    symbol: Symbol
    namespace: Optional[Symbol] = None
    is_instance: bool = False
    binding: Optional[Binding] = field(default=None, compare=False)
    opaque: bool = False


def _add(bindings: Dict[str, List[Binding]], name: str, binding: Binding):
    bindings.setdefault(name, []).append(binding)


def _unique(values: List[_Value]) -> List[_Value]:
    """Drop repeated values, keeping aliases that lead to different declarations."""
    seen = {}
    for value in values:
        seen.setdefault((value, value.symbol.original_definition()), value)
    return list(seen.values())


class PythonProgramModel(ProgramModelProvider):
    """Program model over every module of a Workspace.

    Modules are parsed lazily, on first use as a document or as an import
    target, and cached for the lifetime of the model.
    """

    def __init__(self, workspace: Workspace):
        self.workspace = workspace
        self._parser = LanguageParser()
        self._lock = threading.RLock()
        self._modules: Dict[Path, Optional[ModuleInfo]] = {}
        self._classes: Dict[Symbol, ClassInfo] = {}
        self._class_nodes: Dict[Tuple[str, int], ClassInfo] = {}
        self._function_scopes: Dict[Tuple[str, int], Dict[str, List[Binding]]] = {}
        self._declarations: Dict[Symbol, Tuple[Node, ModuleInfo]] = {}
        self._hierarchy = nx.DiGraph()
        self._bases_loaded = set()
        self._binding_values: Dict[Binding, List[_Value]] = {}
        # Bindings under evaluation, per scanning thread
        self._state = threading.local()

        self._packages = set()
        for module_name in workspace.module_paths:
            parts = module_name.split('.')
            for i in range(1, len(parts) + 1):
                self._packages.add('.'.join(parts[:i]))
        self._top_levels = {name.split('.')[0] for name in self._packages}

    # -------------------------------------------------------------------------
    # ProgramModelProvider
    # -------------------------------------------------------------------------

    def documents(self, component: Component) -> List[Path]:
        return self.workspace.documents(component)

    def open_document(self, component: Component, path: Path) -> SourceDocument:
        module = self._module_at(Path(path))
        if module is None:
            raise ProgramModelError(f"Cannot read {path}")
        return SourceDocument(
            path=module.path,
            module_name=module.name,
            lines=module.lines,
            tree=module.tree,
            source=module.source,
        )

    def references(self, document: SourceDocument) -> Iterable[SyntaxReference]:
        """Reference heads in source order.

        A head is the outermost node of an attribute/call chain, so
        ``Helper.do_work(x)`` contributes the call and, separately, ``x``.
        Import statements contribute one reference per imported name.
        """
        module = self._module_at(document.path)
        if module is None:
            raise ProgramModelError(f"Cannot read {document.path}")

        references = []
        stack = [module.tree.root_node]
        while stack:
            node = stack.pop()
            if node.type in IMPORT_STATEMENTS:
                for item in self._import_items(node):
                    references.append(self._reference(item, module))
                continue
            if node.type == 'future_import_statement':
                continue
            if node.type in REFERENCE_NODES and self._is_reference_head(node):
                references.append(self._reference(node, module))
            stack.extend(reversed(node.named_children))
        return references

    def resolve(self, document: SourceDocument, reference: SyntaxReference) -> Resolution:
        module = self._module_at(document.path)
        if module is None:
            return Resolution.unresolved()

        node = reference.node
        if node.parent is not None and node.parent.type in IMPORT_STATEMENTS:
            values = self._import_reference_values(node, module)
        else:
            values = []
            # The outermost link that resolves wins
            for link in self._chain(node):
                values = self._evaluate(link, module, 0)
                if values:
                    break
        # Aliases of distinct declarations stay distinct candidates
        symbols = {}
        for value in _unique(values):
            symbol = self._with_overridden(value.symbol)
            symbols.setdefault((symbol, symbol.original_definition()), symbol)
        return Resolution.ambiguous(symbols.values())

    # -------------------------------------------------------------------------
    # Modules
    # -------------------------------------------------------------------------

    def _module_at(self, path: Path) -> Optional[ModuleInfo]:
        with self._lock:
            if path in self._modules:
                return self._modules[path]

            parsed = self._parser.parse_file(path)
            if parsed is None:
                self._modules[path] = None
                return None
            tree, source = parsed
            name = self.workspace.module_name(path) or path.stem
            module = ModuleInfo(
                name=name,
                path=path,
                is_package=path.name == '__init__.py',
                tree=tree,
                source=source,
                lines=source.decode('utf-8-sig', errors='replace').split('\n'),
                symbol=Symbol(name, 'module', name.split('.')[0], DefinitionLocation(str(path), 1)),
            )
            # Registered before its scope is built so self-references terminate
            self._modules[path] = module
            self._walk_bindings(tree.root_node, module, name, False, module.bindings)
            return module

    def _module(self, name: str) -> Optional[ModuleInfo]:
        path = self.workspace.module_paths.get(name)
        if path is None:
            return None
        return self._module_at(path)

    def _module_symbol(self, name: str) -> Optional[Symbol]:
        module = self._module(name)
        if module is not None:
            return module.symbol
        if name in self._packages:
            # Namespace package: located at its directory
            return Symbol(name, 'module', name.split('.')[0], DefinitionLocation(self._package_dir(name), 1))
        return None

    def _package_dir(self, name: str) -> str:
        prefix = name + '.'
        for module_name, path in self.workspace.module_paths.items():
            if module_name.startswith(prefix):
                remaining = module_name[len(prefix):].split('.')
                depth = len(remaining) if path.name == '__init__.py' else len(remaining) - 1
                return str(path.parents[depth])
        return name

    @staticmethod
    def _external(dotted: str) -> Symbol:
        return Symbol(dotted, 'external', dotted.split('.')[0])

    def _declare(self, module: ModuleInfo, qualified_name: str, kind: str, node: Node) -> Symbol:
        symbol = Symbol(
            qualified_name, kind, module.unit_identity,
            DefinitionLocation(str(module.path), node.start_point[0] + 1),
        )
        if kind in ('function', 'method', 'class'):
            self._declarations[symbol] = (node, module)
        return symbol

    # -------------------------------------------------------------------------
    # Scope construction
    # -------------------------------------------------------------------------

    def _walk_bindings(self, node: Node, module: ModuleInfo, owner: str, in_class: bool,
                       bindings: Dict[str, List[Binding]]):
        """Collect the names a block binds, without entering nested scopes."""
        for child in node.named_children:
            if child.type == 'decorated_definition':
                child = child.child_by_field_name('definition')
                if child is None:
                    continue
            kind = child.type

            if kind == 'function_definition':
                name = _field_text(child, 'name')
                if name:
                    symbol = self._declare(module, f"{owner}.{name}", 'method' if in_class else 'function', child)
                    _add(bindings, name, Binding('definition', module, symbol, position=child.start_byte))
            elif kind == 'class_definition':
                info = self._class_info(child, module)
                if info is not None:
                    _add(bindings, info.name, Binding('definition', module, info.symbol, position=child.start_byte))
            elif kind in IMPORT_STATEMENTS:
                self._bind_imports(child, module, owner, bindings)
            elif kind == 'assignment':
                self._bind_assignment(child, module, owner, in_class, bindings)
            elif kind == 'for_statement':
                self._bind_targets(child.child_by_field_name('left'), module, owner, bindings)
                self._walk_bindings(child, module, owner, in_class, bindings)
            elif kind == 'named_expression':
                name_node = child.child_by_field_name('name')
                if name_node is not None:
                    self._bind_targets(name_node, module, owner, bindings)
            elif kind == 'as_pattern_target':
                self._bind_targets(child, module, owner, bindings)
            elif kind in SCOPE_BARRIERS:
                continue
            else:
                self._walk_bindings(child, module, owner, in_class, bindings)

    def _bind_assignment(self, node: Node, module: ModuleInfo, owner: str, in_class: bool,
                         bindings: Dict[str, List[Binding]]):
        left = node.child_by_field_name('left')
        value = node.child_by_field_name('right')
        annotation = node.child_by_field_name('type')
        # a = b = value
        if value is not None and value.type == 'assignment':
            self._bind_assignment(value, module, owner, in_class, bindings)
            while value is not None and value.type == 'assignment':
                value = value.child_by_field_name('right')

        if left is None:
            return
        if left.type == 'identifier':
            name = _text(left)
            symbol = self._declare(module, f"{owner}.{name}", 'attribute' if in_class else 'variable', left)
            _add(bindings, name, Binding('assignment', module, symbol, value=value, annotation=annotation,
                                         position=node.end_byte))
        else:
            self._bind_targets(left, module, owner, bindings)

    def _bind_targets(self, pattern: Optional[Node], module: ModuleInfo, owner: str,
                      bindings: Dict[str, List[Binding]]):
        """Bind every identifier of an unpacking target, with unknown values."""
        if pattern is None:
            return
        if pattern.type == 'identifier':
            name = _text(pattern)
            symbol = self._declare(module, f"{owner}.{name}", 'variable', pattern)
            _add(bindings, name, Binding('assignment', module, symbol, position=pattern.end_byte))
        elif pattern.type in TARGET_PATTERNS or pattern.type == 'as_pattern_target':
            for child in pattern.named_children:
                self._bind_targets(child, module, owner, bindings)

    def _bind_imports(self, statement: Node, module: ModuleInfo, owner: str,
                      bindings: Dict[str, List[Binding]]):
        if statement.type == 'import_statement':
            for item in statement.children_by_field_name('name'):
                if item.type == 'aliased_import':
                    target = _field_text(item, 'name')
                    bound = _field_text(item, 'alias')
                else:
                    # import a.b.c binds a
                    bound = _text(item).split('.')[0]
                    target = bound
                if not bound or not target:
                    continue
                symbol = self._declare(module, f"{owner}.{bound}", 'alias', item)
                _add(bindings, bound, Binding('import', module, symbol, target=target, target_is_module=True,
                                              position=statement.end_byte))
            return

        base = self._absolute_module(module, statement.child_by_field_name('module_name'))
        if base is None:
            return
        if any(child.type == 'wildcard_import' for child in statement.named_children):
            if owner == module.name:
                module.star_imports.append(base)
            return
        for item in statement.children_by_field_name('name'):
            if item.type == 'aliased_import':
                name = _field_text(item, 'name')
                bound = _field_text(item, 'alias')
            else:
                name = bound = _text(item)
            if not name or not bound:
                continue
            symbol = self._declare(module, f"{owner}.{bound}", 'alias', item)
            _add(bindings, bound, Binding('import', module, symbol, target=f"{base}.{name}",
                                          position=statement.end_byte))

    def _absolute_module(self, module: ModuleInfo, node: Optional[Node]) -> Optional[str]:
        """Absolute dotted name of an import's module part."""
        if node is None:
            return None
        if node.type == 'dotted_name':
            return _text(node)
        if node.type != 'relative_import':
            return None

        dots = 0
        rest = ''
        for child in node.named_children:
            if child.type == 'import_prefix':
                dots = _text(child).count('.')
            elif child.type == 'dotted_name':
                rest = _text(child)

        package = module.name.split('.')
        if not module.is_package:
            package = package[:-1]
        up = dots - 1
        if up > len(package):
            return None
        parts = package[:len(package) - up]
        if rest:
            parts.extend(rest.split('.'))
        return '.'.join(parts) or None

    def _class_info(self, node: Node, module: ModuleInfo) -> Optional[ClassInfo]:
        key = (str(module.path), node.start_byte)
        with self._lock:
            info = self._class_nodes.get(key)
            if info is None:
                name = _field_text(node, 'name')
                if not name:
                    return None
                symbol = self._declare(module, self._qualified_owner(node, module), 'class', node)
                info = ClassInfo(name, symbol, node, module)
                self._class_nodes[key] = info
                self._classes.setdefault(symbol, info)
            return info

    def _class_scope(self, info: ClassInfo) -> Tuple[Dict[str, List[Binding]], Dict[str, List[Binding]]]:
        """Names bound in the class body, and all members (body + self attributes)."""
        with self._lock:
            if info.body_bindings is None:
                bindings: Dict[str, List[Binding]] = {}
                body = info.node.child_by_field_name('body')
                if body is not None:
                    self._walk_bindings(body, info.module, info.symbol.qualified_name, True, bindings)
                members = {name: list(found) for name, found in bindings.items()}
                if body is not None:
                    self._bind_instance_attributes(info, body, members)
                info.body_bindings, info.members = bindings, members
            return info.body_bindings, info.members

    def _bind_instance_attributes(self, info: ClassInfo, body: Node, members: Dict[str, List[Binding]]):
        """Add ``self.x = ...`` assignments of the class's methods as attributes."""
        for child in body.named_children:
            method = child.child_by_field_name('definition') if child.type == 'decorated_definition' else child
            if method is None or method.type != 'function_definition':
                continue
            if 'staticmethod' in self._decorator_names(method):
                continue
            params = list(self._parameters(method.child_by_field_name('parameters')))
            if not params:
                continue
            self_name = params[0][0]
            for assignment in self._assignments(method.child_by_field_name('body')):
                left = assignment.child_by_field_name('left')
                if left is None or left.type != 'attribute':
                    continue
                obj = left.child_by_field_name('object')
                if obj is None or obj.type != 'identifier' or _text(obj) != self_name:
                    continue
                name = _field_text(left, 'attribute')
                if not name or name in members:
                    continue
                symbol = self._declare(info.module, f"{info.symbol.qualified_name}.{name}", 'attribute', left)
                members[name] = [Binding('assignment', info.module, symbol,
                                         value=assignment.child_by_field_name('right'))]

    def _assignments(self, node: Optional[Node]) -> Iterable[Node]:
        if node is None:
            return
        for child in node.named_children:
            if child.type in ('function_definition', 'class_definition', 'decorated_definition') or child.type in SCOPE_BARRIERS:
                continue
            if child.type == 'assignment':
                yield child
            yield from self._assignments(child)

    def _function_scope(self, node: Node, module: ModuleInfo) -> Dict[str, List[Binding]]:
        key = (str(module.path), node.start_byte)
        with self._lock:
            cached = self._function_scopes.get(key)
            if cached is not None:
                return cached

            if node.type == 'function_definition':
                owner = self._qualified_owner(node, module)
            else:
                owner = self._qualified_owner(node.parent, module) + '.<lambda>'
            bindings: Dict[str, List[Binding]] = {}

            enclosing_class = self._method_owner(node, module)
            decorators = self._decorator_names(node)
            params = self._parameters(node.child_by_field_name('parameters'))
            for index, (name, annotation, param_node) in enumerate(params):
                symbol = self._declare(module, f"{owner}.{name}", 'variable', param_node)
                binding = Binding('parameter', module, symbol, annotation=annotation)
                if index == 0 and enclosing_class is not None and 'staticmethod' not in decorators:
                    binding.namespace = enclosing_class.symbol
                    binding.is_instance = 'classmethod' not in decorators
                _add(bindings, name, binding)

            body = node.child_by_field_name('body')
            if body is not None and node.type == 'function_definition':
                self._walk_bindings(body, module, owner, False, bindings)
                for name in self._declared_nonlocal(body):
                    bindings.pop(name, None)

            self._function_scopes[key] = bindings
            return bindings

    def _declared_nonlocal(self, node: Node) -> List[str]:
        names = []
        for child in node.named_children:
            if child.type in ('global_statement', 'nonlocal_statement'):
                names.extend(_text(c) for c in child.named_children if c.type == 'identifier')
            elif child.type not in ('function_definition', 'class_definition', 'decorated_definition'):
                names.extend(self._declared_nonlocal(child))
        return names

    @staticmethod
    def _parameters(params: Optional[Node]) -> Iterable[Tuple[str, Optional[Node], Node]]:
        """(name, annotation, node) for each parameter."""
        if params is None:
            return []
        result = []
        for param in params.named_children:
            kind = param.type
            annotation = None
            if kind == 'identifier':
                name = _text(param)
            elif kind in ('default_parameter', 'typed_default_parameter'):
                name = _field_text(param, 'name')
                annotation = param.child_by_field_name('type')
            elif kind == 'typed_parameter':
                annotation = param.child_by_field_name('type')
                target = next((c for c in param.named_children if c.type != 'type'), None)
                name = _text(target).lstrip('*')
            elif kind in ('list_splat_pattern', 'dictionary_splat_pattern'):
                name = _text(param).lstrip('*')
            else:
                continue
            if name:
                result.append((name, annotation, param))
        return result

    def _method_owner(self, node: Node, module: ModuleInfo) -> Optional[ClassInfo]:
        if node.type != 'function_definition':
            return None
        parent = node.parent
        if parent is not None and parent.type == 'decorated_definition':
            parent = parent.parent
        if parent is not None and parent.type == 'block' and parent.parent is not None \
                and parent.parent.type == 'class_definition':
            return self._class_info(parent.parent, module)
        return None

    @staticmethod
    def _decorator_names(node: Node) -> List[str]:
        parent = node.parent
        if parent is None or parent.type != 'decorated_definition':
            return []
        names = []
        for child in parent.named_children:
            if child.type == 'decorator':
                names.append(_text(child).lstrip('@').strip().split('(')[0].split('.')[-1])
        return names

    def _qualified_owner(self, node: Node, module: ModuleInfo) -> str:
        """Dotted path of classes and functions enclosing (and including) node."""
        names = []
        current = node
        while current is not None:
            if current.type in ('class_definition', 'function_definition'):
                names.append(_field_text(current, 'name'))
            current = current.parent
        return '.'.join([module.name] + list(reversed(names)))

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def _evaluate(self, node: Optional[Node], module: ModuleInfo, depth: int) -> List[_Value]:
        if node is None or depth > MAX_DEPTH:
            return []
        kind = node.type
        if kind == 'identifier':
            return self._lookup(_text(node), node, module, depth + 1)
        if kind == 'attribute':
            objects = self._evaluate(node.child_by_field_name('object'), module, depth + 1)
            return self._members(objects, _field_text(node, 'attribute'), depth + 1)
        if kind == 'call':
            functions = self._evaluate(node.child_by_field_name('function'), module, depth + 1)
            return [self._call_result(value, depth + 1) for value in functions]
        if kind in ('parenthesized_expression', 'type', 'generic_type'):
            inner = node.named_children[0] if node.named_children else None
            return self._evaluate(inner, module, depth + 1)
        if kind == 'subscript':
            return self._evaluate(node.child_by_field_name('value'), module, depth + 1)
        return []

    def _lookup(self, name: str, node: Node, module: ModuleInfo, depth: int) -> List[_Value]:
        """LEGB lookup starting at node. Class bodies are only visible to themselves."""
        scope = node.parent
        crossed_scope = False
        while scope is not None:
            kind = scope.type
            if kind in ('function_definition', 'lambda'):
                body = scope.child_by_field_name('body')
                if body is not None and _contains(body, node):
                    bindings = self._function_scope(scope, module)
                    if name in bindings:
                        found = bindings[name] if crossed_scope else self._preceding(bindings[name], node)
                        return self._values_of(found)
                    crossed_scope = True
            elif kind == 'class_definition':
                body = scope.child_by_field_name('body')
                if body is not None and _contains(body, node):
                    if not crossed_scope:
                        info = self._class_info(scope, module)
                        if info is not None:
                            body_bindings, _ = self._class_scope(info)
                            if name in body_bindings:
                                return self._values_of(self._preceding(body_bindings[name], node))
                    crossed_scope = True
            elif kind in COMPREHENSIONS:
                if name in self._comprehension_names(scope):
                    return []
            scope = scope.parent
        if not crossed_scope and name in module.bindings:
            return self._values_of(self._preceding(module.bindings[name], node))
        return self._module_lookup(module, name, depth)

    @staticmethod
    def _preceding(bindings: List[Binding], node: Node) -> List[Binding]:
        """Bindings completed before node, for a use in the binding's own block.

        ``x = x.parent`` sees the earlier bindings of x, not itself. All
        bindings count when none precedes (loops, late definitions).
        """
        before = [binding for binding in bindings if binding.position <= node.start_byte]
        return before or bindings

    @staticmethod
    def _comprehension_names(node: Node) -> set:
        names = set()
        for clause in node.named_children:
            if clause.type != 'for_in_clause':
                continue
            stack = [clause.child_by_field_name('left')]
            while stack:
                current = stack.pop()
                if current is None:
                    continue
                if current.type == 'identifier':
                    names.add(_text(current))
                else:
                    stack.extend(current.named_children)
        return names

    def _module_lookup(self, module: ModuleInfo, name: str, depth: int) -> List[_Value]:
        if depth > MAX_DEPTH:
            return []
        if name in module.bindings:
            return self._values_of(module.bindings[name])
        if name.startswith('_'):
            return []
        values = []
        for star in module.star_imports:
            star_module = self._module(star)
            if star_module is not None:
                values.extend(self._module_lookup(star_module, name, depth + 1))
        return values

    def _values_of(self, bindings: List[Binding]) -> List[_Value]:
        values = []
        for binding in bindings:
            if binding.kind == 'definition':
                values.append(_Value(binding.symbol))
            elif binding.kind == 'import':
                for target in self._guarded(binding, self._import_targets):
                    alias = Symbol(binding.symbol.qualified_name, 'alias', binding.symbol.unit_identity,
                                   binding.symbol.location, original=target.symbol)
                    values.append(_Value(alias, target.namespace, target.is_instance, target.binding, target.opaque))
            else:
                values.append(_Value(binding.symbol, binding.namespace, binding.is_instance, binding))
        return values

    def _guarded(self, binding: Binding, compute: Callable[[Binding], List[_Value]]) -> List[_Value]:
        """Values of a binding, computed once.

        A binding met again while its own values are being computed yields
        nothing. Results that depended on such a cut are not memoized, so the
        memo never depends on which reference was resolved first.
        """
        cached = self._binding_values.get(binding)
        if cached is not None:
            return cached

        state = self._state
        if not hasattr(state, 'active'):
            state.active = set()
            state.cut = False
        if binding in state.active or len(state.active) >= MAX_BINDING_NESTING:
            state.cut = True
            return []

        outer_cut, state.cut = state.cut, False
        state.active.add(binding)
        try:
            values = compute(binding)
        finally:
            state.active.discard(binding)
        cut = state.cut
        if not cut:
            with self._lock:
                self._binding_values[binding] = values
        state.cut = cut or outer_cut
        return values

    def _import_targets(self, binding: Binding) -> List[_Value]:
        if binding.target_is_module:
            top = binding.target.split('.')[0]
            if top not in self._top_levels:
                return [_Value(self._external(binding.target))]
            symbol = self._module_symbol(binding.target)
            return [_Value(symbol)] if symbol is not None else []
        return self._resolve_qualified(binding.target, 0)

    def _resolve_qualified(self, dotted: str, depth: int) -> List[_Value]:
        """Resolve an absolute dotted name: longest module prefix, then members."""
        parts = dotted.split('.')
        if parts[0] not in self._top_levels:
            return [_Value(self._external(dotted))]
        for i in range(len(parts), 0, -1):
            symbol = self._module_symbol('.'.join(parts[:i]))
            if symbol is not None:
                break
        else:
            return []
        values = [_Value(symbol)]
        for name in parts[i:]:
            values = self._members(values, name, depth + 1)
            if not values:
                break
        return values

    def _binding_targets(self, binding: Binding) -> List[_Value]:
        """Values a variable or parameter holds: annotation first, then assigned value."""
        if binding.annotation is not None:
            instances = []
            for value in self._evaluate(binding.annotation, binding.module, 1):
                for namespace in self._namespaces(value, 1):
                    if namespace.kind in ('class', 'external'):
                        instances.append(_Value(value.symbol, namespace, True))
            if instances:
                return instances
        if binding.value is not None:
            return self._evaluate(binding.value, binding.module, 1)
        return []

    def _namespaces(self, value: _Value, depth: int) -> List[Symbol]:
        """Symbols whose members are reachable through value."""
        if value.opaque or depth > MAX_DEPTH:
            return []
        if value.namespace is not None:
            return [value.namespace]
        if value.binding is not None:
            namespaces = []
            for inner in self._guarded(value.binding, self._binding_targets):
                namespaces.extend(self._namespaces(inner, depth + 1))
            return namespaces
        return [value.symbol.original_definition()]

    def _members(self, values: List[_Value], name: str, depth: int) -> List[_Value]:
        if not name:
            return []
        found = []
        for value in values:
            for namespace in self._namespaces(value, depth):
                if namespace.kind == 'class':
                    found.extend(self._class_member(namespace, name))
                elif namespace.kind == 'module':
                    found.extend(self._module_member(namespace, name, depth + 1))
                elif namespace.kind == 'external':
                    found.append(_Value(self._external(f"{namespace.qualified_name}.{name}")))
        return _unique(found)

    def _module_member(self, module_symbol: Symbol, name: str, depth: int) -> List[_Value]:
        module = self._module(module_symbol.qualified_name)
        if module is not None:
            values = self._module_lookup(module, name, depth)
            if values:
                return values
        submodule = self._module_symbol(f"{module_symbol.qualified_name}.{name}")
        return [_Value(submodule)] if submodule is not None else []

    def _class_member(self, class_symbol: Symbol, name: str) -> List[_Value]:
        """Member lookup along the class hierarchy.

        Workspace classes are searched first; if none declares the member but
        an external base exists, the member is attributed to that base.
        """
        external_base = None
        for cls in self._mro(class_symbol):
            info = self._classes.get(cls)
            if info is None:
                if external_base is None and not cls.in_source:
                    external_base = cls
                continue
            _, members = self._class_scope(info)
            if name in members:
                return self._values_of(members[name])
        if external_base is not None:
            return [_Value(self._external(f"{external_base.qualified_name}.{name}"))]
        return []

    def _mro(self, class_symbol: Symbol) -> List[Symbol]:
        with self._lock:
            pending = [class_symbol]
            while pending:
                cls = pending.pop()
                if cls in self._bases_loaded:
                    continue
                self._bases_loaded.add(cls)
                self._hierarchy.add_node(cls)
                info = self._classes.get(cls)
                if info is None:
                    continue
                for base in self._class_bases(info):
                    if base != cls:
                        self._hierarchy.add_edge(cls, base)
                        pending.append(base)
            return list(nx.dfs_preorder_nodes(self._hierarchy, class_symbol))

    def _class_bases(self, info: ClassInfo) -> List[Symbol]:
        superclasses = info.node.child_by_field_name('superclasses')
        if superclasses is None:
            return []
        bases = []
        for argument in superclasses.named_children:
            if argument.type == 'keyword_argument':
                continue
            for value in self._evaluate(argument, info.module, 0):
                for namespace in self._namespaces(value, 1):
                    if namespace.kind in ('class', 'external'):
                        bases.append(namespace)
        return bases

    def _call_result(self, value: _Value, depth: int) -> _Value:
        """Calling a class (or an external callable) yields an instance of it."""
        if not value.is_instance:
            for namespace in self._namespaces(value, depth):
                if namespace.kind in ('class', 'external'):
                    return _Value(value.symbol, namespace, True)
                if namespace.kind in ('function', 'method'):
                    for cls in self._returned_classes(namespace, depth + 1):
                        return _Value(value.symbol, cls, True)
        return _Value(value.symbol, opaque=True)

    def _returned_classes(self, function: Symbol, depth: int) -> List[Symbol]:
        declaration = self._declarations.get(function)
        if declaration is None:
            return []
        node, module = declaration
        returns = node.child_by_field_name('return_type')
        classes = []
        for value in self._evaluate(returns, module, depth + 1):
            classes.extend(ns for ns in self._namespaces(value, depth + 1) if ns.kind in ('class', 'external'))
        return classes

    def _with_overridden(self, symbol: Symbol) -> Symbol:
        """Point a method at the base class declaration it overrides, if any."""
        method = symbol.original_definition()
        if method.kind != 'method':
            return symbol
        base = self._overridden(method)
        if base is None:
            return symbol
        return Symbol(symbol.qualified_name, symbol.kind, symbol.unit_identity, symbol.location, original=base)

    def _overridden(self, method: Symbol) -> Optional[Symbol]:
        """Top-most workspace declaration of the same method along the MRO."""
        declaration = self._declarations.get(method)
        if declaration is None:
            return None
        node, module = declaration
        owner = self._method_owner(node, module)
        if owner is None:
            return None
        name = method.qualified_name.rsplit('.', 1)[-1]
        overridden = None
        for cls in self._mro(owner.symbol)[1:]:
            info = self._classes.get(cls)
            if info is None:
                continue
            body_bindings, _ = self._class_scope(info)
            for binding in body_bindings.get(name, []):
                if binding.kind == 'definition' and binding.symbol.kind == 'method':
                    overridden = binding.symbol
                    break
        return overridden

    # -------------------------------------------------------------------------
    # References
    # -------------------------------------------------------------------------

    def _reference(self, node: Node, module: ModuleInfo) -> SyntaxReference:
        return SyntaxReference(node, node.start_point[0] + 1, self._enclosing_member(node, module))

    @staticmethod
    def _import_items(statement: Node) -> List[Node]:
        if statement.type == 'import_from_statement' and any(
                child.type == 'wildcard_import' for child in statement.named_children):
            module_name = statement.child_by_field_name('module_name')
            return [module_name] if module_name is not None else []
        return list(statement.children_by_field_name('name'))

    def _import_reference_values(self, node: Node, module: ModuleInfo) -> List[_Value]:
        statement = node.parent
        if node.type == 'aliased_import':
            name = _field_text(node, 'name')
        else:
            name = _text(node)

        if statement.type == 'import_statement':
            return self._resolve_qualified(name, 0)

        module_name = statement.child_by_field_name('module_name')
        base = self._absolute_module(module, module_name)
        if base is None:
            return []
        if node == module_name:
            return self._resolve_qualified(base, 0)
        return self._resolve_qualified(f"{base}.{name}", 0)

    @staticmethod
    def _is_reference_head(node: Node) -> bool:
        parent = node.parent
        if parent is None:
            return False
        if parent.type == 'attribute' and parent.child_by_field_name('object') == node:
            return False
        if parent.type == 'call' and parent.child_by_field_name('function') == node:
            return False
        if node.type != 'identifier':
            return True
        if parent.type in BINDING_PARENTS:
            return False
        for parent_type, field_name in BINDING_FIELDS:
            if parent.type == parent_type and parent.child_by_field_name(field_name) == node:
                return False
        return True

    @staticmethod
    def _chain(node: Node) -> List[Node]:
        """The reference head followed by its callee/object links, outermost first."""
        links = [node]
        current = node
        while True:
            if current.type == 'call':
                current = current.child_by_field_name('function')
            elif current.type == 'attribute':
                current = current.child_by_field_name('object')
            else:
                break
            if current is None or current.type not in REFERENCE_NODES:
                break
            links.append(current)
        return links

    # -------------------------------------------------------------------------
    # Enclosing member labels
    # -------------------------------------------------------------------------

    def _enclosing_member(self, node: Node, module: ModuleInfo) -> str:
        """Label of the innermost function or field-like assignment around node.

        Falls back to the enclosing class, then to the module name.
        """
        field_name = None
        current = node.parent
        while current is not None:
            kind = current.type
            if kind in ('function_definition',):
                return self._render_callable(current, module)
            if kind == 'assignment' and field_name is None:
                left = current.child_by_field_name('left')
                if left is not None and left.type == 'identifier':
                    field_name = _text(left)
            if kind == 'class_definition':
                owner = self._qualified_owner(current, module)
                return f"{owner}.{field_name}" if field_name else owner
            current = current.parent
        return f"{module.name}.{field_name}" if field_name else module.name

    def _render_callable(self, node: Node, module: ModuleInfo) -> str:
        params = node.child_by_field_name('parameters')
        rendered = []
        if params is not None:
            for param in params.named_children:
                rendered.append(self._render_parameter(param))
        return f"{self._qualified_owner(node, module)}({', '.join(p for p in rendered if p)})"

    @staticmethod
    def _render_parameter(param: Node) -> str:
        kind = param.type
        annotation = param.child_by_field_name('type')
        if kind == 'default_parameter':
            return _field_text(param, 'name')
        if kind == 'typed_default_parameter':
            name = _field_text(param, 'name')
        elif kind == 'typed_parameter':
            name = _text(next((c for c in param.named_children if c.type != 'type'), None))
        else:
            return ' '.join(_text(param).split())
        if annotation is None:
            return name
        return f"{name}: {' '.join(_text(annotation).split())}"

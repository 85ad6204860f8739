"""Syntax tree for TLA+ modules.

A module is an ordered tuple of declarations.  Each declaration owns the
exact source text of its segment, so rendering a module is concatenation
and an untouched declaration is re-emitted byte-for-byte.

Expression nodes are frozen dataclasses forming a tagged union (``Expr``).
Every node carries a ``Span`` of offsets into its declaration's text.  Spans
are excluded from equality: two trees parsed from differently formatted
text compare equal when they have the same structure.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import assert_never

# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Span:
    """Half-open byte range ``[start, end)`` in a declaration's text."""

    start: int
    end: int

    def slice(self, text: str) -> str:
        return text[self.start : self.end]


NO_SPAN = Span(0, 0)


def _span() -> Span:
    return field(default=NO_SPAN, compare=False, repr=False)  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Name:
    name: str
    span: Span = _span()


@dataclass(frozen=True)
class Number:
    value: str
    span: Span = _span()


@dataclass(frozen=True)
class String:
    """A string literal; ``value`` excludes the quotes."""

    value: str
    span: Span = _span()


@dataclass(frozen=True)
class Prime:
    """``e'``: the value of ``e`` in the next state."""

    expr: Expr
    span: Span = _span()


@dataclass(frozen=True)
class OpApp:
    """Application of a user-defined operator: ``Op(a, b)``."""

    name: str
    args: tuple[Expr, ...]
    span: Span = _span()


@dataclass(frozen=True)
class FnApply:
    """Function application: ``f[a]`` or ``f[a, b]``."""

    fn: Expr
    args: tuple[Expr, ...]
    span: Span = _span()


@dataclass(frozen=True)
class Binary:
    op: str
    left: Expr
    right: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Unary:
    """Prefix operator: ``~``, ``-``, ``[]``, ``<>``, ``ENABLED``, ``SUBSET``..."""

    op: str
    operand: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Junction:
    """A conjunction (``/\\``) or disjunction (``\\/``) of items.

    Bulleted lists (one aligned bullet per item) and infix chains share
    this node.  ``op_spans`` holds the bullet of each item for a bulleted
    list, and the operator between consecutive items for an infix chain.
    ``column`` is the bullet column (``-1`` for infix chains).
    """

    op: str
    items: tuple[Expr, ...]
    bulleted: bool
    span: Span = _span()
    column: int = field(default=-1, compare=False)
    op_spans: tuple[Span, ...] = field(default=(), compare=False, repr=False)

    @property
    def is_conjunction(self) -> bool:
        return self.op == "/\\"


@dataclass(frozen=True)
class IfThenElse:
    cond: Expr
    then: Expr
    else_: Expr
    span: Span = _span()


@dataclass(frozen=True)
class CaseArm:
    guard: Expr
    value: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Case:
    arms: tuple[CaseArm, ...]
    other: Expr | None
    span: Span = _span()


@dataclass(frozen=True)
class LetDef:
    name: str
    params: tuple[str, ...]
    body: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Let:
    defs: tuple[LetDef, ...]
    body: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Bound:
    """``x, y \\in S`` (or an unbounded ``x``) in a quantifier or constructor."""

    names: tuple[str, ...]
    domain: Expr | None
    span: Span = _span()


@dataclass(frozen=True)
class Quantified:
    quantifier: str  # "\\E" or "\\A"
    bounds: tuple[Bound, ...]
    body: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Choose:
    bound: Bound
    body: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Unchanged:
    """``UNCHANGED e`` where ``e`` is a name or a tuple of names."""

    expr: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Tuple:
    items: tuple[Expr, ...]
    span: Span = _span()


@dataclass(frozen=True)
class SetEnum:
    items: tuple[Expr, ...]
    span: Span = _span()


@dataclass(frozen=True)
class SetFilter:
    """``{x \\in S : P}``"""

    bound: Bound
    predicate: Expr
    span: Span = _span()


@dataclass(frozen=True)
class SetMap:
    """``{e : x \\in S}``"""

    expr: Expr
    bounds: tuple[Bound, ...]
    span: Span = _span()


@dataclass(frozen=True)
class FnConstructor:
    """``[x \\in S |-> e]``"""

    bounds: tuple[Bound, ...]
    body: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Record:
    """``[a |-> 1, b |-> 2]``"""

    fields: tuple[tuple[str, Expr], ...]
    span: Span = _span()


@dataclass(frozen=True)
class RecordSet:
    """``[a : S, b : T]``"""

    fields: tuple[tuple[str, Expr], ...]
    span: Span = _span()


@dataclass(frozen=True)
class FnSet:
    """``[S -> T]``"""

    domain: Expr
    codomain: Expr
    span: Span = _span()


@dataclass(frozen=True)
class ExceptUpdate:
    """``![a][b] = v`` or ``!.f = v``; field selectors are plain strings."""

    path: tuple[Expr | str, ...]
    value: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Except:
    base: Expr
    updates: tuple[ExceptUpdate, ...]
    span: Span = _span()


@dataclass(frozen=True)
class FieldAccess:
    expr: Expr
    field: str
    span: Span = _span()


@dataclass(frozen=True)
class BoxAction:
    """``[A]_v``"""

    action: Expr
    subscript: Expr
    span: Span = _span()


@dataclass(frozen=True)
class AngleAction:
    """``<<A>>_v``"""

    action: Expr
    subscript: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Fairness:
    """``WF_v(A)`` or ``SF_v(A)``."""

    strength: str  # "WF" or "SF"
    subscript: Expr
    action: Expr
    span: Span = _span()


@dataclass(frozen=True)
class Paren:
    expr: Expr
    span: Span = _span()


Expr = (
    Name
    | Number
    | String
    | Prime
    | OpApp
    | FnApply
    | Binary
    | Unary
    | Junction
    | IfThenElse
    | Case
    | Let
    | Quantified
    | Choose
    | Unchanged
    | Tuple
    | SetEnum
    | SetFilter
    | SetMap
    | FnConstructor
    | Record
    | RecordSet
    | FnSet
    | Except
    | FieldAccess
    | BoxAction
    | AngleAction
    | Fairness
    | Paren
)


def children(expr: Expr) -> tuple[Expr, ...]:
    """Direct sub-expressions of ``expr``, in source order."""
    match expr:
        case Name() | Number() | String():
            return ()
        case Prime(e) | Unary(_, e) | Unchanged(e) | Paren(e) | FieldAccess(e, _):
            return (e,)
        case OpApp(_, args):
            return args
        case FnApply(fn, args):
            return (fn, *args)
        case Binary(_, left, right):
            return (left, right)
        case Junction(_, items, _):
            return items
        case IfThenElse(cond, then, else_):
            return (cond, then, else_)
        case Case(arms, other):
            subs: list[Expr] = []
            for arm in arms:
                subs.extend((arm.guard, arm.value))
            if other is not None:
                subs.append(other)
            return tuple(subs)
        case Let(defs, body):
            return (*(d.body for d in defs), body)
        case Quantified(_, bounds, body):
            return (*_bound_domains(bounds), body)
        case Choose(bound, body):
            return (*_bound_domains((bound,)), body)
        case Tuple(items) | SetEnum(items):
            return items
        case SetFilter(bound, predicate):
            return (*_bound_domains((bound,)), predicate)
        case SetMap(e, bounds):
            return (e, *_bound_domains(bounds))
        case FnConstructor(bounds, body):
            return (*_bound_domains(bounds), body)
        case Record(fields) | RecordSet(fields):
            return tuple(v for _, v in fields)
        case FnSet(domain, codomain):
            return (domain, codomain)
        case Except(base, updates):
            subs = [base]
            for upd in updates:
                subs.extend(p for p in upd.path if not isinstance(p, str))
                subs.append(upd.value)
            return tuple(subs)
        case BoxAction(action, subscript) | AngleAction(action, subscript):
            return (action, subscript)
        case Fairness(_, subscript, action):
            return (subscript, action)
        case _:
            assert_never(expr)


def _bound_domains(bounds: tuple[Bound, ...]) -> tuple[Expr, ...]:
    return tuple(b.domain for b in bounds if b.domain is not None)


def walk(expr: Expr) -> Iterator[Expr]:
    """Pre-order traversal of ``expr`` and all its sub-expressions."""
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(children(node)))


def unparen(expr: Expr) -> Expr:
    while isinstance(expr, Paren):
        expr = expr.expr
    return expr


def referenced_names(expr: Expr) -> frozenset[str]:
    """Every identifier used as a name or an operator in ``expr``."""
    names: set[str] = set()
    for node in walk(expr):
        if isinstance(node, Name):
            names.add(node.name)
        elif isinstance(node, OpApp):
            names.add(node.name)
    return frozenset(names)


def bound_names(expr: Expr) -> frozenset[str]:
    """Names introduced by quantifiers, constructors and LET inside ``expr``."""
    names: set[str] = set()
    for node in walk(expr):
        match node:
            case Quantified(_, bounds, _) | SetMap(_, bounds) | FnConstructor(bounds, _):
                for b in bounds:
                    names.update(b.names)
            case Choose(bound, _) | SetFilter(bound, _):
                names.update(bound.names)
            case Let(defs, _):
                for d in defs:
                    names.add(d.name)
                    names.update(d.params)
            case _:
                pass
    return frozenset(names)


def contains_prime(expr: Expr) -> bool:
    return any(isinstance(n, (Prime, Unchanged)) for n in walk(expr))


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModuleHeader:
    """``---- MODULE Name ----`` plus any text before it."""

    text: str
    core: Span
    name: str


@dataclass(frozen=True)
class ModuleFooter:
    """``====`` plus any text after it."""

    text: str
    core: Span


@dataclass(frozen=True)
class Extends:
    text: str
    core: Span
    modules: tuple[str, ...]


@dataclass(frozen=True)
class ConstantBlock:
    text: str
    core: Span
    names: tuple[str, ...]
    name_spans: tuple[Span, ...] = field(compare=False, repr=False)


@dataclass(frozen=True)
class VariableBlock:
    text: str
    core: Span
    names: tuple[str, ...]
    name_spans: tuple[Span, ...] = field(compare=False, repr=False)


@dataclass(frozen=True)
class Definition:
    """``Name(p, q) == body``: a value, an action or the state tuple."""

    text: str
    core: Span
    name: str
    params: tuple[str, ...]
    body: Expr
    name_span: Span = field(compare=False, repr=False)


@dataclass(frozen=True)
class Invariant:
    """The type invariant (``TypeOK == ...``)."""

    text: str
    core: Span
    name: str
    params: tuple[str, ...]
    body: Expr
    name_span: Span = field(compare=False, repr=False)


@dataclass(frozen=True)
class NextRelation:
    """The next-state relation (``Next == ...``)."""

    text: str
    core: Span
    name: str
    params: tuple[str, ...]
    body: Expr
    name_span: Span = field(compare=False, repr=False)


@dataclass(frozen=True)
class FairnessClause:
    """A definition that contains ``WF_``/``SF_`` conditions (``Spec``, ``Fairness``)."""

    text: str
    core: Span
    name: str
    params: tuple[str, ...]
    body: Expr
    name_span: Span = field(compare=False, repr=False)


@dataclass(frozen=True)
class Opaque:
    """A unit carried through verbatim: ASSUME, THEOREM, separators..."""

    text: str
    core: Span
    keyword: str


Declaration = (
    ModuleHeader
    | ModuleFooter
    | Extends
    | ConstantBlock
    | VariableBlock
    | Definition
    | Invariant
    | NextRelation
    | FairnessClause
    | Opaque
)

NamedDefinition = Definition | Invariant | NextRelation | FairnessClause

NAMED_DEFINITION_TYPES = (Definition, Invariant, NextRelation, FairnessClause)


@dataclass(frozen=True)
class Module:
    """A parsed module: the ordered declarations that partition its text."""

    name: str
    declarations: tuple[Declaration, ...]

    def definitions(self) -> Iterator[NamedDefinition]:
        for decl in self.declarations:
            if isinstance(decl, NAMED_DEFINITION_TYPES):
                yield decl

    def index_of(self, decl: Declaration) -> int:
        for i, d in enumerate(self.declarations):
            if d is decl:
                return i
        raise ValueError("declaration does not belong to this module")

    def replace(self, replacements: dict[int, tuple[Declaration, ...]]) -> Module:
        """Return a new module with declaration ``i`` replaced by ``replacements[i]``.

        Untouched declarations are shared with ``self``.
        """
        decls: list[Declaration] = []
        for i, d in enumerate(self.declarations):
            if i in replacements:
                decls.extend(replacements[i])
            else:
                decls.append(d)
        return Module(self.name, tuple(decls))

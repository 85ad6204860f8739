"""Per-branch effects of an action.

``branch_effects`` walks an action body and returns one :class:`BranchEffect`
per leaf branch: disjunctions, ``IF`` and ``CASE`` fork branches, conjunctions
combine their items' branches (cross product), and ``\\E``/``LET`` are looked
through.  References to other actions are inlined, so a branch that
delegates to a helper action picks up the helper's assignments.

Besides the primed and unchanged sets, every branch carries the layout
handles the transforms need to edit it: the assignment items, the
``UNCHANGED`` nodes (outer to inner), the innermost conjunction owned by the
action and the innermost fork arm.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

from .catalog import Catalog
from .syntax import (
    Binary,
    Case,
    Expr,
    IfThenElse,
    Junction,
    Let,
    Name,
    NamedDefinition,
    OpApp,
    Prime,
    Quantified,
    Tuple,
    Unary,
    Unchanged,
    unparen,
)


@dataclass(frozen=True)
class Assignment:
    """``v' = e`` or ``v' \\in S``.

    ``item`` is the junction item holding the assignment (the assignment
    itself, or a quantifier or LET around it).
    """

    variable: str
    node: Binary
    item: Expr
    junction: Junction | None
    index: int
    owner: str


@dataclass(frozen=True)
class UnchangedNode:
    node: Unchanged
    names: tuple[str, ...]
    refs: tuple[str, ...]
    junction: Junction | None
    index: int
    owner: str
    depth: int


@dataclass(frozen=True)
class Fork:
    """The arm of a disjunction, ``IF`` or ``CASE`` a branch runs through.

    ``safe`` is false when conjoining to ``item`` needs parentheses.
    """

    item: Expr
    safe: bool
    owner: str


@dataclass(frozen=True)
class BranchEffect:
    primed: frozenset[str]
    unchanged: frozenset[str]
    path: tuple[Expr, ...]
    assignments: tuple[Assignment, ...]
    unchanged_nodes: tuple[UnchangedNode, ...]
    anchor: Junction | None
    fork: Fork | None
    primed_counts: Mapping[str, int]
    unchanged_counts: Mapping[str, int]
    delegated: frozenset[str]
    unresolved: frozenset[str]
    scopes: tuple[Junction, ...] = field(default=(), repr=False)

    def innermost_unchanged(self, owner: str) -> UnchangedNode | None:
        best: UnchangedNode | None = None
        for node in self.unchanged_nodes:
            if node.owner == owner and (best is None or node.depth >= best.depth):
                best = node
        return best


@dataclass(frozen=True)
class _Ctx:
    owner: str
    depth: int = 0
    junction: Junction | None = None
    index: int = 0
    item: Expr | None = None


@dataclass(frozen=True)
class _Partial:
    assignments: tuple[Assignment, ...] = ()
    unchanged: tuple[UnchangedNode, ...] = ()
    path: tuple[Expr, ...] = ()
    scopes: tuple[tuple[int, str, Junction], ...] = ()
    fork: Fork | None = None
    delegated: frozenset[str] = frozenset()
    unresolved: frozenset[str] = frozenset()

    def join(self, other: _Partial) -> _Partial:
        return _Partial(
            self.assignments + other.assignments,
            self.unchanged + other.unchanged,
            self.path + other.path,
            self.scopes + other.scopes,
            other.fork or self.fork,
            self.delegated | other.delegated,
            self.unresolved | other.unresolved,
        )

    def forked(self, fork: Fork, guard: Expr | None = None) -> _Partial:
        path = self.path if guard is None else (guard, *self.path)
        return replace(self, fork=self.fork or fork, path=path)


class _Analyzer:
    def __init__(self, catalog: Catalog, root: str) -> None:
        self.catalog = catalog
        self.variables = frozenset(catalog.variables)
        self.stack = [root]

    def visit(self, expr: Expr, ctx: _Ctx) -> list[_Partial]:
        e = unparen(expr)
        match e:
            case Junction(op="/\\"):
                branches = [_Partial(scopes=((ctx.depth + 1, ctx.owner, e),))]
                for i, item in enumerate(e.items):
                    sub_ctx = _Ctx(ctx.owner, ctx.depth + 1, e, i, item)
                    subs = self.visit(item, sub_ctx)
                    branches = [b.join(s) for b in branches for s in subs]
                return branches
            case Junction():
                out: list[_Partial] = []
                for item in e.items:
                    fork = Fork(item, e.bulleted, ctx.owner)
                    sub_ctx = _Ctx(ctx.owner, ctx.depth)
                    out.extend(s.forked(fork) for s in self.visit(item, sub_ctx))
                return out
            case IfThenElse(cond, then, else_):
                sub_ctx = _Ctx(ctx.owner, ctx.depth)
                return [
                    *(s.forked(Fork(then, True, ctx.owner), cond) for s in self.visit(then, sub_ctx)),
                    *(
                        s.forked(Fork(else_, True, ctx.owner), Unary("~", cond))
                        for s in self.visit(else_, sub_ctx)
                    ),
                ]
            case Case(arms, other):
                sub_ctx = _Ctx(ctx.owner, ctx.depth)
                out = []
                for arm in arms:
                    fork = Fork(arm.value, True, ctx.owner)
                    out.extend(s.forked(fork, arm.guard) for s in self.visit(arm.value, sub_ctx))
                if other is not None:
                    fork = Fork(other, True, ctx.owner)
                    negated = tuple(Unary("~", arm.guard) for arm in arms)
                    for s in self.visit(other, sub_ctx):
                        forked = s.forked(fork)
                        out.append(replace(forked, path=(*negated, *forked.path)))
                return out
            case Let(_, body) | Quantified(_, _, body):
                return self.visit(body, ctx)
            case Binary("=" | "\\in", left, _) if _primed_name(left) is not None:
                var = _primed_name(left)
                assert var is not None
                item = ctx.item if ctx.item is not None else e
                return [_Partial(assignments=(Assignment(var, e, item, ctx.junction, ctx.index, ctx.owner),))]
            case Unchanged(inner):
                names, refs, unresolved = self.expand(inner)
                node = UnchangedNode(e, names, refs, ctx.junction, ctx.index, ctx.owner, ctx.depth)
                return [_Partial(unchanged=(node,), unresolved=unresolved)]
            case Name(name) | OpApp(name, _) if name in self.catalog.action_like and name not in self.stack:
                callee = self.catalog.definitions[name]
                self.stack.append(name)
                try:
                    subs = self.visit(callee.body, _Ctx(name, ctx.depth))
                finally:
                    self.stack.pop()
                return [replace(s, delegated=s.delegated | {name}) for s in subs]
            case _:
                return [_Partial(path=(e,))]

    def expand(self, inner: Expr) -> tuple[tuple[str, ...], tuple[str, ...], frozenset[str]]:
        e = unparen(inner)
        items = e.items if isinstance(e, Tuple) else (e,)
        names: list[str] = []
        refs: list[str] = []
        unresolved: set[str] = set()
        for item in items:
            i = unparen(item)
            if not isinstance(i, Name):
                unresolved.add(type(i).__name__)
                continue
            refs.append(i.name)
            if i.name in self.variables:
                names.append(i.name)
            elif self.catalog.is_tuple(i.name):
                names.extend(self.catalog.tuple_expansion(i.name))
            else:
                unresolved.add(i.name)
        return tuple(names), tuple(refs), frozenset(unresolved)


def _primed_name(expr: Expr) -> str | None:
    e = unparen(expr)
    if isinstance(e, Prime):
        target = unparen(e.expr)
        if isinstance(target, Name):
            return target.name
    return None


def branch_effects(action: NamedDefinition | str, catalog: Catalog) -> tuple[BranchEffect, ...]:
    """One :class:`BranchEffect` per leaf branch of ``action``."""
    defn = catalog.get(action) if isinstance(action, str) else action
    analyzer = _Analyzer(catalog, defn.name)
    partials = analyzer.visit(defn.body, _Ctx(defn.name))
    effects: list[BranchEffect] = []
    for p in partials:
        primed_counts = Counter(a.variable for a in p.assignments)
        unchanged_counts: Counter[str] = Counter()
        for node in p.unchanged:
            unchanged_counts.update(node.names)
        owned = [(depth, j) for depth, owner, j in p.scopes if owner == defn.name]
        anchor = None
        if owned:
            deepest = max(depth for depth, _ in owned)
            anchor = [j for depth, j in owned if depth == deepest][-1]
        effects.append(
            BranchEffect(
                primed=frozenset(primed_counts),
                unchanged=frozenset(unchanged_counts),
                path=p.path,
                assignments=p.assignments,
                unchanged_nodes=p.unchanged,
                anchor=anchor,
                fork=p.fork,
                primed_counts=dict(primed_counts),
                unchanged_counts=dict(unchanged_counts),
                delegated=p.delegated,
                unresolved=p.unresolved,
                scopes=tuple(
                    j for _, owner, j in sorted(p.scopes, key=lambda s: s[0]) if owner == defn.name
                ),
            )
        )
    return tuple(effects)

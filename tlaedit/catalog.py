"""Declaration catalog: a read-only index over a parsed module.

The catalog answers the questions both transforms ask before they edit
anything: which names are variables, which definitions are actions, where
the state tuple, the type invariant, the initial predicate and the
next-state relation live, which control locations exist and which
next-state disjuncts or fairness conjuncts reference a given action.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace

from .config import DEFAULT_CONFIG, EngineConfig
from .errors import NotFound
from .naming import family_members
from .syntax import (
    AngleAction,
    Binary,
    BoxAction,
    Case,
    ConstantBlock,
    Definition,
    Except,
    Expr,
    Fairness,
    FairnessClause,
    FnApply,
    FnConstructor,
    FnSet,
    IfThenElse,
    Invariant,
    Junction,
    Let,
    Module,
    Name,
    NamedDefinition,
    NextRelation,
    OpApp,
    Prime,
    Quantified,
    SetEnum,
    String,
    Tuple,
    Unary,
    VariableBlock,
    contains_prime,
    referenced_names,
    unparen,
    walk,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Control locations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LocationSet:
    """The enumerated set of control locations and the declaration holding it."""

    declaration: NamedDefinition
    node: SetEnum

    @property
    def values(self) -> tuple[str, ...]:
        return tuple(item.value for item in self.node.items if isinstance(item, String))


@dataclass(frozen=True)
class LocationUse:
    action: str
    value: String
    role: str  # "guard" or "assignment"


def is_location_ref(expr: Expr, var: str) -> bool:
    """``pc`` or ``pc[self]``."""
    e = unparen(expr)
    if isinstance(e, Name):
        return e.name == var
    if isinstance(e, FnApply):
        fn = unparen(e.fn)
        return isinstance(fn, Name) and fn.name == var
    return False


def location_values(expr: Expr) -> list[String]:
    """String literals a location expression can evaluate to."""
    e = unparen(expr)
    match e:
        case String():
            return [e]
        case Except(_, updates):
            return [s for u in updates for s in location_values(u.value)]
        case IfThenElse(_, then, else_):
            return location_values(then) + location_values(else_)
        case Case(arms, other):
            values = [s for arm in arms for s in location_values(arm.value)]
            if other is not None:
                values.extend(location_values(other))
            return values
        case FnConstructor(_, body):
            return location_values(body)
        case SetEnum(items):
            return [s for item in items for s in location_values(item)]
        case FnSet(_, codomain):
            return location_values(codomain)
        case _:
            return []


def location_literals(expr: Expr, var: str, *, primed: bool) -> list[String]:
    """Location literals compared with (or assigned to) ``var`` inside ``expr``."""
    found: list[String] = []
    for node in walk(expr):
        if not isinstance(node, Binary) or node.op not in ("=", "#", "/=", "\\in", "\\notin"):
            continue
        left = unparen(node.left)
        if isinstance(left, Prime):
            if primed and is_location_ref(left.expr, var):
                found.extend(location_values(node.right))
        elif not primed and is_location_ref(left, var):
            found.extend(location_values(node.right))
    return found


def top_conjuncts(body: Expr) -> list[Expr]:
    """Top-level conjuncts of an action body, looking through LET and ``\\E``."""
    e = unparen(body)
    while isinstance(e, (Let, Quantified)):
        e = unparen(e.body)
    if isinstance(e, Junction) and e.is_conjunction:
        return list(e.items)
    return [e]


def location_guards(body: Expr, var: str) -> list[String]:
    """Literals of the top-level ``var = "L"`` guards of an action."""
    guards: list[String] = []
    for item in top_conjuncts(body):
        e = unparen(item)
        if isinstance(e, Binary) and e.op == "=" and is_location_ref(e.left, var):
            guards.extend(location_values(e.right))
    return guards


# ---------------------------------------------------------------------------
# References to actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReferenceSite:
    """One disjunct (or conjunct) of ``declaration`` that names an action.

    ``junction`` is ``None`` when a copy of ``item`` goes right after it:
    the item is the whole body, or sits alone under a quantifier.
    """

    declaration: NamedDefinition
    junction: Junction | None
    index: int
    item: Expr
    reference: Name | OpApp


def _head(expr: Expr) -> Expr:
    e = unparen(expr)
    while isinstance(e, Quantified):
        e = unparen(e.body)
    return e


def reference_to(expr: Expr, name: str) -> Name | OpApp | None:
    """The node naming ``name`` when ``expr`` is (a quantified) reference to it."""
    e = _head(expr)
    if isinstance(e, (Name, OpApp)) and e.name == name:
        return e
    return None


# \E distributes over \/ and \A over /\
_DISTRIBUTING = {"\\/": "\\E", "/\\": "\\A"}


def _scope_body(expr: Expr, op: str) -> Expr:
    """``expr`` without the LET and quantifier prefixes ``op`` items may go under."""
    e = unparen(expr)
    while isinstance(e, Let) or (
        isinstance(e, Quantified) and e.quantifier == _DISTRIBUTING.get(op)
    ):
        e = unparen(e.body)
    return e


def junction_items(
    expr: Expr, op: str, junction: Junction | None = None, index: int = 0
) -> Iterator[tuple[Junction | None, int, Expr]]:
    """Flatten nested junctions of operator ``op`` into ``(junction, index, item)``.

    Junctions under ``LET`` or a distributing quantifier are flattened too,
    so ``\\E self \\in P : A(self) \\/ B(self)`` yields both disjuncts.  A
    wrapped item that is not a junction comes back unwrapped with no
    junction unless it sits in a bulleted list, where the bullet already
    closes the quantifier's scope.
    """
    e = unparen(expr)
    inner = _scope_body(e, op)
    if isinstance(inner, Junction) and inner.op == op:
        for i, item in enumerate(inner.items):
            yield from junction_items(item, op, inner, i)
    elif inner is not e and (junction is None or not junction.bulleted):
        yield None, 0, inner
    else:
        yield junction, index, expr


def _is_temporal(expr: Expr) -> bool:
    return any(
        isinstance(n, (BoxAction, AngleAction, Fairness))
        or (isinstance(n, Unary) and n.op in ("[]", "<>"))
        for n in walk(expr)
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Catalog:
    module: Module
    config: EngineConfig
    variables: tuple[str, ...]
    constants: tuple[str, ...]
    definitions: Mapping[str, NamedDefinition]
    actions: tuple[str, ...]
    action_like: frozenset[str]
    state_tuple: Definition | None
    type_invariant: Invariant | None
    init: NamedDefinition | None
    next_relation: NextRelation | None
    fairness: tuple[FairnessClause, ...]
    location_var: str | None
    location_enumeration: LocationSet | None
    helpers: frozenset[str] = frozenset()

    @classmethod
    def from_module(cls, module: Module, config: EngineConfig = DEFAULT_CONFIG) -> Catalog:
        variables: list[str] = []
        constants: list[str] = []
        for decl in module.declarations:
            if isinstance(decl, VariableBlock):
                variables.extend(decl.names)
            elif isinstance(decl, ConstantBlock):
                constants.extend(decl.names)

        definitions: dict[str, NamedDefinition] = {}
        for defn in module.definitions():
            if defn.name in definitions:
                logger.warning("duplicate definition of %s; using the first", defn.name)
                continue
            definitions[defn.name] = defn

        actions = tuple(
            d.name
            for d in definitions.values()
            if isinstance(d, Definition) and contains_prime(d.body) and not _is_temporal(d.body)
        )

        action_like = set(actions)
        changed = True
        while changed:
            changed = False
            for d in definitions.values():
                if d.name in action_like or not isinstance(d, (Definition, NextRelation)):
                    continue
                if referenced_names(d.body) & action_like:
                    action_like.add(d.name)
                    changed = True

        state_tuple = definitions.get(config.state_tuple_name)
        if not (isinstance(state_tuple, Definition) and isinstance(unparen(state_tuple.body), Tuple)):
            state_tuple = None

        type_invariant = next((d for d in definitions.values() if isinstance(d, Invariant)), None)
        next_relation = next((d for d in definitions.values() if isinstance(d, NextRelation)), None)
        fairness = tuple(d for d in definitions.values() if isinstance(d, FairnessClause))

        location_var = _infer_location_var(config, variables, definitions, actions)
        catalog = cls(
            module=module,
            config=config,
            variables=tuple(variables),
            constants=tuple(constants),
            definitions=definitions,
            actions=actions,
            action_like=frozenset(action_like),
            state_tuple=state_tuple,
            type_invariant=type_invariant,
            init=definitions.get(config.init_name),
            next_relation=next_relation,
            fairness=fairness,
            location_var=location_var,
            location_enumeration=None,
        )
        catalog = replace(catalog, location_enumeration=catalog._find_location_set())
        catalog = replace(catalog, helpers=catalog._find_helpers())
        logger.debug(
            "catalog %s: %d variables, %d actions, location var %s",
            module.name,
            len(variables),
            len(actions),
            location_var,
        )
        return catalog

    # -- lookups ------------------------------------------------------------

    def get(self, name: str) -> NamedDefinition:
        try:
            return self.definitions[name]
        except KeyError:
            raise NotFound(f"no definition named {name!r}") from None

    def action(self, name: str) -> Definition:
        defn = self.get(name)
        if name not in self.actions:
            raise NotFound(f"{name!r} is not an action")
        assert isinstance(defn, Definition)
        return defn

    def _effectful(self) -> list[NamedDefinition]:
        """Actions plus a next-state relation that carries effects of its own."""
        found: list[NamedDefinition] = [self.definitions[a] for a in self.actions]
        nxt = self.next_relation
        if nxt is not None and contains_prime(nxt.body):
            found.append(nxt)
        return found

    def checked_actions(self) -> tuple[NamedDefinition, ...]:
        """Definitions that must cover every variable on their own.

        Helpers are left out: they are checked inlined into their callers.
        """
        return tuple(d for d in self._effectful() if d.name not in self.helpers)

    def callees(self, defn: NamedDefinition) -> frozenset[str]:
        """Actions ``defn`` invokes, directly or through definitions without effects."""
        found: set[str] = set()
        seen = {defn.name}
        stack = [defn.body]
        while stack:
            for name in referenced_names(stack.pop()) & self.action_like:
                if name in seen:
                    continue
                seen.add(name)
                if name in self.actions:
                    found.add(name)
                else:
                    stack.append(self.definitions[name].body)
        return frozenset(found)

    def _find_helpers(self) -> frozenset[str]:
        called: set[str] = set()
        for defn in self._effectful():
            called |= self.callees(defn)
        helpers = frozenset(a for a in called if not self.dispatch_sites(a))
        if helpers:
            logger.debug("helper actions checked through their callers: %s", ", ".join(sorted(helpers)))
        return helpers

    def names_in_use(self) -> frozenset[str]:
        return frozenset(self.variables) | frozenset(self.constants) | frozenset(self.definitions)

    def family(self, name: str) -> tuple[str, ...]:
        """Actions sharing ``name``'s prefix, ordered by numeric suffix."""
        if name not in self.actions:
            raise NotFound(f"{name!r} is not an action")
        return tuple(family_members(name, self.actions))

    def is_tuple(self, name: str) -> bool:
        defn = self.definitions.get(name)
        return isinstance(defn, Definition) and not defn.params and isinstance(unparen(defn.body), Tuple)

    def tuple_expansion(self, name: str) -> tuple[str, ...]:
        """The flat variable names a tuple definition stands for."""
        if not self.is_tuple(name):
            raise NotFound(f"{name!r} is not a tuple of variables")
        names: list[str] = []
        self._expand(name, names, set())
        return tuple(names)

    def _expand(self, name: str, out: list[str], seen: set[str]) -> None:
        if name in seen:
            return
        seen.add(name)
        body = unparen(self.definitions[name].body)
        assert isinstance(body, Tuple)
        for item in body.items:
            e = unparen(item)
            if not isinstance(e, Name):
                continue
            if self.is_tuple(e.name):
                self._expand(e.name, out, seen)
            else:
                out.append(e.name)

    def tuple_closure(self, name: str) -> frozenset[str]:
        """``name`` plus every tuple definition reachable from it."""
        seen: set[str] = set()
        stack = [name]
        while stack:
            n = stack.pop()
            if n in seen or not self.is_tuple(n):
                continue
            seen.add(n)
            body = unparen(self.definitions[n].body)
            assert isinstance(body, Tuple)
            stack.extend(i.name for i in map(unparen, body.items) if isinstance(i, Name))
        return frozenset(seen)

    # -- locations ----------------------------------------------------------

    def location_uses(self) -> tuple[LocationUse, ...]:
        var = self.location_var
        if var is None:
            return ()
        uses: list[LocationUse] = []
        for defn in self._effectful():
            for s in location_literals(defn.body, var, primed=False):
                uses.append(LocationUse(defn.name, s, "guard"))
            for s in location_literals(defn.body, var, primed=True):
                uses.append(LocationUse(defn.name, s, "assignment"))
        return tuple(uses)

    def _find_location_set(self) -> LocationSet | None:
        var = self.location_var
        if var is None:
            return None
        inv = self.type_invariant
        if inv is not None:
            for node in walk(inv.body):
                if not (isinstance(node, Binary) and node.op == "\\in"):
                    continue
                if not is_location_ref(node.left, var):
                    continue
                target = unparen(node.right)
                if isinstance(target, FnSet):
                    target = unparen(target.codomain)
                if _is_string_set(target):
                    assert isinstance(target, SetEnum)
                    return LocationSet(inv, target)
                if isinstance(target, Name):
                    found = self._string_set_definition(target.name)
                    if found is not None:
                        return found
        used = {u.value.value for u in self.location_uses()}
        for defn in self.definitions.values():
            if not isinstance(defn, Definition) or defn.name in self.actions:
                continue
            body = unparen(defn.body)
            if _is_string_set(body) and used & {s.value for s in location_values(body)}:
                assert isinstance(body, SetEnum)
                return LocationSet(defn, body)
        return None

    def _string_set_definition(self, name: str) -> LocationSet | None:
        defn = self.definitions.get(name)
        if defn is None:
            return None
        body = unparen(defn.body)
        if _is_string_set(body):
            assert isinstance(body, SetEnum)
            return LocationSet(defn, body)
        return None

    # -- dispatch and fairness ----------------------------------------------

    def dispatch_sites(self, action: str) -> tuple[ReferenceSite, ...]:
        """Next-state disjuncts that name ``action``, through process definitions."""
        if self.next_relation is None:
            return ()
        sites: list[ReferenceSite] = []
        self._collect_sites(self.next_relation, action, sites, {self.next_relation.name})
        return tuple(sites)

    def _collect_sites(
        self,
        decl: NamedDefinition,
        action: str,
        sites: list[ReferenceSite],
        seen: set[str],
    ) -> None:
        for junction, index, item in junction_items(decl.body, "\\/"):
            ref = reference_to(item, action)
            if ref is not None:
                sites.append(ReferenceSite(decl, junction, index, item, ref))
                continue
            head = _head(item)
            if not isinstance(head, (Name, OpApp)):
                continue
            target = self.definitions.get(head.name)
            if (
                target is not None
                and head.name not in seen
                and head.name in self.action_like
                and head.name not in self.actions
            ):
                seen.add(head.name)
                self._collect_sites(target, action, sites, seen)

    def is_implicitly_dispatched(self, action: str) -> bool:
        """True when a next-state relation exists but never names ``action`` itself."""
        return self.next_relation is not None and not self.dispatch_sites(action)

    def fairness_sites(self, action: str) -> tuple[ReferenceSite, ...]:
        """Fairness conjuncts whose condition is about ``action`` specifically."""
        sites: list[ReferenceSite] = []
        for clause in self.fairness:
            for junction, index, item in junction_items(clause.body, "/\\"):
                for node in walk(item):
                    if not isinstance(node, Fairness):
                        continue
                    ref = reference_to(node.action, action)
                    if ref is not None:
                        sites.append(ReferenceSite(clause, junction, index, item, ref))
                        break
        return tuple(sites)


def _is_string_set(expr: Expr) -> bool:
    return (
        isinstance(expr, SetEnum)
        and len(expr.items) > 0
        and all(isinstance(unparen(i), String) for i in expr.items)
    )


def _infer_location_var(
    config: EngineConfig,
    variables: list[str],
    definitions: Mapping[str, NamedDefinition],
    actions: tuple[str, ...],
) -> str | None:
    if config.location_var in variables:
        return config.location_var
    votes: Counter[str] = Counter()
    for name in actions:
        body = definitions[name].body
        for v in variables:
            if location_guards(body, v):
                votes[v] += 1
    if not votes:
        return None
    var, _ = votes.most_common(1)[0]
    return var

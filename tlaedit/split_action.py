"""Split one atomic action into two actions joined by a new control location.

The original action keeps its guard and now moves to the new location; the
new action starts there and finishes the original's work.  Effects that are
not asked to stay in the first half move to the second.  Names come from
the action's naming scheme; when the derived name is taken, the rest of the
family is shifted up by one index first, with the full rename map computed
before anything is renamed.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .catalog import Catalog, location_guards, location_literals
from .config import DEFAULT_CONFIG, EngineConfig
from .effects import Assignment, BranchEffect, UnchangedNode, branch_effects
from .errors import (
    AmbiguousName,
    CollisionUnresolvable,
    EditError,
    NotFound,
    NotSplittable,
    TlaSyntaxError,
)
from .naming import NamingScheme, shift_map
from .render import (
    Splice,
    append_collection_item,
    apply_splices,
    extend_unchanged,
    extract,
    insert_collection_item,
    insert_junction_item,
    newline,
    remove_junction_items,
    shift_continuation_lines,
    unchanged_text,
)
from .result import Err, Ok, Result
from .rewrite import Rewriter, TransformOutcome
from .syntax import (
    Definition,
    Junction,
    Module,
    Name,
    NamedDefinition,
    OpApp,
    String,
    Tuple,
    Unchanged,
    unparen,
    walk,
)

logger = logging.getLogger(__name__)

_IDENT_RE = re.compile(r"^[A-Za-z0-9_]*[A-Za-z][A-Za-z0-9_]*$")
_SEPARATOR_RE = re.compile(r"[ \t]*\r?\n(?:[ \t]*\r?\n)*")


@dataclass(frozen=True)
class SplitPlan:
    """Every name the split introduces or changes, decided up front."""

    new_action: str
    new_location: str
    action_renames: Mapping[str, str]
    location_renames: Mapping[str, str]

    @property
    def renames(self) -> dict[str, str]:
        combined = dict(self.action_renames)
        combined.update((f'"{k}"', f'"{v}"') for k, v in self.location_renames.items())
        return combined


def split_action(
    module: Module,
    action_name: str,
    first_half: Iterable[str] = frozenset(),
    new_name: str | None = None,
    new_location: str | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Result[TransformOutcome, EditError]:
    """Split ``action_name`` at a new control location.

    ``first_half`` names the variables whose assignments stay in the
    original action; every other effect moves to the new action.
    """
    try:
        return Ok(
            _split_action(
                module, action_name, frozenset(first_half), new_name, new_location, config
            )
        )
    except EditError as e:
        logger.warning("split_action %s on %s rejected: %s", action_name, module.name, e)
        return Err(e)


def _split_action(
    module: Module,
    action_name: str,
    first_half: frozenset[str],
    new_name: str | None,
    new_location: str | None,
    config: EngineConfig,
) -> TransformOutcome:
    original = module
    catalog = Catalog.from_module(module, config)
    action = catalog.action(action_name)
    if action_name in catalog.helpers:
        callers = ", ".join(_callers(catalog, action_name)) or "other actions"
        raise NotSplittable(f"{action_name} only runs as part of {callers}", action_name)
    var = catalog.location_var
    if var is None:
        raise NotSplittable(f"{module.name} has no control-location variable", action_name)
    guards = location_guards(action.body, var)
    if not guards:
        raise NotSplittable(f"{action_name} has no top-level guard on {var}", action_name)
    if not location_literals(action.body, var, primed=True):
        raise NotSplittable(f"{action_name} never assigns {var}", action_name)
    unknown = sorted(v for v in first_half if v not in catalog.variables or v == var)
    if unknown:
        raise NotFound(
            f"first half names {', '.join(unknown)}, which are not splittable variables",
            action_name,
        )

    plan = plan_names(catalog, action, guards[0].value, new_name, new_location)
    logger.debug("split %s: plan %s", action_name, plan)
    touched: list[str] = []
    if plan.action_renames or plan.location_renames:
        module, touched = apply_renames(module, catalog, plan)
        catalog = Catalog.from_module(module, config)
        action = catalog.action(action_name)

    rw = Rewriter(module, catalog)
    guard_value = guards[0].value
    _rewrite_first_half(rw, catalog, action, var, first_half, plan)
    rw.insert_after(action, _second_half(catalog, action, var, first_half, plan))
    _extend_enumeration(rw, catalog, guard_value, plan.new_location)
    _relink_next(rw, catalog, action, plan.new_action)
    _copy_fairness(rw, catalog, action, plan.new_action)

    for label in rw.touched():
        if label not in touched:
            touched.append(label)
    return rw.finish(original, renames=plan.renames, touched=tuple(touched))


def _callers(catalog: Catalog, helper: str) -> list[str]:
    return [d.name for d in catalog.checked_actions() if helper in catalog.callees(d)]


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


def plan_names(
    catalog: Catalog,
    action: Definition,
    guard_location: str,
    new_name: str | None,
    new_location: str | None,
) -> SplitPlan:
    """Choose the new action and location names and any renumbering."""
    in_use = catalog.names_in_use()
    locations = set(catalog.location_enumeration.values if catalog.location_enumeration else ())
    locations |= {u.value.value for u in catalog.location_uses()}

    action_renames: dict[str, str] = {}
    if new_name is None:
        scheme = NamingScheme.of(action.name)
        if not scheme.is_numeric:
            raise AmbiguousName(
                f"{action.name} has no numeric suffix; a name for the new action is required",
                action.name,
            )
        new_name = scheme.next()
        if new_name in in_use:
            action_renames = shift_map(NamingScheme.of(new_name), catalog.actions)
    else:
        if not _IDENT_RE.match(new_name):
            raise TlaSyntaxError(f"{new_name!r} is not an identifier", 0, 1, 0, "an identifier")
        if new_name in in_use:
            raise CollisionUnresolvable(f"{new_name!r} is already defined", action.name)
    _check_renames(action_renames, in_use, new_name)

    location_renames: dict[str, str] = {}
    if new_location is None:
        loc_scheme = NamingScheme.of(guard_location)
        new_location = loc_scheme.next() if loc_scheme.is_numeric else new_name
        if new_location in locations:
            target = NamingScheme.of(new_location)
            if not target.is_numeric:
                raise CollisionUnresolvable(
                    f"location \"{new_location}\" already exists", action.name
                )
            location_renames = shift_map(target, locations)
    elif new_location in locations:
        raise CollisionUnresolvable(f"location \"{new_location}\" already exists", action.name)
    _check_renames(location_renames, frozenset(locations), new_location)

    return SplitPlan(new_name, new_location, action_renames, location_renames)


def _check_renames(renames: Mapping[str, str], in_use: frozenset[str], fresh: str) -> None:
    targets = Counter(renames.values())
    for target, count in targets.items():
        if count > 1:
            sources = sorted(s for s, t in renames.items() if t == target)
            raise CollisionUnresolvable(f"{' and '.join(sources)} would both become {target}")
    for source, target in renames.items():
        if target in in_use and target not in renames:
            raise CollisionUnresolvable(f"renaming {source} to {target} collides with an existing name")
    if fresh in in_use and fresh not in renames:
        raise CollisionUnresolvable(f"{fresh} is taken and not part of the shifted family")


def _head_splices(defn: NamedDefinition, new_name: str) -> tuple[list[Splice], int]:
    """Rename the head; returns the splice and the indentation delta for the body."""
    splice = Splice(defn.name_span.start, defn.name_span.end, new_name)
    same_line = "\n" not in defn.text[defn.name_span.end : defn.body.span.start]
    delta = len(new_name) - len(defn.name) if same_line else 0
    return [splice], delta


def _with_body_shift(defn: NamedDefinition, splices: list[Splice], delta: int) -> str:
    """The declaration text with ``splices`` applied and its body re-indented."""
    text = defn.text
    start = defn.name_span.start
    end = defn.core.end
    middle = extract(text, start, end, splices)
    middle = shift_continuation_lines(middle, delta)
    before = apply_splices(text[:start], [s for s in splices if s.end <= start])
    return before + middle + text[end:]


def apply_renames(
    module: Module, catalog: Catalog, plan: SplitPlan
) -> tuple[Module, list[str]]:
    """Apply the whole rename map in one pass over every definition."""
    actions = plan.action_renames
    locations = plan.location_renames
    var = catalog.location_var
    enumeration = catalog.location_enumeration
    rw = Rewriter(module, catalog)
    touched: list[str] = []
    for defn in module.definitions():
        splices: dict[int, Splice] = {}
        delta = 0
        if defn.name in actions:
            head, delta = _head_splices(defn, actions[defn.name])
            splices[head[0].start] = head[0]
        for node in walk(defn.body):
            if isinstance(node, (Name, OpApp)) and node.name in actions:
                start = node.span.start
                splices[start] = Splice(start, start + len(node.name), actions[node.name])
        if locations and var is not None:
            strings = location_literals(defn.body, var, primed=False)
            strings += location_literals(defn.body, var, primed=True)
            if enumeration is not None and enumeration.declaration is defn:
                strings += [i for i in enumeration.node.items if isinstance(i, String)]
            for s in strings:
                if s.value in locations:
                    splices[s.span.start] = Splice(s.span.start, s.span.end, f'"{locations[s.value]}"')
        if not splices:
            continue
        new_text = _with_body_shift(defn, list(splices.values()), delta)
        rw.edit(defn, Splice(0, len(defn.text), new_text))
        touched.append(actions.get(defn.name, defn.name))
    logger.debug("renamed %s across %s", plan.renames, ", ".join(touched))
    return rw.build(), touched


# ---------------------------------------------------------------------------
# Moving effects into UNCHANGED
# ---------------------------------------------------------------------------


def _declaration_order(catalog: Catalog, names: Iterable[str]) -> list[str]:
    wanted = set(names)
    return [v for v in catalog.variables if v in wanted]


def _plain_names(node: Unchanged, catalog: Catalog) -> list[str] | None:
    """The node's variables when it lists plain variable names only."""
    inner = unparen(node.expr)
    items = inner.items if isinstance(inner, Tuple) else (inner,)
    names: list[str] = []
    for item in items:
        e = unparen(item)
        if not isinstance(e, Name) or e.name not in catalog.variables:
            return None
        names.append(e.name)
    return names


def move_to_unchanged(
    text: str,
    catalog: Catalog,
    owner: str,
    branches: tuple[BranchEffect, ...],
    moved: frozenset[str],
) -> list[Splice]:
    """Turn the owner's assignments to ``moved`` variables into UNCHANGED entries.

    Where every branch that assigns a variable has exactly one own
    ``UNCHANGED`` node, and no other branch runs through those nodes, the
    assignment is deleted and the variable merged into the node.  Otherwise
    the assignment is replaced in place by ``UNCHANGED v``.
    """
    by_var: dict[str, dict[int, Assignment]] = {}
    for b in branches:
        for a in b.assignments:
            if a.owner == owner and a.variable in moved:
                by_var.setdefault(a.variable, {})[id(a.node)] = a

    node_members: dict[int, set[int]] = {}
    for i, b in enumerate(branches):
        for n in b.unchanged_nodes:
            node_members.setdefault(id(n.node), set()).add(i)

    targets_of: dict[str, dict[int, UnchangedNode]] = {}
    for variable in _declaration_order(catalog, by_var):
        assignments = by_var[variable]
        ids = set(assignments)
        reach = {
            i for i, b in enumerate(branches) if any(id(a.node) in ids for a in b.assignments)
        }
        targets: dict[int, UnchangedNode] = {}
        for i in reach:
            node = branches[i].innermost_unchanged(owner)
            if node is None:
                targets = {}
                break
            targets[id(node.node)] = node
        if (
            targets
            and all(node_members[t] <= reach for t in targets)
            and all(a.junction is not None for a in assignments.values())
        ):
            targets_of[variable] = targets

    # a junction must keep at least one item; its assignments stay in place otherwise
    while True:
        removals: dict[int, tuple[Junction, set[int]]] = {}
        for variable in targets_of:
            for a in by_var[variable].values():
                assert a.junction is not None
                removals.setdefault(id(a.junction), (a.junction, set()))[1].add(a.index)
        emptied = {key for key, (j, indices) in removals.items() if len(indices) >= len(j.items)}
        if not emptied:
            break
        for variable in list(targets_of):
            if any(id(a.junction) in emptied for a in by_var[variable].values()):
                del targets_of[variable]

    merges: dict[int, tuple[UnchangedNode, list[str]]] = {}
    in_place: list[Assignment] = []
    for variable in _declaration_order(catalog, by_var):
        if variable in targets_of:
            for key, node in targets_of[variable].items():
                merges.setdefault(key, (node, []))[1].append(variable)
        else:
            in_place.extend(by_var[variable].values())

    splices: list[Splice] = []
    for junction, indices in removals.values():
        splices.extend(remove_junction_items(text, junction, indices))
    for node, added in merges.values():
        existing = _plain_names(node.node, catalog)
        if existing is not None:
            ordered = _declaration_order(catalog, [*existing, *added])
            splices.append(Splice(node.node.span.start, node.node.span.end, unchanged_text(text, node.node, ordered)))
        else:
            splices.append(extend_unchanged(text, node.node, added))
    for a in in_place:
        splices.append(Splice(a.item.span.start, a.item.span.end, f"UNCHANGED {a.variable}"))
    return splices


# ---------------------------------------------------------------------------
# The two halves
# ---------------------------------------------------------------------------


def _rewrite_first_half(
    rw: Rewriter,
    catalog: Catalog,
    action: Definition,
    var: str,
    first_half: frozenset[str],
    plan: SplitPlan,
) -> None:
    text = action.text
    splices = [
        Splice(s.span.start, s.span.end, f'"{plan.new_location}"')
        for s in location_literals(action.body, var, primed=True)
    ]
    moved = frozenset(catalog.variables) - first_half - {var}
    branches = branch_effects(action, catalog)
    splices.extend(move_to_unchanged(text, catalog, action.name, branches, moved))
    rw.edit(action, splices)


def _second_half(
    catalog: Catalog,
    action: Definition,
    var: str,
    first_half: frozenset[str],
    plan: SplitPlan,
) -> str:
    """Text of the new action, followed by the blank lines that set it apart."""
    text = action.text
    splices, delta = _head_splices(action, plan.new_action)
    splices.extend(
        Splice(s.span.start, s.span.end, f'"{plan.new_location}"')
        for s in location_guards(action.body, var)
    )
    branches = branch_effects(action, catalog)
    splices.extend(move_to_unchanged(text, catalog, action.name, branches, first_half))
    core = extract(text, action.name_span.start, action.core.end, splices)
    core = shift_continuation_lines(core, delta)
    m = _SEPARATOR_RE.match(text, action.core.end)
    separator = m.group() if m is not None else newline(text)
    if not separator.endswith("\n"):
        separator += newline(text)
    return core + separator


# ---------------------------------------------------------------------------
# Enumeration, next-state relation and fairness
# ---------------------------------------------------------------------------


def _extend_enumeration(
    rw: Rewriter, catalog: Catalog, after_value: str, new_location: str
) -> None:
    enumeration = catalog.location_enumeration
    if enumeration is None:
        logger.debug("no location enumeration to extend")
        return
    node = enumeration.node
    text = enumeration.declaration.text
    literal = f'"{new_location}"'
    for i, item in enumerate(node.items):
        if isinstance(item, String) and item.value == after_value:
            rw.edit(enumeration.declaration, insert_collection_item(text, node, i, literal))
            return
    rw.edit(enumeration.declaration, append_collection_item(text, node, literal))


def _renamed_copy(text: str, start: int, end: int, ref: Name | OpApp, old: str, new: str) -> str:
    splice = Splice(ref.span.start, ref.span.start + len(old), new)
    return extract(text, start, end, [splice])


def _relink_next(rw: Rewriter, catalog: Catalog, action: Definition, new_action: str) -> None:
    sites = catalog.dispatch_sites(action.name)
    if not sites:
        if catalog.is_implicitly_dispatched(action.name):
            logger.debug("%s is covered implicitly by the next-state relation", action.name)
        return
    for site in sites:
        decl = site.declaration
        item = site.item
        copy = _renamed_copy(decl.text, item.span.start, item.span.end, site.reference, action.name, new_action)
        if site.junction is not None:
            rw.edit(decl, insert_junction_item(decl.text, site.junction, site.index, copy))
        else:
            rw.edit(decl, Splice(item.span.end, item.span.end, f" \\/ {copy}"))


def _copy_fairness(rw: Rewriter, catalog: Catalog, action: Definition, new_action: str) -> None:
    for site in catalog.fairness_sites(action.name):
        decl = site.declaration
        item = site.item
        copy = _renamed_copy(decl.text, item.span.start, item.span.end, site.reference, action.name, new_action)
        if site.junction is not None:
            rw.edit(decl, insert_junction_item(decl.text, site.junction, site.index, copy))
        else:
            rw.edit(decl, Splice(item.span.end, item.span.end, f" /\\ {copy}"))

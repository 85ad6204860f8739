"""Add a state variable to every clause that has to mention it.

The new variable is declared, initialised in the initial predicate, added
to the state tuple and the type invariant, and left unchanged by every
action branch that does not already cover it.  The edit is all-or-nothing:
any failure leaves the input module as it was and comes back as ``Err``.
"""

from __future__ import annotations

import logging
import re

from .catalog import Catalog
from .config import DEFAULT_CONFIG, EngineConfig
from .effects import BranchEffect, branch_effects
from .errors import DuplicateName, EditError, MissingType, NotFound, TlaSyntaxError
from .lexer import KEYWORDS
from .parser import parse_expression
from .render import (
    Splice,
    append_collection_item,
    append_junction_item,
    conjoin,
    extend_unchanged,
    needs_parens,
    newline,
)
from .result import Err, Ok, Result
from .rewrite import Rewriter, TransformOutcome
from .syntax import (
    ConstantBlock,
    Expr,
    Extends,
    Junction,
    Module,
    ModuleHeader,
    Name,
    NamedDefinition,
    OpApp,
    Tuple,
    VariableBlock,
    bound_names,
    unparen,
    walk,
)

logger = logging.getLogger(__name__)

_IDENT_RE = re.compile(r"^[A-Za-z0-9_]*[A-Za-z][A-Za-z0-9_]*$")


def add_variable(
    module: Module,
    name: str,
    init_expr: str,
    type_expr: str | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Result[TransformOutcome, EditError]:
    """Declare ``name`` with initial value ``init_expr`` across the module."""
    try:
        return Ok(_add_variable(module, name, init_expr, type_expr, config))
    except EditError as e:
        logger.warning("add_variable %s on %s rejected: %s", name, module.name, e)
        return Err(e)


def _add_variable(
    module: Module,
    name: str,
    init_expr: str,
    type_expr: str | None,
    config: EngineConfig,
) -> TransformOutcome:
    catalog = Catalog.from_module(module, config)
    _check_fresh(name, catalog)
    init_text = _checked_expression(init_expr, catalog, "initial value").strip()
    type_text = None
    if type_expr is not None:
        type_text = _checked_expression(type_expr, catalog, "type").strip()
    if catalog.type_invariant is not None and type_text is None:
        raise MissingType(
            f"{catalog.type_invariant.name} constrains every variable; a type for {name!r} is required",
            catalog.type_invariant.name,
        )
    if catalog.init is None:
        raise NotFound(f"no initial predicate named {config.init_name!r}")

    rw = Rewriter(module, catalog)
    _declare(rw, module, name)
    _add_conjunct(rw, catalog.init, f"{name} = {init_text}")
    if catalog.state_tuple is not None:
        node = unparen(catalog.state_tuple.body)
        assert isinstance(node, Tuple)
        rw.edit(catalog.state_tuple, append_collection_item(catalog.state_tuple.text, node, name))
    if catalog.type_invariant is not None:
        assert type_text is not None
        _add_conjunct(rw, catalog.type_invariant, f"{name} \\in {type_text}")
    elif type_text is not None:
        logger.debug("no type invariant; ignoring type of %s", name)
    for defn in catalog.checked_actions():
        _leave_unchanged(rw, catalog, defn, name)
    return rw.finish(module)


def _check_fresh(name: str, catalog: Catalog) -> None:
    if not _IDENT_RE.match(name) or name in KEYWORDS:
        raise TlaSyntaxError(
            f"{name!r} is not an identifier", 0, 1, 0, expected="an identifier"
        )
    if name in catalog.variables:
        raise DuplicateName(f"variable {name!r} is already declared")
    if name in catalog.constants:
        raise DuplicateName(f"{name!r} is already declared as a constant")
    if name in catalog.definitions:
        raise DuplicateName(f"{name!r} is already defined")
    if name in catalog.config.standard_operators:
        raise DuplicateName(f"{name!r} is a standard-module operator")


def _checked_expression(text: str, catalog: Catalog, what: str) -> str:
    """Parse ``text`` and reject identifiers that are not declared yet."""
    expr = parse_expression(text)
    known = (
        catalog.names_in_use()
        | catalog.config.standard_operators
        | bound_names(expr)
        | {"@"}
    )
    for node in walk(expr):
        if isinstance(node, (Name, OpApp)) and node.name not in known:
            offset = node.span.start
            line = text.count("\n", 0, offset) + 1
            column = offset - (text.rfind("\n", 0, offset) + 1)
            raise TlaSyntaxError(
                f"undeclared identifier {node.name!r} in {what}",
                offset,
                line,
                column,
                expected=f"a declared name instead of {node.name!r}",
            )
    return text


def _declare(rw: Rewriter, module: Module, name: str) -> None:
    blocks = [d for d in module.declarations if isinstance(d, VariableBlock)]
    if blocks:
        block = blocks[-1]
        last = block.name_spans[-1]
        spans = block.name_spans
        sep = block.text[spans[-2].end : spans[-1].start] if len(spans) > 1 else ", "
        rw.edit(block, Splice(last.end, last.end, sep + name))
        return
    anchor = module.declarations[0]
    for decl in module.declarations:
        if isinstance(decl, (ModuleHeader, Extends, ConstantBlock)):
            anchor = decl
    nl = newline(anchor.text)
    rw.insert_after(anchor, f"VARIABLE {name}{nl}{nl}")


def _add_conjunct(rw: Rewriter, decl: NamedDefinition, item: str) -> None:
    body = unparen(decl.body)
    if isinstance(body, Junction) and body.is_conjunction:
        rw.edit(decl, append_junction_item(decl.text, body, item))
    else:
        rw.edit(decl, conjoin(decl.text, body.span, item, wrap=needs_parens(body)))


def _covered(branch: BranchEffect, catalog: Catalog) -> bool:
    """Will the branch cover the new variable without an edit of its own?"""
    # a checked callee gets the variable itself; a helper does not
    if branch.delegated & (set(catalog.actions) - catalog.helpers):
        return True
    if catalog.state_tuple is None:
        return False
    tuple_name = catalog.state_tuple.name
    return any(
        tuple_name in catalog.tuple_closure(ref)
        for node in branch.unchanged_nodes
        for ref in node.refs
    )


def _leave_unchanged(
    rw: Rewriter, catalog: Catalog, defn: NamedDefinition, name: str
) -> None:
    """Make every branch of ``defn`` that needs it leave ``name`` unchanged.

    Each needing branch gets exactly one target: its innermost own
    ``UNCHANGED`` node, else its innermost own conjunction, else its fork
    arm, else the whole body.  A target is only used when every branch
    running through it needs the variable and is not covered yet.
    """
    branches = branch_effects(defn, catalog)
    needing = {i for i, b in enumerate(branches) if not _covered(b, catalog)}
    if not needing:
        return

    members: dict[int, set[int]] = {}
    for i, b in enumerate(branches):
        for node in b.unchanged_nodes:
            members.setdefault(id(node.node), set()).add(i)
        for j in b.scopes:
            members.setdefault(id(j), set()).add(i)
        if b.fork is not None:
            members.setdefault(id(b.fork.item), set()).add(i)

    covered: set[int] = set()
    splices: list[Splice] = []
    text = defn.text
    item = f"UNCHANGED {name}"
    for i in sorted(needing):
        if i in covered:
            continue
        b = branches[i]
        candidates: list[tuple[Expr, list[Splice]]] = []
        node = b.innermost_unchanged(defn.name)
        if node is not None:
            candidates.append((node.node, [extend_unchanged(text, node.node, [name])]))
        for j in reversed(b.scopes):
            candidates.append((j, [append_junction_item(text, j, item)]))
        if b.fork is not None and b.fork.owner == defn.name:
            fork_item = b.fork.item
            wrap = not b.fork.safe or needs_parens(unparen(fork_item))
            candidates.append((fork_item, conjoin(text, fork_item.span, item, wrap=wrap)))
        for target, edit in candidates:
            reach = members.get(id(target), {i})
            if reach <= needing and not (reach & covered):
                logger.debug("%s: %s lands on %s", defn.name, name, type(target).__name__)
                splices.extend(edit)
                covered |= reach
                break
        else:
            if len(branches) == 1:
                body = unparen(defn.body)
                splices.extend(conjoin(text, body.span, item, wrap=needs_parens(body)))
                covered.add(i)
    if splices:
        rw.edit(defn, splices)

"""Serializer and style-preserving text edits.

``render`` is concatenation: every declaration owns its exact text.  The
helpers below produce :class:`Splice` edits against one declaration's
text; layout for inserted text (bullet column, operator spacing, tuple
separators) is sampled from the nearest sibling so an insertion reads
like a hand edit.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .syntax import (
    Binary,
    Case,
    Choose,
    Expr,
    IfThenElse,
    Junction,
    Let,
    Module,
    Quantified,
    SetEnum,
    Span,
    Tuple,
    Unchanged,
)


def render(module: Module) -> str:
    return "".join(decl.text for decl in module.declarations)


@dataclass(frozen=True)
class Splice:
    """Replace ``text[start:end]`` with ``replacement``."""

    start: int
    end: int
    replacement: str


def apply_splices(text: str, splices: Iterable[Splice]) -> str:
    """Apply non-overlapping splices; insertions at the same offset keep their order."""
    ordered = sorted(
        enumerate(splices), key=lambda pair: (pair[1].start, pair[1].end, pair[0])
    )
    out: list[str] = []
    pos = 0
    for _, s in ordered:
        if s.start < pos:
            raise ValueError(f"overlapping edits at offset {s.start}")
        out.append(text[pos : s.start])
        out.append(s.replacement)
        pos = s.end
    out.append(text[pos:])
    return "".join(out)


# ---------------------------------------------------------------------------
# Layout sampling
# ---------------------------------------------------------------------------


def line_start(text: str, offset: int) -> int:
    return text.rfind("\n", 0, offset) + 1


def line_end(text: str, offset: int) -> int:
    """Offset of the line break after ``offset``, before any ``\\r``."""
    nl = text.find("\n", offset)
    if nl == -1:
        return len(text)
    return nl - 1 if nl > offset and text[nl - 1] == "\r" else nl


def newline(text: str) -> str:
    """The line break ``text`` uses."""
    return "\r\n" if "\r\n" in text else "\n"


def _break_before(text: str, offset: int) -> int:
    """Start of the line break that ends the line before ``offset``."""
    nl = text.rfind("\n", 0, offset)
    return nl - 1 if nl > 0 and text[nl - 1] == "\r" else nl


def indent_before(text: str, offset: int) -> str:
    """The text between the start of the line and ``offset``, as indentation."""
    prefix = text[line_start(text, offset) : offset]
    if prefix.strip() == "":
        return prefix
    return " " * len(prefix)


def _insertion_point(text: str, offset: int) -> int:
    """End of the line holding ``offset`` when only trivia follows it there."""
    end = line_end(text, offset)
    rest = text[offset:end].strip()
    if rest == "" or rest.startswith("\\*"):
        return end
    return offset


def _line_separator(text: str, offset: int) -> str:
    rest = text[offset : line_end(text, offset)].strip()
    return "\n" if rest == "" or rest.startswith("\\*") else ""


def shift_continuation_lines(text: str, delta: int) -> str:
    """Re-indent every line after the first by ``delta`` columns."""
    if delta == 0 or "\n" not in text:
        return text
    first, _, rest = text.partition("\n")
    lines = rest.split("\n")
    shifted: list[str] = []
    for line in lines:
        if line.strip() == "":
            shifted.append(line)
        elif delta > 0:
            shifted.append(" " * delta + line)
        else:
            strip = min(-delta, len(line) - len(line.lstrip(" ")))
            shifted.append(line[strip:])
    return first + "\n" + "\n".join(shifted)


# ---------------------------------------------------------------------------
# Junctions
# ---------------------------------------------------------------------------


def _bullet_gap(text: str, junction: Junction, index: int) -> str:
    bullet = junction.op_spans[index]
    gap = text[bullet.end : junction.items[index].span.start]
    return gap if gap.strip() == "" and "\n" not in gap else " "


def append_junction_item(text: str, junction: Junction, item: str) -> Splice:
    """Add ``item`` as the last item of ``junction`` in its own layout."""
    return insert_junction_item(text, junction, len(junction.items) - 1, item)


def insert_junction_item(
    text: str, junction: Junction, after: int, item: str
) -> Splice:
    """Insert ``item`` right after ``junction.items[after]``."""
    prev = junction.items[after]
    if junction.bulleted:
        bullet = junction.op_spans[after]
        indent = indent_before(text, bullet.start)
        op = bullet.slice(text)
        gap = _bullet_gap(text, junction, after)
        at = _insertion_point(text, prev.span.end)
        if at == prev.span.end and _line_separator(text, at) == "":
            # something else follows on the same line: stay inline
            return Splice(at, at, f" {op}{gap}{item}")
        return Splice(at, at, f"{newline(text)}{indent}{op}{gap}{item}")
    if len(junction.items) > 1:
        k = after if after < len(junction.items) - 1 else after - 1
        sep = text[junction.items[k].span.end : junction.items[k + 1].span.start]
    else:
        sep = f" {junction.op} "
    return Splice(prev.span.end, prev.span.end, f"{sep}{item}")


def remove_junction_items(
    text: str, junction: Junction, indices: Iterable[int]
) -> list[Splice]:
    """Delete the given items of ``junction`` together with their bullets or operators.

    A leading bulleted run is cut from its first bullet up to the next kept
    bullet, so the kept item slides into the first slot at the same column.
    """
    items = junction.items
    removed = sorted(set(indices))
    if len(removed) >= len(items):
        raise ValueError("cannot remove every item of a junction")
    last = len(items) - 1
    runs: list[tuple[int, int]] = []
    for i in removed:
        if runs and runs[-1][1] == i - 1:
            runs[-1] = (runs[-1][0], i)
        else:
            runs.append((i, i))
    splices: list[Splice] = []
    for first, end in runs:
        if junction.bulleted:
            bullets = junction.op_spans
            if first == 0:
                splices.append(Splice(bullets[0].start, bullets[end + 1].start, ""))
            elif end < last:
                splices.append(
                    Splice(line_start(text, bullets[first].start), line_start(text, bullets[end + 1].start), "")
                )
            else:
                splices.append(
                    Splice(_break_before(text, bullets[first].start), items[last].span.end, "")
                )
        elif first == 0:
            splices.append(Splice(items[0].span.start, items[end + 1].span.start, ""))
        else:
            splices.append(Splice(items[first - 1].span.end, items[end].span.end, ""))
    return splices


def conjoin(text: str, expr_span: Span, item: str, *, wrap: bool) -> list[Splice]:
    """Turn the expression at ``expr_span`` into ``expr /\\ item``."""
    if wrap:
        return [
            Splice(expr_span.start, expr_span.start, "("),
            Splice(expr_span.end, expr_span.end, f" /\\ {item})"),
        ]
    return [Splice(expr_span.end, expr_span.end, f" /\\ {item}")]


# ---------------------------------------------------------------------------
# Tuples, sets and UNCHANGED
# ---------------------------------------------------------------------------


def item_separator(text: str, items: tuple, default: str = ", ") -> str:
    """The text between the last two items of a tuple or set, or ``default``."""
    if len(items) < 2:
        return default
    return text[items[-2].span.end : items[-1].span.start]


def append_collection_item(text: str, node: Tuple | SetEnum, item: str) -> Splice:
    if not node.items:
        # ``<<>>`` or ``{}``: the item goes between the brackets
        close = node.span.end - (2 if isinstance(node, Tuple) else 1)
        return Splice(close, close, item)
    last = node.items[-1]
    return Splice(last.span.end, last.span.end, item_separator(text, node.items) + item)


def insert_collection_item(
    text: str, node: Tuple | SetEnum, after: int, item: str
) -> Splice:
    """Insert ``item`` right after ``node.items[after]``."""
    if after >= len(node.items) - 1:
        return append_collection_item(text, node, item)
    prev = node.items[after]
    sep = text[prev.span.end : node.items[after + 1].span.start]
    return Splice(prev.span.end, prev.span.end, sep + item)



def unchanged_text(text: str, node: Unchanged, names: list[str]) -> str:
    """Render ``UNCHANGED`` over ``names`` reusing ``node``'s own spacing."""
    keyword_gap = text[node.span.start + len("UNCHANGED") : node.expr.span.start]
    if not keyword_gap or "\n" in keyword_gap:
        keyword_gap = " "
    if len(names) == 1:
        return f"UNCHANGED{keyword_gap}{names[0]}"
    sep = ", "
    inner = node.expr
    if isinstance(inner, Tuple) and len(inner.items) >= 2:
        sampled = item_separator(text, inner.items)
        if "\n" not in sampled:
            sep = sampled
    return f"UNCHANGED{keyword_gap}<<{sep.join(names)}>>"


def extend_unchanged(text: str, node: Unchanged, names: list[str]) -> Splice:
    """Add ``names`` to an ``UNCHANGED`` node, keeping its existing items."""
    inner = node.expr
    if isinstance(inner, Tuple):
        last = inner.items[-1] if inner.items else None
        if last is None:
            return append_collection_item(text, inner, ", ".join(names))
        sep = item_separator(text, inner.items)
        return Splice(last.span.end, last.span.end, "".join(sep + n for n in names))
    current = inner.span.slice(text)
    return Splice(inner.span.start, inner.span.end, "<<" + ", ".join([current, *names]) + ">>")


def needs_parens(expr: Expr) -> bool:
    """True when ``expr /\\ item`` would not parse as a conjunction of ``expr``."""
    return isinstance(
        expr, (Junction, IfThenElse, Case, Let, Quantified, Choose)
    ) or (isinstance(expr, Binary) and expr.op in ("=>", "<=>", "\\equiv", "~>"))


def extract(text: str, start: int, end: int, splices: Iterable[Splice]) -> str:
    """``text[start:end]`` with the splices that fall inside it applied."""
    inside = [
        Splice(s.start - start, s.end - start, s.replacement)
        for s in splices
        if start <= s.start and s.end <= end
    ]
    return apply_splices(text[start:end], inside)

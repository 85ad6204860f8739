"""Parser for the canonical TLA+ subset.

The module text is first cut into segments, one per top-level unit.  A unit
starts at column 0 with a declaration keyword, a separator line or a
definition head; comment lines directly above it (no blank line between)
are attached to it, and everything after its last token up to the next unit
is its trailing trivia.  Segments partition the text exactly, which is what
makes ``render(parse(text)) == text`` hold.

Each segment is then tokenized and parsed on its own.  Expressions are read
with precedence climbing; bulleted ``/\\`` and ``\\/`` lists follow the
alignment rule: an item ends at the first token that starts a line at or
left of its bullet.
"""

from __future__ import annotations

import logging
import re

from .config import DEFAULT_CONFIG, EngineConfig
from .errors import TlaSyntaxError
from .lexer import Token, TokenKind, tokenize
from .syntax import (
    AngleAction,
    Bound,
    BoxAction,
    Case,
    CaseArm,
    Choose,
    ConstantBlock,
    Declaration,
    Definition,
    Except,
    ExceptUpdate,
    Expr,
    Extends,
    Fairness,
    FairnessClause,
    FieldAccess,
    FnApply,
    FnConstructor,
    FnSet,
    IfThenElse,
    Invariant,
    Junction,
    Let,
    LetDef,
    Binary,
    Module,
    ModuleFooter,
    ModuleHeader,
    Name,
    NextRelation,
    Number,
    OpApp,
    Opaque,
    Paren,
    Prime,
    Quantified,
    Record,
    RecordSet,
    SetEnum,
    SetFilter,
    SetMap,
    Span,
    String,
    Tuple,
    Unary,
    Unchanged,
    VariableBlock,
    walk,
)

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"^[ \t]*-{4,}[ \t]*MODULE[ \t]+(\w+)[ \t]*-{4,}[^\n]*(?:\n|$)", re.M)
_FOOTER_RE = re.compile(r"^[ \t]*={4,}", re.M)

_UNIT_KEYWORDS = frozenset(
    {
        "EXTENDS", "CONSTANT", "CONSTANTS", "VARIABLE", "VARIABLES", "ASSUME",
        "ASSUMPTION", "AXIOM", "THEOREM", "LEMMA", "PROPOSITION", "COROLLARY",
        "INSTANCE", "LOCAL", "RECURSIVE",
    }
)

_OPEN = frozenset({"(", "[", "{", "<<"})
_CLOSE = frozenset({")", "]", "}", ">>"})

_ALIASES = {"\\land": "/\\", "\\lor": "\\/", "\\lnot": "~", "\\neg": "~", "\\union": "\\cup", "\\intersect": "\\cap"}

# Binary operators: precedence and right-associativity.
_INFIX: dict[str, tuple[int, bool]] = {
    "=>": (1, True),
    "<=>": (2, False), "\\equiv": (2, False), "~>": (2, False), "-+->": (2, False),
    "/\\": (3, False), "\\/": (3, False),
    "@@": (6, False), ":>": (7, False),
    "\\cup": (8, False), "\\cap": (8, False), "\\": (8, False),
    "..": (9, False), "...": (9, False),
    "+": (10, False), "-": (10, False), "\\X": (10, False), "\\times": (10, False),
    "++": (10, False), "\\oplus": (10, False), "\\ominus": (10, False),
    "%": (11, False), "\\div": (11, False),
    "*": (13, False), "/": (13, False), "\\o": (13, False), "\\circ": (13, False),
    "\\cdot": (13, False), "\\odot": (13, False), "\\otimes": (13, False),
    "&": (13, False), "|": (13, False),
    "^": (14, True),
}
for _rel in (
    "=", "#", "/=", "<", ">", "<=", ">=", "=<", "\\leq", "\\geq", "\\in",
    "\\notin", "\\subseteq", "\\subset", "\\supseteq", "\\supset", "\\prec",
    "\\preceq", "\\succ", "\\succeq", "\\sqsubseteq", "\\sqsupseteq",
    "\\approx", "\\sim", "\\simeq", "\\cong", "\\doteq", "|-",
):
    _INFIX[_rel] = (5, False)

_PREFIX: dict[str, int] = {
    "~": 4, "[]": 4, "<>": 4, "ENABLED": 4, "-": 12,
    "SUBSET": 9, "UNION": 9, "DOMAIN": 9,
}
_POSTFIX_PREC = 15


def _canonical(op: str) -> str:
    return _ALIASES.get(op, op)


# ---------------------------------------------------------------------------
# Expression parser
# ---------------------------------------------------------------------------


class _Parser:
    def __init__(self, tokens: list[Token], *, base_offset: int = 0) -> None:
        self.tokens = tokens
        self.pos = 0
        self.base_offset = base_offset
        self.fences: list[int] = []
        self.last_end = 0

    # -- token access -------------------------------------------------------

    def peek(self, ahead: int = 0) -> Token:
        tok = self.tokens[min(self.pos + ahead, len(self.tokens) - 1)]
        if (
            ahead == 0
            and self.fences
            and self.fences[-1] >= 0
            and tok.first_on_line
            and tok.col <= self.fences[-1]
            and tok.kind is not TokenKind.EOF
        ):
            return Token(TokenKind.EOF, "", tok.start, tok.start, tok.line, tok.col, True)
        return tok

    def at(self, text: str) -> bool:
        return self.peek().is_(text)

    def advance(self) -> Token:
        tok = self.peek()
        if tok.kind is TokenKind.EOF:
            self.error("unexpected end of expression", tok)
        self.pos += 1
        self.last_end = tok.end
        return tok

    def expect(self, text: str) -> Token:
        tok = self.peek()
        if not tok.is_(text):
            self.error(f"unexpected {_describe(tok)}", tok, expected=f"'{text}'")
        return self.advance()

    def expect_ident(self) -> Token:
        tok = self.peek()
        if tok.kind is not TokenKind.IDENT:
            self.error(f"unexpected {_describe(tok)}", tok, expected="an identifier")
        return self.advance()

    def error(self, message: str, tok: Token, expected: str | None = None) -> None:
        raise TlaSyntaxError(message, self.base_offset + tok.start, tok.line, tok.col, expected)

    def span_from(self, start: int) -> Span:
        return Span(start, self.last_end)

    def with_fence(self, column: int) -> _Fence:
        return _Fence(self, column)

    # -- expressions --------------------------------------------------------

    def parse_expr(self, min_prec: int = 0) -> Expr:
        start = self.peek().start
        left = self.parse_prefix()
        while True:
            tok = self.peek()
            if tok.kind is TokenKind.EOF:
                return left
            if tok.is_("'") and _POSTFIX_PREC >= min_prec:
                self.advance()
                left = Prime(left, self.span_from(start))
                continue
            if tok.is_("[") and _POSTFIX_PREC >= min_prec:
                self.advance()
                with self.with_fence(-1):
                    args = self.parse_list("]")
                self.expect("]")
                left = FnApply(left, args, self.span_from(start))
                continue
            if tok.is_(".") and _POSTFIX_PREC >= min_prec:
                self.advance()
                name = self.expect_ident()
                left = FieldAccess(left, name.text, self.span_from(start))
                continue
            if tok.kind is not TokenKind.OP:
                return left
            op = _canonical(tok.text)
            info = _INFIX.get(op)
            if info is None or info[0] < min_prec:
                return left
            prec, right_assoc = info
            if op in ("/\\", "\\/"):
                left = self.parse_infix_junction(left, op, start)
                continue
            self.advance()
            right = self.parse_expr(prec if right_assoc else prec + 1)
            left = Binary(op, left, right, self.span_from(start))

    def parse_infix_junction(self, first: Expr, op: str, start: int) -> Junction:
        prec = _INFIX[op][0]
        items = [first]
        op_spans: list[Span] = []
        while True:
            tok = self.peek()
            if tok.kind is not TokenKind.OP or _canonical(tok.text) != op:
                break
            self.advance()
            op_spans.append(Span(tok.start, tok.end))
            items.append(self.parse_expr(prec + 1))
        return Junction(op, tuple(items), False, self.span_from(start), -1, tuple(op_spans))

    def parse_bullets(self) -> Junction:
        first = self.advance()
        op = _canonical(first.text)
        column = first.col
        items: list[Expr] = []
        bullets: list[Span] = [Span(first.start, first.end)]
        while True:
            with self.with_fence(column):
                items.append(self.parse_expr(0))
            tok = self.peek()
            if (
                tok.kind is TokenKind.OP
                and _canonical(tok.text) == op
                and tok.first_on_line
                and tok.col == column
            ):
                self.advance()
                bullets.append(Span(tok.start, tok.end))
                continue
            break
        return Junction(
            op, tuple(items), True, self.span_from(first.start), column, tuple(bullets)
        )

    def parse_list(self, closer: str) -> tuple[Expr, ...]:
        items: list[Expr] = []
        if self.at(closer):
            return ()
        while True:
            items.append(self.parse_expr(0))
            if self.at(","):
                self.advance()
                continue
            return tuple(items)

    def parse_bounds(self) -> tuple[Bound, ...]:
        bounds: list[Bound] = []
        while True:
            start = self.peek().start
            names = [self.parse_bound_name()]
            while self.at(","):
                self.advance()
                names.append(self.parse_bound_name())
            domain = None
            if self.at("\\in"):
                self.advance()
                domain = self.parse_expr(6)
            bounds.append(Bound(tuple(names), domain, self.span_from(start)))
            if self.at(",") and domain is not None:
                self.advance()
                continue
            return tuple(bounds)

    def parse_bound_name(self) -> str:
        if self.at("<<"):
            self.advance()
            names = [self.expect_ident().text]
            while self.at(","):
                self.advance()
                names.append(self.expect_ident().text)
            self.expect(">>")
            return "<<" + ", ".join(names) + ">>"
        return self.expect_ident().text

    def parse_prefix(self) -> Expr:
        tok = self.peek()
        start = tok.start
        kind = tok.kind
        text = tok.text

        if kind is TokenKind.EOF:
            self.error("unexpected end of expression", tok, expected="an expression")

        if kind is TokenKind.OP and _canonical(text) in ("/\\", "\\/"):
            return self.parse_bullets()

        if kind is TokenKind.IDENT:
            self.advance()
            nxt = self.tokens[self.pos]
            if nxt.is_("(") and nxt.start == tok.end:
                self.advance()
                with self.with_fence(-1):
                    args = self.parse_list(")")
                self.expect(")")
                return OpApp(text, args, self.span_from(start))
            return Name(text, self.span_from(start))

        if kind is TokenKind.NUMBER:
            self.advance()
            return Number(text, self.span_from(start))

        if kind is TokenKind.STRING:
            self.advance()
            return String(text[1:-1], self.span_from(start))

        if kind is TokenKind.FAIRNESS:
            self.advance()
            if self.at("<<"):
                subscript = self.parse_prefix()
            else:
                sub = self.expect_ident()
                subscript = Name(sub.text, Span(sub.start, sub.end))
            self.expect("(")
            with self.with_fence(-1):
                action = self.parse_expr(0)
            self.expect(")")
            return Fairness(text[:2], subscript, action, self.span_from(start))

        if text == "@" and kind is TokenKind.PUNCT:
            self.advance()
            return Name("@", self.span_from(start))

        if tok.is_("("):
            self.advance()
            with self.with_fence(-1):
                inner = self.parse_expr(0)
            self.expect(")")
            return Paren(inner, self.span_from(start))

        if tok.is_("<<"):
            self.advance()
            with self.with_fence(-1):
                items = self.parse_list(">>")
            self.expect(">>")
            if self.at("_"):
                self.advance()
                subscript = self.parse_subscript()
                action = items[0] if len(items) == 1 else Tuple(items)
                return AngleAction(action, subscript, self.span_from(start))
            return Tuple(items, self.span_from(start))

        if tok.is_("{"):
            return self.parse_set()

        if tok.is_("["):
            return self.parse_bracket()

        if kind is TokenKind.KEYWORD:
            if text == "IF":
                self.advance()
                cond = self.parse_expr(0)
                self.expect("THEN")
                then = self.parse_expr(0)
                self.expect("ELSE")
                else_ = self.parse_expr(0)
                return IfThenElse(cond, then, else_, self.span_from(start))
            if text == "CASE":
                return self.parse_case()
            if text == "LET":
                return self.parse_let()
            if text == "CHOOSE":
                self.advance()
                bound = self.parse_bounds()[0]
                self.expect(":")
                body = self.parse_expr(0)
                return Choose(bound, body, self.span_from(start))
            if text == "UNCHANGED":
                self.advance()
                operand = self.parse_expr(5)
                return Unchanged(operand, self.span_from(start))

        if kind is TokenKind.OP and text in ("\\E", "\\A", "\\EE", "\\AA"):
            self.advance()
            bounds = self.parse_bounds()
            self.expect(":")
            body = self.parse_expr(0)
            return Quantified(text, bounds, body, self.span_from(start))

        op = _canonical(text)
        if kind in (TokenKind.OP, TokenKind.KEYWORD) and op in _PREFIX:
            self.advance()
            operand = self.parse_expr(_PREFIX[op])
            return Unary(op, operand, self.span_from(start))

        self.error(f"unexpected {_describe(tok)}", tok, expected="an expression")
        raise AssertionError("unreachable")

    def parse_subscript(self) -> Expr:
        tok = self.peek()
        if tok.is_("<<"):
            return self.parse_prefix()
        ident = self.expect_ident()
        return Name(ident.text, Span(ident.start, ident.end))

    def parse_case(self) -> Case:
        start = self.advance().start
        arms: list[CaseArm] = []
        other: Expr | None = None
        while True:
            arm_start = self.peek().start
            if self.at("OTHER"):
                self.advance()
                self.expect("->")
                other = self.parse_expr(0)
                break
            guard = self.parse_expr(0)
            self.expect("->")
            value = self.parse_expr(0)
            arms.append(CaseArm(guard, value, self.span_from(arm_start)))
            if self.at("[]"):
                self.advance()
                continue
            break
        return Case(tuple(arms), other, self.span_from(start))

    def parse_let(self) -> Let:
        start = self.advance().start
        defs: list[LetDef] = []
        while not self.at("IN"):
            def_start = self.peek().start
            name = self.expect_ident().text
            params: tuple[str, ...] = ()
            if self.at("("):
                self.advance()
                params = tuple(self.parse_params())
                self.expect(")")
            self.expect("==")
            body = self.parse_expr(0)
            defs.append(LetDef(name, params, body, self.span_from(def_start)))
        self.expect("IN")
        body = self.parse_expr(0)
        return Let(tuple(defs), body, self.span_from(start))

    def parse_params(self) -> list[str]:
        params = [self.expect_ident().text]
        while self.at(","):
            self.advance()
            params.append(self.expect_ident().text)
        return params

    def parse_set(self) -> Expr:
        start = self.advance().start
        with self.with_fence(-1):
            if self.at("}"):
                self.advance()
                return SetEnum((), self.span_from(start))
            first = self.parse_expr(0)
            if self.at(":"):
                self.advance()
                if (
                    isinstance(first, Binary)
                    and first.op == "\\in"
                    and isinstance(first.left, Name)
                ):
                    predicate = self.parse_expr(0)
                    self.expect("}")
                    bound = Bound((first.left.name,), first.right, first.span)
                    return SetFilter(bound, predicate, self.span_from(start))
                bounds = self.parse_bounds()
                self.expect("}")
                return SetMap(first, bounds, self.span_from(start))
            items = [first]
            while self.at(","):
                self.advance()
                items.append(self.parse_expr(0))
            self.expect("}")
        return SetEnum(tuple(items), self.span_from(start))

    def parse_bracket(self) -> Expr:
        start = self.advance().start
        with self.with_fence(-1):
            tok = self.peek()
            nxt = self.tokens[min(self.pos + 1, len(self.tokens) - 1)]
            if tok.kind is TokenKind.IDENT and nxt.is_("|->"):
                fields = self.parse_fields("|->")
                self.expect("]")
                return Record(fields, self.span_from(start))
            if tok.kind is TokenKind.IDENT and nxt.is_(":"):
                fields = self.parse_fields(":")
                self.expect("]")
                return RecordSet(fields, self.span_from(start))
            first = self.parse_expr(0)
            if self.at("EXCEPT"):
                self.advance()
                updates = [self.parse_except_update()]
                while self.at(","):
                    self.advance()
                    updates.append(self.parse_except_update())
                self.expect("]")
                return Except(first, tuple(updates), self.span_from(start))
            if self.at("->"):
                self.advance()
                codomain = self.parse_expr(0)
                self.expect("]")
                return FnSet(first, codomain, self.span_from(start))
            items = [first]
            while self.at(","):
                self.advance()
                items.append(self.parse_expr(0))
            if self.at("|->"):
                self.advance()
                bounds = _bounds_from_exprs(items, self)
                body = self.parse_expr(0)
                self.expect("]")
                return FnConstructor(bounds, body, self.span_from(start))
            self.expect("]")
        if len(items) == 1 and self.at("_"):
            self.advance()
            subscript = self.parse_subscript()
            return BoxAction(items[0], subscript, self.span_from(start))
        self.error("unexpected bracket expression", self.peek(), expected="'_' subscript")
        raise AssertionError("unreachable")

    def parse_fields(self, sep: str) -> tuple[tuple[str, Expr], ...]:
        fields: list[tuple[str, Expr]] = []
        while True:
            name = self.expect_ident().text
            self.expect(sep)
            fields.append((name, self.parse_expr(0)))
            if self.at(","):
                self.advance()
                continue
            return tuple(fields)

    def parse_except_update(self) -> ExceptUpdate:
        start = self.expect("!").start
        path: list[Expr | str] = []
        while True:
            if self.at("["):
                self.advance()
                args = self.parse_list("]")
                self.expect("]")
                path.append(args[0] if len(args) == 1 else Tuple(args))
            elif self.at("."):
                self.advance()
                path.append(self.expect_ident().text)
            else:
                break
        self.expect("=")
        value = self.parse_expr(0)
        return ExceptUpdate(tuple(path), value, self.span_from(start))


class _Fence:
    def __init__(self, parser: _Parser, column: int) -> None:
        self.parser = parser
        self.column = column

    def __enter__(self) -> None:
        self.parser.fences.append(self.column)

    def __exit__(self, *exc: object) -> None:
        self.parser.fences.pop()


def _bounds_from_exprs(items: list[Expr], parser: _Parser) -> tuple[Bound, ...]:
    """Turn ``x, y \\in S, z \\in T`` (already parsed as expressions) into bounds."""
    bounds: list[Bound] = []
    pending: list[str] = []
    for item in items:
        if isinstance(item, Name):
            pending.append(item.name)
        elif isinstance(item, Binary) and item.op == "\\in" and isinstance(item.left, Name):
            bounds.append(Bound((*pending, item.left.name), item.right, item.span))
            pending = []
        else:
            parser.error("malformed bound", parser.peek(), expected="'x \\in S'")
    if pending:
        bounds.append(Bound(tuple(pending), None))
    return tuple(bounds)


def _describe(tok: Token) -> str:
    if tok.kind is TokenKind.EOF:
        return "end of input"
    return f"{tok.kind.value} {tok.text!r}"


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


def _classify(
    name: str, body: Expr, config: EngineConfig
) -> type[Definition] | type[Invariant] | type[NextRelation] | type[FairnessClause]:
    if config.is_type_invariant(name):
        return Invariant
    if name == config.next_name:
        return NextRelation
    if any(isinstance(node, Fairness) for node in walk(body)):
        return FairnessClause
    return Definition


def _parse_name_list(parser: _Parser) -> tuple[tuple[str, ...], tuple[Span, ...]]:
    names: list[str] = []
    spans: list[Span] = []
    while True:
        tok = parser.expect_ident()
        names.append(tok.text)
        spans.append(Span(tok.start, tok.end))
        if parser.at("("):
            # operator constant: N(_, _)
            parser.advance()
            while not parser.at(")"):
                parser.advance()
            parser.advance()
        if parser.at(","):
            parser.advance()
            continue
        return tuple(names), tuple(spans)


def parse_declaration(
    text: str,
    config: EngineConfig = DEFAULT_CONFIG,
    *,
    first_line: int = 1,
    base_offset: int = 0,
) -> Declaration:
    """Parse one segment (a single top-level unit with its trivia)."""
    header = _HEADER_RE.search(text)
    if header is not None:
        core = Span(header.start(), header.end())
        return ModuleHeader(text, core, header.group(1))
    footer = _FOOTER_RE.match(text)
    if footer is not None and text[: footer.start()].strip() == "":
        return ModuleFooter(text, Span(footer.start(), footer.end()))

    tokens = tokenize(text, first_line=first_line, base_offset=base_offset)
    if tokens[0].kind is TokenKind.EOF:
        raise TlaSyntaxError("empty declaration", base_offset, first_line, 0, "a declaration")
    core = Span(tokens[0].start, tokens[-2].end)
    parser = _Parser(tokens, base_offset=base_offset)
    first = tokens[0]

    if first.kind is TokenKind.SEPARATOR:
        return Opaque(text, core, "----")

    if first.kind is TokenKind.KEYWORD:
        keyword = first.text
        if keyword == "EXTENDS":
            parser.advance()
            names, _ = _parse_name_list(parser)
            _expect_end(parser)
            return Extends(text, core, names)
        if keyword in ("CONSTANT", "CONSTANTS", "VARIABLE", "VARIABLES"):
            parser.advance()
            names, spans = _parse_name_list(parser)
            _expect_end(parser)
            if keyword.startswith("CONSTANT"):
                return ConstantBlock(text, core, names, spans)
            return VariableBlock(text, core, names, spans)
        return Opaque(text, core, keyword)

    if first.kind is not TokenKind.IDENT:
        parser.error(f"unexpected {_describe(first)}", first, expected="a declaration")

    name_tok = parser.advance()
    params: tuple[str, ...] = ()
    fn_bounds: tuple[Bound, ...] = ()
    if parser.at("("):
        parser.advance()
        params = tuple(parser.parse_params())
        parser.expect(")")
    elif parser.at("["):
        parser.advance()
        fn_bounds = parser.parse_bounds()
        parser.expect("]")
    parser.expect("==")
    if parser.at("INSTANCE"):
        return Opaque(text, core, "INSTANCE")
    body_start = parser.peek().start
    body = parser.parse_expr(0)
    _expect_end(parser)
    if fn_bounds:
        body = FnConstructor(fn_bounds, body, Span(body_start, body.span.end))
    cls = _classify(name_tok.text, body, config)
    return cls(text, core, name_tok.text, params, body, Span(name_tok.start, name_tok.end))


def _expect_end(parser: _Parser) -> None:
    tok = parser.peek()
    if tok.kind is not TokenKind.EOF:
        parser.error(f"unexpected {_describe(tok)}", tok, expected="end of declaration")


def parse_expression(text: str) -> Expr:
    """Parse a standalone expression such as an initializer or a type."""
    tokens = tokenize(text)
    parser = _Parser(tokens)
    expr = parser.parse_expr(0)
    _expect_end(parser)
    return expr


# ---------------------------------------------------------------------------
# Module segmentation
# ---------------------------------------------------------------------------


def _looks_like_definition(tokens: list[Token], i: int) -> bool:
    j = i + 1
    if tokens[j].is_("=="):
        return True
    if tokens[j].is_("(") or tokens[j].is_("["):
        depth = 0
        for k in range(j, len(tokens)):
            t = tokens[k]
            if t.text in _OPEN and t.kind is TokenKind.PUNCT:
                depth += 1
            elif t.text in _CLOSE and t.kind is TokenKind.PUNCT:
                depth -= 1
                if depth == 0:
                    return tokens[k + 1].is_("==")
            elif t.is_("=="):
                return False
    return False


def _unit_starts(tokens: list[Token]) -> list[int]:
    starts: list[int] = []
    depth = 0
    let_depth = 0
    for i, tok in enumerate(tokens):
        if tok.kind is TokenKind.EOF:
            break
        if depth == 0 and let_depth == 0 and tok.col == 0 and tok.first_on_line:
            if (
                (tok.kind is TokenKind.KEYWORD and tok.text in _UNIT_KEYWORDS)
                or tok.kind is TokenKind.SEPARATOR
                or (tok.kind is TokenKind.IDENT and _looks_like_definition(tokens, i))
            ):
                starts.append(i)
        if tok.kind is TokenKind.PUNCT and tok.text in _OPEN:
            depth += 1
        elif tok.kind is TokenKind.PUNCT and tok.text in _CLOSE:
            depth = max(0, depth - 1)
        elif tok.is_("LET"):
            let_depth += 1
        elif tok.is_("IN") and let_depth:
            let_depth -= 1
    return starts


def _attach_comments(text: str, token_start: int, gap_start: int) -> int:
    """Move a segment start up over comment lines directly above it."""
    seg_start = token_start
    while seg_start > gap_start:
        prev_end = seg_start - 1
        prev_start = text.rfind("\n", 0, prev_end) + 1
        if prev_start < gap_start or text[prev_start:prev_end].strip() == "":
            break
        seg_start = prev_start
    return seg_start


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def parse(text: str, config: EngineConfig = DEFAULT_CONFIG) -> Module:
    """Parse module ``text`` into a :class:`Module` whose segments partition it."""
    header = _HEADER_RE.search(text)
    if header is None:
        raise TlaSyntaxError(
            "missing module header", 0, 1, 0, expected="'---- MODULE <name> ----'"
        )
    body_start = header.end()
    footer = _FOOTER_RE.search(text, body_start)
    if footer is None:
        raise TlaSyntaxError(
            "missing module footer",
            len(text),
            _line_of(text, len(text)),
            0,
            expected="'===='",
        )
    body_end = footer.start()
    body = text[body_start:body_end]
    body_line = _line_of(text, body_start)

    tokens = tokenize(body, first_line=body_line, base_offset=body_start)
    starts = _unit_starts(tokens)
    if tokens[0].kind is not TokenKind.EOF and (not starts or starts[0] != 0):
        tok = tokens[0]
        raise TlaSyntaxError(
            f"unexpected {_describe(tok)}",
            body_start + tok.start,
            tok.line,
            tok.col,
            expected="a declaration at column 0",
        )

    offsets: list[int] = []
    for n, idx in enumerate(starts):
        if n == 0:
            offsets.append(0)
            continue
        tok = tokens[idx]
        gap_start = tokens[idx - 1].end
        offsets.append(_attach_comments(body, tok.start, gap_start))

    name = header.group(1)
    declarations: list[Declaration] = [
        ModuleHeader(text[:body_start], Span(header.start(), header.end()), name)
    ]
    if not offsets and body:
        # A module with no units still has to keep its blank body.
        declarations[0] = ModuleHeader(text[:body_end], Span(header.start(), header.end()), name)
    for n, seg_start in enumerate(offsets):
        seg_end = offsets[n + 1] if n + 1 < len(offsets) else len(body)
        segment = body[seg_start:seg_end]
        declarations.append(
            parse_declaration(
                segment,
                config,
                first_line=body_line + body.count("\n", 0, seg_start),
                base_offset=body_start + seg_start,
            )
        )
    declarations.append(ModuleFooter(text[body_end:], Span(0, footer.end() - body_end)))
    logger.debug("parsed module %s: %d declarations", name, len(declarations))
    return Module(name, tuple(declarations))

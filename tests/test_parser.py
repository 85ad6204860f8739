"""Parsing, segmentation and lossless rendering."""

from __future__ import annotations

import pytest

from tlaedit import (
    ConstantBlock,
    Definition,
    Extends,
    FairnessClause,
    Invariant,
    ModuleFooter,
    ModuleHeader,
    NextRelation,
    Opaque,
    TlaSyntaxError,
    VariableBlock,
    parse,
    parse_expression,
    render,
)
from tlaedit.lexer import TokenKind, tokenize
from tlaedit.syntax import Binary, Junction, Name, Prime, Tuple, Unchanged, unparen


CLOCK = r"""---- MODULE Clock ----
EXTENDS Naturals

CONSTANT MaxHour

VARIABLES hour, pc

vars == <<hour, pc>>

TypeOK ==
    /\ hour \in 0..MaxHour
    /\ pc \in {"tick", "done"}

Init == hour = 0 /\ pc = "tick"

\* advance the hour hand
Tick ==
    /\ pc = "tick"
    /\ hour' = IF hour = MaxHour THEN 0 ELSE hour + 1
    /\ UNCHANGED pc

Stop ==
    /\ pc = "tick"
    /\ pc' = "done"
    /\ UNCHANGED hour

Next == Tick \/ Stop

Spec == Init /\ [][Next]_vars /\ WF_vars(Tick)

ASSUME MaxHour \in Nat

====
"""


class TestClockSegments:
    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        self.module = parse(CLOCK)
        self.decls = self.module.declarations

    def test_round_trip(self) -> None:
        assert render(self.module) == CLOCK

    def test_module_name(self) -> None:
        assert self.module.name == "Clock"

    def test_declaration_kinds(self) -> None:
        kinds = [type(d) for d in self.decls]
        assert kinds == [
            ModuleHeader,
            Extends,
            ConstantBlock,
            VariableBlock,
            Definition,  # vars
            Invariant,  # TypeOK
            Definition,  # Init
            Definition,  # Tick
            Definition,  # Stop
            NextRelation,
            FairnessClause,
            Opaque,
            ModuleFooter,
        ]

    def test_segments_partition_text(self) -> None:
        assert "".join(d.text for d in self.decls) == CLOCK

    def test_names(self) -> None:
        extends = self.decls[1]
        assert isinstance(extends, Extends)
        assert extends.modules == ("Naturals",)
        variables = self.decls[3]
        assert isinstance(variables, VariableBlock)
        assert variables.names == ("hour", "pc")
        assert [s.slice(variables.text) for s in variables.name_spans] == ["hour", "pc"]

    def test_comment_attaches_to_following_definition(self) -> None:
        tick = self.decls[7]
        assert isinstance(tick, Definition)
        assert tick.name == "Tick"
        assert tick.text.startswith("\\* advance the hour hand\nTick ==")

    def test_trailing_blank_lines_belong_to_declaration(self) -> None:
        stop = self.decls[8]
        assert stop.text.endswith("UNCHANGED hour\n\n")

    def test_opaque_assume_kept_verbatim(self) -> None:
        assume = self.decls[11]
        assert isinstance(assume, Opaque)
        assert assume.keyword == "ASSUME"
        assert assume.text == "ASSUME MaxHour \\in Nat\n\n"

    def test_bulleted_body(self) -> None:
        tick = self.decls[7]
        assert isinstance(tick, Definition)
        body = unparen(tick.body)
        assert isinstance(body, Junction)
        assert body.bulleted
        assert body.is_conjunction
        assert len(body.items) == 3
        assert isinstance(body.items[2], Unchanged)

    def test_infix_body(self) -> None:
        init = self.decls[6]
        assert isinstance(init, Definition)
        body = unparen(init.body)
        assert isinstance(body, Junction)
        assert not body.bulleted
        assert len(body.items) == 2

    def test_spans_relative_to_declaration(self) -> None:
        stop = self.decls[8]
        assert isinstance(stop, Definition)
        assert stop.name_span.slice(stop.text) == "Stop"
        body = unparen(stop.body)
        assert isinstance(body, Junction)
        assert body.items[1].span.slice(stop.text) == "pc' = \"done\""


def test_primed_assignment_shape() -> None:
    expr = parse_expression("x' = x + 1")
    assert isinstance(expr, Binary)
    assert expr.op == "="
    assert isinstance(expr.left, Prime)
    assert isinstance(expr.left.expr, Name)


def test_empty_tuple_expression() -> None:
    expr = parse_expression("<<>>")
    assert isinstance(expr, Tuple)
    assert expr.items == ()


def test_nested_bullets_round_trip() -> None:
    text = r"""---- MODULE Nested ----
VARIABLES x, y

Step ==
    \/ /\ x' = 1
       /\ UNCHANGED y
    \/ /\ y' = 2
       /\ UNCHANGED x
====
"""
    module = parse(text)
    assert render(module) == text
    step = module.declarations[2]
    assert isinstance(step, Definition)
    body = unparen(step.body)
    assert isinstance(body, Junction)
    assert body.op == "\\/"
    assert all(isinstance(unparen(i), Junction) for i in body.items)


def test_block_comment_round_trip() -> None:
    text = """---- MODULE Commented ----
(* a block comment
   spanning lines *)
VARIABLE x

Init == x = 0
====
"""
    assert render(parse(text)) == text


def test_missing_header() -> None:
    with pytest.raises(TlaSyntaxError) as exc:
        parse("VARIABLE x\n====\n")
    assert exc.value.line == 1


def test_missing_footer() -> None:
    with pytest.raises(TlaSyntaxError, match="footer"):
        parse("---- MODULE M ----\nVARIABLE x\n")


def test_malformed_definition_reports_line() -> None:
    text = "---- MODULE Bad ----\nVARIABLE x\n\nInit == x = \n====\n"
    with pytest.raises(TlaSyntaxError) as exc:
        parse(text)
    assert exc.value.line >= 4
    assert exc.value.expected is not None


def test_tokenize_skips_comments() -> None:
    tokens = tokenize("x \\* trailing\n+ 1")
    kinds = [t.kind for t in tokens]
    assert kinds[-1] is TokenKind.EOF
    assert [t.text for t in tokens[:-1]] == ["x", "+", "1"]

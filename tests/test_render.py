"""Splice helpers and sampled layout."""

from __future__ import annotations

import pytest

from tlaedit.parser import parse_expression
from tlaedit.render import (
    Splice,
    append_collection_item,
    apply_splices,
    extend_unchanged,
    insert_junction_item,
    needs_parens,
    remove_junction_items,
    shift_continuation_lines,
    unchanged_text,
)
from tlaedit.syntax import Junction, SetEnum, Tuple, Unchanged


def test_apply_splices_in_offset_order() -> None:
    text = "abcdef"
    splices = [Splice(4, 5, "E"), Splice(0, 1, "A"), Splice(2, 2, "+")]
    assert apply_splices(text, splices) == "Ab+cdEf"


def test_apply_splices_rejects_overlap() -> None:
    with pytest.raises(ValueError, match="overlapping"):
        apply_splices("abcdef", [Splice(0, 3, ""), Splice(2, 4, "")])


def test_shift_continuation_lines() -> None:
    text = "A == /\\ x\n     /\\ y"
    assert shift_continuation_lines(text, 2) == "A == /\\ x\n       /\\ y"
    assert shift_continuation_lines(text, -2) == "A == /\\ x\n   /\\ y"


class TestBulletedJunction:
    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        self.text = "/\\ a = 1\n/\\ b = 2\n/\\ c = 3"
        junction = parse_expression(self.text)
        assert isinstance(junction, Junction)
        self.junction = junction

    def test_insert_after_middle(self) -> None:
        splice = insert_junction_item(self.text, self.junction, 1, "d = 4")
        assert apply_splices(self.text, [splice]) == "/\\ a = 1\n/\\ b = 2\n/\\ d = 4\n/\\ c = 3"

    def test_remove_leading_run(self) -> None:
        splices = remove_junction_items(self.text, self.junction, [0, 1])
        assert apply_splices(self.text, splices) == "/\\ c = 3"

    def test_remove_middle(self) -> None:
        splices = remove_junction_items(self.text, self.junction, [1])
        assert apply_splices(self.text, splices) == "/\\ a = 1\n/\\ c = 3"

    def test_remove_trailing(self) -> None:
        splices = remove_junction_items(self.text, self.junction, [2])
        assert apply_splices(self.text, splices) == "/\\ a = 1\n/\\ b = 2"

    def test_cannot_remove_everything(self) -> None:
        with pytest.raises(ValueError):
            remove_junction_items(self.text, self.junction, [0, 1, 2])


class TestCrlfJunction:
    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        self.text = "/\\ a = 1\r\n/\\ b = 2"
        junction = parse_expression(self.text)
        assert isinstance(junction, Junction)
        self.junction = junction

    def test_append_keeps_crlf(self) -> None:
        splice = insert_junction_item(self.text, self.junction, 1, "c = 3")
        assert apply_splices(self.text, [splice]) == "/\\ a = 1\r\n/\\ b = 2\r\n/\\ c = 3"

    def test_insert_before_crlf(self) -> None:
        splice = insert_junction_item(self.text, self.junction, 0, "d = 4")
        assert apply_splices(self.text, [splice]) == "/\\ a = 1\r\n/\\ d = 4\r\n/\\ b = 2"

    def test_remove_trailing_drops_whole_break(self) -> None:
        splices = remove_junction_items(self.text, self.junction, [1])
        assert apply_splices(self.text, splices) == "/\\ a = 1"


def test_infix_junction_reuses_spacing() -> None:
    text = "a /\\  b"
    junction = parse_expression(text)
    assert isinstance(junction, Junction)
    splice = insert_junction_item(text, junction, 1, "c")
    assert apply_splices(text, [splice]) == "a /\\  b /\\  c"


def test_infix_junction_removal() -> None:
    text = "a \\/ b \\/ c"
    junction = parse_expression(text)
    assert isinstance(junction, Junction)
    assert apply_splices(text, remove_junction_items(text, junction, [0])) == "b \\/ c"
    assert apply_splices(text, remove_junction_items(text, junction, [1])) == "a \\/ c"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("<<a, b>>", "<<a, b, z>>"),
        ("<<a,b>>", "<<a,b,z>>"),
        ("<<>>", "<<z>>"),
        ("{}", "{z}"),
        ('{"x"}', '{"x", z}'),
    ],
)
def test_append_collection_item(text: str, expected: str) -> None:
    node = parse_expression(text)
    assert isinstance(node, (Tuple, SetEnum))
    assert apply_splices(text, [append_collection_item(text, node, "z")]) == expected


def test_extend_unchanged_single_name() -> None:
    text = "UNCHANGED x"
    node = parse_expression(text)
    assert isinstance(node, Unchanged)
    assert apply_splices(text, [extend_unchanged(text, node, ["y"])]) == "UNCHANGED <<x, y>>"


def test_unchanged_text_keeps_spacing() -> None:
    text = "UNCHANGED  << a,  b >>"
    node = parse_expression(text)
    assert isinstance(node, Unchanged)
    assert unchanged_text(text, node, ["a", "b", "c"]) == "UNCHANGED  <<a,  b,  c>>"


def test_needs_parens() -> None:
    assert needs_parens(parse_expression("a \\/ b"))
    assert needs_parens(parse_expression("a => b"))
    assert needs_parens(parse_expression("IF a THEN b ELSE c"))
    assert not needs_parens(parse_expression("x' = 1"))

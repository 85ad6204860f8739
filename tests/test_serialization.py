"""Edit scripts, request dispatch and JSON forms of errors."""

from __future__ import annotations

import json

import pytest

from tlaedit import (
    AddVariable,
    Err,
    NotFound,
    Ok,
    SplitAction,
    apply_edit,
    apply_edits,
    dumps,
    loads,
    parse,
    render,
    validate,
)
from tlaedit.errors import TlaSyntaxError
from tlaedit.serialization import (
    error_to_json,
    request_from_json,
    request_to_json,
    violation_from_json,
    violation_to_json,
)
from tlaedit.validate import Severity, Violation


LOOP = r"""---- MODULE Loop ----
EXTENDS Naturals

VARIABLES pc, n

vars == <<pc, n>>

TypeOK ==
    /\ pc \in {"S1", "S2"}
    /\ n \in Nat

Init ==
    /\ pc = "S1"
    /\ n = 0

Step_1 ==
    /\ pc = "S1"
    /\ n' = n + 1
    /\ pc' = "S2"

Step_2 ==
    /\ pc = "S2"
    /\ pc' = "S1"
    /\ UNCHANGED n

Next ==
    \/ Step_1
    \/ Step_2
====
"""


def test_script_round_trip() -> None:
    requests = [
        AddVariable("seen", "{}", "SUBSET Nat"),
        SplitAction("Step_1", frozenset({"n"}), new_location="S1b"),
        AddVariable("flag", "FALSE", "BOOLEAN"),
    ]
    assert loads(dumps(requests)) == requests


def test_request_json_shape() -> None:
    d = request_to_json(SplitAction("Step_1", frozenset({"y", "x"})))
    assert d == {"type": "split_action", "action": "Step_1", "first_half": ["x", "y"]}
    assert request_from_json(d) == SplitAction("Step_1", frozenset({"x", "y"}))


def test_single_request_object_accepted() -> None:
    script = json.dumps({"type": "add_variable", "name": "k", "init": "0"})
    assert loads(script) == [AddVariable("k", "0")]


def test_unknown_request_type() -> None:
    with pytest.raises(ValueError, match="rename"):
        request_from_json({"type": "rename"})


def test_violation_round_trip() -> None:
    v = Violation("missing_variable", Severity.ERROR, "Go", "Variable 'y' is missing", "branch 1")
    assert violation_from_json(violation_to_json(v)) == v


def test_syntax_error_json() -> None:
    e = TlaSyntaxError("unexpected end of expression", 12, 3, 4, "an expression")
    d = error_to_json(e)
    assert d["kind"] == "syntax_error"
    assert d["line"] == 3
    assert d["column"] == 4
    assert d["expected"] == "an expression"


class TestApplyEdits:
    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        self.module = parse(LOOP)

    def test_single_edit(self) -> None:
        result = apply_edit(self.module, AddVariable("flag", "FALSE", "BOOLEAN"))
        assert isinstance(result, Ok)
        assert "flag \\in BOOLEAN" in render(result.value.module)

    def test_script_applied_in_order(self) -> None:
        requests = [
            SplitAction("Step_1", new_location="S1b"),
            AddVariable("flag", "FALSE", "BOOLEAN"),
        ]
        match apply_edits(self.module, requests):
            case Ok(outcomes):
                assert len(outcomes) == 2
                final = outcomes[-1].module
                out = render(final)
                assert "Step_3 ==" in out
                assert "flag = FALSE" in out
                assert validate(final).ok
            case Err(e):
                pytest.fail(f"script failed: {e}")

    def test_script_stops_at_first_failure(self) -> None:
        requests = [
            AddVariable("flag", "FALSE", "BOOLEAN"),
            SplitAction("Missing_1"),
            AddVariable("other", "0", "Nat"),
        ]
        result = apply_edits(self.module, requests)
        assert isinstance(result, Err)
        assert isinstance(result.error, NotFound)

    def test_empty_script(self) -> None:
        result = apply_edits(self.module, [])
        assert result == Ok([])

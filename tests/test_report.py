"""Terminal and JSON reports."""

from __future__ import annotations

from tlaedit import Catalog, Ok, add_variable, parse, split_action, validate
from tlaedit.errors import NotFound
from tlaedit.report import error_json, format_error, format_report, report_json


SIMPLE = r"""---- MODULE Simple ----
EXTENDS Naturals

VARIABLES pc, n

TypeOK == pc \in {"a", "b", "c"} /\ n \in Nat

Init == pc = "a" /\ n = 0

Go_1 == pc = "a" /\ pc' = "b" /\ n' = n + 1

Back == pc = "b" /\ pc' = "a" /\ UNCHANGED n
====
"""


def test_clean_report() -> None:
    module = parse(SIMPLE)
    catalog = Catalog.from_module(module)
    text = format_report(validate(module, catalog=catalog), catalog, file_path="Simple.tla")
    lines = text.splitlines()
    assert lines[0] == "Simple (Simple.tla)"
    assert "  ✓ Consistent (0 errors)" in lines
    assert "  ⚠ 1 warning" in lines
    assert any("[unreferenced_location]" in line and "(WARNING)" in line for line in lines)
    assert lines[-1] == "  Module: 2 variables, 2 actions, 3 locations"


def test_error_lines() -> None:
    module = parse(SIMPLE.replace("/\\ UNCHANGED n", ""))
    catalog = Catalog.from_module(module)
    text = format_report(validate(module, catalog=catalog), catalog)
    assert "  × Inconsistent (1 error)" in text
    assert "[missing_variable] action 'Back' branch 1:" in text
    assert "(ERROR)" in text


def test_edit_report_lists_touched_and_renames() -> None:
    module = parse(SIMPLE)
    result = add_variable(module, "k", "0", "Nat")
    assert isinstance(result, Ok)
    outcome = result.value
    text = format_report(validate(outcome.module), outcome.catalog, outcome=outcome)
    assert "  ✓ Edited " in text
    assert "Init" in text.splitlines()[1]


def test_report_json() -> None:
    module = parse(SIMPLE)
    catalog = Catalog.from_module(module)
    d = report_json(validate(module, catalog=catalog), catalog, file_path="Simple.tla")
    assert d["module"] == "Simple"
    assert d["file"] == "Simple.tla"
    assert d["ok"] is True
    assert d["warning_count"] == 1
    assert d["action_count"] == 2
    assert d["violations"][0]["check"] == "unreferenced_location"
    assert "touched" not in d


def test_report_json_with_renames() -> None:
    text = SIMPLE.replace("Back ==", "Go_2 ==")
    result = split_action(parse(text), "Go_1")
    assert isinstance(result, Ok)
    outcome = result.value
    d = report_json(validate(outcome.module), outcome.catalog, outcome=outcome)
    assert d["renames"] == {"Go_2": "Go_3"}
    assert "Go_1" in d["touched"]


def test_error_report() -> None:
    e = NotFound("'Nope' is not an action", "Simple")
    text = format_error(e, "Simple", file_path="Simple.tla")
    assert text.splitlines() == [
        "Simple (Simple.tla)",
        "  × not_found: 'Nope' is not an action (at Simple)",
    ]
    d = error_json(e, "Simple")
    assert d["ok"] is False
    assert d["error"]["kind"] == "not_found"

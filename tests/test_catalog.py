"""Catalog lookups and per-branch effects."""

from __future__ import annotations

import pytest

from tlaedit import Catalog, EngineConfig, NotFound, branch_effects, parse
from tlaedit.naming import NamingScheme, family_members, shift_map


WORKER = r"""---- MODULE Worker ----
EXTENDS Naturals

CONSTANT Jobs

VARIABLES pc, x, y, queue

vars == <<pc, x, y, queue>>

TypeOK ==
    /\ pc \in {"Idle", "L1", "L2"}
    /\ x \in Nat
    /\ y \in Nat
    /\ queue \in SUBSET Jobs

Init ==
    /\ pc = "Idle"
    /\ x = 0
    /\ y = 0
    /\ queue = {}

Take ==
    /\ pc = "Idle"
    /\ \E j \in queue:
          /\ queue' = queue \ {j}
          /\ x' = x + 1
    /\ pc' = "L1"
    /\ UNCHANGED y

Step_1 ==
    /\ pc = "L1"
    /\ \/ /\ x' = 1
          /\ UNCHANGED <<y, queue>>
       \/ /\ y' = 2
          /\ UNCHANGED <<x, queue>>
    /\ pc' = "L2"

Step_2 ==
    /\ pc = "L2"
    /\ IF x > y THEN y' = x ELSE y' = y + 1
    /\ pc' = "Idle"
    /\ UNCHANGED <<x, queue>>

Retry == Step_1

Next ==
    \/ Take
    \/ Step_1
    \/ Step_2

Spec == Init /\ [][Next]_vars /\ WF_vars(Step_1) /\ WF_vars(Step_2)
====
"""


class TestWorkerCatalog:
    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        self.catalog = Catalog.from_module(parse(WORKER))

    def test_variables_and_constants(self) -> None:
        assert self.catalog.variables == ("pc", "x", "y", "queue")
        assert self.catalog.constants == ("Jobs",)

    def test_actions(self) -> None:
        assert self.catalog.actions == ("Take", "Step_1", "Step_2")
        assert "Retry" in self.catalog.action_like
        assert "Next" in self.catalog.action_like
        assert "Retry" not in self.catalog.actions

    def test_conventional_clauses(self) -> None:
        c = self.catalog
        assert c.state_tuple is not None and c.state_tuple.name == "vars"
        assert c.type_invariant is not None and c.type_invariant.name == "TypeOK"
        assert c.init is not None and c.init.name == "Init"
        assert c.next_relation is not None and c.next_relation.name == "Next"
        assert [f.name for f in c.fairness] == ["Spec"]

    def test_location_enumeration(self) -> None:
        c = self.catalog
        assert c.location_var == "pc"
        assert c.location_enumeration is not None
        assert c.location_enumeration.values == ("Idle", "L1", "L2")
        assert c.location_enumeration.declaration.name == "TypeOK"

    def test_location_uses(self) -> None:
        uses = {(u.action, u.value.value, u.role) for u in self.catalog.location_uses()}
        assert ("Take", "Idle", "guard") in uses
        assert ("Take", "L1", "assignment") in uses
        assert ("Step_2", "Idle", "assignment") in uses

    def test_tuple_expansion(self) -> None:
        assert self.catalog.tuple_expansion("vars") == ("pc", "x", "y", "queue")
        assert self.catalog.tuple_closure("vars") == frozenset({"vars"})

    def test_family(self) -> None:
        assert self.catalog.family("Step_1") == ("Step_1", "Step_2")

    def test_dispatch_sites(self) -> None:
        sites = self.catalog.dispatch_sites("Step_1")
        assert len(sites) == 1
        assert sites[0].declaration.name == "Next"
        assert sites[0].index == 1

    def test_fairness_sites(self) -> None:
        sites = self.catalog.fairness_sites("Step_2")
        assert len(sites) == 1
        assert sites[0].declaration.name == "Spec"

    def test_names_in_use(self) -> None:
        names = self.catalog.names_in_use()
        assert {"pc", "Jobs", "Take", "vars", "Retry"} <= names

    def test_unknown_action(self) -> None:
        with pytest.raises(NotFound):
            self.catalog.action("Missing")
        with pytest.raises(NotFound):
            self.catalog.action("Retry")


class TestWorkerEffects:
    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        self.catalog = Catalog.from_module(parse(WORKER))

    def test_quantifier_is_transparent(self) -> None:
        (branch,) = branch_effects("Take", self.catalog)
        assert branch.primed == frozenset({"queue", "x", "pc"})
        assert branch.unchanged == frozenset({"y"})

    def test_disjunction_forks(self) -> None:
        branches = branch_effects("Step_1", self.catalog)
        assert len(branches) == 2
        first, second = branches
        assert first.primed == frozenset({"x", "pc"})
        assert first.unchanged == frozenset({"y", "queue"})
        assert second.primed == frozenset({"y", "pc"})
        assert second.unchanged == frozenset({"x", "queue"})
        assert first.fork is not None and second.fork is not None
        assert first.fork.item is not second.fork.item

    def test_if_then_else_forks(self) -> None:
        branches = branch_effects("Step_2", self.catalog)
        assert len(branches) == 2
        for b in branches:
            assert b.primed == frozenset({"y", "pc"})
            assert b.unchanged == frozenset({"x", "queue"})
        assert branches[0].fork is not None
        assert branches[0].fork.item is not branches[1].fork.item

    def test_delegation_through_reference(self) -> None:
        branches = branch_effects("Retry", self.catalog)
        assert len(branches) == 2
        assert all("Step_1" in b.delegated for b in branches)
        assert branches[0].primed == frozenset({"x", "pc"})

    def test_next_collects_every_branch(self) -> None:
        branches = branch_effects("Next", self.catalog)
        assert len(branches) == 5

    def test_innermost_unchanged(self) -> None:
        branches = branch_effects("Step_1", self.catalog)
        node = branches[0].innermost_unchanged("Step_1")
        assert node is not None
        assert node.names == ("y", "queue")

    def test_counts(self) -> None:
        (branch,) = branch_effects("Take", self.catalog)
        assert branch.primed_counts == {"queue": 1, "x": 1, "pc": 1}


def test_location_var_inferred_from_guards() -> None:
    text = r"""---- MODULE Inferred ----
VARIABLES stage, n

Init == stage = "a" /\ n = 0

Go ==
    /\ stage = "a"
    /\ stage' = "b"
    /\ n' = n + 1
====
"""
    catalog = Catalog.from_module(parse(text))
    assert catalog.location_var == "stage"


def test_location_var_from_config() -> None:
    text = r"""---- MODULE Configured ----
VARIABLES where, n

Init == where = "a" /\ n = 0

Go == where = "a" /\ where' = "b" /\ UNCHANGED n
====
"""
    config = EngineConfig(location_var="where")
    catalog = Catalog.from_module(parse(text, config), config)
    assert catalog.location_var == "where"


def test_no_location_var() -> None:
    text = r"""---- MODULE Plain ----
VARIABLE n

Init == n = 0

Inc == n' = n + 1
====
"""
    catalog = Catalog.from_module(parse(text))
    assert catalog.location_var is None
    assert catalog.location_enumeration is None


QUANTIFIED_NEXT = r"""---- MODULE Quantified ----
CONSTANT Procs

VARIABLES msgs, n

Send(m) == msgs' = msgs \cup {m}

Phase1a(b) ==
    /\ Send(b)
    /\ UNCHANGED n

Bump ==
    /\ n' = n + 1
    /\ UNCHANGED msgs

Next == \E b \in Procs : LET c == b IN Phase1a(c) \/ Bump
====
"""


class TestQuantifiedNext:
    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        self.catalog = Catalog.from_module(parse(QUANTIFIED_NEXT))

    def test_disjuncts_found_under_quantifier_and_let(self) -> None:
        (site,) = self.catalog.dispatch_sites("Phase1a")
        assert site.declaration.name == "Next"
        assert site.junction is not None
        assert site.index == 0
        assert len(self.catalog.dispatch_sites("Bump")) == 1

    def test_called_action_is_a_helper(self) -> None:
        assert self.catalog.helpers == frozenset({"Send"})
        assert self.catalog.dispatch_sites("Send") == ()
        assert [d.name for d in self.catalog.checked_actions()] == ["Phase1a", "Bump"]
        assert self.catalog.callees(self.catalog.get("Phase1a")) == frozenset({"Send"})


class TestNaming:
    def test_numeric_scheme(self) -> None:
        scheme = NamingScheme.of("ActionX_1")
        assert scheme.prefix == "ActionX_"
        assert scheme.index == 1
        assert scheme.next() == "ActionX_2"

    def test_zero_padding_kept(self) -> None:
        assert NamingScheme.of("A_09").next() == "A_10"
        assert NamingScheme.of("Step007").next() == "Step008"

    def test_descriptive_name(self) -> None:
        assert not NamingScheme.of("Increment").is_numeric
        assert not NamingScheme.of("42").is_numeric

    def test_family_members_sorted_by_index(self) -> None:
        assert family_members("A_2", ["A_10", "B_1", "A_2", "A_1"]) == ["A_1", "A_2", "A_10"]

    def test_shift_map(self) -> None:
        renames = shift_map(NamingScheme.of("A_2"), ["A_1", "A_2", "A_3", "B_2"])
        assert renames == {"A_2": "A_3", "A_3": "A_4"}

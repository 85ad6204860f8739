"""Engine configuration: the conventional names the catalog looks for."""

from __future__ import annotations

from dataclasses import dataclass

# Operators exported by the standard modules a canonical spec EXTENDS.
STANDARD_OPERATORS: frozenset[str] = frozenset(
    {
        # Naturals / Integers / Reals
        "Nat", "Int", "Real", "Infinity",
        # Sequences
        "Seq", "Len", "Append", "Head", "Tail", "SubSeq", "SelectSeq",
        # FiniteSets
        "Cardinality", "IsFiniteSet",
        # TLC
        "Print", "PrintT", "Assert", "ToString", "JavaTime", "Permutations",
        "SortSeq", "RandomElement", "TLCGet", "TLCSet", "TLCEval", "Any",
        # Bags
        "EmptyBag", "BagToSet", "SetToBag", "BagIn", "CopiesIn", "BagCardinality",
        # built-in constants
        "TRUE", "FALSE", "BOOLEAN", "STRING",
    }
)


@dataclass(frozen=True)
class EngineConfig:
    """Names of the conventional clauses of a module.

    The defaults match hand-written specs and PlusCal translations; the
    CLI overrides them per invocation.
    """

    init_name: str = "Init"
    next_name: str = "Next"
    state_tuple_name: str = "vars"
    location_var: str = "pc"
    type_invariant_names: tuple[str, ...] = (
        "TypeOK",
        "TypeOk",
        "TypeInvariant",
        "TypeInv",
    )
    standard_operators: frozenset[str] = STANDARD_OPERATORS

    def is_type_invariant(self, name: str) -> bool:
        return name in self.type_invariant_names


DEFAULT_CONFIG = EngineConfig()

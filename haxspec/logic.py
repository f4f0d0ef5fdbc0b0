"""Logical helpers for specifications.

Quantifiers always hold when run normally; they only carry meaning for
the verification backends.
"""

from __future__ import annotations

from typing import Any, Callable


def _require_predicate(f: Any, name: str) -> None:
    if not callable(f):
        raise TypeError(f"{name} expects a predicate function, got {f!r}")


def forall(f: Callable[[Any], bool]) -> bool:
    """The universal quantifier; always true at run time."""
    _require_predicate(f, "forall")
    return True


def exists(f: Callable[[Any], bool]) -> bool:
    """The existential quantifier; always true at run time."""
    _require_predicate(f, "exists")
    return True


def implies(lhs: bool, rhs: Callable[[], bool]) -> bool:
    """Logical implication ``lhs ==> rhs``; ``rhs`` is only evaluated when needed."""
    return (not lhs) or bool(rhs())


def hax_assert(formula: bool) -> None:
    """Check a formula, raising AssertionError when it does not hold."""
    if not formula:
        raise AssertionError("assertion failed")


def debug_assert(formula: bool) -> None:
    """Check a formula in debug runs only."""
    if __debug__ and not formula:
        raise AssertionError("debug assertion failed")


def assume(formula: bool) -> None:
    """Assume a formula holds; it is not checked at run time.

    A function passed in place of a formula is rejected.
    """
    if callable(formula):
        raise TypeError("assume takes a formula, not a function")
    return None
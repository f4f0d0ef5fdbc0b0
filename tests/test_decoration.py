from dataclasses import dataclass

import pytest

from haxspec.decoration import (
    Decoration,
    FnDecorationKind,
    bind_arguments,
    make_fn_decoration,
    validate_closure1,
)
from haxspec.logic import implies
from haxspec.payload import AssociationRole, AttrPayload, Included

U32_MAX = 90000


def add3(x, y, z):
    return x + y + z


def twice(x):
    return x + x


def ackermann(m, n):
    if m == 0:
        return n + 1
    if n == 0:
        return ackermann(m - 1, 1)
    return ackermann(m - 1, ackermann(m, n - 1))


@dataclass
class Hello:
    x: int
    y: int
    z: int

    def sum(self):
        return self.x + self.y + self.z

    def plus(self, n):
        return self.sum() + n


def test_requires_holds_and_fails():
    dec = make_fn_decoration(
        lambda x, y, z: x > 10 and y > 10 and z > 10 and x + y + z < U32_MAX,
        add3,
        FnDecorationKind.REQUIRES,
    )
    assert dec.check(11, 12, 13)
    assert not dec.check(10, 12, 13)
    assert not dec.check(U32_MAX, 11, 11)
    assert dec.binder is None
    assert dec.reads == ("x", "y", "z")


def test_ensures_receives_result():
    dec = make_fn_decoration(
        lambda result: implies(True, lambda: result > 32), add3, FnDecorationKind.ENSURES
    )
    assert dec.binder == "result"
    assert dec.check(11, 11, 11, result=add3(11, 11, 11))
    assert not dec.check(1, 1, 1, result=add3(1, 1, 1))


def test_ensures_reads_inputs():
    dec = make_fn_decoration(
        lambda result, x: result == x * 2, twice, FnDecorationKind.ENSURES
    )
    assert dec.check(7, result=twice(7))
    assert not dec.check(7, result=twice(7) + 1)
    assert dec.reads == ("x",)


def test_ensures_needs_result():
    dec = make_fn_decoration(lambda out: out > 0, twice, FnDecorationKind.ENSURES)
    with pytest.raises(TypeError):
        dec.check(3)


def test_binder_may_not_shadow_argument():
    with pytest.raises(ValueError):
        make_fn_decoration(lambda x: x > 0, twice, FnDecorationKind.ENSURES)


def test_self_is_exposed_as_self_():
    hello = Hello(1, 4, 5)
    by_self = make_fn_decoration(
        lambda result, self, n: result - n == self.sum(),
        Hello.plus,
        FnDecorationKind.ENSURES,
    )
    by_ident = make_fn_decoration(
        lambda result, self_, n: result - n == self_.sum(),
        Hello.plus,
        FnDecorationKind.ENSURES,
    )
    assert by_self.check(hello, 3, result=hello.plus(3))
    assert by_ident.check(hello, 3, result=hello.plus(3))
    assert not by_ident.check(hello, 3, result=hello.plus(4))


def test_self_without_receiver_is_rejected():
    with pytest.raises(ValueError, match="Detected a `self`"):
        make_fn_decoration(lambda self: True, add3, FnDecorationKind.REQUIRES)


def test_unknown_parameter_is_rejected():
    with pytest.raises(ValueError):
        make_fn_decoration(lambda w: w > 0, add3, FnDecorationKind.REQUIRES)


def test_variadic_predicate_is_rejected():
    with pytest.raises(ValueError):
        make_fn_decoration(lambda *xs: True, add3, FnDecorationKind.REQUIRES)


def test_predicate_must_be_callable():
    with pytest.raises(TypeError):
        make_fn_decoration(42, add3, FnDecorationKind.REQUIRES)


def test_kind_must_be_a_decoration_kind():
    with pytest.raises(TypeError):
        make_fn_decoration(lambda x: True, twice, "requires")


def test_validate_closure1():
    assert validate_closure1(lambda result, x: result == x) == "result"
    with pytest.raises(ValueError):
        validate_closure1(lambda: True)


def test_bind_arguments_applies_defaults_and_renames_self():
    def method(self, a, b=5):
        return a + b

    receiver = object()
    assert bind_arguments(method, (receiver, 1), {}) == {
        "self_": receiver,
        "a": 1,
        "b": 5,
    }
    assert bind_arguments(add3, (1,), {"y": 2, "z": 3}) == {"x": 1, "y": 2, "z": 3}


def test_bind_arguments_wrong_arity():
    with pytest.raises(TypeError):
        bind_arguments(add3, (1, 2), {})


def test_decreases_returns_measure():
    dec = make_fn_decoration(lambda m, n: (m, n), ackermann, FnDecorationKind.DECREASES)
    assert dec.check(2, 3) == (2, 3)


@pytest.mark.parametrize(
    "kind, role, name",
    [
        (FnDecorationKind.REQUIRES, AssociationRole.REQUIRES, "requires"),
        (FnDecorationKind.ENSURES, AssociationRole.ENSURES, "ensures"),
        (FnDecorationKind.DECREASES, AssociationRole.DECREASES, "decreases"),
    ],
)
def test_kind_roles(kind, role, name):
    assert kind.role() is role
    assert kind.value == name


def test_payloads_share_uid():
    dec = make_fn_decoration(lambda result: result > 0, twice, FnDecorationKind.ENSURES)
    assert isinstance(dec, Decoration)
    assert dec.association.role is AssociationRole.ENSURES
    assert dec.association.item == dec.uid
    assert dec.uid_payload.item == dec.uid
    assert dec.status.status == Included(late_skip=True)
    assert AttrPayload.from_json(dec.association.to_json()) == dec.association


def test_each_decoration_gets_a_fresh_uid():
    first = make_fn_decoration(lambda x: x > 0, twice, FnDecorationKind.REQUIRES)
    second = make_fn_decoration(lambda x: x > 0, twice, FnDecorationKind.REQUIRES)
    assert first.uid.uid != second.uid.uid
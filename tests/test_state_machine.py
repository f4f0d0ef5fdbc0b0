from dataclasses import dataclass

import pytest

from haxspec.state_machine import (
    InitialState,
    ReadState,
    WriteState,
    _bind_initializer,
    _bind_reader,
    _bind_writer,
)


@dataclass
class Start(InitialState, WriteState, ReadState):
    value: int


@dataclass
class Left:
    value: int


@dataclass
class Right:
    value: int


_bind_initializer(Start, lambda prologue: Start(len(prologue)))
_bind_writer(Start, lambda state: (Left(state.value), state.value + 1))
_bind_reader(Start, Left, lambda state, msg: Left(state.value + msg))
_bind_reader(Start, Right, lambda state, msg: Right(state.value - msg))


class Unbound(InitialState, WriteState, ReadState):
    pass


def test_init_uses_bound_initializer():
    assert Start.init(b"abc") == Start(3)


def test_write_returns_next_state_and_message():
    next_state, message = Start(5).write()
    assert next_state == Left(5)
    assert message == 6


def test_read_selects_by_next_state():
    assert Start(10).read(4, Left) == Left(14)
    assert Start(10).read(4, Right) == Right(6)


def test_read_without_next_state_is_ambiguous():
    with pytest.raises(TypeError):
        Start(1).read(2)


def test_read_to_unknown_state():
    with pytest.raises(TypeError):
        Start(1).read(2, Start)


def test_single_reader_needs_no_next_state():
    class Only(ReadState):
        pass

    _bind_reader(Only, Left, lambda state, msg: Left(msg))
    assert Only().read(9) == Left(9)


def test_unbound_transitions_raise():
    with pytest.raises(TypeError):
        InitialState.init.__func__(Unbound, b"")
    with pytest.raises(TypeError):
        WriteState.write(Unbound())
    with pytest.raises(TypeError):
        ReadState.read(Unbound(), 1)
    marker = Unbound()
    _bind_initializer(Unbound, lambda prologue: marker)
    assert InitialState.init.__func__(Unbound, b"") is marker


def test_duplicate_bindings_rejected():
    with pytest.raises(TypeError):
        _bind_initializer(Start, lambda prologue: Start(0))
    with pytest.raises(TypeError):
        _bind_writer(Start, lambda state: (Left(0), 0))
    with pytest.raises(TypeError):
        _bind_reader(Start, Left, lambda state, msg: Left(0))


def test_binding_requires_the_right_base():
    with pytest.raises(TypeError):
        _bind_initializer(Left, lambda prologue: Left(0))
    with pytest.raises(TypeError):
        _bind_writer(Left, lambda state: (Left(0), 0))
    with pytest.raises(TypeError):
        _bind_reader(Left, Right, lambda state, msg: Right(0))


def test_bindings_are_not_inherited():
    class Child(Start):
        pass

    with pytest.raises(TypeError):
        InitialState.init.__func__(Child, b"x")
    _bind_initializer(Child, lambda prologue: Child(7))
    assert InitialState.init.__func__(Child, b"") == Child(7)
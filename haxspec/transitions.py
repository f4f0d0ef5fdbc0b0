"""Decorators that turn plain functions into state-machine transitions."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable, Optional, TypeVar

from haxspec.errors import InvalidPrologue
from haxspec.payload import PAYLOADS_ATTRIBUTE, AttrPayload, Excluded, PayloadKind
from haxspec.state_machine import _bind_initializer, _bind_reader, _bind_writer

F = TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class Transition:
    """A transition: current state, next state and message type."""

    current_state: type
    next_state: type
    message_type: type

    def __post_init__(self) -> None:
        for field in fields(self):
            value = getattr(self, field.name)
            if not isinstance(value, type):
                raise TypeError(f"{field.name} must be a type, got {value!r}")


def _attach(item: Any, payload: AttrPayload) -> None:
    payloads = vars(item).get(PAYLOADS_ATTRIBUTE)
    if payloads is None:
        payloads = []
        setattr(item, PAYLOADS_ATTRIBUTE, payloads)
    payloads.append(payload)


def _excluded(func: F) -> F:
    _attach(func, AttrPayload(PayloadKind.ITEM_STATUS, status=Excluded()))
    return func


def _expect_instance(value: Any, expected: type, what: str) -> Any:
    if not isinstance(value, expected):
        raise TypeError(f"{what} must be a {expected.__name__}, got {value!r}")
    return value


def _require_type(state_type: Any) -> type:
    if not isinstance(state_type, type):
        raise TypeError(f"expected a state type, got {state_type!r}")
    return state_type


def init(state_type: type) -> Callable[[F], F]:
    """Make ``func(prologue)`` the initial-state transition of ``state_type``.

    The generated ``init`` raises InvalidPrologue when no prologue is given.
    """
    _require_type(state_type)

    def decorator(func: F) -> F:
        _attach(func, AttrPayload(PayloadKind.PROCESS_INIT))

        @_excluded
        def initialize(prologue: Optional[bytes]) -> Any:
            if prologue is None:
                raise InvalidPrologue()
            return _expect_instance(func(bytes(prologue)), state_type, "initial state")

        _bind_initializer(state_type, initialize)
        return func

    return decorator


def init_empty(state_type: type) -> Callable[[F], F]:
    """Make ``func()`` the initial-state transition of ``state_type``.

    The generated ``init`` raises InvalidPrologue when a prologue is given.
    """
    _require_type(state_type)

    def decorator(func: F) -> F:
        _attach(func, AttrPayload(PayloadKind.PROCESS_INIT))

        @_excluded
        def initialize(prologue: Optional[bytes]) -> Any:
            if prologue is not None:
                raise InvalidPrologue()
            return _expect_instance(func(), state_type, "initial state")

        _bind_initializer(state_type, initialize)
        return func

    return decorator


def write(current_state: type, next_state: type, message_type: type) -> Callable[[F], F]:
    """Make ``func(state)`` the write transition of ``current_state``.

    ``func`` returns a pair of the next state and the message written.
    """
    transition = Transition(current_state, next_state, message_type)

    def decorator(func: F) -> F:
        _attach(func, AttrPayload(PayloadKind.PROCESS_WRITE))

        @_excluded
        def transmit(state: Any) -> tuple[Any, Any]:
            result = func(state)
            if not isinstance(result, tuple) or len(result) != 2:
                raise TypeError(
                    f"a write transition must return (next state, message), got {result!r}"
                )
            following, message = result
            _expect_instance(following, transition.next_state, "next state")
            _expect_instance(message, transition.message_type, "message")
            return following, message

        _bind_writer(transition.current_state, transmit)
        return func

    return decorator


def read(current_state: type, next_state: type, message_type: type) -> Callable[[F], F]:
    """Make ``func(state, msg)`` a read transition from ``current_state``.

    ``func`` returns the next state, or raises InvalidMessage.
    """
    transition = Transition(current_state, next_state, message_type)

    def decorator(func: F) -> F:
        _attach(func, AttrPayload(PayloadKind.PROCESS_READ))

        @_excluded
        def receive(state: Any, msg: Any) -> Any:
            _expect_instance(msg, transition.message_type, "message")
            return _expect_instance(
                func(state, msg), transition.next_state, "next state"
            )

        _bind_reader(transition.current_state, transition.next_state, receive)
        return func

    return decorator
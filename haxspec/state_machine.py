"""Protocol parties as state machines.

A party has a set of states, one of them initial. It moves between states
by writing a message or by reading one. Transitions are attached to state
types by the decorators in :mod:`haxspec.transitions`.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

_INITIALIZER = "_hax_initializer"
_WRITER = "_hax_writer"
_READERS = "_hax_readers"


class InitialState:
    """A state a party can start in."""

    @classmethod
    def init(cls, prologue: Optional[bytes] = None) -> Any:
        """Build the state from initialisation data.

        Raises InvalidPrologue on invalid data.
        """
        initializer = vars(cls).get(_INITIALIZER)
        if initializer is None:
            raise TypeError(f"{cls.__name__} has no initial-state transition")
        return initializer(prologue)


class WriteState:
    """A state that moves on by writing exactly one kind of message."""

    def write(self) -> tuple[Any, Any]:
        """Return the next state and the message written."""
        writer = vars(type(self)).get(_WRITER)
        if writer is None:
            raise TypeError(f"{type(self).__name__} has no write transition")
        return writer(self)


class ReadState:
    """A state that moves on by reading a message.

    A state may have several read transitions, one per next-state type.
    """

    def read(self, msg: Any, next_state: Optional[type] = None) -> Any:
        """Read ``msg`` and return the next state of type ``next_state``.

        ``next_state`` may be left out when only one read transition exists.
        """
        readers: dict[type, Callable[[Any, Any], Any]] = vars(type(self)).get(
            _READERS, {}
        )
        name = type(self).__name__
        if next_state is None:
            if len(readers) != 1:
                raise TypeError(
                    f"{name} has {len(readers)} read transitions; name the next state"
                )
            (reader,) = readers.values()
            return reader(self, msg)
        reader = readers.get(next_state)
        if reader is None:
            raise TypeError(f"{name} has no read transition to {next_state.__name__}")
        return reader(self, msg)


def _require_subclass(state_type: type, base: type) -> None:
    if not isinstance(state_type, type) or not issubclass(state_type, base):
        raise TypeError(f"{state_type!r} must subclass {base.__name__}")


def _bind_initializer(state_type: type, initializer: Callable[[Any], Any]) -> None:
    _require_subclass(state_type, InitialState)
    if _INITIALIZER in vars(state_type):
        raise TypeError(f"{state_type.__name__} already has an initial-state transition")
    setattr(state_type, _INITIALIZER, initializer)


def _bind_writer(state_type: type, writer: Callable[[Any], Any]) -> None:
    _require_subclass(state_type, WriteState)
    if _WRITER in vars(state_type):
        raise TypeError(f"{state_type.__name__} already has a write transition")
    setattr(state_type, _WRITER, writer)


def _bind_reader(
    state_type: type, next_state: type, reader: Callable[[Any, Any], Any]
) -> None:
    _require_subclass(state_type, ReadState)
    if _READERS not in vars(state_type):
        setattr(state_type, _READERS, {})
    readers = vars(state_type)[_READERS]
    if next_state in readers:
        raise TypeError(
            f"{state_type.__name__} already reads into {next_state.__name__}"
        )
    readers[next_state] = reader
# haxspec

Tools for writing checkable specifications next to ordinary Python code:
contracts and markers on functions and classes, logical helpers, protocol
state machines, a small abstract crypto layer, and a snapshot test harness
that drives the `cargo-hax` toolchain.

## Install

```
pip install haxspec
```

For the test suite: `pip install "haxspec[test]"`.

## Modules

- `haxspec.payload` — `AttrPayload` (with `to_json`, `from_json` and
  `to_attribute`), `PayloadKind`, `AssociationRole`, `ItemUid`, and the item
  statuses `Included` and `Excluded`. `to_attribute` renders the
  `#[cfg_attr(hax_compilation, _hax::json("..."))]` form of a payload.
- `haxspec.markers` — decorators that record payloads on items: `include`,
  `exclude`, `requires`, `ensures`, `lemma`, `refine` with `attributes`,
  `opaque_type`, `process_read`, `process_write`, `process_init`,
  `protocol_messages`, `pv_constructor`, `pv_handwritten`. Read them back with
  `payloads_of(item)` and `decorations_of(item)`.
- `haxspec.decoration` — the machinery behind contracts: `FnDecorationKind`,
  `Decoration` (with `check`), `make_fn_decoration`, `bind_arguments` and
  `validate_closure1`.
- `haxspec.logic` — `forall`, `exists` (always true at run time; they only take
  a predicate), `implies(lhs, rhs)` with a lazily evaluated `rhs`,
  `hax_assert`, `debug_assert` and `assume` (not checked at run time).
- `haxspec.errors` — `ProtocolError` and its subclasses `CryptoError`,
  `InvalidMessage` and `InvalidPrologue`.
- `haxspec.state_machine` — the state bases `InitialState` (`init`),
  `WriteState` (`write`) and `ReadState` (`read`).
- `haxspec.transitions` — `init`, `init_empty`, `write` and `read`, which wire
  a plain function in as a transition of a state class, and `Transition`.
- `haxspec.crypto` — Diffie-Hellman over X25519, X448, P-256, P-384 and P-521
  (`dh_scalar_multiply`, `dh_scalar_multiply_base`), AEAD with AES-128-GCM,
  AES-256-GCM and ChaCha20-Poly1305 (`aead_encrypt`, `aead_decrypt`), hashing
  (`digest`) and `hmac`.
- `haxspec.command` and `haxspec.harness` — build and run `cargo-hax`, and the
  snapshot harness behind the `haxspec-harness` command.

## Contracts

A precondition's parameters name the arguments it reads; a postcondition's
first parameter binds the result. Contracts are recorded, not enforced on
every call: evaluate them with `Decoration.check`.

```python
from haxspec.decoration import FnDecorationKind
from haxspec.logic import implies
from haxspec.markers import decorations_of, ensures, requires


@requires(lambda x, y, z: x > 10 and y > 10 and z > 10)
@ensures(lambda result: implies(True, lambda: result > 32))
def add3(x, y, z):
    return x + y + z


pre = next(d for d in decorations_of(add3) if d.kind is FnDecorationKind.REQUIRES)
post = next(d for d in decorations_of(add3) if d.kind is FnDecorationKind.ENSURES)
pre.check(11, 12, 13)                 # True
post.check(11, 12, 13, result=36)     # True
```

A receiver named `self` may be read by a predicate as `self` or `self_`.

A lemma annotated `-> bool` states its formula as its return value; the
formula becomes a postcondition and calling the lemma returns `None`. A lemma
annotated `-> None`, or unannotated, states nothing; any other return
annotation raises `TypeError`.

```python
from haxspec.markers import lemma


@lemma
def add3_lemma(x) -> bool:
    return x <= 10 or x >= 90000 // 3 or add3(x, x, x) == x * 3
```

## Field refinements

Place `refine(predicate)` in an `Annotated` field type and decorate the class
with `attributes`. A predicate may read its own field and the fields declared
before it. Annotations must be evaluated (no `from __future__ import
annotations` in that module).

```python
from dataclasses import dataclass
from typing import Annotated

from haxspec.markers import attributes, decorations_of, refine


@attributes
@dataclass
class Foo:
    x: int
    y: Annotated[int, refine(lambda y: y > 3)]
    z: Annotated[int, refine(lambda x, y, z: x + y + z > 3)]


[ry, rz] = decorations_of(Foo)
ry.check(Foo(1, 2, 3))   # False
rz.check(Foo(1, 2, 3))   # True
```

## A ping-pong protocol

State classes subclass the bases for the transitions they take. The
decorators check that transitions return the declared types.

```python
from dataclasses import dataclass

from haxspec.errors import InvalidMessage, InvalidPrologue
from haxspec.state_machine import InitialState, ReadState, WriteState
from haxspec.transitions import init, init_empty, read, write


@dataclass
class Message:
    kind: str
    value: int


@dataclass
class A0(InitialState, WriteState):
    data: int

class A1(ReadState):
    pass

@dataclass
class A2:
    received: int

class B0(InitialState, ReadState):
    pass

@dataclass
class B1(WriteState):
    received: int

class B2:
    pass


@init(A0)
def init_a(prologue):
    if len(prologue) < 1:
        raise InvalidPrologue()
    return A0(prologue[0])

@write(A0, A1, Message)
def write_ping(state):
    return A1(), Message("ping", state.data)

@read(A1, A2, Message)
def read_pong(state, msg):
    if msg.kind != "pong":
        raise InvalidMessage()
    return A2(msg.value)

@init_empty(B0)
def init_b():
    return B0()

@read(B0, B1, Message)
def read_ping(state, msg):
    if msg.kind != "ping":
        raise InvalidMessage()
    return B1(msg.value)

@write(B1, B2, Message)
def write_pong(state):
    return B2(), Message("pong", state.received)


a = A0.init(b"\x01")
b = B0.init()
a, msg = a.write()
b = b.read(msg)
b, msg = b.write()
a = a.read(msg)          # A2(received=1)
```

`init` raises `InvalidPrologue` when no prologue is given; `init_empty` raises
it when one is. A state with several read transitions needs the target named:
`state.read(msg, NextState)`.

## Running the harness

The harness reads the `hax-tests` tables from the package metadata of a Cargo
workspace (by default `../tests/Cargo.toml`), runs `cargo-hax` on each case
and compares the outcome with what the case expects:

```
haxspec-harness
haxspec-harness --list
haxspec-harness some-name --include-ignored
```

Options: a name filter (with `--exact` for exact matches), `--ignored` (only
optional cases), `--include-ignored`, `--list` and `--manifest-path`. The
command exits with 101 when a case fails.

Each case runs twice, so that dependency build messages stay out of the
recorded output. Snapshots are JSON files under
`test-harness/src/snapshots/` next to the workspace; the first run writes
them, and a mismatch writes the new snapshot beside the old one with a `.new`
suffix and fails the case.

Unless `CARGO_TESTS_ASSUME_BUILT` is `yes`, `y`, `true` or `1`, the workspace
above the current directory is built first with `cargo build --workspace
--bins` and `dune build` in its `engine` directory (`DUNEJOBS` sets dune's
`-j`; `CARGO_TARGET_DIR` is honoured).

## What this package does not do

- It does not translate or verify anything itself. Payloads and contracts are
  recorded on Python objects; the harness only runs an external `cargo-hax`
  toolchain, which must be available together with `cargo` and `dune`.
- Contracts are not checked automatically when a decorated function is called.
- Keys, scalars and nonces in `haxspec.crypto` are caller-supplied bytes; the
  module does not generate randomness or manage keys.
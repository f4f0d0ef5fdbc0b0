"""Decorators that mark Python items for the verification toolchain.

Each marker records one or more attribute payloads on the item it
decorates; :func:`payloads_of` reads them back. Preconditions,
postconditions, lemma statements and field refinements are also kept as
checkable objects, read back with :func:`decorations_of`.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from haxspec.decoration import (
    _PARAMETERS_ATTRIBUTE,
    FnDecorationKind,
    _Param,
    _parameters,
    _ParamKind,
    make_fn_decoration,
)
from haxspec.payload import (
    PAYLOADS_ATTRIBUTE,
    AssociationRole,
    AttrPayload,
    Excluded,
    Included,
    ItemUid,
    PayloadKind,
)

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

DECORATIONS_ATTRIBUTE = "__hax_decorations__"

_LEMMA_RETURN_ERROR = (
    "A lemma is expected to return a `Proof<{STATEMENT}>`, "
    "where {STATEMENT} is a boolean expression."
)

_NO_ANNOTATION: Any = object()


def _namespace(item: Any) -> Any:
    namespace = getattr(item, "__dict__", None)
    if namespace is None:
        raise TypeError(f"cannot mark {item!r}: it has no attribute namespace")
    return namespace


def _push(item: Any, name: str, value: Any) -> None:
    current = _namespace(item).get(name)
    if current is None:
        current = []
        setattr(item, name, current)
    current.append(value)


def _attach(item: T, payload: AttrPayload) -> T:
    _push(item, PAYLOADS_ATTRIBUTE, payload)
    return item


def _require_function(func: Any, marker: str) -> None:
    if not callable(func) or isinstance(func, type):
        raise TypeError(f"@{marker} expects a function, got {func!r}")


def _require_class(cls: Any, marker: str) -> None:
    if not isinstance(cls, type):
        raise TypeError(f"@{marker} expects a class, got {cls!r}")


def payloads_of(item: Any) -> tuple[AttrPayload, ...]:
    """The payloads recorded on ``item``, in the order they were added."""
    namespace = getattr(item, "__dict__", None) or {}
    return tuple(namespace.get(PAYLOADS_ATTRIBUTE, ()))


def decorations_of(item: Any) -> tuple[Any, ...]:
    """The decorations and field refinements recorded on ``item``."""
    namespace = getattr(item, "__dict__", None) or {}
    return tuple(namespace.get(DECORATIONS_ATTRIBUTE, ()))


def include(item: T) -> T:
    """Include this item in the translation."""
    return _attach(item, AttrPayload(PayloadKind.ITEM_STATUS, status=Included(False)))


def exclude(item: T) -> T:
    """Exclude this item from the translation."""
    return _attach(item, AttrPayload(PayloadKind.ITEM_STATUS, status=Excluded()))


def _decorate(func: F, phi: Callable[..., Any], kind: FnDecorationKind) -> F:
    decoration = make_fn_decoration(phi, func, kind)
    _attach(func, decoration.association)
    _push(func, DECORATIONS_ATTRIBUTE, decoration)
    return func


def requires(phi: Callable[..., Any]) -> Callable[[F], F]:
    """Add a precondition; ``phi``'s parameters name the arguments it reads."""

    def decorator(func: F) -> F:
        _require_function(func, "requires")
        return _decorate(func, phi, FnDecorationKind.REQUIRES)

    return decorator


def ensures(phi: Callable[..., Any]) -> Callable[[F], F]:
    """Add a postcondition; ``phi``'s first parameter binds the result."""

    def decorator(func: F) -> F:
        _require_function(func, "ensures")
        return _decorate(func, phi, FnDecorationKind.ENSURES)

    return decorator


def _fresh_binder(taken: set[str]) -> str:
    binder = "_"
    while binder in taken:
        binder += "_"
    return binder


def _statement_of(func: Callable[..., Any]) -> Callable[..., Any]:
    """A postcondition that ignores the result and evaluates ``func``."""
    params = _parameters(func)
    if any(
        p.kind in (_ParamKind.VAR_POSITIONAL, _ParamKind.VAR_KEYWORD) for p in params
    ):
        raise ValueError("a lemma cannot take variadic arguments")
    names = {p.name for p in params} | {"self", "self_"}
    binder = _fresh_binder(names)

    def statement(**values: Any) -> bool:
        values.pop(binder, None)
        positional = [
            values.pop(p.name) for p in params if p.kind is _ParamKind.POSITIONAL_ONLY
        ]
        return bool(func(*positional, **values))

    declared = (_Param(binder, _ParamKind.POSITIONAL_OR_KEYWORD),) + tuple(
        _Param(p.name, _ParamKind.KEYWORD_ONLY) for p in params
    )
    setattr(statement, _PARAMETERS_ATTRIBUTE, declared)
    return statement


def lemma(func: F) -> F:
    """Mark a function as a lemma.

    A lemma annotated ``-> bool`` states its formula as its return value:
    the formula becomes a postcondition and calling the lemma returns
    None. A lemma annotated ``-> None`` or left unannotated states nothing.
    """
    _require_function(func, "lemma")
    annotation = (getattr(func, "__annotations__", None) or {}).get(
        "return", _NO_ANNOTATION
    )
    if annotation is _NO_ANNOTATION or annotation in (None, "None", type(None)):
        return _attach(func, AttrPayload(PayloadKind.LEMMA))
    if annotation not in (bool, "bool"):
        raise TypeError(_LEMMA_RETURN_ERROR)

    @functools.wraps(func)
    def proof(*args: Any, **kwargs: Any) -> None:
        return None

    for name in (PAYLOADS_ATTRIBUTE, DECORATIONS_ATTRIBUTE):
        if name in vars(proof):
            setattr(proof, name, list(vars(proof)[name]))
    proof.__annotations__ = {**getattr(func, "__annotations__", {}), "return": None}
    _attach(proof, AttrPayload(PayloadKind.LEMMA))
    decoration = make_fn_decoration(_statement_of(func), func, FnDecorationKind.ENSURES)
    _attach(proof, decoration.association)
    _push(proof, DECORATIONS_ATTRIBUTE, decoration)
    return proof  # type: ignore[return-value]


@dataclass(frozen=True)
class _Refine:
    predicate: Callable[..., Any]


def refine(predicate: Callable[..., Any]) -> _Refine:
    """A field refinement, placed as ``Annotated[T, refine(predicate)]``.

    The predicate's parameters name this field or fields declared before it.
    Refinements take effect on classes decorated with :func:`attributes`.
    """
    if not callable(predicate):
        raise TypeError(f"a refinement must be callable, got {predicate!r}")
    return _Refine(predicate)


@dataclass(frozen=True)
class _FieldRefinement:
    field: str
    predicate: Callable[..., Any]
    uid: ItemUid
    binders: tuple[str, ...]

    @property
    def association(self) -> AttrPayload:
        return AttrPayload(
            PayloadKind.ASSOCIATED_ITEM, role=AssociationRole.REFINE, item=self.uid
        )

    @property
    def uid_payload(self) -> AttrPayload:
        return AttrPayload(PayloadKind.UID, item=self.uid)

    @property
    def status(self) -> AttrPayload:
        return AttrPayload(PayloadKind.ITEM_STATUS, status=Included(late_skip=True))

    def check(self, instance: Any) -> bool:
        """Evaluate the refinement on an instance's fields."""
        return bool(
            self.predicate(**{name: getattr(instance, name) for name in self.binders})
        )


def _binders(predicate: Callable[..., Any]) -> tuple[str, ...]:
    names = []
    for param in _parameters(predicate):
        if param.kind not in (_ParamKind.POSITIONAL_OR_KEYWORD, _ParamKind.KEYWORD_ONLY):
            raise ValueError(
                f"refinement parameter {param.name!r} must be a plain named parameter"
            )
        names.append(param.name)
    return tuple(names)


def _field_annotations(cls: type) -> dict[str, Any]:
    """Field annotations of ``cls`` and its bases, base fields first.

    Annotations written as strings are kept as they are; refinements are
    only found in evaluated annotations.
    """
    merged: dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        merged.update(vars(klass).get("__annotations__", {}))
    return merged


def attributes(cls: type) -> type:
    """Enable field refinements in a class and in the classes nested in it."""
    _require_class(cls, "attributes")
    for value in list(vars(cls).values()):
        if isinstance(value, type) and value.__qualname__.startswith(
            cls.__qualname__ + "."
        ):
            attributes(value)
    hints = _field_annotations(cls)
    names = list(hints)
    for index, name in enumerate(names):
        marker = next(
            (m for m in getattr(hints[name], "__metadata__", ()) if isinstance(m, _Refine)),
            None,
        )
        if marker is None:
            continue
        visible = names[: index + 1]
        binders = _binders(marker.predicate)
        for binder in binders:
            if binder not in visible:
                raise ValueError(
                    f"refinement of {cls.__qualname__}.{name} reads {binder!r}, "
                    f"which is not among the fields {visible}"
                )
        _push(
            cls,
            DECORATIONS_ATTRIBUTE,
            _FieldRefinement(name, marker.predicate, ItemUid.fresh(), binders),
        )
    return cls


def opaque_type(item: T) -> T:
    """Mark a class opaque: its definition is not revealed."""
    _require_class(item, "opaque_type")
    return _attach(item, AttrPayload(PayloadKind.OPAQUE_TYPE))


def process_read(func: F) -> F:
    """Mark a function as a process read."""
    _require_function(func, "process_read")
    return _attach(func, AttrPayload(PayloadKind.PROCESS_READ))


def process_write(func: F) -> F:
    """Mark a function as a process write."""
    _require_function(func, "process_write")
    return _attach(func, AttrPayload(PayloadKind.PROCESS_WRITE))


def process_init(func: F) -> F:
    """Mark a function as a process initialisation."""
    _require_function(func, "process_init")
    return _attach(func, AttrPayload(PayloadKind.PROCESS_INIT))


def protocol_messages(cls: T) -> T:
    """Mark a class as describing the protocol messages."""
    _require_class(cls, "protocol_messages")
    return _attach(cls, AttrPayload(PayloadKind.PROTOCOL_MESSAGES))


def pv_constructor(func: F) -> F:
    """Mark a function to be translated to a process-calculus constructor."""
    _require_function(func, "pv_constructor")
    return _attach(func, AttrPayload(PayloadKind.PV_CONSTRUCTOR))


def pv_handwritten(func: F) -> F:
    """Mark a function as modelled by hand."""
    _require_function(func, "pv_handwritten")
    return _attach(func, AttrPayload(PayloadKind.PV_HANDWRITTEN))
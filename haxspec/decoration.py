"""Function decorations: preconditions, postconditions and termination measures.

A decoration is a predicate whose parameters name the function arguments
it reads. A receiver called ``self`` is exposed as ``self_``; a predicate
may name it either way. A postcondition's first parameter binds the
function's result.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from haxspec.payload import AssociationRole, AttrPayload, Included, ItemUid, PayloadKind

SELF_NAME = "self"
SELF_IDENT = "self_"

_CO_VARARGS = 0x04
_CO_VARKEYWORDS = 0x08
_PARAMETERS_ATTRIBUTE = "__hax_parameters__"
_MISSING: Any = object()


class _ParamKind(Enum):
    POSITIONAL_ONLY = "positional only"
    POSITIONAL_OR_KEYWORD = "positional or keyword"
    VAR_POSITIONAL = "variadic positional"
    KEYWORD_ONLY = "keyword only"
    VAR_KEYWORD = "variadic keyword"


@dataclass(frozen=True)
class _Param:
    name: str
    kind: _ParamKind
    default: Any = _MISSING

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING


def _parameters(func: Any) -> tuple[_Param, ...]:
    """The parameters of a Python function, bound method or callable object."""
    declared = getattr(func, _PARAMETERS_ATTRIBUTE, None)
    if declared is not None:
        return tuple(declared)
    wrapped = getattr(func, "__wrapped__", None)
    if wrapped is not None:
        return _parameters(wrapped)
    inner = getattr(func, "__func__", None)
    if inner is not None and getattr(func, "__self__", None) is not None:
        return _parameters(inner)[1:]
    code = getattr(func, "__code__", None)
    if code is None:
        call = None if isinstance(func, type) else getattr(type(func), "__call__", None)
        if call is not None and hasattr(call, "__code__"):
            return _parameters(call)[1:]
        raise TypeError(f"cannot read the parameters of {func!r}")

    names = code.co_varnames
    positional = code.co_argcount
    kwonly = code.co_kwonlyargcount
    defaults = getattr(func, "__defaults__", None) or ()
    kwdefaults = getattr(func, "__kwdefaults__", None) or {}
    first_default = positional - len(defaults)

    params = []
    for index, name in enumerate(names[:positional]):
        kind = (
            _ParamKind.POSITIONAL_ONLY
            if index < code.co_posonlyargcount
            else _ParamKind.POSITIONAL_OR_KEYWORD
        )
        default = defaults[index - first_default] if index >= first_default else _MISSING
        params.append(_Param(name, kind, default))
    for name in names[positional : positional + kwonly]:
        params.append(_Param(name, _ParamKind.KEYWORD_ONLY, kwdefaults.get(name, _MISSING)))
    extra = positional + kwonly
    if code.co_flags & _CO_VARARGS:
        params.append(_Param(names[extra], _ParamKind.VAR_POSITIONAL))
        extra += 1
    if code.co_flags & _CO_VARKEYWORDS:
        params.append(_Param(names[extra], _ParamKind.VAR_KEYWORD))
    return tuple(params)


def _bind(
    params: tuple[_Param, ...], args: tuple[Any, ...], kwargs: Mapping[str, Any]
) -> dict[str, Any]:
    values: dict[str, Any] = {}
    remaining = dict(kwargs)
    pending = deque(args)
    var_keyword: Optional[_Param] = None
    for param in params:
        if param.kind is _ParamKind.VAR_POSITIONAL:
            values[param.name] = tuple(pending)
            pending.clear()
            continue
        if param.kind is _ParamKind.VAR_KEYWORD:
            var_keyword = param
            continue
        positional = param.kind in (
            _ParamKind.POSITIONAL_ONLY,
            _ParamKind.POSITIONAL_OR_KEYWORD,
        )
        if positional and pending:
            if param.kind is _ParamKind.POSITIONAL_OR_KEYWORD and param.name in remaining:
                raise TypeError(f"multiple values for argument {param.name!r}")
            values[param.name] = pending.popleft()
            continue
        if param.kind is not _ParamKind.POSITIONAL_ONLY and param.name in remaining:
            values[param.name] = remaining.pop(param.name)
            continue
        if param.has_default:
            values[param.name] = param.default
            continue
        raise TypeError(f"missing a required argument: {param.name!r}")
    if pending:
        raise TypeError("too many positional arguments")
    if var_keyword is not None:
        values[var_keyword.name] = remaining
    elif remaining:
        raise TypeError(f"got an unexpected keyword argument {next(iter(remaining))!r}")
    return values


class FnDecorationKind(Enum):
    """The kinds of function decoration."""

    REQUIRES = "requires"
    ENSURES = "ensures"
    DECREASES = "decreases"

    def role(self) -> AssociationRole:
        """The association role of this kind of decoration."""
        return _ROLES[self]


_ROLES = {
    FnDecorationKind.REQUIRES: AssociationRole.REQUIRES,
    FnDecorationKind.ENSURES: AssociationRole.ENSURES,
    FnDecorationKind.DECREASES: AssociationRole.DECREASES,
}


def _rename(name: str) -> str:
    return SELF_IDENT if name == SELF_NAME else name


def _predicate_parameters(phi: Callable[..., Any]) -> tuple[str, ...]:
    if not callable(phi):
        raise TypeError(f"a predicate must be callable, got {phi!r}")
    names = []
    for param in _parameters(phi):
        if param.kind not in (_ParamKind.POSITIONAL_OR_KEYWORD, _ParamKind.KEYWORD_ONLY):
            raise ValueError(
                f"predicate parameter {param.name!r} must be a plain named parameter"
            )
        names.append(param.name)
    return tuple(names)


def validate_closure1(phi: Callable[..., Any]) -> str:
    """Return the name of the parameter that binds the result in ``phi``."""
    params = _predicate_parameters(phi)
    if not params:
        raise ValueError("expected the result binder as the first parameter")
    return params[0]


def bind_arguments(
    func: Callable[..., Any], args: tuple[Any, ...], kwargs: Mapping[str, Any]
) -> dict[str, Any]:
    """Bind a call's arguments to ``func``'s parameter names, defaults included."""
    bound = _bind(_parameters(func), tuple(args), kwargs)
    return {_rename(name): value for name, value in bound.items()}


@dataclass(frozen=True)
class Decoration:
    """A predicate attached to a function under a unique identifier."""

    kind: FnDecorationKind
    phi: Callable[..., Any]
    func: Callable[..., Any]
    uid: ItemUid
    binder: Optional[str]
    reads: tuple[str, ...]

    @property
    def association(self) -> AttrPayload:
        """The payload placed on the decorated function."""
        return AttrPayload(
            PayloadKind.ASSOCIATED_ITEM, role=self.kind.role(), item=self.uid
        )

    @property
    def uid_payload(self) -> AttrPayload:
        """The payload placed on the decoration itself."""
        return AttrPayload(PayloadKind.UID, item=self.uid)

    @property
    def status(self) -> AttrPayload:
        """The decoration is dropped just before code generation."""
        return AttrPayload(PayloadKind.ITEM_STATUS, status=Included(late_skip=True))

    def check(self, *args: Any, **kwargs: Any) -> Any:
        """Evaluate the predicate on a call's arguments.

        A postcondition takes the result as a keyword argument named by
        its binder. A termination measure returns the measure itself.
        """
        call: dict[str, Any] = {}
        if self.binder is not None:
            if self.binder not in kwargs:
                raise TypeError(f"missing the result argument {self.binder!r}")
            call[self.binder] = kwargs.pop(self.binder)
        values = bind_arguments(self.func, args, kwargs)
        for name in self.reads:
            call[name] = values[_rename(name)]
        outcome = self.phi(**call)
        if self.kind is FnDecorationKind.DECREASES:
            return outcome
        return bool(outcome)


def make_fn_decoration(
    phi: Callable[..., Any], func: Callable[..., Any], kind: FnDecorationKind
) -> Decoration:
    """Attach ``phi`` to ``func`` as a decoration of ``kind``."""
    if not isinstance(kind, FnDecorationKind):
        raise TypeError(f"expected a decoration kind, got {kind!r}")
    func_names = {_rename(param.name) for param in _parameters(func)}
    params = _predicate_parameters(phi)
    binder: Optional[str] = None
    reads = params
    if kind is FnDecorationKind.ENSURES:
        binder = validate_closure1(phi)
        if _rename(binder) in func_names:
            raise ValueError(
                f"result binder {binder!r} shadows an argument of {func.__qualname__}"
            )
        reads = params[1:]
    for name in reads:
        if _rename(name) in func_names:
            continue
        if name in (SELF_NAME, SELF_IDENT):
            raise ValueError("Detected a `self`")
        raise ValueError(
            f"predicate parameter {name!r} is not an argument of {func.__qualname__}"
        )
    return Decoration(kind, phi, func, ItemUid.fresh(), binder, tuple(reads))
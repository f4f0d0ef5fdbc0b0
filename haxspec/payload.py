"""Attribute payloads that mark items for the verification toolchain.

Every payload serialises to JSON and is carried by one attribute of the
form ``#[cfg_attr(hax_compilation, _hax::json("<payload>"))]``.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

HAX_TOOL = "_hax"
HAX_CFG_OPTION_NAME = "hax_compilation"
DEBUG_OR_HAX_CFG_EXPR = f"any({HAX_CFG_OPTION_NAME}, debug_assertion)"

# Name of the attribute under which Python items keep their payloads.
PAYLOADS_ATTRIBUTE = "__hax_payloads__"


@dataclass(frozen=True)
class ItemUid:
    """A unique identifier that links an attribute to a generated item."""

    uid: str

    @classmethod
    def fresh(cls) -> ItemUid:
        """Return a new identifier built from a random UUID."""
        return cls(uuid.uuid4().hex)

    def _to_data(self) -> dict[str, str]:
        return {"uid": self.uid}

    @classmethod
    def _from_data(cls, data: Any) -> ItemUid:
        if not isinstance(data, dict) or not isinstance(data.get("uid"), str):
            raise ValueError(f"expected an item uid object, got {data!r}")
        return cls(data["uid"])


@dataclass(frozen=True)
class Included:
    """Include the item in the translation."""

    late_skip: bool = False


@dataclass(frozen=True)
class Excluded:
    """Exclude the item from the translation, optionally naming a model."""

    modeled_by: Optional[str] = None


ItemStatus = Union[Included, Excluded]


class AssociationRole(Enum):
    """The role an associated item plays for the item it decorates."""

    REQUIRES = "Requires"
    ENSURES = "Ensures"
    DECREASES = "Decreases"
    REFINE = "Refine"
    PROCESS_READ = "ProcessRead"
    PROCESS_WRITE = "ProcessWrite"
    PROCESS_INIT = "ProcessInit"
    PROTOCOL_MESSAGES = "ProtocolMessages"


class PayloadKind(Enum):
    """The variants an attribute payload can take."""

    ITEM_STATUS = "ItemStatus"
    ASSOCIATED_ITEM = "AssociatedItem"
    UID = "Uid"
    LEMMA = "Lemma"
    LANGUAGE = "Language"
    PROCESS_READ = "ProcessRead"
    PROCESS_WRITE = "ProcessWrite"
    PROCESS_INIT = "ProcessInit"
    PROTOCOL_MESSAGES = "ProtocolMessages"
    PV_CONSTRUCTOR = "PVConstructor"
    PV_HANDWRITTEN = "PVHandwritten"
    TRAIT_METHOD_NO_PRE_POST = "TraitMethodNoPrePost"
    OPAQUE_TYPE = "OpaqueType"


_DATA_KINDS = frozenset(
    {PayloadKind.ITEM_STATUS, PayloadKind.ASSOCIATED_ITEM, PayloadKind.UID}
)

_RUST_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\0": "\\0",
}


def _rust_string_literal(text: str) -> str:
    return '"' + "".join(_RUST_ESCAPES.get(char, char) for char in text) + '"'


def _payload_kind(tag: Any) -> PayloadKind:
    try:
        return PayloadKind(tag)
    except ValueError:
        raise ValueError(f"unknown payload variant {tag!r}") from None


def _status_from_data(data: Any) -> ItemStatus:
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(f"expected an item status object, got {data!r}")
    ((tag, body),) = data.items()
    if not isinstance(body, dict):
        raise ValueError(f"expected an object for item status {tag!r}")
    if tag == "Included":
        late_skip = body.get("late_skip")
        if not isinstance(late_skip, bool):
            raise ValueError("item status Included needs a boolean late_skip")
        return Included(late_skip)
    if tag == "Excluded":
        modeled_by = body.get("modeled_by")
        if modeled_by is not None and not isinstance(modeled_by, str):
            raise ValueError("item status Excluded needs a string or null modeled_by")
        return Excluded(modeled_by)
    raise ValueError(f"unknown item status {tag!r}")


@dataclass(frozen=True)
class AttrPayload:
    """One attribute payload: a kind plus the data that kind carries."""

    kind: PayloadKind
    status: Optional[ItemStatus] = None
    role: Optional[AssociationRole] = None
    item: Optional[ItemUid] = None

    def __post_init__(self) -> None:
        if self.kind is PayloadKind.ITEM_STATUS:
            if not isinstance(self.status, (Included, Excluded)):
                raise ValueError("an ItemStatus payload needs a status")
            if self.role is not None or self.item is not None:
                raise ValueError("an ItemStatus payload carries only a status")
        elif self.kind is PayloadKind.ASSOCIATED_ITEM:
            if not isinstance(self.role, AssociationRole) or not isinstance(
                self.item, ItemUid
            ):
                raise ValueError("an AssociatedItem payload needs a role and an item")
            if self.status is not None:
                raise ValueError("an AssociatedItem payload carries no status")
        elif self.kind is PayloadKind.UID:
            if not isinstance(self.item, ItemUid):
                raise ValueError("a Uid payload needs an item uid")
            if self.status is not None or self.role is not None:
                raise ValueError("a Uid payload carries only an item uid")
        elif any(v is not None for v in (self.status, self.role, self.item)):
            raise ValueError(f"payload {self.kind.value} carries no data")

    def _to_data(self) -> Any:
        if self.kind not in _DATA_KINDS:
            return self.kind.value
        if self.kind is PayloadKind.ITEM_STATUS:
            status = self.status
            if isinstance(status, Included):
                inner: Any = {"Included": {"late_skip": status.late_skip}}
            else:
                inner = {"Excluded": {"modeled_by": status.modeled_by}}
        elif self.kind is PayloadKind.ASSOCIATED_ITEM:
            inner = {"role": self.role.value, "item": self.item._to_data()}
        else:
            inner = self.item._to_data()
        return {self.kind.value: inner}

    def to_json(self) -> str:
        """Serialise the payload to compact JSON."""
        return json.dumps(self._to_data(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> AttrPayload:
        """Parse a payload from its JSON form; raise ValueError when malformed."""
        data = json.loads(text)
        if isinstance(data, str):
            kind = _payload_kind(data)
            if kind in _DATA_KINDS:
                raise ValueError(f"payload variant {data!r} needs data")
            return cls(kind)
        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError(f"expected a single-variant payload, got {data!r}")
        ((tag, body),) = data.items()
        kind = _payload_kind(tag)
        if kind is PayloadKind.ITEM_STATUS:
            return cls(kind, status=_status_from_data(body))
        if kind is PayloadKind.ASSOCIATED_ITEM:
            if not isinstance(body, dict):
                raise ValueError("an AssociatedItem payload needs an object")
            try:
                role = AssociationRole(body.get("role"))
            except ValueError:
                raise ValueError(f"unknown association role {body.get('role')!r}") from None
            return cls(kind, role=role, item=ItemUid._from_data(body.get("item")))
        if kind is PayloadKind.UID:
            return cls(kind, item=ItemUid._from_data(body))
        raise ValueError(f"payload variant {tag!r} carries no data")

    def to_attribute(self) -> str:
        """Render the attribute that carries this payload."""
        literal = _rust_string_literal(self.to_json())
        return f"#[cfg_attr({HAX_CFG_OPTION_NAME}, {HAX_TOOL}::json({literal}))]"
"""
Ordered field descriptors for the billing program's Borsh-style byte layout.

Every encoder and decoder in ``app.program.codec`` walks one of the tuples
below; nothing else computes offsets by hand.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from app.core.exceptions import AccountTooSmallError, ImplausibleValuesError
from app.program.pubkey import PUBKEY_LENGTH, Pubkey, to_pubkey


@dataclass(frozen=True)
class FieldSpec:
    """One fixed-width field: struct format (little-endian) or a 32-byte address."""

    name: str
    kind: str
    optional: bool = False

    @property
    def width(self) -> int:
        return _WIDTHS[self.kind]


_FORMATS: Dict[str, str] = {
    "u8": "<B",
    "bool": "<B",
    "u64": "<Q",
    "i64": "<q",
}
_WIDTHS: Dict[str, int] = {
    "u8": 1,
    "bool": 1,
    "u64": 8,
    "i64": 8,
    "pubkey": PUBKEY_LENGTH,
}

OPTION_TAG_WIDTH = 1

SUBSCRIPTION_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("authority", "pubkey"),
    FieldSpec("recipient", "pubkey"),
    FieldSpec("user_token_account", "pubkey"),
    FieldSpec("recipient_token_account", "pubkey"),
    FieldSpec("token_mint", "pubkey"),
    FieldSpec("amount_per_period", "u64"),
    FieldSpec("interval_seconds", "i64"),
    FieldSpec("last_charge_timestamp", "i64"),
    FieldSpec("created_at", "i64"),
    FieldSpec("expires_at", "i64", optional=True),
    FieldSpec("is_active", "bool"),
    FieldSpec("total_charged", "u64"),
    FieldSpec("bump", "u8"),
)

INITIALIZE_ARGS: Tuple[FieldSpec, ...] = (
    FieldSpec("amount_per_period", "u64"),
    FieldSpec("interval_seconds", "i64"),
    FieldSpec("expires_at", "i64", optional=True),
)

UPDATE_ARGS: Tuple[FieldSpec, ...] = (
    FieldSpec("new_amount", "u64", optional=True),
    FieldSpec("new_interval", "i64", optional=True),
    FieldSpec("new_expires_at", "i64", optional=True),
)


def min_size(fields: Iterable[FieldSpec]) -> int:
    """Smallest encoding: every optional field absent (tag byte only)."""
    return sum(OPTION_TAG_WIDTH if f.optional else f.width for f in fields)


def max_size(fields: Iterable[FieldSpec]) -> int:
    return sum(f.width + (OPTION_TAG_WIDTH if f.optional else 0) for f in fields)


def _pack_value(desc: FieldSpec, value: Any) -> bytes:
    if desc.kind == "pubkey":
        return bytes(to_pubkey(value))
    if desc.kind == "bool":
        return struct.pack("<B", 1 if value else 0)
    try:
        return struct.pack(_FORMATS[desc.kind], value)
    except struct.error as exc:
        raise ValueError(f"{desc.name} out of range for {desc.kind}: {value!r}") from exc


def encode_fields(fields: Iterable[FieldSpec], values: Mapping[str, Any]) -> bytes:
    out = bytearray()
    for desc in fields:
        value = values.get(desc.name)
        if desc.optional:
            if value is None:
                out.append(0)
                continue
            out.append(1)
        elif value is None:
            raise ValueError(f"Missing required field {desc.name}")
        out += _pack_value(desc, value)
    return bytes(out)


def _take(data: bytes, offset: int, width: int, name: str) -> bytes:
    end = offset + width
    if end > len(data):
        raise AccountTooSmallError(
            f"Buffer ends at {len(data)} bytes while reading {name} ({offset}..{end})"
        )
    return data[offset:end]


def _read_flag(data: bytes, offset: int, name: str) -> bool:
    tag = _take(data, offset, 1, name)[0]
    if tag not in (0, 1):
        raise ImplausibleValuesError(f"Invalid {name} byte: {tag}")
    return tag == 1


def decode_fields(
    fields: Iterable[FieldSpec],
    data: bytes,
    offset: int = 0,
) -> Tuple[Dict[str, Any], int]:
    """Read fields in declaration order; return the values and the end offset.

    Option tags are read first and the payload only when the tag says present.
    """
    values: Dict[str, Optional[Any]] = {}
    for desc in fields:
        if desc.optional:
            present = _read_flag(data, offset, f"{desc.name} tag")
            offset += OPTION_TAG_WIDTH
            if not present:
                values[desc.name] = None
                continue
        chunk = _take(data, offset, desc.width, desc.name)
        if desc.kind == "pubkey":
            values[desc.name] = Pubkey(chunk)
        elif desc.kind == "bool":
            values[desc.name] = _read_flag(data, offset, desc.name)
        else:
            values[desc.name] = struct.unpack(_FORMATS[desc.kind], chunk)[0]
        offset += desc.width
    return values, offset

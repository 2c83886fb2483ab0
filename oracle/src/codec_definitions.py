"""Network-provided binary codec definitions.

xrpl-py ships the XRP Ledger's definitions.json. Xahau adds transaction types
and fields the bundled file lacks (SetRemarks, Remarks, Remark, RemarkName,
RemarkValue), so a transaction using them cannot be encoded until the node's
own definitions, published through the server_definitions method, are merged
into xrpl-py's codec tables.

The tables are process-wide; the network's entries take precedence over the
bundled ones.
"""

import logging
from typing import Any

from xrpl.core.binarycodec.definitions import FieldHeader, FieldInfo
from xrpl.core.binarycodec.definitions import definitions as codec

logger = logging.getLogger(__name__)

# Enum tables of the definitions and their code -> name reverse maps.
ENUM_TABLES = {
    "TRANSACTION_TYPES": "_TRANSACTION_TYPE_CODE_TO_STR_MAP",
    "TRANSACTION_RESULTS": "_TRANSACTION_RESULTS_CODE_TO_STR_MAP",
    "LEDGER_ENTRY_TYPES": "_LEDGER_ENTRY_TYPES_CODE_TO_STR_MAP",
}

_applied_hash: str | None = None


def _parse_fields(
    fields: list, types: dict[str, int]
) -> list[tuple[str, FieldInfo, FieldHeader]]:
    parsed = []
    for name, entry in fields:
        info = FieldInfo(
            entry["nth"],
            entry["isVLEncoded"],
            entry["isSerialized"],
            entry["isSigningField"],
            entry["type"],
        )
        parsed.append((name, info, FieldHeader(types[info.type], info.nth)))
    return parsed


def _field_key(info: FieldInfo) -> tuple:
    return (
        info.nth,
        info.is_variable_length_encoded,
        info.is_serialized,
        info.is_signing_field,
        info.type,
    )


def merge_definitions(definitions: dict[str, Any]) -> int:
    """Merge a server_definitions result into xrpl-py's codec tables.

    Nothing is changed unless the whole result parses. A result whose hash
    was already applied is skipped.

    :param definitions: Result of a server_definitions request.
    :returns: Number of fields and enum values added or changed.
    :raises ValueError: If the definitions are malformed.
    """
    global _applied_hash

    digest = definitions.get("hash")
    if digest is not None and digest == _applied_hash:
        return 0

    try:
        types = {str(name): int(code) for name, code in definitions["TYPES"].items()}
        known_types = {**codec._TYPE_ORDINAL_MAP, **types}
        fields = _parse_fields(definitions["FIELDS"], known_types)
        enums = {
            table: {str(name): int(code) for name, code in definitions.get(table, {}).items()}
            for table in ENUM_TABLES
        }
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ValueError(f"Malformed server definitions: {e!r}") from e

    changed = 0
    codec._TYPE_ORDINAL_MAP.update(types)

    for name, info, header in fields:
        previous = codec._FIELD_INFO_MAP.get(name)
        if previous is not None and _field_key(previous) == _field_key(info):
            continue
        codec._FIELD_INFO_MAP[name] = info
        codec._FIELD_HEADER_NAME_MAP[header] = name
        changed += 1

    for table, reverse_name in ENUM_TABLES.items():
        forward = codec._DEFINITIONS[table]
        reverse = getattr(codec, reverse_name)
        for name, code in enums[table].items():
            if forward.get(name) == code:
                continue
            forward[name] = code
            reverse[code] = name
            changed += 1

    _applied_hash = digest
    logger.debug(f"Merged {changed} codec definitions (hash {digest})")
    return changed


def has_transaction_type(name: str) -> bool:
    """Check whether the codec can encode the given transaction type."""
    return name in codec._DEFINITIONS["TRANSACTION_TYPES"]


def reset_applied_hash() -> None:
    """Forget the last applied hash so the next merge is not skipped."""
    global _applied_hash
    _applied_hash = None

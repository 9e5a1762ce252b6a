"""
Flattens arbitrary object graphs (cycles and shared references included) into a list of
JSON-friendly records, and rebuilds them.

Every container or object reached for the first time gets the next free index in the
record list; any later reference to the same object is written as ``{"ref": index}``.
Decoding first allocates an empty shell per record and only then fills the shells, so a
reference may point forward or backward in the list. Tuples and frozensets cannot be
filled after creation, so they are built the first time something refers to them.
"""
import dataclasses
import json
from typing import Any, Dict, List

REF = "ref"
TYPE = "$type"
VALUES = "$values"
ITEMS = "$items"
SET_TAG = "Set"
DICT_TAG = "dict"
TUPLE_TAG = "tuple"
FROZENSET_TAG = "frozenset"

_PRIMITIVES = (bool, int, float, str)
_IMMUTABLES = {TUPLE_TAG: tuple, FROZENSET_TAG: frozenset}

# Tags that decode back into real instances; anything else becomes a plain dict
_registry: Dict[str, type] = {}


class GraphCodecError(ValueError):
    """Raised when an encoded graph is malformed."""


class UnknownReferenceError(GraphCodecError):
    """Raised when a back-reference points outside the record list."""


def register(cls):
    """Class decorator making ``cls`` reconstructable by :func:`decode`."""
    _registry[cls.__name__] = cls
    return cls


def _field_names(obj) -> List[str]:
    names = getattr(type(obj), "__codec_fields__", None)
    if names is not None:
        return list(names)
    if dataclasses.is_dataclass(obj):
        return [f.name for f in dataclasses.fields(obj)]
    return list(vars(obj))


def encode(root: Any) -> List[Any]:
    """Encodes the graph reachable from ``root``; ``root`` is always record 0."""
    if root is None or isinstance(root, _PRIMITIVES):
        raise TypeError("Root of an encoded graph must be a container or an object")
    records: List[Any] = []
    _flatten(root, records, {})
    return records


def _flatten(value: Any, records: List[Any], table: Dict[int, int]) -> Any:
    if value is None or isinstance(value, _PRIMITIVES):
        return value

    index = table.get(id(value))
    if index is not None:
        return {REF: index}

    index = len(records)
    records.append(None)
    table[id(value)] = index

    if isinstance(value, list):
        record = [_flatten(item, records, table) for item in value]
    elif isinstance(value, tuple):
        record = {TYPE: TUPLE_TAG, VALUES: [_flatten(item, records, table) for item in value]}
    elif isinstance(value, frozenset):
        record = {TYPE: FROZENSET_TAG, VALUES: [_flatten(item, records, table) for item in value]}
    elif isinstance(value, set):
        record = {TYPE: SET_TAG, VALUES: [_flatten(item, records, table) for item in value]}
    elif isinstance(value, dict):
        record = {
            TYPE: DICT_TAG,
            ITEMS: [[_flatten(k, records, table), _flatten(v, records, table)] for k, v in value.items()],
        }
    else:
        record = {TYPE: type(value).__name__}
        for name in _field_names(value):
            record[name] = _flatten(getattr(value, name), records, table)

    records[index] = record
    return {REF: index}


def _allocate(record: Any) -> Any:
    if isinstance(record, list):
        return []
    if not isinstance(record, dict) or not isinstance(record.get(TYPE), str):
        raise GraphCodecError(f"Malformed record: {record!r}")
    tag = record[TYPE]
    if tag in _IMMUTABLES:
        return None
    if tag == SET_TAG:
        return set()
    if tag == DICT_TAG:
        return {}
    cls = _registry.get(tag)
    if cls is None:
        return {}
    return cls.__new__(cls)


def decode(records: List[Any]) -> Any:
    """Rebuilds the graph encoded by :func:`encode` and returns its root."""
    if not isinstance(records, list):
        raise GraphCodecError("Encoded graph must be a list of records")
    if not records:
        return None

    # Phase 1: one empty shell per record; immutable records wait in ``pending``
    shells = [_allocate(record) for record in records]
    pending = {
        index for index, record in enumerate(records)
        if isinstance(record, dict) and record[TYPE] in _IMMUTABLES
    }
    building = set()

    def build(index: int) -> Any:
        if index in building:
            raise GraphCodecError(f"Record {index} contains itself")
        building.add(index)
        record = records[index]
        values = [resolve(item) for item in record.get(VALUES, [])]
        try:
            shells[index] = _IMMUTABLES[record[TYPE]](values)
        except TypeError as e:
            raise GraphCodecError(f"Record {index} holds an unhashable member: {e}") from e
        building.discard(index)
        pending.discard(index)
        return shells[index]

    def resolve(value: Any) -> Any:
        if isinstance(value, dict):
            index = value.get(REF)
            if type(index) is not int or not 0 <= index < len(shells):
                raise UnknownReferenceError(f"Reference {value!r} is outside the {len(shells)} allocated records")
            if index in pending:
                return build(index)
            return shells[index]
        if isinstance(value, list):
            raise GraphCodecError(f"Nested sequence where a value was expected: {value!r}")
        return value

    # Phase 2: fill every shell
    for index, (record, shell) in enumerate(zip(records, shells)):
        if isinstance(record, list):
            shell.extend(resolve(item) for item in record)
            continue
        tag = record[TYPE]
        if tag in _IMMUTABLES:
            if index in pending:
                build(index)
        elif tag == SET_TAG:
            try:
                for item in record.get(VALUES, []):
                    shell.add(resolve(item))
            except TypeError as e:
                raise GraphCodecError(f"Record {index} holds an unhashable member: {e}") from e
        elif tag == DICT_TAG:
            for pair in record.get(ITEMS, []):
                if not isinstance(pair, list) or len(pair) != 2:
                    raise GraphCodecError(f"Malformed mapping item: {pair!r}")
                try:
                    shell[resolve(pair[0])] = resolve(pair[1])
                except TypeError as e:
                    raise GraphCodecError(f"Record {index} has an unhashable key: {e}") from e
        else:
            for key, value in record.items():
                if key.startswith("$"):
                    continue
                if isinstance(shell, dict):
                    shell[key] = resolve(value)
                else:
                    setattr(shell, key, resolve(value))

    return shells[0]


def dumps(root: Any) -> str:
    return json.dumps(encode(root), ensure_ascii=False)


def loads(text: str) -> Any:
    return decode(json.loads(text))

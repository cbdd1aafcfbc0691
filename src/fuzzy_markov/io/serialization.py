"""JSON persistence for fuzzy Markov blocks.

Blocks are stored as a typed envelope::

    {"type": "fuzzy_markov.Block", "version": 1, "data": {...}}

:func:`deserialize` reads the type tag and hands the payload to the matching
factory. Malformed input always raises :class:`DeserializationError` and never
yields a partially built block.
"""

from pathlib import Path
from typing import Any, Callable, Dict, Union
import json
import logging

import numpy as np

from ..core.autodiff import Variable
from ..core.block import Block, StateEntry
from ..exceptions import DeserializationError

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def block_to_dict(block: Block) -> Dict[str, Any]:
    """Plain-Python view of a block's parameters."""
    return {
        'alphabet_size': block.alphabet_size,
        'state_count': block.state_count,
        'start_logits': block.start.vector.tolist(),
        'entries': [
            {
                'output': entry.output.vector.tolist(),
                'transitions': [row.vector.tolist() for row in entry.transitions]
            }
            for entry in block.entries
        ]
    }


def _vector(value: Any, length: int, where: str) -> Variable:
    if not isinstance(value, list):
        raise DeserializationError(f"{where} must be a list of numbers")
    try:
        vector = np.array(value, dtype=float)
    except (TypeError, ValueError) as exc:
        raise DeserializationError(f"{where} contains non-numeric values") from exc
    if vector.shape != (length,):
        raise DeserializationError(f"{where} must have length {length}, got shape {vector.shape}")
    return Variable(vector)


def block_from_dict(data: Dict[str, Any]) -> Block:
    """Rebuild a block from :func:`block_to_dict` output.

    Raises
    ------
    DeserializationError
        If any field is missing, mistyped or has the wrong shape
    """
    if not isinstance(data, dict):
        raise DeserializationError("Block payload must be an object")
    try:
        alphabet_size = data['alphabet_size']
        state_count = data['state_count']
        start_logits = data['start_logits']
        raw_entries = data['entries']
    except KeyError as exc:
        raise DeserializationError(f"Block payload missing field {exc}") from exc

    for name, value in (('alphabet_size', alphabet_size), ('state_count', state_count)):
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise DeserializationError(f"{name} must be a positive integer, got {value!r}")
    if not isinstance(raw_entries, list) or len(raw_entries) != state_count:
        raise DeserializationError(f"entries must be a list of {state_count} states")

    start = _vector(start_logits, state_count, 'start_logits')
    entries = []
    for idx, raw in enumerate(raw_entries):
        if not isinstance(raw, dict) or 'output' not in raw or 'transitions' not in raw:
            raise DeserializationError(f"entries[{idx}] must have 'output' and 'transitions'")
        output = _vector(raw['output'], alphabet_size, f"entries[{idx}].output")
        rows = raw['transitions']
        if not isinstance(rows, list) or len(rows) != alphabet_size:
            raise DeserializationError(f"entries[{idx}].transitions must have {alphabet_size} rows")
        transitions = [_vector(row, state_count, f"entries[{idx}].transitions[{symbol}]")
                       for symbol, row in enumerate(rows)]
        entries.append(StateEntry(output=output, transitions=transitions))

    return Block(start, entries)


# Type tag -> payload factory
FACTORIES: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    Block.SERIALIZER_TYPE: block_from_dict,
}


def serialize_block(block: Block, indent: Union[int, None] = None) -> bytes:
    """Encode a block as UTF-8 JSON bytes."""
    envelope = {
        'type': Block.SERIALIZER_TYPE,
        'version': FORMAT_VERSION,
        'data': block_to_dict(block)
    }
    return json.dumps(envelope, indent=indent).encode('utf-8')


def deserialize(data: Union[bytes, str]) -> Any:
    """Decode any supported object by its stored type tag.

    Parameters
    ----------
    data : bytes or str
        JSON document produced by a ``serialize_*`` function

    Returns
    -------
    Any
        The reconstructed object

    Raises
    ------
    DeserializationError
        If the document is not valid JSON, carries an unknown type tag or
        an unsupported version, or its payload is malformed
    """
    try:
        envelope = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DeserializationError(f"Invalid JSON: {exc}") from exc

    if not isinstance(envelope, dict):
        raise DeserializationError("Serialized data must be a JSON object")
    type_tag = envelope.get('type')
    factory = FACTORIES.get(type_tag)
    if factory is None:
        raise DeserializationError(f"Unknown serialized type {type_tag!r}")
    version = envelope.get('version')
    if version != FORMAT_VERSION:
        raise DeserializationError(f"Unsupported format version {version!r}")
    if 'data' not in envelope:
        raise DeserializationError("Serialized data has no payload")

    return factory(envelope['data'])


def deserialize_block(data: Union[bytes, str]) -> Block:
    """Decode a block, rejecting documents holding any other type."""
    obj = deserialize(data)
    if not isinstance(obj, Block):
        raise DeserializationError(f"Expected a block, got {type(obj).__name__}")
    return obj


def save_block(block: Block, path: Union[str, Path]) -> Path:
    """Write a block to ``path`` as indented JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(serialize_block(block, indent=2))
    logger.debug("Saved block (%d states, %d symbols) to %s",
                block.state_count, block.alphabet_size, path)
    return path


def load_block(path: Union[str, Path]) -> Block:
    """Read a block written by :func:`save_block`."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Block file not found: {path}")
    block = deserialize_block(path.read_bytes())
    logger.debug("Loaded block from %s", path)
    return block

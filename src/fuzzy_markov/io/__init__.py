"""Persistence and inspection of fuzzy Markov blocks."""

from .serialization import (
    FORMAT_VERSION,
    FACTORIES,
    serialize_block,
    deserialize_block,
    deserialize,
    save_block,
    load_block,
    block_to_dict,
    block_from_dict
)
from .inspection import BlockSummary, coverage_indices, summarize_block, format_summary

__all__ = [
    'FORMAT_VERSION',
    'FACTORIES',
    'serialize_block',
    'deserialize_block',
    'deserialize',
    'save_block',
    'load_block',
    'block_to_dict',
    'block_from_dict',
    'BlockSummary',
    'coverage_indices',
    'summarize_block',
    'format_summary'
]

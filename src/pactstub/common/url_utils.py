"""
pactstub URL Utilities

Query string and header multimap helpers shared by the pact parser and the
HTTP adapter. Both keep insertion order and repeated values.
"""

from urllib.parse import parse_qsl, urlparse
from typing import Dict, Iterable, List, Optional, Tuple


def parse_query_string(query: str) -> Optional[Dict[str, List[str]]]:
    """
    Parse a raw query string into an ordered multimap.

    Blank values are kept ('a=&b' gives {'a': [''], 'b': ['']}).

    Args:
        query: Query string without the leading '?'

    Returns:
        Mapping of parameter name to its values in order, or None when the
        query string is empty
    """
    if not query:
        return None

    params: Dict[str, List[str]] = {}
    for name, value in parse_qsl(query, keep_blank_values=True):
        params.setdefault(name, []).append(value)
    return params or None


def group_header_pairs(pairs: Iterable[Tuple[str, str]]) -> Optional[Dict[str, List[str]]]:
    """
    Group (name, value) header pairs into an ordered multimap.

    Names are grouped case-insensitively and keep the casing of their first
    occurrence. Values are kept verbatim, duplicates included.
    """
    headers: Dict[str, List[str]] = {}
    names: Dict[str, str] = {}
    for name, value in pairs:
        key = names.setdefault(name.lower(), name)
        headers.setdefault(key, []).append(value)
    return headers or None


def is_http_url(source: str) -> bool:
    """Whether a pact source is an http(s) URL rather than a local path."""
    return urlparse(source).scheme in ('http', 'https')

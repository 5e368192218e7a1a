"""
pactstub Common Utilities

Shared utilities and helpers used across pactstub modules.
"""

from .utils import get_pact_broker_token_from_env, PactLoader, safe_json_parse
from .url_utils import parse_query_string, group_header_pairs, is_http_url

__all__ = [
    'get_pact_broker_token_from_env',
    'PactLoader',
    'safe_json_parse',
    'parse_query_string',
    'group_header_pairs',
    'is_http_url'
]

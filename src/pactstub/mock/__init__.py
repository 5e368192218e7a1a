"""
pactstub Mock Module

Stub HTTP server functionality for serving pact interactions.

This module provides:
- FastAPI-based stub server
- Interaction selection engine
- Structural request comparison with matching rules
- Response generation with pact generators
"""

from .server import StubServer, create_stub_server, to_http_response, to_pact_request
from .handler import RequestHandler, StubConfig, compile_provider_state
from .matcher import (
    Candidate,
    MatchResult,
    MismatchReport,
    RequestMatcher,
    explain_mismatches,
    filter_by_provider_state,
    is_disqualifying,
    select_best
)
from .comparator import match_request
from .generator import ResponseGenerator
from .models import (
    Interaction,
    Mismatch,
    MismatchKind,
    OptionalBody,
    Pact,
    ProviderState,
    Request,
    Response
)

__all__ = [
    # Server
    'StubServer',
    'create_stub_server',
    'to_http_response',
    'to_pact_request',

    # Handler
    'RequestHandler',
    'StubConfig',
    'compile_provider_state',

    # Matcher
    'Candidate',
    'MatchResult',
    'MismatchReport',
    'RequestMatcher',
    'explain_mismatches',
    'filter_by_provider_state',
    'is_disqualifying',
    'select_best',

    # Comparison and generation
    'match_request',
    'ResponseGenerator',

    # Models
    'Interaction',
    'Mismatch',
    'MismatchKind',
    'OptionalBody',
    'Pact',
    'ProviderState',
    'Request',
    'Response',
]

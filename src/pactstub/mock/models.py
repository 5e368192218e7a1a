"""
pactstub Contract Models

Data model for pact files and for the values that flow through the
request matching pipeline.

This module provides:
- OptionalBody with its four states (missing, empty, null, present)
- Request / Response patterns with matching rules and generators
- Interaction, ProviderState and Pact, parsed from pact JSON (v1 to v4)
- Mismatch, the result unit of a structural comparison
"""

import base64
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..common import parse_query_string, safe_json_parse

logger = logging.getLogger("pactstub.models")

PAYLOAD_METHODS = ('POST', 'PUT', 'PATCH')

HTTP_INTERACTION_TYPE = 'Synchronous/HTTP'


def method_supports_payload(method: str) -> bool:
    """Whether an HTTP method carries a request payload (POST, PUT, PATCH)."""
    return method.upper() in PAYLOAD_METHODS


def is_json_content_type(content_type: Optional[str]) -> bool:
    """Check for application/json and the +json structured syntax suffix."""
    if not content_type:
        return False
    base = content_type.split(';', 1)[0].strip().lower()
    return base.endswith('/json') or base.endswith('+json')


class BodyState(Enum):
    MISSING = 'missing'
    EMPTY = 'empty'
    NULL = 'null'
    PRESENT = 'present'


@dataclass(frozen=True)
class OptionalBody:
    """Request or response body together with its presence state."""

    state: BodyState = BodyState.MISSING
    value: bytes = b''
    content_type: Optional[str] = None

    @classmethod
    def missing(cls) -> 'OptionalBody':
        return cls(BodyState.MISSING)

    @classmethod
    def empty(cls) -> 'OptionalBody':
        return cls(BodyState.EMPTY)

    @classmethod
    def null(cls) -> 'OptionalBody':
        return cls(BodyState.NULL)

    @classmethod
    def present(cls, value: bytes, content_type: Optional[str] = None) -> 'OptionalBody':
        if not value:
            return cls(BodyState.EMPTY, content_type=content_type)
        return cls(BodyState.PRESENT, value, content_type)

    def is_present(self) -> bool:
        return self.state is BodyState.PRESENT

    def text(self) -> str:
        return self.value.decode('utf-8', errors='replace')

    def detect_content_type(self) -> Optional[str]:
        """
        Sniff a content type from the body bytes.

        Returns:
            'application/json', 'application/xml', 'text/plain', or None
            when there is no body
        """
        if not self.is_present():
            return None
        text = self.text().strip()
        if text[:1] in ('{', '[') and safe_json_parse(text) is not None:
            return 'application/json'
        if text.startswith('<'):
            return 'application/xml'
        return 'text/plain'

    def __str__(self) -> str:
        if self.is_present():
            return self.text()
        return f"<{self.state.value}>"


def _find_header(headers: Optional[Dict[str, List[str]]], name: str) -> Optional[List[str]]:
    if not headers:
        return None
    lowered = name.lower()
    for key, values in headers.items():
        if key.lower() == lowered:
            return values
    return None


@dataclass(frozen=True)
class Request:
    """An HTTP request: either an expected pattern or a received request."""

    method: str = 'GET'
    path: str = '/'
    query: Optional[Dict[str, List[str]]] = None
    headers: Optional[Dict[str, List[str]]] = None
    body: OptionalBody = field(default_factory=OptionalBody)
    matching_rules: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    generators: Dict[str, Any] = field(default_factory=dict)

    def header_values(self, name: str) -> Optional[List[str]]:
        """Look up header values by case-insensitive name."""
        return _find_header(self.headers, name)

    def content_type(self) -> Optional[str]:
        values = self.header_values('Content-Type')
        if values:
            return values[0]
        return self.body.content_type or self.body.detect_content_type()

    def supports_payload(self) -> bool:
        return method_supports_payload(self.method)

    def __str__(self) -> str:
        return (f"Request ( method: {self.method}, path: {self.path}, query: {self.query}, "
                f"headers: {self.headers}, body: {self.body} )")


@dataclass(frozen=True)
class Response:
    """An HTTP response pattern or a generated response."""

    status: int = 200
    headers: Optional[Dict[str, List[str]]] = None
    body: OptionalBody = field(default_factory=OptionalBody)
    matching_rules: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    generators: Dict[str, Any] = field(default_factory=dict)

    def header_values(self, name: str) -> Optional[List[str]]:
        return _find_header(self.headers, name)

    def content_type(self) -> Optional[str]:
        values = self.header_values('Content-Type')
        if values:
            return values[0]
        return self.body.content_type or self.body.detect_content_type()


@dataclass(frozen=True)
class ProviderState:
    name: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Interaction:
    """One recorded request/response contract entry."""

    description: str = ''
    provider_states: Tuple[ProviderState, ...] = ()
    request: Request = field(default_factory=Request)
    response: Response = field(default_factory=Response)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], spec_major: int = 2) -> 'Interaction':
        """
        Build an interaction from its pact JSON form.

        Args:
            data: Interaction dict from a pact file
            spec_major: Major pact specification version of the file

        Returns:
            Parsed Interaction
        """
        return cls(
            description=data.get('description', ''),
            provider_states=_parse_provider_states(data),
            request=_parse_request(data.get('request') or {}, spec_major),
            response=_parse_response(data.get('response') or {}, spec_major),
        )


@dataclass(frozen=True)
class Pact:
    """A loaded pact file: consumer, provider and its HTTP interactions."""

    consumer: str = ''
    provider: str = ''
    interactions: Tuple[Interaction, ...] = ()
    spec_version: str = '2.0.0'
    source: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: str = '') -> 'Pact':
        spec_version = _spec_version(data.get('metadata') or {})
        spec_major = _major(spec_version)

        interactions = []
        for raw in data.get('interactions') or []:
            interaction_type = raw.get('type', HTTP_INTERACTION_TYPE)
            if spec_major >= 4 and interaction_type != HTTP_INTERACTION_TYPE:
                logger.info(f"Skipping {interaction_type} interaction '{raw.get('description', '')}' from {source}")
                continue
            interactions.append(Interaction.from_dict(raw, spec_major))

        return cls(
            consumer=(data.get('consumer') or {}).get('name', ''),
            provider=(data.get('provider') or {}).get('name', ''),
            interactions=tuple(interactions),
            spec_version=spec_version,
            source=source,
        )


class MismatchKind(Enum):
    METHOD = 'Method'
    PATH = 'Path'
    QUERY = 'Query'
    HEADER = 'Header'
    BODY_TYPE = 'BodyType'
    BODY = 'Body'
    OTHER = 'Other'


@dataclass(frozen=True)
class Mismatch:
    """One way an actual request differs from an expected one."""

    kind: MismatchKind
    expected: Any = None
    actual: Any = None
    description: str = ''
    path: Optional[str] = None


# Pact JSON parsing

def _spec_version(metadata: Dict[str, Any]) -> str:
    for key in ('pactSpecification', 'pact-specification'):
        section = metadata.get(key)
        if isinstance(section, dict) and section.get('version'):
            return str(section['version'])
    if metadata.get('pactSpecificationVersion'):
        return str(metadata['pactSpecificationVersion'])
    return '2.0.0'


def _major(version: str) -> int:
    try:
        return int(version.split('.', 1)[0])
    except ValueError:
        return 2


def _parse_provider_states(data: Dict[str, Any]) -> Tuple[ProviderState, ...]:
    if data.get('providerStates'):
        return tuple(
            ProviderState(name=state.get('name', ''), params=dict(state.get('params') or {}))
            for state in data['providerStates']
        )
    legacy = data.get('providerState') or data.get('provider_state')
    if legacy:
        return (ProviderState(name=legacy),)
    return ()


def _parse_headers(raw: Any) -> Optional[Dict[str, List[str]]]:
    if not raw:
        return None
    headers = {}
    for name, value in raw.items():
        if isinstance(value, list):
            headers[name] = [str(v) for v in value]
        else:
            headers[name] = [str(value)]
    return headers


def _parse_query(raw: Any) -> Optional[Dict[str, List[str]]]:
    if not raw:
        return None
    if isinstance(raw, str):
        return parse_query_string(raw)
    return {
        name: [str(v) for v in value] if isinstance(value, list) else [str(value)]
        for name, value in raw.items()
    }


def _parse_body(container: Dict[str, Any], headers: Optional[Dict[str, List[str]]], spec_major: int) -> OptionalBody:
    if 'body' not in container:
        return OptionalBody.missing()

    body = container['body']
    if body is None:
        return OptionalBody.null()

    header_type = _find_header(headers, 'Content-Type')
    content_type = header_type[0] if header_type else None

    # v4 bodies carry their own content type and encoding
    if spec_major >= 4 and isinstance(body, dict) and 'content' in body:
        content = body.get('content')
        content_type = body.get('contentType') or content_type
        encoded = body.get('encoded', False)
        if content is None:
            return OptionalBody.empty()
        if encoded in (True, 'base64'):
            return OptionalBody.present(base64.b64decode(content), content_type)
        if isinstance(content, str):
            return OptionalBody.present(content.encode('utf-8'), content_type)
        return OptionalBody.present(json.dumps(content).encode('utf-8'), content_type or 'application/json')

    if isinstance(body, str):
        return OptionalBody.present(body.encode('utf-8'), content_type)

    return OptionalBody.present(json.dumps(body).encode('utf-8'), content_type or 'application/json')


def _normalise_matcher(matcher: Dict[str, Any]) -> Dict[str, Any]:
    if 'match' in matcher:
        return dict(matcher)
    if 'regex' in matcher:
        return {'match': 'regex', **matcher}
    return {'match': 'type', **matcher}


def _split_v2_rule_path(expression: str) -> Optional[Tuple[str, str]]:
    """Split a v2 '$.body.a' style key into (category, key)."""
    for prefix, category in (('$.body', 'body'), ('$.headers.', 'header'),
                             ('$.header.', 'header'), ('$.query.', 'query')):
        if expression.startswith(prefix):
            remainder = expression[len(prefix):]
            if category == 'body':
                return category, '$' + remainder
            return category, remainder
    if expression == '$.path':
        return 'path', ''
    return None


def normalise_matching_rules(raw: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Normalise v2 and v3/v4 matching rules into one layout.

    The result maps category ('body', 'header', 'query', 'path') to a dict of
    rule key -> {'matchers': [...], 'combine': 'AND'|'OR'}. Path rules use the
    empty string as key.
    """
    if not raw:
        return {}

    rules: Dict[str, Dict[str, Any]] = {}

    if all(key.startswith('$') for key in raw):
        for expression, matcher in raw.items():
            split = _split_v2_rule_path(expression)
            if split is None:
                logger.debug(f"Ignoring matching rule with unsupported path '{expression}'")
                continue
            category, key = split
            rules.setdefault(category, {})[key] = {
                'matchers': [_normalise_matcher(matcher)],
                'combine': 'AND'
            }
        return rules

    for category, entries in raw.items():
        category = 'header' if category == 'headers' else category
        if category == 'path':
            entries = {'': entries}
        for key, rule in (entries or {}).items():
            matchers = rule.get('matchers') if isinstance(rule, dict) and 'matchers' in rule else [rule]
            rules.setdefault(category, {})[key] = {
                'matchers': [_normalise_matcher(m) for m in matchers],
                'combine': rule.get('combine', 'AND') if isinstance(rule, dict) else 'AND'
            }
    return rules


def _parse_request(data: Dict[str, Any], spec_major: int) -> Request:
    headers = _parse_headers(data.get('headers'))
    return Request(
        method=str(data.get('method', 'GET')).upper(),
        path=data.get('path', '/'),
        query=_parse_query(data.get('query')),
        headers=headers,
        body=_parse_body(data, headers, spec_major),
        matching_rules=normalise_matching_rules(data.get('matchingRules')),
        generators=dict(data.get('generators') or {}),
    )


def _parse_response(data: Dict[str, Any], spec_major: int) -> Response:
    headers = _parse_headers(data.get('headers'))
    return Response(
        status=int(data.get('status', 200)),
        headers=headers,
        body=_parse_body(data, headers, spec_major),
        matching_rules=normalise_matching_rules(data.get('matchingRules')),
        generators=dict(data.get('generators') or {}),
    )

"""
pactstub Request Comparator

Structural comparison of an expected pact request against a received request.

Produces one Mismatch per difference, ordered method, path, query, headers,
body. Matching rules follow the normalised layout built by
models.normalise_matching_rules: category -> key -> {matchers, combine}.

Body rules are keyed by JSONPath expressions ('$.items[*].id'). A rule applies
to a concrete path when its tokens match a prefix of that path; the most
specific rule (highest weight) wins, so a 'type' rule on '$.user' also covers
'$.user.name' unless a closer rule exists.
"""

import json
import re
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Union

from .models import (
    BodyState,
    Mismatch,
    MismatchKind,
    Request,
    is_json_content_type,
)

PathToken = Union[str, int]

TYPE_MATCHERS = ('type', 'date', 'time', 'timestamp', 'datetime')

_RULE_TOKEN = re.compile(r"\.([^.\[\]]+)|\['([^']*)'\]|\[(\d+|\*)\]")
_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_-]*$')
_INTEGER = re.compile(r'^-?\d+$')
_DECIMAL = re.compile(r'^-?\d+\.\d+$')


def match_request(expected: Request, actual: Request) -> List[Mismatch]:
    """
    Compare an expected request with an actual one.

    Args:
        expected: Request pattern from an interaction
        actual: Received request

    Returns:
        Ordered list of mismatches; empty for a full match
    """
    rules = expected.matching_rules or {}
    mismatches: List[Mismatch] = []
    mismatches.extend(_compare_method(expected, actual))
    mismatches.extend(_compare_path(expected, actual, rules.get('path', {})))
    mismatches.extend(_compare_query(expected, actual, rules.get('query', {})))
    mismatches.extend(_compare_headers(expected, actual, rules.get('header', {})))
    mismatches.extend(_compare_body(expected, actual, rules.get('body', {})))
    return mismatches


# Rule resolution

@lru_cache(maxsize=1024)
def parse_rule_path(expression: str) -> Optional[Tuple[PathToken, ...]]:
    """
    Tokenise a JSONPath rule key.

    '$.items[*].id' -> ('$', 'items', '*', 'id'). Returns None for
    expressions that are not rooted at '$' or cannot be parsed.
    """
    if not expression.startswith('$'):
        return None

    tokens: List[PathToken] = ['$']
    position = 1
    while position < len(expression):
        match = _RULE_TOKEN.match(expression, position)
        if not match:
            return None
        field_name, quoted, index = match.groups()
        if field_name is not None:
            tokens.append(field_name)
        elif quoted is not None:
            tokens.append(quoted)
        elif index == '*':
            tokens.append('*')
        else:
            tokens.append(int(index))
        position = match.end()
    return tuple(tokens)


def _token_weight(token: PathToken, fragment: PathToken) -> int:
    if token == '*':
        return 1
    if token == fragment and type(token) is type(fragment):
        return 2
    return 0


def select_rule(rules: Dict[str, Dict[str, Any]], path: List[PathToken]) -> Optional[Dict[str, Any]]:
    """Pick the heaviest rule whose path matches a prefix of the given path."""
    best = None
    best_key = (0, 0)
    for expression, rule in rules.items():
        tokens = parse_rule_path(expression)
        if tokens is None or len(tokens) > len(path):
            continue
        weight = 1
        for token, fragment in zip(tokens, path):
            weight *= _token_weight(token, fragment)
            if not weight:
                break
        if weight and (weight, len(tokens)) > best_key:
            best, best_key = rule, (weight, len(tokens))
    return best


def format_path(path: List[PathToken]) -> str:
    rendered = '$'
    for token in path[1:]:
        if isinstance(token, int):
            rendered += f'[{token}]'
        elif _IDENTIFIER.match(token):
            rendered += f'.{token}'
        else:
            rendered += f"['{token}']"
    return rendered


# Matchers

def _to_json(value: Any) -> str:
    return json.dumps(value)


def _json_type(value: Any) -> str:
    if value is None:
        return 'Null'
    if isinstance(value, bool):
        return 'Boolean'
    if isinstance(value, (int, float)):
        return 'Number'
    if isinstance(value, str):
        return 'String'
    if isinstance(value, list):
        return 'Array'
    return 'Object'


def _json_equal(expected: Any, actual: Any) -> bool:
    if isinstance(expected, bool) != isinstance(actual, bool):
        return False
    return expected == actual


def _apply_matcher(matcher: Dict[str, Any], expected: Any, actual: Any) -> Optional[str]:
    """Run one matcher, returning a failure description or None."""
    kind = matcher.get('match', 'type')

    if kind in TYPE_MATCHERS:
        if _json_type(expected) != _json_type(actual):
            return f"Expected {_to_json(actual)} ({_json_type(actual)}) to be the same type as {_to_json(expected)} ({_json_type(expected)})"
        if isinstance(actual, list):
            if 'min' in matcher and len(actual) < int(matcher['min']):
                return f"Expected {_to_json(actual)} to have minimum {matcher['min']} items"
            if 'max' in matcher and len(actual) > int(matcher['max']):
                return f"Expected {_to_json(actual)} to have maximum {matcher['max']} items"
        return None

    if kind == 'regex':
        regex = matcher.get('regex', '')
        if isinstance(actual, (dict, list)) or actual is None:
            return f"Expected {_to_json(actual)} to match '{regex}'"
        text = _scalar_text(actual)
        try:
            if re.fullmatch(regex, text):
                return None
        except re.error as e:
            return f"Invalid regex '{regex}' in matching rule: {e}"
        return f"Expected '{text}' to match '{regex}'"

    if kind == 'equality':
        if _json_equal(expected, actual):
            return None
        return f"Expected {_to_json(actual)} to be equal to {_to_json(expected)}"

    if kind == 'integer':
        if (isinstance(actual, int) and not isinstance(actual, bool)) or \
                (isinstance(actual, str) and _INTEGER.match(actual)):
            return None
        return f"Expected {_to_json(actual)} to be an integer"

    if kind == 'decimal':
        if isinstance(actual, float) or (isinstance(actual, str) and _DECIMAL.match(actual)):
            return None
        return f"Expected {_to_json(actual)} to be a decimal number"

    if kind == 'number':
        if (isinstance(actual, (int, float)) and not isinstance(actual, bool)) or \
                (isinstance(actual, str) and (_INTEGER.match(actual) or _DECIMAL.match(actual))):
            return None
        return f"Expected {_to_json(actual)} to be a number"

    if kind == 'boolean':
        if isinstance(actual, bool) or actual in ('true', 'false'):
            return None
        return f"Expected {_to_json(actual)} to be a boolean"

    if kind == 'null':
        if actual is None:
            return None
        return f"Expected {_to_json(actual)} to be null"

    if kind == 'include':
        value = str(matcher.get('value', ''))
        if isinstance(actual, str) and value in actual:
            return None
        return f"Expected {_to_json(actual)} to include '{value}'"

    if kind == 'values':
        if isinstance(actual, dict):
            return None
        return f"Expected {_to_json(actual)} to be an Object"

    # Unsupported matcher types fall back to equality
    if _json_equal(expected, actual):
        return None
    return f"Expected {_to_json(actual)} to be equal to {_to_json(expected)}"


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def apply_rule(rule: Dict[str, Any], expected: Any, actual: Any) -> List[str]:
    """Apply a rule's matchers with its combine mode; return failures."""
    failures = [
        failure for failure in (_apply_matcher(m, expected, actual) for m in rule.get('matchers', []))
        if failure
    ]
    if rule.get('combine', 'AND').upper() == 'OR' and len(failures) < len(rule.get('matchers', [])):
        return []
    return failures


def _is_type_rule(rule: Optional[Dict[str, Any]]) -> bool:
    return bool(rule) and any(m.get('match') in TYPE_MATCHERS for m in rule.get('matchers', []))


# Method / path

def _compare_method(expected: Request, actual: Request) -> List[Mismatch]:
    expected_method = expected.method.upper()
    actual_method = actual.method.upper()
    if expected_method == actual_method:
        return []
    return [Mismatch(
        kind=MismatchKind.METHOD,
        expected=expected_method,
        actual=actual_method,
        description=f"Expected {expected_method} but received {actual_method}"
    )]


def _compare_path(expected: Request, actual: Request, rules: Dict[str, Any]) -> List[Mismatch]:
    rule = rules.get('')
    if rule:
        failures = apply_rule(rule, expected.path, actual.path)
    elif expected.path != actual.path:
        failures = [f"Expected '{expected.path}' but received '{actual.path}'"]
    else:
        failures = []
    return [
        Mismatch(kind=MismatchKind.PATH, expected=expected.path, actual=actual.path, description=failure)
        for failure in failures
    ]


# Query / headers

def _value_rule(rules: Dict[str, Any], name: str, index: int, case_insensitive: bool = False) -> Optional[Dict[str, Any]]:
    candidates = (f"{name}[{index}]", name, f"{name}[*]")
    if case_insensitive:
        lowered = {key.lower(): rule for key, rule in rules.items()}
        for candidate in candidates:
            if candidate.lower() in lowered:
                return lowered[candidate.lower()]
        return None
    for candidate in candidates:
        if candidate in rules:
            return rules[candidate]
    return None


def _compare_values(
    kind: MismatchKind,
    label: str,
    name: str,
    expected: List[str],
    actual: List[str],
    rules: Dict[str, Any],
    case_insensitive: bool = False
) -> List[Mismatch]:
    mismatches = []
    has_rule = _value_rule(rules, name, 0, case_insensitive) is not None

    if not has_rule and len(expected) != len(actual):
        mismatches.append(Mismatch(
            kind=kind, expected=expected, actual=actual, path=name,
            description=f"Expected {label} '{name}' to have {len(expected)} value(s) {expected} but received {len(actual)} value(s) {actual}"
        ))
        return mismatches

    for index, actual_value in enumerate(actual):
        expected_value = expected[index] if index < len(expected) else (expected[0] if expected else '')
        rule = _value_rule(rules, name, index, case_insensitive)
        if rule:
            failures = apply_rule(rule, expected_value, actual_value)
        elif expected_value != actual_value:
            failures = [f"Expected '{expected_value}' but received '{actual_value}' for {label} '{name}'"]
        else:
            failures = []
        mismatches.extend(
            Mismatch(kind=kind, expected=expected_value, actual=actual_value, path=name, description=failure)
            for failure in failures
        )
    return mismatches


def _compare_query(expected: Request, actual: Request, rules: Dict[str, Any]) -> List[Mismatch]:
    expected_query = expected.query or {}
    actual_query = actual.query or {}
    mismatches = []

    for name, expected_values in expected_query.items():
        actual_values = actual_query.get(name)
        if actual_values is None:
            mismatches.append(Mismatch(
                kind=MismatchKind.QUERY, expected=expected_values, actual=None, path=name,
                description=f"Expected query parameter '{name}' but was missing"
            ))
            continue
        mismatches.extend(_compare_values(
            MismatchKind.QUERY, 'query parameter', name, expected_values, actual_values, rules
        ))

    for name, actual_values in actual_query.items():
        if name not in expected_query:
            mismatches.append(Mismatch(
                kind=MismatchKind.QUERY, expected=None, actual=actual_values, path=name,
                description=f"Unexpected query parameter '{name}' received"
            ))
    return mismatches


def _compare_headers(expected: Request, actual: Request, rules: Dict[str, Any]) -> List[Mismatch]:
    mismatches = []
    for name, expected_values in (expected.headers or {}).items():
        actual_values = actual.header_values(name)
        if actual_values is None:
            mismatches.append(Mismatch(
                kind=MismatchKind.HEADER, expected=expected_values, actual=None, path=name,
                description=f"Expected header '{name}' but was missing"
            ))
            continue
        mismatches.extend(_compare_values(
            MismatchKind.HEADER, 'header', name, expected_values, actual_values, rules,
            case_insensitive=True
        ))
    return mismatches


# Body

def _base_content_type(content_type: str) -> str:
    return content_type.split(';', 1)[0].strip().lower()


def _compare_body(expected: Request, actual: Request, rules: Dict[str, Any]) -> List[Mismatch]:
    expected_body = expected.body
    actual_body = actual.body

    if expected_body.state is BodyState.MISSING:
        return []

    if expected_body.state in (BodyState.EMPTY, BodyState.NULL):
        if actual_body.is_present():
            return [Mismatch(
                kind=MismatchKind.BODY, expected='', actual=actual_body.text(), path='$',
                description=f"Expected an empty body but received '{actual_body.text()}'"
            )]
        return []

    if not actual_body.is_present():
        return [Mismatch(
            kind=MismatchKind.BODY, expected=expected_body.text(), actual=None, path='$',
            description=f"Expected body '{expected_body.text()}' but was missing"
        )]

    expected_type = expected.content_type()
    actual_type = actual.content_type()
    if expected_type and actual_type and _base_content_type(expected_type) != _base_content_type(actual_type):
        return [Mismatch(
            kind=MismatchKind.BODY_TYPE, expected=expected_type, actual=actual_type,
            description=f"Expected body with content type {expected_type} but was {actual_type}"
        )]

    if is_json_content_type(expected_type):
        return _compare_json_bodies(expected_body.text(), actual_body.text(), rules)

    return _compare_text_bodies(expected_body.text(), actual_body.text(), rules)


def _compare_json_bodies(expected_text: str, actual_text: str, rules: Dict[str, Any]) -> List[Mismatch]:
    try:
        expected_json = json.loads(expected_text)
        actual_json = json.loads(actual_text)
    except ValueError:
        # a JSON content type over text that is not JSON
        return _compare_text_bodies(expected_text, actual_text, rules)

    comparator = JsonComparator(rules)
    comparator.compare(expected_json, actual_json, ['$'])
    return comparator.mismatches


def _compare_text_bodies(expected_text: str, actual_text: str, rules: Dict[str, Any]) -> List[Mismatch]:
    rule = select_rule(rules, ['$'])
    if rule:
        failures = apply_rule(rule, expected_text, actual_text)
    elif expected_text != actual_text:
        failures = [f"Expected body '{expected_text}' to match '{actual_text}' using equality but did not match"]
    else:
        failures = []
    return [
        Mismatch(kind=MismatchKind.BODY, expected=expected_text, actual=actual_text, path='$', description=failure)
        for failure in failures
    ]


class JsonComparator:
    """
    Recursive comparison of two decoded JSON documents.

    Mismatches are collected in document order, one per differing path.
    """

    def __init__(self, rules: Dict[str, Any]):
        self.rules = rules
        self.mismatches: List[Mismatch] = []

    def _add(self, path: List[PathToken], expected: Any, actual: Any, description: str):
        self.mismatches.append(Mismatch(
            kind=MismatchKind.BODY,
            expected=expected,
            actual=actual,
            path=format_path(path),
            description=description
        ))

    def compare(self, expected: Any, actual: Any, path: List[PathToken]):
        rule = select_rule(self.rules, path)

        if isinstance(expected, dict):
            self._compare_object(expected, actual, path, rule)
        elif isinstance(expected, list):
            self._compare_array(expected, actual, path, rule)
        elif rule:
            for failure in apply_rule(rule, expected, actual):
                self._add(path, expected, actual, failure)
        elif not _json_equal(expected, actual):
            self._add(path, expected, actual,
                      f"Expected {_to_json(expected)} but received {_to_json(actual)}")

    def _compare_object(self, expected: Dict[str, Any], actual: Any, path: List[PathToken], rule):
        if not isinstance(actual, dict):
            self._add(path, expected, actual,
                      f"Type mismatch: Expected {_json_type(expected)} {_to_json(expected)} but received {_json_type(actual)} {_to_json(actual)}")
            return

        for key, expected_value in expected.items():
            if key not in actual:
                self._add(path + [key], expected_value, None,
                          f"Expected key '{key}' in {format_path(path)} but was missing")
            else:
                self.compare(expected_value, actual[key], path + [key])

        for key in actual:
            if key not in expected:
                self._add(path + [key], None, actual[key],
                          f"Unexpected key '{key}' in {format_path(path)}")

    def _compare_array(self, expected: List[Any], actual: Any, path: List[PathToken], rule):
        if not isinstance(actual, list):
            self._add(path, expected, actual,
                      f"Type mismatch: Expected {_json_type(expected)} {_to_json(expected)} but received {_json_type(actual)} {_to_json(actual)}")
            return

        if _is_type_rule(rule):
            for failure in apply_rule(rule, expected, actual):
                self._add(path, expected, actual, failure)
            # every actual element is compared against the first expected one
            if expected:
                for index, item in enumerate(actual):
                    self.compare(expected[0], item, path + [index])
            return

        if len(expected) != len(actual):
            self._add(path, expected, actual,
                      f"Expected a List with {len(expected)} elements but received {len(actual)} elements")
        for index, (expected_item, actual_item) in enumerate(zip(expected, actual)):
            self.compare(expected_item, actual_item, path + [index])

"""
pactstub Response Generator

Builds the response served for a matched interaction.

Features:
- Static responses (the recorded response as-is)
- Pact v3 generators for the status, headers and JSON body
- Random values: RandomInt, RandomDecimal, RandomHexadecimal, RandomString,
  RandomBoolean, Uuid
- Date, Time and DateTime values in ISO format
"""

import json
import logging
import random
import string
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError

from .models import OptionalBody, Response, is_json_content_type

logger = logging.getLogger("pactstub.generator")


class ResponseGenerator:
    """
    Response generator for the stub server.

    The interaction's response pattern is never modified; every call returns
    a new Response with generated values applied.

    Example:
        generator = ResponseGenerator()
        response = generator.generate(interaction.response)

        # Reproducible values
        generator = ResponseGenerator(rng=random.Random(42))
    """

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize response generator.

        Args:
            rng: Random source (defaults to a fresh random.Random)
        """
        self.rng = rng or random.Random()

    def generate(self, response: Response) -> Response:
        """
        Generate a response from a response pattern.

        Args:
            response: Response pattern from the matched interaction

        Returns:
            Response with status, headers and body generators applied
        """
        generators = response.generators or {}
        if not generators:
            return replace(response, headers=_copy_headers(response.headers))

        status = response.status
        if 'status' in generators:
            generated = self.generate_value(generators['status'], status)
            try:
                status = int(generated)
            except (TypeError, ValueError):
                logger.debug(f"Ignoring non-numeric generated status {generated!r}")

        headers = _copy_headers(response.headers)
        for name, generator in (generators.get('header') or {}).items():
            if headers is None:
                headers = {}
            current = headers.get(name, [''])
            headers[name] = [_header_text(self.generate_value(generator, current[0] if current else ''))]

        body = response.body
        if generators.get('body') and body.is_present() and is_json_content_type(response.content_type()):
            body = self._generate_body(body, generators['body'])

        return replace(response, status=status, headers=headers, body=body)

    def _generate_body(self, body: OptionalBody, generators: Dict[str, Any]) -> OptionalBody:
        try:
            data = json.loads(body.text())
        except ValueError:
            logger.debug("Response body is not valid JSON, skipping body generators")
            return body

        for expression, generator in generators.items():
            try:
                path = jsonpath_parse(expression)
            except (JsonPathLexerError, JsonPathParserError) as e:
                logger.debug(f"Skipping body generator with invalid path '{expression}': {e}")
                continue

            if expression.strip() == '$':
                data = self.generate_value(generator, data)
                continue

            for match in path.find(data):
                data = match.full_path.update(data, self.generate_value(generator, match.value))

        return OptionalBody.present(json.dumps(data).encode('utf-8'), body.content_type)

    def generate_value(self, generator: Dict[str, Any], current: Any) -> Any:
        """
        Produce one value for a generator definition.

        Args:
            generator: Generator dict, e.g. {'type': 'RandomInt', 'min': 1, 'max': 10}
            current: Value currently at the generated location

        Returns:
            Generated value, or the current value for unsupported generators
        """
        kind = generator.get('type')

        if kind == 'RandomInt':
            return self.rng.randint(int(generator.get('min', 0)), int(generator.get('max', 2147483647)))

        if kind == 'RandomDecimal':
            digits = max(int(generator.get('digits', 10)), 2)
            raw = ''.join(self.rng.choice(string.digits) for _ in range(digits))
            point = self.rng.randint(1, digits - 1)
            return float(f"{raw[:point]}.{raw[point:]}")

        if kind == 'RandomHexadecimal':
            digits = int(generator.get('digits', 10))
            return ''.join(self.rng.choice('0123456789abcdef') for _ in range(digits))

        if kind == 'RandomString':
            size = int(generator.get('size', 20))
            return ''.join(self.rng.choice(string.ascii_letters + string.digits) for _ in range(size))

        if kind == 'RandomBoolean':
            return self.rng.choice([True, False])

        if kind == 'Uuid':
            return _format_uuid(uuid.UUID(int=self.rng.getrandbits(128), version=4), generator.get('format'))

        if kind in ('Date', 'Time', 'DateTime'):
            if generator.get('format'):
                logger.debug(f"{kind} generator format '{generator['format']}' not supported, using ISO format")
            now = datetime.now()
            if kind == 'Date':
                return now.date().isoformat()
            if kind == 'Time':
                return now.time().isoformat(timespec='seconds')
            return now.isoformat(timespec='seconds')

        logger.debug(f"Unsupported generator type {kind!r}, keeping recorded value")
        return current


def _copy_headers(headers: Optional[Dict[str, List[str]]]) -> Optional[Dict[str, List[str]]]:
    return {name: list(values) for name, values in (headers or {}).items()} or None


def _format_uuid(value: uuid.UUID, fmt: Optional[str]) -> str:
    if fmt == 'simple':
        return value.hex
    if fmt == 'upper-case-hyphenated':
        return str(value).upper()
    if fmt == 'URN':
        return value.urn
    return str(value)


def _header_text(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)

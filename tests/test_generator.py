"""
Tests for pactstub Response Generator

Tests response generation including:
- Static responses returned unchanged
- Status, header and body generators
- Random value generators
- Unsupported generator handling
"""

import json
import random
import re

import pytest

from pactstub.mock.generator import ResponseGenerator
from pactstub.mock.models import OptionalBody, Response


UUID_PATTERN = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$')


@pytest.fixture
def generator():
    """Generator with a seeded random source."""
    return ResponseGenerator(rng=random.Random(42))


@pytest.fixture
def json_response():
    """JSON response with body generators."""
    return Response(
        status=200,
        headers={'Content-Type': ['application/json']},
        body=OptionalBody.present(json.dumps({
            'id': 1,
            'items': [{'id': 1, 'name': 'a'}, {'id': 2, 'name': 'b'}]
        }).encode('utf-8')),
        generators={
            'body': {
                '$.id': {'type': 'RandomInt', 'min': 100, 'max': 100},
                '$.items[*].id': {'type': 'RandomInt', 'min': 7, 'max': 7},
            }
        }
    )


class TestResponseGenerator:
    """Test ResponseGenerator.generate."""

    def test_static_response_unchanged(self, generator):
        """Test a response without generators is returned as an equal copy."""
        response = Response(status=201, headers={'X-A': ['1']}, body=OptionalBody.present(b'hello'))

        generated = generator.generate(response)

        assert generated == response
        assert generated is not response

    def test_static_response_headers_are_detached(self, generator):
        """Test changing a served response's headers leaves the recorded response intact."""
        response = Response(headers={'X-A': ['1']})

        generated = generator.generate(response)
        generated.headers['X-A'].append('2')
        generated.headers['X-B'] = ['3']

        assert response.headers == {'X-A': ['1']}

    def test_body_generators(self, generator, json_response):
        """Test body generators replace values at their JSONPath."""
        generated = generator.generate(json_response)

        data = json.loads(generated.body.text())
        assert data['id'] == 100
        assert [item['id'] for item in data['items']] == [7, 7]
        assert [item['name'] for item in data['items']] == ['a', 'b']

    def test_pattern_not_modified(self, generator, json_response):
        """Test the recorded response is left untouched."""
        original_body = json_response.body

        generator.generate(json_response)

        assert json_response.body is original_body
        assert json.loads(json_response.body.text())['id'] == 1

    def test_status_generator(self, generator):
        """Test the status generator."""
        response = Response(status=200, generators={'status': {'type': 'RandomInt', 'min': 201, 'max': 201}})

        assert generator.generate(response).status == 201

    def test_header_generator(self, generator):
        """Test header generators produce a single text value."""
        response = Response(
            headers={'X-Flag': ['old']},
            generators={'header': {'X-Flag': {'type': 'RandomBoolean'}, 'X-Id': {'type': 'Uuid'}}}
        )

        generated = generator.generate(response)

        assert generated.headers['X-Flag'][0] in ('true', 'false')
        assert UUID_PATTERN.match(generated.headers['X-Id'][0])
        assert response.headers == {'X-Flag': ['old']}

    def test_body_generators_skip_non_json(self, generator):
        """Test body generators only apply to JSON bodies."""
        response = Response(
            headers={'Content-Type': ['text/plain']},
            body=OptionalBody.present(b'id=1'),
            generators={'body': {'$.id': {'type': 'RandomInt'}}}
        )

        assert generator.generate(response).body.text() == 'id=1'

    def test_invalid_generator_path_skipped(self, generator, json_response):
        """Test a body generator with an unparsable path is ignored."""
        response = Response(
            headers=json_response.headers,
            body=json_response.body,
            generators={'body': {'$..[': {'type': 'RandomInt'}, '$.id': {'type': 'RandomInt', 'min': 5, 'max': 5}}}
        )

        assert json.loads(generator.generate(response).body.text())['id'] == 5


class TestGenerateValue:
    """Test ResponseGenerator.generate_value."""

    def test_random_int_bounds(self, generator):
        """Test RandomInt stays within its bounds."""
        values = {generator.generate_value({'type': 'RandomInt', 'min': 1, 'max': 3}, 0) for _ in range(50)}

        assert values <= {1, 2, 3}

    def test_random_decimal(self, generator):
        """Test RandomDecimal produces a float."""
        assert isinstance(generator.generate_value({'type': 'RandomDecimal', 'digits': 6}, 0), float)

    def test_random_hexadecimal(self, generator):
        """Test RandomHexadecimal digits."""
        value = generator.generate_value({'type': 'RandomHexadecimal', 'digits': 12}, '')

        assert re.fullmatch(r'[0-9a-f]{12}', value)

    def test_random_string(self, generator):
        """Test RandomString size."""
        assert len(generator.generate_value({'type': 'RandomString', 'size': 8}, '')) == 8

    def test_uuid_formats(self, generator):
        """Test Uuid formats."""
        assert UUID_PATTERN.match(generator.generate_value({'type': 'Uuid'}, ''))
        assert re.fullmatch(r'[0-9a-f]{32}', generator.generate_value({'type': 'Uuid', 'format': 'simple'}, ''))
        assert generator.generate_value({'type': 'Uuid', 'format': 'URN'}, '').startswith('urn:uuid:')

    def test_dates(self, generator):
        """Test Date, Time and DateTime produce ISO strings."""
        assert re.fullmatch(r'\d{4}-\d{2}-\d{2}', generator.generate_value({'type': 'Date'}, ''))
        assert re.fullmatch(r'\d{2}:\d{2}:\d{2}', generator.generate_value({'type': 'Time'}, ''))
        assert re.fullmatch(r'\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}', generator.generate_value({'type': 'DateTime'}, ''))

    def test_seeded_generators_are_reproducible(self):
        """Test the same seed gives the same values."""
        definition = {'type': 'RandomString', 'size': 16}

        first = ResponseGenerator(rng=random.Random(7)).generate_value(definition, '')
        second = ResponseGenerator(rng=random.Random(7)).generate_value(definition, '')

        assert first == second

    def test_unsupported_generator_keeps_value(self, generator):
        """Test unknown generator types keep the recorded value."""
        assert generator.generate_value({'type': 'ProviderState', 'expression': '${id}'}, 'recorded') == 'recorded'

"""
Tests for pactstub Common Utilities

Tests shared helpers including:
- Pact loading from files, directories and URLs
- Broker token lookup from the environment
- Query string and header multimaps
"""

import json
from unittest.mock import Mock, patch

import pytest
import requests

from pactstub.common import (
    PactLoader,
    get_pact_broker_token_from_env,
    group_header_pairs,
    is_http_url,
    parse_query_string,
    safe_json_parse,
)
from pactstub.errors import PactLoadError


def write_pact(path, description):
    path.write_text(json.dumps({'interactions': [{'description': description}]}))
    return path


@pytest.fixture
def pact_dir(tmp_path):
    """Directory with pact files and a file to be ignored."""
    write_pact(tmp_path / 'b.json', 'second')
    write_pact(tmp_path / 'a.json', 'first')
    write_pact(tmp_path / 'c.pact', 'extension')
    (tmp_path / 'notes.txt').write_text('not a pact')
    return tmp_path


class TestSafeJsonParse:
    """Test safe_json_parse function."""

    def test_valid_json(self):
        """Test parsing valid JSON."""
        assert safe_json_parse('{"a": 1}') == {'a': 1}

    def test_invalid_json(self):
        """Test invalid JSON returns the default."""
        assert safe_json_parse('{bad', default={}) == {}

    def test_empty(self):
        """Test empty input returns the default."""
        assert safe_json_parse('') is None


class TestBrokerToken:
    """Test get_pact_broker_token_from_env."""

    def test_token_from_env(self, monkeypatch):
        """Test the token is read from PACT_BROKER_TOKEN."""
        monkeypatch.setenv('PACT_BROKER_TOKEN', 'secret')

        assert get_pact_broker_token_from_env() == 'secret'

    def test_no_token(self, monkeypatch):
        """Test unset or blank variables give None."""
        monkeypatch.delenv('PACT_BROKER_TOKEN', raising=False)
        assert get_pact_broker_token_from_env() is None

        monkeypatch.setenv('PACT_BROKER_TOKEN', '')
        assert get_pact_broker_token_from_env() is None


class TestPactLoader:
    """Test PactLoader."""

    def test_load_file(self, tmp_path):
        """Test loading one pact file."""
        path = write_pact(tmp_path / 'pact.json', 'only')

        data = PactLoader().load_file(str(path))

        assert data['interactions'][0]['description'] == 'only'

    def test_load_file_not_found(self, tmp_path):
        """Test a missing file."""
        with pytest.raises(PactLoadError, match='Pact file not found'):
            PactLoader().load_file(str(tmp_path / 'missing.json'))

    def test_load_file_invalid_json(self, tmp_path):
        """Test a file that is not JSON."""
        path = tmp_path / 'bad.json'
        path.write_text('{not json')

        with pytest.raises(PactLoadError, match='Failed to read pact file'):
            PactLoader().load_file(str(path))

    def test_load_file_not_a_pact(self, tmp_path):
        """Test JSON that is not a pact object."""
        path = tmp_path / 'list.json'
        path.write_text('[]')

        with pytest.raises(PactLoadError, match='Expected a pact object'):
            PactLoader().load_file(str(path))

    def test_interactions_must_be_a_list(self, tmp_path):
        """Test a pact whose interactions are not a list."""
        path = tmp_path / 'pact.json'
        path.write_text('{"interactions": {}}')

        with pytest.raises(PactLoadError, match="'interactions' must be a list"):
            PactLoader().load_file(str(path))

    def test_missing_interactions_default_to_empty(self, tmp_path):
        """Test a pact without interactions loads with none."""
        path = tmp_path / 'pact.json'
        path.write_text('{"consumer": {"name": "web"}}')

        assert PactLoader().load_file(str(path))['interactions'] == []

    def test_load_dir_sorted_json_only(self, pact_dir):
        """Test directories load .json files in name order."""
        sources = PactLoader().load_dir(str(pact_dir))

        assert [data['interactions'][0]['description'] for _, data in sources] == ['first', 'second']

    def test_load_dir_with_extension(self, pact_dir):
        """Test an extra extension is picked up."""
        sources = PactLoader(extension='pact').load_dir(str(pact_dir))

        assert [data['interactions'][0]['description'] for _, data in sources] == ['first', 'second', 'extension']

    def test_load_dir_not_found(self, tmp_path):
        """Test a missing directory."""
        with pytest.raises(PactLoadError, match='Pact directory not found'):
            PactLoader().load_dir(str(tmp_path / 'missing'))

    @patch('pactstub.common.utils.requests.Session')
    def test_load_url(self, mock_session):
        """Test fetching a pact with basic auth and a bearer token."""
        response = Mock()
        response.json.return_value = {'interactions': [{'description': 'remote'}]}
        mock_session.return_value.get.return_value = response

        loader = PactLoader(user='alice:s3cret', token='tok', insecure_tls=True)
        data = loader.load_url('https://broker.example.com/pact')

        assert data['interactions'][0]['description'] == 'remote'
        kwargs = mock_session.return_value.get.call_args.kwargs
        assert kwargs['auth'] == ('alice', 's3cret')
        assert kwargs['headers']['Authorization'] == 'Bearer tok'
        assert kwargs['verify'] is False
        response.raise_for_status.assert_called_once()

    @patch('pactstub.common.utils.requests.Session')
    def test_load_url_http_error(self, mock_session):
        """Test transport errors become PactLoadError."""
        mock_session.return_value.get.side_effect = requests.ConnectionError('connection refused')

        with pytest.raises(PactLoadError, match='Failed to fetch pact'):
            PactLoader().load_url('http://localhost:1/pact')

    @patch('pactstub.common.utils.requests.Session')
    def test_load_url_invalid_json(self, mock_session):
        """Test a non-JSON response becomes PactLoadError."""
        response = Mock()
        response.json.side_effect = ValueError('Expecting value')
        mock_session.return_value.get.return_value = response

        with pytest.raises(PactLoadError, match='not valid JSON'):
            PactLoader().load_url('http://localhost/pact')

    @patch('pactstub.common.utils.requests.Session')
    def test_load_all_order(self, mock_session, tmp_path, pact_dir):
        """Test files, then directories, then URLs."""
        response = Mock()
        response.json.return_value = {'interactions': [{'description': 'url'}]}
        mock_session.return_value.get.return_value = response
        (tmp_path / 'single').mkdir()
        single = write_pact(tmp_path / 'single' / 'z.json', 'file')

        sources = PactLoader().load_all(files=[str(single)], dirs=[str(pact_dir)], urls=['http://host/pact'])

        assert [data['interactions'][0]['description'] for _, data in sources] == \
            ['file', 'first', 'second', 'url']
        assert sources[-1][0] == 'http://host/pact'


class TestUrlUtils:
    """Test query string and header helpers."""

    def test_parse_query_string(self):
        """Test repeated and blank parameters are kept in order."""
        assert parse_query_string('a=1&b=2&a=3&c=') == {'a': ['1', '3'], 'b': ['2'], 'c': ['']}

    def test_parse_query_string_decodes(self):
        """Test percent-encoded values are decoded."""
        assert parse_query_string('q=hello%20world') == {'q': ['hello world']}

    def test_parse_empty_query_string(self):
        """Test an empty query string gives None."""
        assert parse_query_string('') is None

    def test_group_header_pairs(self):
        """Test header pairs are grouped by case-insensitive name."""
        pairs = [('Accept', 'a'), ('X-Id', '1'), ('accept', 'b'), ('TEST-X', 'X, Y')]

        assert group_header_pairs(pairs) == {
            'Accept': ['a', 'b'],
            'X-Id': ['1'],
            'TEST-X': ['X, Y'],
        }

    def test_group_no_header_pairs(self):
        """Test no headers gives None."""
        assert group_header_pairs([]) is None

    def test_is_http_url(self):
        """Test URL detection."""
        assert is_http_url('https://broker/pacts/1')
        assert is_http_url('http://localhost:9292/pact')
        assert not is_http_url('pacts/consumer-provider.json')
        assert not is_http_url('/abs/path.json')

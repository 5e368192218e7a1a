"""
Tests for pactstub Request Handler

Tests per-request orchestration including:
- StubConfig defaults
- Provider state regex compilation and per-request overrides
- 404 and 400 response construction
"""

import logging
import re

import pytest

from pactstub.errors import InvalidProviderStateFilter
from pactstub.mock.handler import (
    RequestHandler,
    StubConfig,
    bad_request_response,
    compile_provider_state,
    not_found_response,
)
from pactstub.mock.models import Interaction, ProviderState, Request, Response


@pytest.fixture
def interactions():
    """Two interactions for the same request, told apart by provider state."""
    return [
        Interaction(
            description='available',
            provider_states=(ProviderState('item available'),),
            request=Request(path='/item'),
            response=Response(status=200)
        ),
        Interaction(
            description='sold out',
            provider_states=(ProviderState('item sold out'),),
            request=Request(path='/item'),
            response=Response(status=410)
        ),
    ]


class TestStubConfig:
    """Test StubConfig dataclass."""

    def test_default_config(self):
        """Test default configuration values."""
        config = StubConfig()

        assert config.host == '127.0.0.1'
        assert config.port == 8080
        assert config.auto_cors is False
        assert config.provider_state is None
        assert config.provider_state_header_name is None
        assert config.print_mismatch_bodies is False

    def test_config_is_immutable(self):
        """Test the config snapshot cannot be changed after startup."""
        config = StubConfig()

        with pytest.raises(AttributeError):
            config.auto_cors = True


class TestCompileProviderState:
    """Test compile_provider_state."""

    def test_none(self):
        """Test no pattern means no filter."""
        assert compile_provider_state(None) is None

    def test_valid_pattern(self):
        """Test a valid pattern is compiled."""
        assert compile_provider_state('state .*').search('state one')

    def test_invalid_pattern(self):
        """Test an invalid pattern raises with the pattern attached."""
        with pytest.raises(InvalidProviderStateFilter) as exc_info:
            compile_provider_state('state (')

        assert exc_info.value.pattern == 'state ('
        assert "Invalid provider state regex 'state ('" in str(exc_info.value)
        assert isinstance(exc_info.value, ValueError)


class TestRequestHandler:
    """Test RequestHandler.handle."""

    def test_matched_request(self, interactions):
        """Test a matched request returns the interaction's response."""
        handler = RequestHandler(interactions)

        assert handler.handle(Request(path='/item')).status == 200

    def test_unmatched_request(self, interactions, caplog):
        """Test an unmatched request gets an empty 404."""
        handler = RequestHandler(interactions)

        with caplog.at_level(logging.WARNING, logger='pactstub.mock'):
            response = handler.handle(Request(path='/other'))

        assert response.status == 404
        assert response.headers is None
        assert not response.body.is_present()
        assert 'No matching request found, sending 404' in caplog.text

    def test_unmatched_request_with_auto_cors(self, interactions):
        """Test 404 carries the CORS origin header with auto CORS."""
        handler = RequestHandler(interactions, StubConfig(auto_cors=True))

        response = handler.handle(Request(path='/other'))

        assert response.status == 404
        assert response.headers == {'Access-Control-Allow-Origin': ['*']}

    def test_static_provider_state(self, interactions):
        """Test the static provider state filter."""
        handler = RequestHandler(interactions, StubConfig(provider_state=re.compile('sold out')))

        assert handler.handle(Request(path='/item')).status == 410

    def test_header_overrides_static_provider_state(self, interactions):
        """Test the header value replaces the static filter."""
        config = StubConfig(
            provider_state=re.compile('sold out'),
            provider_state_header_name='X-Provider-State'
        )
        handler = RequestHandler(interactions, config)

        request = Request(path='/item', headers={'x-provider-state': ['available']})

        assert handler.handle(request).status == 200

    def test_header_ignored_when_not_configured(self, interactions):
        """Test the header has no effect without a configured header name."""
        handler = RequestHandler(interactions, StubConfig(provider_state=re.compile('sold out')))

        request = Request(path='/item', headers={'X-Provider-State': ['available']})

        assert handler.handle(request).status == 410

    def test_invalid_header_regex(self, interactions):
        """Test an invalid header regex gives a 400 for that request only."""
        handler = RequestHandler(interactions, StubConfig(provider_state_header_name='X-Provider-State'))

        response = handler.handle(Request(path='/item', headers={'X-Provider-State': ['(']}))

        assert response.status == 400
        assert response.body.text().startswith("Invalid provider state regex '('")
        assert handler.handle(Request(path='/item')).status == 200

    def test_resolve_provider_state(self, interactions):
        """Test provider state resolution for a request."""
        static = re.compile('sold out')
        handler = RequestHandler(interactions, StubConfig(provider_state=static,
                                                           provider_state_header_name='X-State'))

        assert handler.resolve_provider_state(Request()) is static
        assert handler.resolve_provider_state(Request(headers={'X-State': ['a']})).pattern == 'a'


class TestResponses:
    """Test the synthetic responses."""

    def test_not_found_response(self):
        """Test the plain 404."""
        assert not_found_response(False) == Response(status=404)

    def test_bad_request_response(self):
        """Test the 400 carries the error message as text."""
        response = bad_request_response('boom')

        assert response.status == 400
        assert response.body.text() == 'boom'
        assert response.header_values('content-type') == ['text/plain; charset=utf-8']

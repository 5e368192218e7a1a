"""
pactstub Request Handler

Transport independent per-request orchestration:

    Received -> BodyBuffered -> Filtered -> Evaluated -> Selected|Failed -> Responded

The handler receives a request whose body is already buffered, resolves the
provider state filter for that request, runs the matcher and always returns
exactly one Response.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Sequence

from ..errors import InvalidProviderStateFilter, NoMatchFound
from .generator import ResponseGenerator
from .matcher import RequestMatcher
from .models import Interaction, OptionalBody, Request, Response

logger = logging.getLogger("pactstub.mock")


def compile_provider_state(pattern: Optional[str]) -> Optional[Pattern]:
    """
    Compile a provider state regex.

    Raises:
        InvalidProviderStateFilter: If the pattern is not a valid regex
    """
    if pattern is None:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidProviderStateFilter(pattern, e) from e


@dataclass(frozen=True)
class StubConfig:
    """Configuration snapshot for the stub server, built once at startup."""

    # Server options
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "info"

    # Matching behaviour
    auto_cors: bool = False
    provider_state: Optional[Pattern] = None
    provider_state_header_name: Optional[str] = None

    # Diagnostics
    print_mismatch_bodies: bool = False


class RequestHandler:
    """
    Per-request orchestrator.

    Shared state is limited to the read-only interactions and the frozen
    config; everything resolved for a request (provider state filter,
    candidates, mismatches) stays local to the call.

    Example:
        handler = RequestHandler(interactions, StubConfig(auto_cors=True))
        response = handler.handle(request)
    """

    def __init__(
        self,
        interactions: Sequence[Interaction],
        config: Optional[StubConfig] = None,
        generator: Optional[ResponseGenerator] = None
    ):
        self.config = config or StubConfig()
        self.matcher = RequestMatcher(
            interactions,
            auto_cors=self.config.auto_cors,
            print_mismatch_bodies=self.config.print_mismatch_bodies,
            generator=generator
        )

    def resolve_provider_state(self, request: Request) -> Optional[Pattern]:
        """
        Resolve the provider state filter for one request.

        The configured header, when present on the request, replaces the
        static filter for this request only.

        Raises:
            InvalidProviderStateFilter: If the header value is not a valid regex
        """
        header_name = self.config.provider_state_header_name
        if header_name:
            values = request.header_values(header_name)
            if values:
                return compile_provider_state(values[0])
        return self.config.provider_state

    def handle(self, request: Request) -> Response:
        """
        Produce the response for a received request.

        Args:
            request: Received request with its body fully buffered

        Returns:
            Matched response, CORS preflight response, 404 or 400
        """
        logger.info(f"===> Received {request.method} {request.path}")
        logger.debug(f"     body: '{request.body}'")

        try:
            provider_state = self.resolve_provider_state(request)
        except InvalidProviderStateFilter as e:
            logger.warning(f"{e}, sending 400")
            return bad_request_response(str(e))

        try:
            return self.matcher.find_match(request, provider_state).response
        except NoMatchFound as e:
            logger.warning(f"{e}, sending 404")
            return not_found_response(self.config.auto_cors)


def not_found_response(auto_cors: bool) -> Response:
    """404 with an empty body, plus the CORS origin header when enabled."""
    headers = {'Access-Control-Allow-Origin': ['*']} if auto_cors else None
    return Response(status=404, headers=headers)


def bad_request_response(message: str) -> Response:
    return Response(
        status=400,
        headers={'Content-Type': ['text/plain; charset=utf-8']},
        body=OptionalBody.present(message.encode('utf-8'))
    )

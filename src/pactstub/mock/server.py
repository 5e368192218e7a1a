"""
pactstub Stub Server

FastAPI-based HTTP server that answers requests with the responses recorded
in pact files.

Features:
- Best-match interaction selection with mismatch diagnostics
- Provider state filtering, static or per request via a header
- Automatic CORS preflight responses
- Repeated response header values preserved as separate header lines
"""

from __future__ import annotations  # Enable forward references for type hints

import logging
from typing import Iterable, Optional, Sequence

try:
    from fastapi import FastAPI, Request as HTTPRequest, Response as HTTPResponse
    import uvicorn
    FASTAPI_AVAILABLE = True
except ImportError:
    FASTAPI_AVAILABLE = False

from ..common import PactLoader, group_header_pairs, parse_query_string
from ..errors import BodyReadFailure
from .generator import ResponseGenerator
from .handler import RequestHandler, StubConfig, compile_provider_state
from .models import OptionalBody, Pact, Request, Response, is_json_content_type

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "TRACE", "CONNECT"]

# Computed by the server for every response
SKIPPED_RESPONSE_HEADERS = {'content-length', 'transfer-encoding', 'connection'}


class StubServer:
    """
    FastAPI-based stub server for pact interactions.

    Example:
        # Load pacts and start server
        server = create_stub_server(files=['consumer-provider.json'])
        server.start(port=8080)

        # With custom config
        config = StubConfig(
            auto_cors=True,
            provider_state=re.compile('user exists'),
            provider_state_header_name='X-Provider-State'
        )
        server = StubServer(pacts, config=config)
        server.start()
    """

    def __init__(
        self,
        pacts: Sequence[Pact],
        config: Optional[StubConfig] = None,
        response_generator: Optional[ResponseGenerator] = None
    ):
        """
        Initialize stub server.

        Args:
            pacts: Loaded pacts; their interactions are served in load order
            config: Optional StubConfig for server behavior
            response_generator: Optional ResponseGenerator instance (will create if None)
        """
        if not FASTAPI_AVAILABLE:
            raise ImportError("FastAPI is required for the stub server. Install with: pip install fastapi uvicorn")

        self.config = config or StubConfig()

        self.logger = logging.getLogger("pactstub.server")
        self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

        self.pacts = tuple(pacts)
        self.interactions = tuple(i for pact in self.pacts for i in pact.interactions)
        self.logger.info(f"Serving {len(self.interactions)} interactions from {len(self.pacts)} pact(s)")

        self.handler = RequestHandler(self.interactions, self.config, response_generator)

        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with a catch-all route."""
        # Built-in docs routes would shadow stubbed paths
        app = FastAPI(
            title="Pact Stub Server",
            description="Stub HTTP server serving pact interactions",
            version="1.0.0",
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        @app.api_route("/{path:path}", methods=ALL_METHODS)
        async def stub_request(request: HTTPRequest, path: str):
            """Handle incoming requests and serve stub responses."""
            return await self._handle_request(request)

        return app

    async def _handle_request(self, request: HTTPRequest) -> HTTPResponse:
        """
        Buffer the request body, run the handler and convert the result.

        Args:
            request: FastAPI Request object

        Returns:
            FastAPI Response built from the selected pact response
        """
        body = await self._read_body(request)
        pact_request = to_pact_request(
            method=request.method,
            path=request.url.path,
            query=request.url.query,
            header_pairs=[(k.decode('latin-1'), v.decode('latin-1')) for k, v in request.headers.raw],
            body=body
        )
        response = self.handler.handle(pact_request)
        return to_http_response(response)

    async def _read_body(self, request: HTTPRequest) -> OptionalBody:
        """
        Fully buffer the request body.

        A transport failure while reading is logged and treated as an empty
        body.
        """
        try:
            chunk = await self._drain(request)
        except BodyReadFailure as e:
            self.logger.warning(f"Failed to read request body: {e}")
            return OptionalBody.empty()

        if chunk:
            return OptionalBody.present(chunk)
        if 'content-length' in request.headers or 'transfer-encoding' in request.headers:
            return OptionalBody.empty()
        return OptionalBody.missing()

    @staticmethod
    async def _drain(request: HTTPRequest) -> bytes:
        try:
            return await request.body()
        except Exception as e:
            raise BodyReadFailure(str(e) or type(e).__name__) from e

    def start(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        access_log: bool = True
    ):
        """
        Start the stub server (blocking).

        Args:
            host: Host to bind to (overrides config)
            port: Port to bind to (overrides config)
            access_log: Enable access logging
        """
        actual_host = host or self.config.host
        actual_port = port or self.config.port

        print(f"🚀 Pact Stub Server starting...")
        print(f"   Host: {actual_host}:{actual_port}")
        print(f"   Pacts loaded: {len(self.pacts)}")
        print(f"   Interactions: {len(self.interactions)}")

        if self.config.auto_cors:
            print(f"   Auto CORS: enabled")

        if self.config.provider_state is not None:
            print(f"   Provider state filter: {self.config.provider_state.pattern}")

        if self.config.provider_state_header_name:
            print(f"   Provider state header: {self.config.provider_state_header_name}")

        print()

        uvicorn.run(
            self.app,
            host=actual_host,
            port=actual_port,
            log_level=self.config.log_level,
            access_log=access_log
        )

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app


def to_pact_request(
    method: str,
    path: str,
    query: str,
    header_pairs: Iterable[tuple],
    body: OptionalBody
) -> Request:
    """Convert raw transport values into a pact Request."""
    return Request(
        method=method.upper(),
        path=path or '/',
        query=parse_query_string(query),
        headers=group_header_pairs(header_pairs),
        body=body
    )


def to_http_response(response: Response) -> HTTPResponse:
    """
    Convert a pact Response into a FastAPI Response.

    Each header value is appended separately so repeated values are sent
    verbatim and in order.
    """
    content = response.body.value if response.body.is_present() else b''
    http_response = HTTPResponse(content=content, status_code=response.status)

    for name, values in (response.headers or {}).items():
        if name.lower() in SKIPPED_RESPONSE_HEADERS:
            continue
        for value in values:
            http_response.headers.append(name, value)

    if content and response.header_values('Content-Type') is None:
        content_type = response.content_type() or 'text/plain'
        if is_json_content_type(content_type):
            content_type = 'application/json'
        http_response.headers.append('Content-Type', content_type)

    return http_response


def create_stub_server(
    files: Sequence[str] = (),
    dirs: Sequence[str] = (),
    urls: Sequence[str] = (),
    host: str = "127.0.0.1",
    port: int = 8080,
    auto_cors: bool = False,
    provider_state: Optional[str] = None,
    provider_state_header_name: Optional[str] = None,
    print_mismatch_bodies: bool = False,
    log_level: str = "info",
    loader: Optional[PactLoader] = None
) -> StubServer:
    """
    Convenience function to load pacts and configure a stub server.

    Args:
        files: Pact files
        dirs: Directories containing pact files
        urls: Pact URLs
        host: Host to bind to
        port: Port to bind to
        auto_cors: Answer unmatched OPTIONS requests with CORS headers
        provider_state: Static provider state regex
        provider_state_header_name: Request header that overrides the provider state regex
        print_mismatch_bodies: Include full bodies in body mismatch diagnostics
        log_level: Log level name
        loader: PactLoader to use (will create if None)

    Returns:
        Configured StubServer instance

    Raises:
        PactLoadError: If a pact source cannot be loaded
        InvalidProviderStateFilter: If provider_state is not a valid regex

    Example:
        server = create_stub_server(
            dirs=['pacts'],
            port=8080,
            auto_cors=True,
            provider_state_header_name='X-Provider-State'
        )
        server.start()
    """
    config = StubConfig(
        host=host,
        port=port,
        log_level=log_level,
        auto_cors=auto_cors,
        provider_state=compile_provider_state(provider_state),
        provider_state_header_name=provider_state_header_name,
        print_mismatch_bodies=print_mismatch_bodies
    )

    loader = loader or PactLoader()
    pacts = [Pact.from_dict(data, source) for source, data in loader.load_all(files, dirs, urls)]

    return StubServer(pacts, config=config)

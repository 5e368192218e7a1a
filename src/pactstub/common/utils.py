"""
pactstub Common Utilities

Shared helpers for loading pact files and reading configuration from the
environment.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import PactLoadError

logger = logging.getLogger("pactstub.loader")

PACT_BROKER_TOKEN_ENV = 'PACT_BROKER_TOKEN'


def get_pact_broker_token_from_env() -> Optional[str]:
    """
    Retrieve the bearer token used when fetching pacts from URLs.

    Tokens are only read from the PACT_BROKER_TOKEN environment variable so
    they never show up in process lists or shell history.

    Returns:
        Token from the environment, or None if not set
    """
    return os.environ.get(PACT_BROKER_TOKEN_ENV) or None


def safe_json_parse(json_string: Any, default: Any = None) -> Any:
    """
    Safely parse JSON string with error handling.

    Args:
        json_string: JSON string (or bytes) to parse
        default: Default value to return if parsing fails

    Returns:
        Parsed JSON object, or default if parsing fails
    """
    if not json_string:
        return default

    try:
        return json.loads(json_string)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


class PactLoader:
    """
    Loader for pact files.

    Pacts can come from:
    - Local files
    - Directories (every file with a .json or the configured extension)
    - http(s) URLs, optionally with basic auth or a bearer token

    Every source must contain a JSON object with an 'interactions' list.
    Sources are returned in load order: files, then directories (sorted by
    file name), then URLs.

    Example:
        loader = PactLoader(extension='pact')
        sources = loader.load_all(files=['consumer-provider.json'], dirs=['pacts'])

        for source, pact in sources:
            print(source, len(pact['interactions']))
    """

    def __init__(
        self,
        extension: Optional[str] = None,
        insecure_tls: bool = False,
        user: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 3
    ):
        """
        Initialize pact loader.

        Args:
            extension: Extra file extension to pick up when scanning directories
            insecure_tls: Disable TLS certificate verification for URLs
            user: Basic auth credentials for URLs, as 'username:password'
            token: Bearer token for URLs
            timeout: HTTP timeout in seconds
            max_retries: Retries for failed or 5xx URL fetches
        """
        self.extensions = {'.json'}
        if extension:
            self.extensions.add('.' + extension.lstrip('.').lower())
        self.insecure_tls = insecure_tls
        self.user = user
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        """HTTP session for URL sources, created on first use."""
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _create_session(self) -> requests.Session:
        """Create HTTP session with retry configuration."""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"]
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def load_file(self, file_path: str) -> Dict[str, Any]:
        """
        Load one pact file.

        Raises:
            PactLoadError: If the file is missing, unreadable or not a pact
        """
        path = Path(file_path)
        if not path.is_file():
            raise PactLoadError(f"Pact file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PactLoadError(f"Failed to read pact file {path}: {e}") from e

        return self._validate(data, str(path))

    def load_dir(self, dir_path: str) -> List[Tuple[str, Dict[str, Any]]]:
        """Load every pact file in a directory, sorted by file name."""
        path = Path(dir_path)
        if not path.is_dir():
            raise PactLoadError(f"Pact directory not found: {path}")

        files = sorted(
            p for p in path.iterdir()
            if p.is_file() and p.suffix.lower() in self.extensions
        )
        logger.debug(f"Found {len(files)} pact files in {path}")
        return [(str(p), self.load_file(str(p))) for p in files]

    def load_url(self, url: str) -> Dict[str, Any]:
        """
        Fetch one pact over HTTP.

        Raises:
            PactLoadError: On transport errors, non-2xx responses or invalid JSON
        """
        auth = None
        if self.user:
            username, _, password = self.user.partition(':')
            auth = (username, password)

        headers = {'Accept': 'application/json, application/hal+json'}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"

        try:
            response = self.session.get(
                url,
                auth=auth,
                headers=headers,
                verify=not self.insecure_tls,
                timeout=self.timeout,
                allow_redirects=True
            )
            response.raise_for_status()
            data = response.json()
        except ValueError as e:
            # requests' JSONDecodeError is also a RequestException
            raise PactLoadError(f"Pact at {url} is not valid JSON: {e}") from e
        except requests.RequestException as e:
            raise PactLoadError(f"Failed to fetch pact from {url}: {e}") from e

        return self._validate(data, url)

    def load_all(
        self,
        files: Iterable[str] = (),
        dirs: Iterable[str] = (),
        urls: Iterable[str] = ()
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Load pacts from every configured source.

        Returns:
            List of (source, pact dict) in load order
        """
        sources = [(f, self.load_file(f)) for f in files]
        for d in dirs:
            sources.extend(self.load_dir(d))
        sources.extend((u, self.load_url(u)) for u in urls)

        total = sum(len(data['interactions']) for _, data in sources)
        logger.info(f"Loaded {len(sources)} pact(s) with {total} interaction(s)")
        return sources

    @staticmethod
    def _validate(data: Any, source: str) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise PactLoadError(
                f"Unexpected JSON format in {source}. "
                f"Expected a pact object, got {type(data).__name__}"
            )
        if not isinstance(data.get('interactions', []), list):
            raise PactLoadError(f"Invalid pact in {source}: 'interactions' must be a list")
        data.setdefault('interactions', [])
        return data

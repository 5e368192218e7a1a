"""
pactstub Errors

Exceptions raised while loading pacts and while serving requests.
"""

from typing import Any, Optional


class PactStubError(Exception):
    """Base class for pactstub errors."""


class PactLoadError(PactStubError):
    """A pact file, directory or URL could not be loaded."""


class InvalidProviderStateFilter(PactStubError, ValueError):
    """A provider state filter is not a valid regular expression."""

    def __init__(self, pattern: str, error: Exception):
        self.pattern = pattern
        super().__init__(f"Invalid provider state regex '{pattern}': {error}")


class BodyReadFailure(PactStubError):
    """The transport failed while draining a request body."""


class NoMatchFound(PactStubError):
    """No interaction qualified for the request."""

    def __init__(self, request: Any, report: Optional[Any] = None):
        self.request = request
        self.report = report
        super().__init__("No matching request found")

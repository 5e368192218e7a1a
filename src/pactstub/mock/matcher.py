"""
pactstub Request Matcher

Selection engine that decides which interaction answers an incoming request.

Pipeline:
- Provider state filtering (optional regex over provider state names)
- Structural comparison of every remaining interaction
- Classification of mismatches into disqualifying and tolerated ones
- Selection of the qualified candidate with the fewest mismatches
- Automatic CORS preflight responses when enabled
- Diagnostics explaining why nothing matched
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Sequence, Tuple

from ..errors import NoMatchFound
from .comparator import match_request
from .generator import ResponseGenerator
from .models import (
    Interaction,
    Mismatch,
    MismatchKind,
    Request,
    Response,
    method_supports_payload,
)

logger = logging.getLogger("pactstub.mock")

CORS_ALLOW_METHODS = "GET, HEAD, POST, PUT, DELETE, CONNECT, OPTIONS, TRACE, PATCH"

Comparator = Callable[[Request, Request], List[Mismatch]]
DisqualificationRule = Callable[[Mismatch, Request, Request], bool]


def filter_by_provider_state(
    interactions: Sequence[Interaction],
    provider_state: Optional[Pattern]
) -> List[Interaction]:
    """
    Keep interactions with at least one provider state matching the regex.

    Args:
        interactions: Interactions in load order
        provider_state: Compiled regex, or None to keep everything

    Returns:
        Matching interactions, load order preserved
    """
    if provider_state is None:
        return list(interactions)
    return [
        interaction for interaction in interactions
        if any(provider_state.search(state.name) for state in interaction.provider_states)
    ]


# Disqualification policy

def _always(mismatch: Mismatch, expected: Request, actual: Request) -> bool:
    return True


def _never(mismatch: Mismatch, expected: Request, actual: Request) -> bool:
    return False


def _body_disqualifies(mismatch: Mismatch, expected: Request, actual: Request) -> bool:
    if not actual.body.is_present():
        return False
    return method_supports_payload(expected.method) or method_supports_payload(actual.method)


DISQUALIFICATION_POLICY: Dict[MismatchKind, DisqualificationRule] = {
    MismatchKind.METHOD: _always,
    MismatchKind.PATH: _always,
    MismatchKind.QUERY: _always,
    MismatchKind.BODY: _body_disqualifies,
    MismatchKind.HEADER: _never,
    MismatchKind.BODY_TYPE: _never,
    MismatchKind.OTHER: _never,
}


def is_disqualifying(mismatch: Mismatch, expected: Request, actual: Request) -> bool:
    """Look up the policy for a mismatch kind; unknown kinds are tolerated."""
    return DISQUALIFICATION_POLICY.get(mismatch.kind, _never)(mismatch, expected, actual)


@dataclass
class Candidate:
    """An evaluated interaction with its mismatches."""

    interaction: Interaction
    mismatches: List[Mismatch]
    order: int
    qualified: bool = True

    @property
    def score(self) -> Tuple[int, int]:
        """Sort key: fewest mismatches first, then load order."""
        return len(self.mismatches), self.order


def evaluate_candidates(
    interactions: Sequence[Interaction],
    request: Request,
    comparator: Comparator = match_request
) -> Tuple[List[Candidate], List[Candidate]]:
    """
    Compare every interaction with the request and partition the results.

    Returns:
        (qualified, disqualified) candidate lists, each in load order
    """
    qualified: List[Candidate] = []
    disqualified: List[Candidate] = []

    for order, interaction in enumerate(interactions):
        mismatches = comparator(interaction.request, request)
        is_qualified = not any(
            is_disqualifying(m, interaction.request, request) for m in mismatches
        )
        candidate = Candidate(interaction, mismatches, order, is_qualified)
        (qualified if is_qualified else disqualified).append(candidate)

    return qualified, disqualified


def select_best(qualified: Sequence[Candidate], request: Request) -> Optional[Candidate]:
    """
    Pick the qualified candidate with the fewest mismatches.

    Ties go to the earliest-loaded interaction. A warning is logged when more
    than one candidate shares the lowest mismatch count.
    """
    if not qualified:
        return None

    ranked = sorted(qualified, key=lambda c: c.score)
    best = ranked[0]
    tied = [c for c in ranked if len(c.mismatches) == len(best.mismatches)]
    if len(tied) > 1:
        logger.warning(
            f"Found more than one pact request for {request.method} {request.path}, "
            f"using the first one with the least number of mismatches"
        )
    return best


def cors_preflight_response() -> Response:
    """Synthetic response for an unmatched OPTIONS request."""
    return Response(
        status=200,
        headers={
            'Access-Control-Allow-Headers': ['*'],
            'Access-Control-Allow-Methods': [CORS_ALLOW_METHODS],
            'Access-Control-Allow-Origin': ['*'],
        }
    )


# Diagnostics

@dataclass
class MismatchReport:
    """Structured explanation of why no interaction matched a request."""

    method: str
    path: str
    total: int
    path_matched: bool = False
    explanations: List[Tuple[Interaction, List[str]]] = field(default_factory=list)

    def lines(self) -> List[str]:
        """Render the report as log lines."""
        lines = [
            f"No pact request matched out of a total of {self.total}",
            f"Received request: {self.method} {self.path}",
        ]
        if not self.path_matched:
            lines.append(f"Mismatch reason: No expected request with path {self.path} found")
            return lines

        lines.append(f"Found {len(self.explanations)} expected request(s) with path {self.path}:")
        for number, (interaction, descriptions) in enumerate(self.explanations, start=1):
            header = f"Mismatched request {number} ('{interaction.description}'):"
            lines.append('\n'.join([header] + descriptions))
        return lines

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'method': self.method,
            'path': self.path,
            'total': self.total,
            'path_matched': self.path_matched,
            'explanations': [
                {'description': interaction.description, 'mismatches': descriptions}
                for interaction, descriptions in self.explanations
            ]
        }


def describe_mismatch(
    mismatch: Mismatch,
    interaction: Interaction,
    request: Request,
    print_mismatch_bodies: bool = False
) -> str:
    """Render one mismatch as a diagnostic line."""
    kind = mismatch.kind
    if kind is MismatchKind.METHOD:
        return f"HTTP Method does not match, expected: {mismatch.expected}, actual: {mismatch.actual}"
    if kind is MismatchKind.QUERY:
        return f"Query does not match: {mismatch.description}"
    if kind is MismatchKind.HEADER:
        return f"Header does not match: {mismatch.description}"
    if kind is MismatchKind.BODY_TYPE:
        return f"Body type does not match, expected: {mismatch.expected}, actual: {mismatch.actual}"
    if kind is MismatchKind.BODY:
        line = f"Body does not match at path '{mismatch.path or '$'}': {mismatch.description}"
        if print_mismatch_bodies:
            line += (f"\n  Expected body: {interaction.request.body}"
                     f"\n  Actual body: {request.body}")
        return line
    return f"Unexpected mismatch: {mismatch.description}"


def explain_mismatches(
    request: Request,
    candidates: Sequence[Candidate],
    print_mismatch_bodies: bool = False
) -> MismatchReport:
    """
    Explain why none of the evaluated interactions matched.

    Only interactions without a path mismatch are explained in detail. Body
    mismatches are left out when either side's method carries no payload.

    Args:
        request: Received request
        candidates: Every evaluated candidate
        print_mismatch_bodies: Append full expected and actual bodies to body lines

    Returns:
        MismatchReport, also written to the log at WARNING level
    """
    same_path = [
        c for c in candidates
        if not any(m.kind is MismatchKind.PATH for m in c.mismatches)
    ]
    report = MismatchReport(
        method=request.method,
        path=request.path,
        total=len(candidates),
        path_matched=bool(same_path)
    )

    payloads = request.supports_payload()
    for candidate in same_path:
        interaction = candidate.interaction
        show_body = payloads and interaction.request.supports_payload()
        descriptions = [
            describe_mismatch(m, interaction, request, print_mismatch_bodies)
            for m in candidate.mismatches
            if m.kind is not MismatchKind.BODY or show_body
        ]
        report.explanations.append((interaction, descriptions))

    logger.warning("")
    for line in report.lines():
        logger.warning(line)
    return report


@dataclass
class MatchResult:
    """Result of selecting an interaction for a request."""

    response: Response
    candidate: Optional[Candidate] = None
    cors: bool = False

    @property
    def interaction(self) -> Optional[Interaction]:
        return self.candidate.interaction if self.candidate else None


class RequestMatcher:
    """
    Selection engine over a fixed, read-only set of interactions.

    The interaction tuple is never modified after construction, so one
    matcher can serve any number of concurrent requests.

    Example:
        matcher = RequestMatcher(interactions, auto_cors=True)
        try:
            result = matcher.find_match(request)
            serve(result.response)
        except NoMatchFound as e:
            print(e.report.lines())
    """

    def __init__(
        self,
        interactions: Sequence[Interaction],
        auto_cors: bool = False,
        print_mismatch_bodies: bool = False,
        generator: Optional[ResponseGenerator] = None,
        comparator: Comparator = match_request
    ):
        """
        Initialize request matcher.

        Args:
            interactions: Interactions in load order
            auto_cors: Answer unmatched OPTIONS requests with a CORS preflight response
            print_mismatch_bodies: Include full bodies in body mismatch diagnostics
            generator: Response generator (will create if None)
            comparator: Structural comparison function
        """
        self.interactions: Tuple[Interaction, ...] = tuple(interactions)
        self.auto_cors = auto_cors
        self.print_mismatch_bodies = print_mismatch_bodies
        self.generator = generator or ResponseGenerator()
        self.comparator = comparator

    def find_match(self, request: Request, provider_state: Optional[Pattern] = None) -> MatchResult:
        """
        Find the response for a request.

        Args:
            request: Received request with its body fully buffered
            provider_state: Effective provider state regex for this request

        Returns:
            MatchResult with the generated response

        Raises:
            NoMatchFound: If nothing qualifies and no CORS fallback applies
        """
        if provider_state is not None:
            logger.info(f"Filtering interactions by provider state regex '{provider_state.pattern}'")

        interactions = filter_by_provider_state(self.interactions, provider_state)
        qualified, disqualified = evaluate_candidates(interactions, request, self.comparator)

        best = select_best(qualified, request)
        if best is not None:
            logger.debug(f"Matched interaction '{best.interaction.description}' with {len(best.mismatches)} mismatch(es)")
            return MatchResult(response=self.generator.generate(best.interaction.response), candidate=best)

        if self.auto_cors and request.method.upper() == 'OPTIONS':
            return MatchResult(response=cors_preflight_response(), cors=True)

        report = explain_mismatches(request, disqualified, self.print_mismatch_bodies)
        raise NoMatchFound(request, report)

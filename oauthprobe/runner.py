import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple

import httpx

from .catalog import ProbeTestCase
from .utils.http import HttpSession

logger = logging.getLogger(__name__)


class SignalKind(Enum):
    """How a probe response was observed."""
    STATUS = "status"
    OPAQUE_REDIRECT = "opaque_redirect"
    ERROR = "error"


@dataclass(frozen=True)
class StatusSignal:
    """Normalized observation of one probe request."""
    OPAQUE_LABEL: ClassVar[str] = "3XX"

    kind: SignalKind
    status_code: Optional[int] = None
    message: Optional[str] = None

    @classmethod
    def status(cls, status_code: int) -> 'StatusSignal':
        return cls(SignalKind.STATUS, status_code=status_code)

    @classmethod
    def opaque_redirect(cls) -> 'StatusSignal':
        return cls(SignalKind.OPAQUE_REDIRECT)

    @classmethod
    def error(cls, message: str) -> 'StatusSignal':
        return cls(SignalKind.ERROR, message=message)

    @classmethod
    def from_response(cls, response: httpx.Response) -> 'StatusSignal':
        """Any 3xx collapses to the opaque-redirect sentinel."""
        if 300 <= response.status_code < 400:
            return cls.opaque_redirect()
        return cls.status(response.status_code)

    @property
    def is_error(self) -> bool:
        return self.kind == SignalKind.ERROR

    @property
    def label(self) -> str:
        if self.kind == SignalKind.OPAQUE_REDIRECT:
            return self.OPAQUE_LABEL
        if self.kind == SignalKind.ERROR:
            return f"error: {self.message}"
        return str(self.status_code)

    def matches(self, other: 'StatusSignal') -> bool:
        """Sentinel equals sentinel, status equals same status, errors never match."""
        if self.is_error or other.is_error:
            return False
        return self.kind == other.kind and self.status_code == other.status_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'status_code': self.status_code,
            'message': self.message,
            'label': self.label
        }


@dataclass
class ProbeOutcome:
    """Result of one test case within a probe family."""
    name: str
    description: str
    url: Optional[str]
    signal: StatusSignal
    matches_baseline: Optional[bool] = None  # None for the baseline itself
    location: Optional[str] = None

    @property
    def is_baseline(self) -> bool:
        return self.matches_baseline is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert outcome to dictionary for serialization."""
        return {
            'name': self.name,
            'description': self.description,
            'url': self.url,
            'signal': self.signal.to_dict(),
            'matches_baseline': self.matches_baseline,
            'location': self.location
        }


class HttpProbeRunner:
    """Dispatches probe requests and classifies them against a family baseline."""

    def __init__(self, session: HttpSession):
        """
        Initialize the probe runner.

        Args:
            session: Session used for every probe request
        """
        self.session = session

    async def dispatch(self, url: str) -> Tuple[StatusSignal, Optional[str]]:
        """
        Send one probe request.

        Transport failures are returned as error signals instead of raised.

        Args:
            url: URL to request

        Returns:
            Tuple of (signal, Location header of a redirect or None)
        """
        try:
            response = await self.session.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            message = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
            logger.warning(f"Probe request failed for {url}: {message}")
            return StatusSignal.error(message), None

        signal = StatusSignal.from_response(response)
        location = response.headers.get('location') if signal.kind == SignalKind.OPAQUE_REDIRECT else None
        return signal, location

    async def run_family(self,
                         original_url: str,
                         cases: Sequence[ProbeTestCase]) -> List[ProbeOutcome]:
        """
        Run a probe family strictly in catalog order.

        The first case is the baseline. Every later request waits for the
        previous one to finish.

        Args:
            original_url: Captured authorization URL
            cases: Family test cases, baseline first

        Returns:
            One outcome per test case, in catalog order
        """
        outcomes: List[ProbeOutcome] = []
        baseline: Optional[StatusSignal] = None

        for index, case in enumerate(cases):
            try:
                url = case.build_url(original_url)
            except ValueError as e:
                logger.warning(f"Could not build '{case.name}' variant: {e}")
                url = None
                signal, location = StatusSignal.error(f"Could not build variant: {e}"), None
            else:
                signal, location = await self.dispatch(url)

            if index == 0:
                baseline = signal
                matches = None
            else:
                matches = signal.matches(baseline)

            logger.debug(f"{case.name}: {signal.label} (matches baseline: {matches})")
            outcomes.append(ProbeOutcome(
                name=case.name,
                description=case.description,
                url=url,
                signal=signal,
                matches_baseline=matches,
                location=location
            ))

        return outcomes

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from .catalog import ProbeFamily, build_catalog
from .config import ProbeConfig
from .discovery import DiscoveryFetcher, DiscoveryResult, origin_of
from .mutator import parse_authorization_url
from .runner import HttpProbeRunner, ProbeOutcome
from .state_probe import StateProbe, StateProbeResult
from .utils.http import HttpSession

logger = logging.getLogger(__name__)


class AnalysisInProgressError(RuntimeError):
    """Raised when the same endpoint is already being analyzed."""


@dataclass
class AnalysisReport:
    """Everything learned about one captured endpoint in one run."""
    url: str
    analysis_id: str
    started_at: str
    finished_at: Optional[str] = None
    redirect_uri_outcomes: List[ProbeOutcome] = field(default_factory=list)
    parameter_outcomes: List[ProbeOutcome] = field(default_factory=list)
    state: Optional[StateProbeResult] = None
    openid_configuration: Optional[DiscoveryResult] = None
    webfinger: Optional[DiscoveryResult] = None
    errors: Dict[str, str] = field(default_factory=dict)  # slot name -> failure message

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        return {
            'url': self.url,
            'analysis_id': self.analysis_id,
            'started_at': self.started_at,
            'finished_at': self.finished_at,
            'redirect_uri': [o.to_dict() for o in self.redirect_uri_outcomes],
            'parameter_acceptance': [o.to_dict() for o in self.parameter_outcomes],
            'state': self.state.to_dict() if self.state else None,
            'openid_configuration': self.openid_configuration.to_dict() if self.openid_configuration else None,
            'webfinger': self.webfinger.to_dict() if self.webfinger else None,
            'errors': dict(self.errors)
        }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class EndpointAnalyzer:
    """Runs every probe family against one captured authorization URL."""

    def __init__(self, config: ProbeConfig, session: Optional[HttpSession] = None):
        """
        Initialize the analyzer.

        Args:
            config: Probe configuration
            session: Optional pre-built session; one is created from the
                configuration for each run otherwise
        """
        self.config = config
        self.catalog = build_catalog(config)
        self.session = session
        self._in_flight: Set[str] = set()

    def _create_session(self) -> HttpSession:
        options = self.config.options
        return HttpSession(
            timeout=options.timeout_seconds,
            verify_ssl=options.verify_ssl,
            headers={'User-Agent': options.user_agent},
            proxy=options.proxy
        )

    async def analyze(self, url: str) -> AnalysisReport:
        """
        Analyze one authorization URL.

        Families run concurrently, at most ``options.max_concurrent`` at a
        time; requests inside a family stay sequential. A failing family is
        recorded in ``report.errors`` and never aborts its siblings.

        Args:
            url: Captured authorization URL

        Returns:
            AnalysisReport with every slot populated

        Raises:
            MalformedURLError: If the URL is not a usable authorization URL
            AnalysisInProgressError: If this URL is already being analyzed
        """
        parse_authorization_url(url)

        if url in self._in_flight:
            raise AnalysisInProgressError(f"Analysis already running for {url}")
        self._in_flight.add(url)

        report = AnalysisReport(url=url, analysis_id=str(uuid.uuid4()), started_at=_now())
        logger.info(f"Starting analysis {report.analysis_id} for {url}")

        session = self.session or self._create_session()
        try:
            await session.start()
            await self._run_families(report, session)
        finally:
            if self.session is None:
                await session.close()
            self._in_flight.discard(url)

        report.finished_at = _now()
        logger.info(f"Analysis {report.analysis_id} complete with {len(report.errors)} failed slots")
        return report

    async def _run_families(self, report: AnalysisReport, session: HttpSession):
        runner = HttpProbeRunner(session)
        state_probe = StateProbe(runner)
        fetcher = DiscoveryFetcher(session, self.config.probes.webfinger_resource)
        origin = origin_of(report.url)
        semaphore = asyncio.Semaphore(self.config.options.max_concurrent)

        async def guarded(slot: str, coro_factory):
            async with semaphore:
                try:
                    return await coro_factory()
                except Exception as e:
                    logger.error(f"Probe family '{slot}' failed: {e}")
                    report.errors[slot] = f"{type(e).__name__}: {e}"
                    return None

        redirect, parameters, state, openid, webfinger = await asyncio.gather(
            guarded('redirect_uri', lambda: runner.run_family(
                report.url, self.catalog[ProbeFamily.REDIRECT_URI])),
            guarded('parameter_acceptance', lambda: runner.run_family(
                report.url, self.catalog[ProbeFamily.PARAMETER_ACCEPTANCE])),
            guarded('state', lambda: state_probe.run(report.url)),
            guarded('openid_configuration', lambda: fetcher.fetch_openid_configuration(origin)),
            guarded('webfinger', lambda: fetcher.fetch_webfinger(origin)),
        )

        report.redirect_uri_outcomes = redirect or []
        report.parameter_outcomes = parameters or []
        report.state = state
        report.openid_configuration = openid
        report.webfinger = webfinger

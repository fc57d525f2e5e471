import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .mutator import get_query_param, remove_query_param
from .runner import HttpProbeRunner, SignalKind, StatusSignal

logger = logging.getLogger(__name__)


class StateFinding(Enum):
    """Outcome of the state-stripping probe."""
    NOT_PRESENT = "not_present"
    NOT_VALIDATED = "not_validated"
    VALIDATED = "validated"


DESCRIPTIONS = {
    StateFinding.NOT_PRESENT: "No state parameter in the authorization request; likely CSRF weakness",
    StateFinding.NOT_VALIDATED: "Server returned 200 without a state parameter; state not validated (CSRF-susceptible)",
    StateFinding.VALIDATED: "Server did not proceed normally without a state parameter; state appears validated",
}


@dataclass
class StateProbeResult:
    """Result of the state probe."""
    finding: StateFinding
    state_value: Optional[str]
    url: Optional[str] = None
    signal: Optional[StatusSignal] = None

    @property
    def description(self) -> str:
        return DESCRIPTIONS[self.finding]

    @property
    def csrf_susceptible(self) -> bool:
        return self.finding != StateFinding.VALIDATED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'finding': self.finding.value,
            'description': self.description,
            'csrf_susceptible': self.csrf_susceptible,
            'state_value': self.state_value,
            'url': self.url,
            'signal': self.signal.to_dict() if self.signal else None
        }


class StateProbe:
    """Checks whether an authorization server still proceeds once state is stripped."""

    def __init__(self, runner: HttpProbeRunner):
        self.runner = runner

    async def run(self, original_url: str) -> StateProbeResult:
        """
        Strip ``state`` and resend the request.

        An absent ``state`` is reported without any network call; an empty
        one is stripped and resent like any other value.
        Only a plain 200 counts as "not validated".

        Args:
            original_url: Captured authorization URL

        Returns:
            StateProbeResult
        """
        state = get_query_param(original_url, 'state')
        if state is None:
            logger.info(f"No state parameter in {original_url}")
            return StateProbeResult(finding=StateFinding.NOT_PRESENT, state_value=state)

        stripped_url = remove_query_param(original_url, 'state')
        signal, _ = await self.runner.dispatch(stripped_url)

        if signal.kind == SignalKind.STATUS and signal.status_code == 200:
            finding = StateFinding.NOT_VALIDATED
        else:
            finding = StateFinding.VALIDATED

        logger.debug(f"State probe: {signal.label} -> {finding.value}")
        return StateProbeResult(finding=finding, state_value=state, url=stripped_url, signal=signal)

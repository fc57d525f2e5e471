"""
Static tables of probe test cases.

Every test case maps the original authorization URL to the URL that is
actually sent. The first case of every family is the unmodified baseline.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, Dict, Tuple

from . import mutator
from .config import ProbeConfig, ProbesConfig
from .mutator import MalformedURLError

logger = logging.getLogger(__name__)

BASELINE = "Baseline"


class ProbeFamily(Enum):
    """Probe families run against a captured endpoint."""
    REDIRECT_URI = "redirect_uri"
    PARAMETER_ACCEPTANCE = "parameter_acceptance"


@dataclass(frozen=True)
class ProbeTestCase:
    """A named mutation of an authorization URL."""
    name: str
    mutation: Callable[[str], str]
    description: str

    @property
    def is_baseline(self) -> bool:
        return self.name == BASELINE

    def build_url(self, original_url: str) -> str:
        return self.mutation(original_url)


def _unchanged(url: str) -> str:
    return url


def _substitute_redirect_uri(uri_mutation: Callable[[str], str], url: str) -> str:
    redirect_uri = mutator.get_query_param(url, 'redirect_uri')
    if redirect_uri is None:
        raise MalformedURLError("Authorization URL has no redirect_uri parameter")
    return mutator.replace_query_param(url, 'redirect_uri', uri_mutation(redirect_uri))


def _redirect_case(name: str, uri_mutation: Callable[[str], str], description: str) -> ProbeTestCase:
    return ProbeTestCase(name, partial(_substitute_redirect_uri, uri_mutation), description)


def redirect_uri_cases(settings: ProbesConfig) -> Tuple[ProbeTestCase, ...]:
    """
    Build the redirect-URI family.

    Args:
        settings: Probe destinations and the dot-escape literal

    Returns:
        Test cases in report order, baseline first
    """
    attacker = settings.attacker_domain

    return (
        ProbeTestCase(BASELINE, _unchanged, "Unmodified redirect_uri"),
        _redirect_case("Different Domain",
                       partial(mutator.different_domain, destination=settings.different_domain),
                       "redirect_uri replaced with an unrelated origin"),
        _redirect_case("Subdomain Attack",
                       partial(mutator.subdomain_attack, attacker_domain=attacker),
                       "Target host used as a subdomain of an attacker domain"),
        _redirect_case("Protocol Relative",
                       partial(mutator.protocol_relative, attacker_domain=attacker),
                       "Protocol-relative URI pointing at an attacker domain"),
        _redirect_case("URL Parsing Trick",
                       partial(mutator.backslash_at_confusion, attacker_domain=attacker),
                       "Backslash-at confusion between attacker domain and target host"),
        _redirect_case("Parameter Trick",
                       partial(mutator.query_at_confusion, attacker_domain=attacker),
                       "Query-at confusion between attacker domain and target host"),
        _redirect_case("HTTP Downgrade", mutator.http_downgrade,
                       "https:// downgraded to http://"),
        _redirect_case("CRLF Injection",
                       partial(mutator.crlf_injection, attacker_domain=attacker),
                       "Encoded CRLF between attacker domain and target host"),
        _redirect_case("Relative Path", mutator.relative_path,
                       "Path traversal appended to the registered path"),
        _redirect_case("Query Append", mutator.query_append,
                       "Trailing ? appended to the registered URI"),
        _redirect_case("Dot-Escaping Check",
                       partial(mutator.dot_escape, char=settings.dot_escape_char),
                       "Host dot replaced by a literal to catch unescaped regex matchers"),
    )


PARAMETER_VALUES = (
    ('response_mode', ('query', 'web_message', 'fragment', 'form_post')),
    ('prompt', ('consent', 'none')),
    ('response_type', ('code', 'token', 'code id_token')),
)


def _parameter_case(name: str, value: str) -> ProbeTestCase:
    label = value.replace(' ', '+')
    return ProbeTestCase(
        name=f"{name}={label}",
        mutation=partial(mutator.replace_query_param, name=name, value=value),
        description=f"{name} set to {label}",
    )


def parameter_cases() -> Tuple[ProbeTestCase, ...]:
    """Build the parameter-acceptance family, baseline first."""
    cases = [ProbeTestCase(BASELINE, _unchanged, "Unmodified authorization request")]
    for name, values in PARAMETER_VALUES:
        cases.extend(_parameter_case(name, value) for value in values)
    return tuple(cases)


def build_catalog(config: ProbeConfig) -> Dict[ProbeFamily, Tuple[ProbeTestCase, ...]]:
    """Build every probe family for a configuration."""
    catalog = {
        ProbeFamily.REDIRECT_URI: redirect_uri_cases(config.probes),
        ProbeFamily.PARAMETER_ACCEPTANCE: parameter_cases(),
    }
    logger.debug(f"Catalog built: {', '.join(f'{f.value}={len(c)}' for f, c in catalog.items())}")
    return catalog

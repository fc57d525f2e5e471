"""
OAuth Probe - Passive capture and heuristic probing of OAuth/OpenID authorization endpoints.

This package records authorization URLs seen in browsing traffic and, on demand, runs
non-destructive probes against one of them: redirect_uri mutation, response parameter
acceptance, state validation and discovery document presence.
"""

__version__ = "1.0.0"

from .config import ProbeConfig, load_config, validate_config
from .mutator import MalformedURLError
from .catalog import ProbeFamily, ProbeTestCase, build_catalog
from .capture import CaptureStore, CapturePolicy, JsonFileStore, MemoryStore, PersistenceError
from .runner import HttpProbeRunner, ProbeOutcome, SignalKind, StatusSignal
from .state_probe import StateFinding, StateProbe, StateProbeResult
from .discovery import DiscoveryFetcher, DiscoveryResult
from .analyzer import AnalysisInProgressError, AnalysisReport, EndpointAnalyzer
from .reporter import AnalysisReporter

__all__ = [
    'ProbeConfig',
    'load_config',
    'validate_config',
    'MalformedURLError',
    'ProbeFamily',
    'ProbeTestCase',
    'build_catalog',
    'CaptureStore',
    'CapturePolicy',
    'JsonFileStore',
    'MemoryStore',
    'PersistenceError',
    'HttpProbeRunner',
    'ProbeOutcome',
    'SignalKind',
    'StatusSignal',
    'StateFinding',
    'StateProbe',
    'StateProbeResult',
    'DiscoveryFetcher',
    'DiscoveryResult',
    'AnalysisInProgressError',
    'AnalysisReport',
    'EndpointAnalyzer',
    'AnalysisReporter'
]

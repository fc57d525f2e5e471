import asyncio

import httpx
import pytest

from oauthprobe.analyzer import AnalysisInProgressError, EndpointAnalyzer
from oauthprobe.capture import CaptureStore, MemoryStore
from oauthprobe.config import ProbeConfig
from oauthprobe.discovery import DiscoveryFetcher
from oauthprobe.mutator import MalformedURLError, get_query_param
from oauthprobe.state_probe import StateFinding

from conftest import make_session


def idp_handler(request):
    path = request.url.path
    if path == "/.well-known/openid-configuration":
        return httpx.Response(200, json={'authorization_endpoint': 'https://idp.example/authorize'})
    if path == "/.well-known/webfinger":
        return httpx.Response(404)

    url = str(request.url)
    if get_query_param(url, 'state') is None:
        return httpx.Response(400)
    if get_query_param(url, 'redirect_uri') != "https://app.example/cb":
        return httpx.Response(400)
    return httpx.Response(302, headers={'Location': 'https://app.example/cb?code=abc&state=s1'})


def analyze(url, handler=idp_handler, requests=None, config=None):
    analyzer = EndpointAnalyzer(config or ProbeConfig(), session=make_session(handler, requests))

    async def _run():
        try:
            return await analyzer.analyze(url)
        finally:
            await analyzer.session.close()

    return asyncio.run(_run())


def test_end_to_end_capture_then_analyze(auth_url):
    store = CaptureStore(MemoryStore())
    store.record(auth_url)
    (captured,), _ = store.snapshot()
    requests = []

    report = analyze(captured, requests=requests)

    assert len(report.redirect_uri_outcomes) == 11
    assert len(report.parameter_outcomes) == 10
    assert len([o for o in report.parameter_outcomes if not o.is_baseline]) == 9
    assert report.state.finding == StateFinding.VALIDATED
    assert report.openid_configuration.exists is True
    assert report.openid_configuration.summary == {'authorization_endpoint': 'https://idp.example/authorize'}
    assert report.webfinger.exists is False
    assert report.webfinger.status_code == 404
    assert report.errors == {}
    assert report.finished_at is not None
    assert len(requests) == 11 + 10 + 1 + 2


def test_end_to_end_classification(auth_url):
    report = analyze(auth_url)

    redirect = {o.name: o for o in report.redirect_uri_outcomes}
    parameters = {o.name: o for o in report.parameter_outcomes}

    assert redirect["Baseline"].signal.label == "3XX"
    assert not any(o.matches_baseline for o in report.redirect_uri_outcomes)
    assert parameters["prompt=none"].matches_baseline is True
    assert parameters["response_mode=form_post"].matches_baseline is True


def test_unreachable_server_still_fills_every_slot(auth_url):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    report = analyze(auth_url, handler=handler)

    assert len(report.redirect_uri_outcomes) == 11
    assert all(o.signal.is_error for o in report.redirect_uri_outcomes)
    assert len(report.parameter_outcomes) == 10
    assert report.state.finding == StateFinding.VALIDATED
    assert report.openid_configuration.exists is False
    assert report.webfinger.error is not None
    assert report.errors == {}


def test_family_failure_is_isolated(auth_url, monkeypatch):
    async def broken(self, origin):
        raise RuntimeError("parser exploded")

    monkeypatch.setattr(DiscoveryFetcher, 'fetch_webfinger', broken)

    report = analyze(auth_url)

    assert report.webfinger is None
    assert "parser exploded" in report.errors['webfinger']
    assert len(report.redirect_uri_outcomes) == 11
    assert report.openid_configuration.exists is True


def test_malformed_url_is_rejected_before_any_request():
    requests = []
    with pytest.raises(MalformedURLError):
        analyze("javascript:alert(1)", requests=requests)
    assert requests == []


def test_concurrent_analysis_of_same_url_is_refused(auth_url):
    async def slow_handler(request):
        await asyncio.sleep(0)
        return httpx.Response(200)

    analyzer = EndpointAnalyzer(ProbeConfig(), session=make_session(slow_handler))

    async def _run():
        try:
            return await asyncio.gather(analyzer.analyze(auth_url), analyzer.analyze(auth_url),
                                        return_exceptions=True)
        finally:
            await analyzer.session.close()

    first, second = asyncio.run(_run())

    assert len(first.redirect_uri_outcomes) == 11
    assert isinstance(second, AnalysisInProgressError)


def test_reanalysis_repeats_all_requests(auth_url):
    requests = []
    analyze(auth_url, requests=requests)
    analyze(auth_url, requests=requests)
    assert len(requests) == 2 * (11 + 10 + 1 + 2)

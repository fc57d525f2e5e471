import json
import logging
import sys

import httpx
import pytest
from click.testing import CliRunner
from pythonjsonlogger import jsonlogger

from oauthprobe.analyzer import EndpointAnalyzer
from oauthprobe.main import app, setup_logging

from conftest import AUTH_URL, make_session


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        'capture': {'store_path': str(tmp_path / "store.json")},
        'output': {'results_dir': str(tmp_path / "results")},
    }))
    return str(path)


def invoke(config_path, *args, **kwargs):
    return CliRunner().invoke(app, ['--config', config_path, *args], **kwargs)


def test_capture_list_clear(config_path):
    result = invoke(config_path, 'capture', AUTH_URL, AUTH_URL, "https://shop.example/cart?item=1")
    assert result.exit_code == 0
    assert "Captured 1 new endpoint(s); 1 total" in result.output

    result = invoke(config_path, 'list')
    assert result.exit_code == 0
    assert "1. https://idp.example/authorize" in result.output
    assert "redirect_uri: https://app.example/cb" in result.output

    result = invoke(config_path, 'clear')
    assert result.exit_code == 0

    result = invoke(config_path, 'list')
    assert "No OAuth flows captured." in result.output


def test_capture_from_stdin(config_path):
    second = AUTH_URL.replace("s1", "s2")
    result = invoke(config_path, 'capture', '--from-file', '-', input=f"{AUTH_URL}\n\n{second}\n")
    assert result.exit_code == 0
    assert "Captured 2 new endpoint(s); 2 total" in result.output


def test_analyze_by_index(config_path, tmp_path, monkeypatch):
    monkeypatch.setattr(EndpointAnalyzer, '_create_session',
                        lambda self: make_session(lambda request: httpx.Response(200)))
    invoke(config_path, 'capture', AUTH_URL)

    result = invoke(config_path, 'analyze', '1')

    assert result.exit_code == 0, result.output
    assert "Protocol Relative: 200 <- matches baseline" in result.output
    assert "State: Server returned 200 without a state parameter" in result.output
    assert len(list((tmp_path / "results").glob("analysis_report_*.json"))) == 1


def test_analyze_unknown_index(config_path):
    result = invoke(config_path, 'analyze', '3')
    assert result.exit_code == 1
    assert "no captured endpoint #3" in result.output


def test_analyze_malformed_url(config_path):
    result = invoke(config_path, 'analyze', 'not-a-url')
    assert result.exit_code == 1


def test_validate_reports_errors(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({'options': {'max_concurrent': 0}}))

    result = CliRunner().invoke(app, ['validate', str(path)])

    assert result.exit_code == 1
    assert "max_concurrent must be positive" in result.output


def test_invalid_global_config_exits(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({'capture': {'policy': 'everything'}}))

    result = CliRunner().invoke(app, ['--config', str(path), 'list'])

    assert result.exit_code == 1


def test_version():
    result = CliRunner().invoke(app, ['version'])
    assert result.exit_code == 0
    assert "OAuth Probe v1.0.0" in result.output


def test_setup_logging_writes_json_to_stdout_and_file(tmp_path):
    log_file = tmp_path / "run.log"
    setup_logging("INFO", str(log_file))
    handlers = logging.getLogger('oauthprobe').handlers

    try:
        assert handlers[0].stream is sys.stdout
        assert isinstance(handlers[0].formatter, jsonlogger.JsonFormatter)

        logging.getLogger('oauthprobe.capture').info("captured")
        handlers[1].flush()

        record = json.loads(log_file.read_text().splitlines()[-1])
        assert record['message'] == "captured"
        assert record['levelname'] == "INFO"
        assert record['name'] == "oauthprobe.capture"
    finally:
        for name in ('oauthprobe', '__main__'):
            for handler in logging.getLogger(name).handlers:
                handler.close()
            logging.getLogger(name).handlers.clear()

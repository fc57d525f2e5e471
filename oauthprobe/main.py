import asyncio
import logging
import sys
from typing import Optional

import click
from pythonjsonlogger import jsonlogger

from . import __version__
from .analyzer import AnalysisInProgressError, EndpointAnalyzer
from .capture import CaptureStore, CapturePolicy, JsonFileStore, PersistenceError, describe_endpoint
from .config import ProbeConfig, load_config, validate_config
from .mutator import MalformedURLError
from .reporter import AnalysisReporter

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "WARNING", log_file: Optional[str] = None):
    """Setup structured logging."""
    loggers = [logging.getLogger(name) for name in ['oauthprobe', '__main__']]

    formatter = jsonlogger.JsonFormatter(
        fmt='%(asctime)s %(name)s %(levelname)s %(message)s'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    for logger_instance in loggers:
        logger_instance.handlers.clear()
        logger_instance.setLevel(getattr(logging, log_level.upper()))
        logger_instance.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        for logger_instance in loggers:
            logger_instance.addHandler(file_handler)


def open_capture_store(config: ProbeConfig) -> CaptureStore:
    """Open the persistent capture store described by the configuration."""
    return CaptureStore(
        JsonFileStore(config.capture.store_path),
        policy=CapturePolicy(config.capture.policy)
    )


def _fail(message: str):
    click.echo(message, err=True)
    sys.exit(1)


@click.group(help="OAuth Probe - capture OAuth authorization endpoints and probe them for common weaknesses")
@click.option('--config', 'config_path', default=None, help='Configuration JSON file')
@click.option('--log-level', default='WARNING', help='Logging level')
@click.option('--log-file', default=None, help='Log file path')
@click.pass_context
def app(ctx, config_path, log_level, log_file):
    """OAuth Probe CLI."""
    setup_logging(log_level, log_file)

    try:
        config = load_config(config_path)
        validate_config(config)
    except Exception as e:
        _fail(f"Error: {e}")

    ctx.obj = config


@app.command()
@click.argument('urls', nargs=-1)
@click.option('--from-file', 'url_file', type=click.File('r'), default=None,
              help="File with one URL per line ('-' for stdin)")
@click.pass_obj
def capture(config, urls, url_file):
    """Feed observed request URLs into the capture store."""
    candidates = list(urls)
    if url_file is not None:
        candidates.extend(line.strip() for line in url_file if line.strip())

    try:
        store = open_capture_store(config)
    except PersistenceError as e:
        _fail(f"Error: {e}")

    added = store.feed(candidates)
    _, counter = store.snapshot()
    click.echo(f"Captured {added} new endpoint(s); {counter} total")


@app.command(name='list')
@click.pass_obj
def list_endpoints(config):
    """List captured endpoints."""
    try:
        endpoints, counter = open_capture_store(config).snapshot()
    except PersistenceError as e:
        _fail(f"Error: {e}")

    if not counter:
        click.echo("No OAuth flows captured.")
        return

    for index, url in enumerate(endpoints, start=1):
        try:
            summary = describe_endpoint(url)
        except MalformedURLError:
            click.echo(f"{index}. {url}")
            continue

        click.echo(f"{index}. {summary['endpoint']}")
        for name, value in summary['oauth_params']:
            click.echo(f"     {name}: {value}")


@app.command()
@click.pass_obj
def clear(config):
    """Remove every captured endpoint."""
    try:
        open_capture_store(config).clear()
    except PersistenceError as e:
        _fail(f"Clear failed: {e}")
    click.echo("Capture store cleared")


@app.command()
@click.argument('target')
@click.pass_obj
def analyze(config, target):
    """Probe a captured endpoint, given as its URL or its list index."""
    url = target
    if target.isdigit():
        try:
            endpoints, _ = open_capture_store(config).snapshot()
        except PersistenceError as e:
            _fail(f"Error: {e}")
        index = int(target)
        if not 1 <= index <= len(endpoints):
            _fail(f"Error: no captured endpoint #{index}")
        url = endpoints[index - 1]

    analyzer = EndpointAnalyzer(config)
    reporter = AnalysisReporter(config.output.results_dir)

    try:
        report = asyncio.run(analyzer.analyze(url))
    except (MalformedURLError, AnalysisInProgressError) as e:
        _fail(f"Error: {e}")
    except KeyboardInterrupt:
        _fail("Analysis interrupted by user")

    for line in reporter.summary_lines(report):
        click.echo(line)

    report_path = reporter.generate_report(report)
    click.echo(f"Report generated: {report_path}")


@app.command()
@click.argument('config_file')
def validate(config_file):
    """Validate a configuration file."""
    try:
        config = load_config(config_file)
        validate_config(config)
        click.echo("✓ Configuration is valid")
        click.echo(f"Capture policy: {config.capture.policy}")
        click.echo(f"Store: {config.capture.store_path}")
        click.echo(f"Different domain: {config.probes.different_domain}")
    except Exception as e:
        click.echo(f"✗ Configuration validation failed: {e}", err=True)
        sys.exit(1)


@app.command()
def version():
    """Show version information."""
    click.echo(f"OAuth Probe v{__version__}")
    click.echo("Capture and heuristic probing of OAuth authorization endpoints")


if __name__ == "__main__":
    app()

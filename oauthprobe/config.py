import json
import logging
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

CAPTURE_POLICIES = ('redirect_uri', 'any_oauth_param')


@dataclass
class CaptureConfig:
    """Configuration for the capture store."""
    policy: str = 'redirect_uri'
    store_path: str = 'oauthprobe_store.json'


@dataclass
class ProbesConfig:
    """Destinations and literals used by the probe catalog."""
    different_domain: str = 'https://example.com'
    attacker_domain: str = 'attacker.com'
    dot_escape_char: str = 'X'
    webfinger_resource: str = 'acct:admin'


@dataclass
class OptionsConfig:
    """Network options for probe requests."""
    verify_ssl: bool = True
    max_concurrent: int = 2
    timeout_seconds: float = 15.0
    user_agent: str = 'oauthprobe/1.0'
    proxy: Optional[str] = None


@dataclass
class OutputConfig:
    """Output configuration."""
    results_dir: str = 'results/'


@dataclass
class ProbeConfig:
    """Complete configuration."""
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    probes: ProbesConfig = field(default_factory=ProbesConfig)
    options: OptionsConfig = field(default_factory=OptionsConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def load_config(config_path: Optional[str] = None) -> ProbeConfig:
    """
    Load configuration from a JSON file.

    Every section and key is optional; missing values take their defaults.

    Args:
        config_path: Path to the configuration JSON file, or None for defaults

    Returns:
        ProbeConfig object with parsed configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        json.JSONDecodeError: If config file is invalid JSON
        ValueError: If a section is not a JSON object
    """
    if config_path is None:
        return ProbeConfig()

    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    try:
        with open(config_file, 'r') as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError("Configuration root must be a JSON object")

        for section in ('capture', 'probes', 'options', 'output'):
            if not isinstance(data.get(section, {}), dict):
                raise ValueError(f"Configuration section '{section}' must be a JSON object")

        capture_data = data.get('capture', {})
        defaults = CaptureConfig()
        capture = CaptureConfig(
            policy=capture_data.get('policy', defaults.policy),
            store_path=capture_data.get('store_path', defaults.store_path)
        )

        probes_data = data.get('probes', {})
        defaults = ProbesConfig()
        probes = ProbesConfig(
            different_domain=probes_data.get('different_domain', defaults.different_domain),
            attacker_domain=probes_data.get('attacker_domain', defaults.attacker_domain),
            dot_escape_char=probes_data.get('dot_escape_char', defaults.dot_escape_char),
            webfinger_resource=probes_data.get('webfinger_resource', defaults.webfinger_resource)
        )

        options_data = data.get('options', {})
        defaults = OptionsConfig()
        options = OptionsConfig(
            verify_ssl=options_data.get('verify_ssl', defaults.verify_ssl),
            max_concurrent=options_data.get('max_concurrent', defaults.max_concurrent),
            timeout_seconds=options_data.get('timeout_seconds', defaults.timeout_seconds),
            user_agent=options_data.get('user_agent', defaults.user_agent),
            proxy=options_data.get('proxy', defaults.proxy)
        )

        output_data = data.get('output', {})
        output = OutputConfig(
            results_dir=output_data.get('results_dir', OutputConfig().results_dir)
        )

        config = ProbeConfig(capture=capture, probes=probes, options=options, output=output)

        logger.info(f"Capture policy: {config.capture.policy}, store: {config.capture.store_path}")

        return config

    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in configuration file: {e}")
        raise
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise


def validate_config(config: ProbeConfig) -> bool:
    """
    Validate configuration for common issues.

    Args:
        config: Configuration to validate

    Returns:
        True if configuration is valid

    Raises:
        ValueError: If configuration has validation errors
    """
    errors = []

    if config.capture.policy not in CAPTURE_POLICIES:
        errors.append(
            f"Invalid capture policy '{config.capture.policy}' "
            f"(expected one of: {', '.join(CAPTURE_POLICIES)})"
        )

    if not config.capture.store_path:
        errors.append("store_path must not be empty")

    destination = urlsplit(config.probes.different_domain or '')
    if destination.scheme not in ('http', 'https') or not destination.netloc:
        errors.append("different_domain must be an absolute http(s) URL")

    if not config.probes.attacker_domain:
        errors.append("attacker_domain must not be empty")

    if not config.probes.dot_escape_char or config.probes.dot_escape_char == '.':
        errors.append("dot_escape_char must be a non-empty literal other than '.'")

    if not config.probes.webfinger_resource:
        errors.append("webfinger_resource must not be empty")

    if config.options.max_concurrent <= 0:
        errors.append("max_concurrent must be positive")

    if config.options.timeout_seconds <= 0:
        errors.append("timeout_seconds must be positive")

    if errors:
        error_message = "Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors)
        logger.error(error_message)
        raise ValueError(error_message)

    return True

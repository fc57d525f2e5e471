import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from . import __version__
from .analyzer import AnalysisReport
from .runner import ProbeOutcome

logger = logging.getLogger(__name__)


class AnalysisReporter:
    """Turns analysis reports into JSON documents with interpreted findings."""

    def __init__(self, output_dir: str):
        """
        Initialize the reporter.

        Args:
            output_dir: Directory for report files
        """
        self.output_dir = Path(output_dir)

    def build_document(self, report: AnalysisReport) -> Dict[str, Any]:
        """
        Build the JSON-serializable report document.

        Args:
            report: Completed analysis report

        Returns:
            Dictionary with metadata, findings and the raw results
        """
        return {
            'metadata': {
                'analysis_id': report.analysis_id,
                'url': report.url,
                'started_at': report.started_at,
                'finished_at': report.finished_at,
                'generated_at': datetime.now(timezone.utc).isoformat(),
                'tool_version': __version__
            },
            'findings': self.analyze_findings(report),
            'results': report.to_dict()
        }

    def generate_report(self, report: AnalysisReport) -> str:
        """
        Write the report document to the output directory.

        Returns:
            Path to the generated report file
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        report_file = self.output_dir / f"analysis_report_{report.analysis_id}.json"

        with open(report_file, 'w') as f:
            json.dump(self.build_document(report), f, indent=2, default=str)

        logger.info(f"Report generated: {report_file}")
        return str(report_file)

    def analyze_findings(self, report: AnalysisReport) -> Dict[str, Any]:
        """
        Apply the interpretation policy to the raw outcomes.

        A redirect-URI variant that matches its baseline is a candidate open
        redirect. A parameter variant that matches is a candidate capability
        worth manual follow-up, not a vulnerability in itself.
        """
        findings = {
            'candidate_open_redirects': self._matching(report.redirect_uri_outcomes),
            'candidate_capabilities': self._matching(report.parameter_outcomes),
            'state': None,
            'discovery': {
                'openid_configuration': bool(report.openid_configuration and report.openid_configuration.exists),
                'webfinger': bool(report.webfinger and report.webfinger.exists)
            },
            'errors': self._collect_errors(report),
            'summary_stats': {
                'redirect_uri_tests': len(report.redirect_uri_outcomes),
                'parameter_tests': len(report.parameter_outcomes),
                'error_count': 0
            }
        }

        if report.state:
            findings['state'] = {
                'finding': report.state.finding.value,
                'description': report.state.description,
                'csrf_susceptible': report.state.csrf_susceptible
            }

        findings['summary_stats']['error_count'] = len(findings['errors'])
        return findings

    def _matching(self, outcomes: List[ProbeOutcome]) -> List[Dict[str, Any]]:
        return [
            {
                'name': outcome.name,
                'description': outcome.description,
                'url': outcome.url,
                'signal': outcome.signal.label,
                'location': outcome.location
            }
            for outcome in outcomes
            if outcome.matches_baseline
        ]

    def _collect_errors(self, report: AnalysisReport) -> List[Dict[str, str]]:
        errors = [{'slot': slot, 'message': message} for slot, message in report.errors.items()]

        for slot, outcomes in (('redirect_uri', report.redirect_uri_outcomes),
                               ('parameter_acceptance', report.parameter_outcomes)):
            for outcome in outcomes:
                if outcome.signal.is_error:
                    errors.append({'slot': f"{slot}:{outcome.name}", 'message': outcome.signal.message})

        if report.state and report.state.signal and report.state.signal.is_error:
            errors.append({'slot': 'state', 'message': report.state.signal.message})

        for result in (report.openid_configuration, report.webfinger):
            if result and result.error:
                errors.append({'slot': result.name, 'message': result.error})

        return errors

    def summary_lines(self, report: AnalysisReport) -> List[str]:
        """Short human-readable summary for terminal output."""
        findings = self.analyze_findings(report)
        lines = [f"Analysis {report.analysis_id} for {report.url}"]

        lines.append("Redirect URI:")
        for outcome in report.redirect_uri_outcomes:
            marker = '' if outcome.is_baseline else (' <- matches baseline' if outcome.matches_baseline else '')
            lines.append(f"  {outcome.name}: {outcome.signal.label}{marker}")

        lines.append("Parameter acceptance:")
        for outcome in report.parameter_outcomes:
            marker = '' if outcome.is_baseline else (' <- accepted' if outcome.matches_baseline else '')
            lines.append(f"  {outcome.name}: {outcome.signal.label}{marker}")

        if findings['state']:
            lines.append(f"State: {findings['state']['description']}")

        for result in (report.openid_configuration, report.webfinger):
            if result:
                detail = result.status_code if result.error is None else result.error
                lines.append(f"{result.name}: {'present' if result.exists else 'absent'} ({detail})")

        for slot, message in report.errors.items():
            lines.append(f"{slot}: failed ({message})")

        return lines

"""
HTML Reporter

Writes a single self-contained HTML page: a pass/fail banner, summary
cards, a distribution bar and one collapsible entry per test with its
phases and steps. Every value taken from a test run is escaped.
"""

import json
import logging
import re
from datetime import datetime
from html import escape
from typing import Any, Dict, List, Optional

from ..models import PhaseResult, StepResult, TestExecutionResult, TestStatus, TestSuiteResult
from .base import BaseReporter

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = "e2e-report.html"

STATUS_ICONS = {
    TestStatus.PASSED: "&#10003;",
    TestStatus.FAILED: "&#10007;",
    TestStatus.ERROR: "&#10007;",
    TestStatus.SKIPPED: "&#8211;",
}

STYLES = """<style>
  :root {
    --pass: #22c55e; --fail: #ef4444; --skip: #f59e0b;
    --bg: #f8fafc; --card: #ffffff; --text: #1e293b; --muted: #64748b; --border: #e2e8f0;
  }
  * { box-sizing: border-box; margin: 0; padding: 0; }
  body { font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; background: var(--bg); color: var(--text); line-height: 1.6; }
  .container { max-width: 1200px; margin: 0 auto; padding: 2rem; }
  .header { text-align: center; margin-bottom: 2rem; }
  .header .timestamp { color: var(--muted); font-size: 0.875rem; }
  .badge { display: inline-block; padding: 0.5rem 1.5rem; border-radius: 9999px; font-weight: 600; color: white; margin-top: 1rem; }
  .badge.pass { background: var(--pass); }
  .badge.fail { background: var(--fail); }
  .dashboard { display: grid; grid-template-columns: repeat(auto-fit, minmax(160px, 1fr)); gap: 1rem; margin-bottom: 2rem; }
  .card { background: var(--card); border-radius: 8px; padding: 1.5rem; text-align: center; box-shadow: 0 1px 3px rgba(0,0,0,0.1); }
  .card .value { font-size: 2rem; font-weight: 700; }
  .card .label { color: var(--muted); font-size: 0.8rem; text-transform: uppercase; }
  .card.passed .value { color: var(--pass); }
  .card.failed .value { color: var(--fail); }
  .card.skipped .value { color: var(--skip); }
  .bar { height: 24px; background: var(--border); border-radius: 12px; overflow: hidden; display: flex; margin-bottom: 2rem; }
  .bar .passed { background: var(--pass); }
  .bar .failed { background: var(--fail); }
  .bar .skipped { background: var(--skip); }
  .tests { background: var(--card); border-radius: 8px; box-shadow: 0 1px 3px rgba(0,0,0,0.1); }
  .tests h2 { padding: 1rem 1.5rem; border-bottom: 1px solid var(--border); }
  details.test { border-bottom: 1px solid var(--border); }
  details.test summary { display: flex; gap: 1rem; align-items: center; padding: 1rem 1.5rem; cursor: pointer; }
  .status { width: 24px; height: 24px; border-radius: 50%; color: white; text-align: center; font-size: 0.75rem; flex-shrink: 0; }
  .status.passed, .dot.passed { background: var(--pass); }
  .status.failed, .status.error, .dot.failed, .dot.error { background: var(--fail); }
  .status.skipped, .dot.skipped { background: var(--skip); }
  .name { flex: 1; font-weight: 500; }
  .description, .duration, .adapter, .detail { color: var(--muted); font-size: 0.85rem; }
  .body { padding: 0 1.5rem 1rem; background: var(--bg); }
  .phase { margin-top: 1rem; font-size: 0.875rem; }
  .phase-header { font-weight: 600; }
  .dot { display: inline-block; width: 8px; height: 8px; border-radius: 50%; margin-right: 0.5rem; }
  .steps { margin-left: 1rem; padding-left: 1rem; border-left: 2px solid var(--border); }
  .step { padding: 0.25rem 0; }
  .action { font-family: monospace; background: var(--card); padding: 0 0.375rem; border-radius: 4px; }
  .error { background: #fef2f2; border: 1px solid #fecaca; border-radius: 4px; padding: 0.75rem; margin-top: 0.5rem; font-family: monospace; font-size: 0.8rem; white-space: pre-wrap; color: var(--fail); }
  pre { background: var(--card); padding: 0.5rem; border-radius: 4px; font-size: 0.75rem; overflow-x: auto; }
</style>"""


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _pretty(value: Any) -> str:
    try:
        return json.dumps(value, indent=2, default=str)
    except (TypeError, ValueError):
        return str(value)


def _percent(count: int, total: int) -> float:
    return round(count / (total or 1) * 100, 2)


class HTMLReporter(BaseReporter):
    name = "html"

    def generate_report(self, result: TestSuiteResult):
        path = self.write_file(self.output or DEFAULT_OUTPUT, self.build_html(result))
        logger.info(f"HTML report written to {path}")

    def build_html(self, result: TestSuiteResult) -> str:
        timestamp = self.format_timestamp(datetime.now())
        summary = self.calculate_summary(result)
        tests = "\n".join(self._test_item(r) for r in result.results)
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>E2E Test Report - {escape(timestamp)}</title>
  {STYLES}
</head>
<body>
  <div class="container">
    {self._header(result, timestamp)}
    {self._dashboard(summary)}
    {self._distribution(summary)}
    <div class="tests">
      <h2>Test Results</h2>
      {tests}
    </div>
  </div>
</body>
</html>
"""

    # =========================================================================
    # Sections
    # =========================================================================

    @staticmethod
    def _header(result: TestSuiteResult, timestamp: str) -> str:
        badge = ("pass", "ALL TESTS PASSED") if result.success else ("fail", "TESTS FAILED")
        return (
            f'<header class="header"><h1>{escape(result.name or "E2E Test Report")}</h1>'
            f'<div class="timestamp">Generated: {escape(timestamp)}</div>'
            f'<div class="badge {badge[0]}">{badge[1]}</div></header>'
        )

    @staticmethod
    def _dashboard(summary: Dict[str, Any]) -> str:
        cards = [
            ("", summary["total"], "Total Tests"),
            ("passed", summary["passed"], "Passed"),
            ("failed", summary["failed"], "Failed"),
            ("skipped", summary["skipped"], "Skipped"),
            ("", f"{summary['passRate']}%", "Pass Rate"),
            ("", summary["duration"], "Duration"),
        ]
        body = "".join(
            f'<div class="card {css}"><div class="value">{value}</div><div class="label">{label}</div></div>'
            for css, value, label in cards
        )
        return f'<div class="dashboard">{body}</div>'

    @staticmethod
    def _distribution(summary: Dict[str, Any]) -> str:
        total = summary["total"]
        segments = "".join(
            f'<div class="{key}" style="width: {_percent(summary[key], total)}%"></div>'
            for key in ("passed", "failed", "skipped")
        )
        return f'<div class="bar">{segments}</div>'

    def _test_item(self, test: TestExecutionResult) -> str:
        status = test.status.value
        description = test.test.description
        described = f'<div class="description">{escape(description)}</div>' if description else ""
        skip_reason = f'<div class="detail">Skipped: {escape(test.skip_reason)}</div>' if test.skip_reason else ""
        phases = "".join(self._phase(p) for p in test.phases)
        open_attr = " open" if test.status in (TestStatus.FAILED, TestStatus.ERROR) else ""
        return (
            f'<details class="test" data-name="{escape(test.name)}"{open_attr}>'
            f'<summary><span class="status {status}">{STATUS_ICONS.get(test.status, "?")}</span>'
            f'<span class="name">{escape(test.name)}{described}</span>'
            f'<span class="duration">{self.format_duration(test.duration)}</span></summary>'
            f'<div class="body">{skip_reason}{phases}{self._error_box(test.error)}</div>'
            f"</details>"
        )

    def _phase(self, phase: PhaseResult) -> str:
        steps = "".join(self._step(s) for s in phase.steps)
        return (
            f'<div class="phase"><div class="phase-header">'
            f'<span class="dot {phase.status.value}"></span>{phase.phase.value.upper()} '
            f'<span class="duration">{self.format_duration(phase.duration)}</span></div>'
            f'<div class="steps">{steps}</div>{self._error_box(phase.error)}</div>'
        )

    def _step(self, step: StepResult) -> str:
        description = f" - {escape(step.description)}" if step.description else ""
        error = f'<div class="error">{escape(str(step.error))}</div>' if step.error else ""
        return (
            f'<div class="step"><span class="dot {step.status.value}"></span>'
            f'<span class="adapter">[{escape(step.adapter or "")}]</span> '
            f'<span class="action">{escape(step.action or step.id)}</span>{description} '
            f'<span class="duration">({self.format_duration(step.duration)})</span>'
            f"{self._step_details(step)}{error}</div>"
        )

    def _error_box(self, error: Optional[BaseException]) -> str:
        if error is None:
            return ""
        formatted = self.format_error(error)
        text = formatted["message"]
        if self.verbose and formatted["stack"]:
            text += "\n\n" + formatted["stack"]
        return f'<div class="error">{escape(text)}</div>'

    # =========================================================================
    # Adapter-specific step details
    # =========================================================================

    def _step_details(self, step: StepResult) -> str:
        if not isinstance(step.data, dict):
            return ""
        if step.adapter == "http":
            summary, sections = self._http_details(step.data)
        elif step.adapter == "postgresql":
            summary, sections = self._sql_details(step.data)
        elif step.adapter == "redis":
            summary, sections = self._redis_details(step.data)
        else:
            return ""
        if not summary:
            return ""
        blocks = "".join(
            f'<div class="detail">{escape(label)}</div><pre>{escape(_pretty(value))}</pre>'
            for label, value in sections
        )
        details = f"<details><summary>Details</summary>{blocks}</details>" if blocks else ""
        return f'<div class="detail">{summary}</div>{details}'

    @staticmethod
    def _http_details(data: Dict[str, Any]):
        request, response = data.get("request"), data.get("response")
        if not isinstance(request, dict) or not isinstance(response, dict):
            return "", []
        method = escape(str(request.get("method") or "GET"))
        url = escape(_truncate(str(request.get("url") or ""), 80))
        summary = f"{method} {url} &rarr; {escape(str(response.get('status', 0)))}"
        sections = [("Request Headers", request.get("headers") or {})]
        if request.get("body") is not None:
            sections.append(("Request Body", request["body"]))
        if response.get("body") is not None:
            sections.append(("Response Body", response["body"]))
        return summary, sections

    @staticmethod
    def _sql_details(data: Dict[str, Any]):
        query = data.get("query")
        if not query:
            return "", []
        if data.get("count") is not None:
            outcome = f" &rarr; {data['count']}"
        elif data.get("rowCount") is not None:
            outcome = f" &rarr; {data['rowCount']} row{'' if data['rowCount'] == 1 else 's'}"
        elif data.get("command"):
            outcome = f" &rarr; {escape(str(data['command']))}"
        else:
            outcome = ""
        summary = escape(_truncate(re.sub(r"\s+", " ", str(query)).strip(), 60)) + outcome
        sections: List = [("Query", query)]
        if data.get("params"):
            sections.append(("Parameters", data["params"]))
        if data.get("rows"):
            sections.append((f"Result (first {len(data['rows'])} rows)", data["rows"]))
        return summary, sections

    @staticmethod
    def _redis_details(data: Dict[str, Any]):
        command = data.get("command")
        if not command:
            return "", []
        target = " ".join(str(data[k]) for k in ("key", "field") if data.get(k))
        summary = f"{escape(str(command))} {escape(target)}"
        if "result" in data:
            summary += f" &rarr; {escape(_truncate(_pretty(data['result']), 30))}"
        sections = [(label.title(), data[label]) for label in ("value", "result") if label in data]
        return summary, sections

"""Terminal and Markdown formatters for simulation results."""

from __future__ import annotations

from tabulate import tabulate

from netsimlab.simulation.models import SimulationResult
from netsimlab.topology.mermaid import PathMermaidGenerator

QUERY_KINDS = ("ping", "dns", "http")

_KIND_TITLES = {
    "ping": "Ping",
    "dns": "DNS lookup",
    "http": "HTTP request",
}

HTTP_STATUS_TEXT = {
    200: "OK",
    204: "No Content",
    404: "Not Found",
    503: "Service Unavailable",
}

USER_AGENT = "NetSimLab/1.0"


def _arrow_path(path: list[str]) -> str:
    return " -> ".join(path)


def _step_rows(result: SimulationResult) -> list[list[str]]:
    rows = []
    for index, step in enumerate(result.steps, start=1):
        failed = "; ".join(f.describe() for f in step.failed_routes) or "-"
        rows.append([str(index), step.device, step.action, failed])
    return rows


def format_summary(kind: str, result: SimulationResult) -> str:
    """Short plain-text verdict suitable for a grading comment."""
    title = _KIND_TITLES.get(kind, kind)
    verdict = "OK" if result.success else "FAILED"
    lines = [f"[{verdict}] {title}: {result.message.splitlines()[0] if result.message else ''}"]

    if not result.success and result.steps:
        lines.append(f"Hint: {result.steps[0].action}")

    if kind == "ping" and result.path:
        lines.append(f"Path: {_arrow_path(result.path)}")
    elif kind == "dns" and result.response_label:
        lines.append(f"DNS result: {result.response_label}")
    elif kind == "http":
        if result.http_status_code is not None:
            outcome = "success" if result.http_success else "failure"
            lines.append(f"HTTP status: {result.http_status_code} ({outcome})")
        if result.request_path:
            lines.append(f"Path: {_arrow_path(result.request_path)}")

    return "\n".join(lines)


def format_request_log(host: str, path: str = "/", method: str = "GET") -> str:
    """Raw HTTP/1.1 request head as a browser would send it."""
    return "\n".join(
        [
            f"{method} {path} HTTP/1.1",
            f"Host: {host}",
            f"User-Agent: {USER_AGENT}",
            "Accept: text/html",
            "Connection: keep-alive",
            "",
        ]
    )


def format_response_log(result: SimulationResult) -> str:
    """Raw HTTP/1.1 response for an HTTP simulation result."""
    status = result.http_status_code or 0
    lines = [
        f"HTTP/1.1 {status} {HTTP_STATUS_TEXT.get(status, 'Unknown')}",
        "Content-Type: text/html; charset=utf-8",
        f"Server: {USER_AGENT}",
        "Connection: keep-alive",
        "",
    ]
    if result.content:
        lines.append(result.content)
    return "\n".join(lines)


class TerminalFormatter:
    """Format a SimulationResult as plain-text terminal output."""

    def __init__(self, result: SimulationResult, kind: str = "ping") -> None:
        self.result = result
        self.kind = kind

    def format(self) -> str:
        """Return the complete terminal output as a string."""
        r = self.result
        lines: list[str] = []

        title = _KIND_TITLES.get(self.kind, self.kind)
        lines.append(f"  {title}: {'SUCCESS' if r.success else 'FAILED'}")
        if r.failure is not None:
            lines.append(f"  Failure: {r.failure.value}")
        if r.path_failure is not None:
            lines.append(f"  Cause:   {r.path_failure.value}")
        if r.http_status_code is not None:
            lines.append(f"  Status:  {r.http_status_code} {HTTP_STATUS_TEXT.get(r.http_status_code, 'Unknown')}")
        if r.resolved_address:
            lines.append(f"  Address: {r.resolved_address}")

        if r.is_round_trip:
            lines.append(f"  Request:  {_arrow_path(r.request_path)}  [{r.request_label}]")
            lines.append(f"  Response: {_arrow_path(r.response_path)}  [{r.response_label}]")
        elif r.path:
            lines.append(f"  Path:    {_arrow_path(r.path)}")

        lines.append("")
        lines.extend(r.message.splitlines())

        if r.dns is not None:
            lines.append(f"\n{'=' * 78}")
            lines.append("  DNS")
            lines.append(f"{'=' * 78}")
            lines.append(TerminalFormatter(r.dns, kind="dns").format())

        if r.steps:
            lines.append(f"\n{'=' * 78}")
            lines.append("  TRACE")
            lines.append(f"{'=' * 78}")
            lines.append(tabulate(_step_rows(r), headers=["#", "Device", "Action", "Failed routes"], tablefmt="simple"))

        if self.kind == "http" and r.http_status_code is not None:
            lines.append(f"\n{'=' * 78}")
            lines.append("  HTTP RESPONSE")
            lines.append(f"{'=' * 78}")
            lines.append(format_response_log(r))

        return "\n".join(lines)


class MarkdownFormatter:
    """Format a SimulationResult as Markdown with a Mermaid path diagram."""

    def __init__(self, result: SimulationResult, kind: str = "ping") -> None:
        self.result = result
        self.kind = kind

    def format(self) -> str:
        """Return the complete Markdown document as a string."""
        r = self.result
        lines: list[str] = []

        title = _KIND_TITLES.get(self.kind, self.kind)
        lines.append(f"# {title}: {'success' if r.success else 'failed'}\n")
        if r.failure is not None:
            lines.append(f"- **Failure:** `{r.failure.value}`")
        if r.path_failure is not None:
            lines.append(f"- **Cause:** `{r.path_failure.value}`")
        if r.http_status_code is not None:
            status_text = HTTP_STATUS_TEXT.get(r.http_status_code, "Unknown")
            lines.append(f"- **HTTP status:** {r.http_status_code} {status_text}")
        if r.domain:
            lines.append(f"- **Domain:** {r.domain}")
        if r.resolved_address:
            lines.append(f"- **Address:** {r.resolved_address}")
        if r.path:
            lines.append(f"- **Path:** {_arrow_path(r.path)}")
        lines.append("")

        lines.append("```text")
        lines.extend(r.message.splitlines())
        lines.append("```\n")

        if r.steps:
            lines.append("## Trace\n")
            lines.append(tabulate(_step_rows(r), headers=["#", "Device", "Action", "Failed routes"], tablefmt="github"))
            lines.append("")

        if r.path:
            lines.append("## Path\n")
            lines.extend(PathMermaidGenerator(r).generate().splitlines())

        if r.dns is not None:
            lines.append("## DNS\n")
            nested = MarkdownFormatter(r.dns, kind="dns").format()
            # demote nested headings one level
            lines.extend(("#" + line) if line.startswith("#") else line for line in nested.splitlines())

        return "\n".join(lines)

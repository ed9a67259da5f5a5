import json
import logging
import sys
from typing import Optional

import typer
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

from permgate._approval import classify
from permgate.config import settings
from permgate.display import console, display_error, display_info, render_verdict, set_theme, TerminalFrontend
from permgate.gate import BASH_TOOL, evaluate_tool_call
from permgate.status import _version, get_status, render_policy_table, render_status_table

app = typer.Typer(
    help="permgate - decide which agent shell commands may run without confirmation",
    context_settings={"help_option_names": ["--help", "-h"]},
    no_args_is_help=True,
)

EXIT_SKIP = 1
EXIT_ABORT = 2


def _enable_tracing() -> None:
    """Print gate spans to stderr as they finish."""
    resource = Resource.create({
        "service.name": "permgate",
        "service.version": _version(),
    })
    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter(out=sys.stderr)))
    trace.set_tracer_provider(tracer_provider)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log classifier decisions to stderr"),
    theme: Optional[str] = typer.Option(None, "--theme", "-t", help="Color theme: dark or light"),
    trace_spans: bool = typer.Option(False, "--trace", help="Print permission gate spans to stderr"),
):
    """Shell command permission gate for coding agents."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    if theme:
        set_theme(theme)
    if trace_spans:
        _enable_tracing()


@app.command()
def check(
    command: str = typer.Argument(..., help="Shell command to classify (quote it)"),
    as_json: bool = typer.Option(False, "--json", "-j", help="Print the verdict as JSON"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="No output, exit code only"),
):
    """Classify COMMAND. Exit 0 if it is safe to run unattended, 1 otherwise."""
    verdict = classify(command, settings.policy)

    if as_json:
        typer.echo(json.dumps({
            "command": command,
            "safe": verdict.safe,
            "reason": verdict.reason,
            "segments": [{"segment": s.segment, "rule": s.rule} for s in verdict.segments],
        }))
    elif not quiet:
        console.print(render_verdict(command, verdict))

    if not verdict.safe:
        raise typer.Exit(code=1)


@app.command()
def gate(
    command: str = typer.Argument(..., help="Shell command about to be run"),
    interactive: Optional[bool] = typer.Option(
        None, "--interactive/--no-interactive",
        help="Force prompting on or off (default: prompt only on a terminal)",
    ),
):
    """Gate COMMAND: pass if safe, otherwise ask allow/skip/abort.

    Exit 0 to proceed, 1 to skip this command, 2 to abort the task.
    """
    decision = evaluate_tool_call(
        BASH_TOOL, {"command": command}, TerminalFrontend(interactive),
        policy=settings.policy,
        auto_allow_tools=settings.auto_allow_tools,
    )
    if not decision.block:
        return
    if decision.abort:
        display_error(decision.reason or "aborted", hint="Cancel the in-flight task.")
        raise typer.Exit(code=EXIT_ABORT)
    display_info(decision.reason or "skipped")
    raise typer.Exit(code=EXIT_SKIP)


@app.command()
def policy():
    """Show the active shell policy tables."""
    console.print(render_policy_table(settings.policy))


@app.command()
def status():
    """Show version, config files and policy table sizes."""
    info = get_status(settings)
    console.print(render_status_table(info))


if __name__ == "__main__":
    app()

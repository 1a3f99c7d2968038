"""CLI entry point for difflens.

Reviews the changes between two commits of a local git repository with an
LLM served over an OpenAI-compatible API and writes the findings to a static
HTML report.

Options given on the command line override the YAML config file
(``.difflens.yml`` by default), which overrides the built-in defaults.
"""

from __future__ import annotations

import logging
import sys

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from difflens_core.config import ConfigurationError, build_run_config, load_config
from difflens_core.models import SEVERITIES
from difflens_core.reviewer import ReviewSummary, run_review

console = Console()
err_console = Console(stderr=True)

CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
    # Unknown flags are reported and skipped rather than rejected.
    "ignore_unknown_options": True,
    "allow_extra_args": True,
}

_LOGGER_NAMES = ("difflens_core", "difflens_cli")


def _configure_logging(verbose: bool) -> None:
    handler = RichHandler(console=err_console, show_time=False, show_path=False)
    for name in _LOGGER_NAMES:
        log = logging.getLogger(name)
        log.handlers = [handler]
        log.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _score_style(score: int) -> str:
    if score == 0:
        return "dim"
    if score >= 80:
        return "green"
    if score >= 50:
        return "yellow"
    return "red"


def _print_progress(index: int, total: int, path: str) -> None:
    console.print(f"[[{index}/{total}]] Reviewing: {escape(path)}")


def print_summary(summary: ReviewSummary) -> None:
    """Print one row per reviewed file: path, score and comment count."""
    table = Table(title="Review Summary", show_header=True)
    table.add_column("File")
    table.add_column("Score", justify="right")
    table.add_column("Comments", justify="right")
    for result in summary.results:
        style = _score_style(result.overall_score)
        score = "failed" if result.overall_score == 0 else str(result.overall_score)
        table.add_row(escape(result.path), f"[{style}]{score}[/{style}]", str(len(result.comments)))
    console.print(table)

    failed = summary.failed_files
    if failed:
        console.print(f"[yellow]{len(failed)} file(s) could not be reviewed; see the report for details.[/yellow]")


@click.command(context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="difflens", prog_name="difflens")
@click.option("-d", "--directory", default=None, help="Path to the repository directory to review. Required.")
@click.option("-s", "--start-commit", default=None, help="Starting commit for the comparison (default: HEAD~1).")
@click.option("-e", "--end-commit", default=None, help="Ending commit for the comparison (default: HEAD).")
@click.option("-o", "--output", default=None, help="Output HTML file path (default: index.html).")
@click.option("--ignore-file", default=None, help="Path to a .reviewignore file (default: ./.reviewignore).")
@click.option("--rules-file", default=None, help="Path to a custom review rules file.")
@click.option("--url", default=None, help="LLM server base URL (default: http://localhost:1234).")
@click.option("--model", default=None, help="Model name for reviews (default: gpt-oss-20b).")
@click.option("--temperature", type=float, default=None, help="Sampling temperature, 0.0-1.0 (default: 0.7).")
@click.option("--max-size", type=int, default=None, help="Maximum bytes of file content sent per file (default: 1048576).")
@click.option("--no-diff", "no_diff", is_flag=True, help="Don't include the git diff in the report.")
@click.option("-c", "--client", default=None, help="LLM client: lmstudio or openai (default: lmstudio).")
@click.option("--stream", is_flag=True, help="Read model replies through the streaming API.")
@click.option(
    "--severity",
    "severities",
    multiple=True,
    type=click.Choice(SEVERITIES, case_sensitive=False),
    help="Only report comments of this severity. Repeatable (default: all).",
)
@click.option(
    "--config",
    "config_path",
    default=".difflens.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="DIFFLENS_CONFIG",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(
    ctx: click.Context,
    directory: str | None,
    start_commit: str | None,
    end_commit: str | None,
    output: str | None,
    ignore_file: str | None,
    rules_file: str | None,
    url: str | None,
    model: str | None,
    temperature: float | None,
    max_size: int | None,
    no_diff: bool,
    client: str | None,
    stream: bool,
    severities: tuple[str, ...],
    config_path: str,
    verbose: bool,
):
    """Review the changes between two commits with an LLM and write an HTML report.

    \b
    Examples:
      difflens --directory .
      difflens -d . --start-commit abc123 --end-commit def456
      difflens -d ./my-project -o review.html --rules-file rules.txt --temperature 0.5
    """
    _configure_logging(verbose)

    for arg in ctx.args:
        err_console.print(f"Warning: Unknown argument '{arg}' will be ignored.", style="yellow", markup=False)

    overrides = {
        "directory": directory,
        "start_commit": start_commit,
        "end_commit": end_commit,
        "output": output,
        "ignore_file": ignore_file,
        "rules_file": rules_file,
        "url": url,
        "model": model,
        "temperature": temperature,
        "max_size": max_size,
        "include_diff": False if no_diff else None,
        "client": client,
        "stream": True if stream else None,
        "severities": [s.capitalize() for s in severities] or None,
    }
    try:
        config = build_run_config(load_config(config_path, cli_overrides=overrides))
    except (ConfigurationError, yaml.YAMLError) as e:
        raise click.UsageError(str(e), ctx=ctx)

    console.print("[bold]=== Code Review Agent ===[/bold]")
    console.print(f"Repository: {escape(config.directory)}")
    if config.start_commit:
        console.print(f"Start Commit: {escape(config.start_commit)}")
    if config.end_commit:
        console.print(f"End Commit: {escape(config.end_commit)}")

    try:
        summary = run_review(config, on_file=_print_progress)
    except Exception as e:
        err_console.print(f"Error: {e}", style="red", markup=False)
        if e.__cause__ is not None:
            err_console.print(f"Inner Error: {e.__cause__}", style="red", markup=False)
        sys.exit(1)

    if summary.output_path is None:
        console.print("[yellow]No changed files found to review.[/yellow]")
        return

    print_summary(summary)
    console.print(f"\n[green]Code review completed. Report generated: {escape(summary.output_path)}[/green]")

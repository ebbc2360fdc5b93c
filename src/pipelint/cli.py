# cli.py
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from pipelint.linter import LintReport, lint
from pipelint.loader import DirectoryTemplateSource, LoadError, load_document
from pipelint.settings import LintSettings
from pipelint.ui.console import Console, get_console, set_console

EXIT_FINDINGS = 1
EXIT_USAGE = 2


def parse_params(values: tuple[str, ...]) -> dict[str, str]:
    """
    Turn repeated `--param name=value` options into a dict.

    Raises:
        click.BadParameter: If an entry has no '='
    """
    params: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected name=value, got {item!r}", param_hint="--param")
        params[name.strip()] = value
    return params


def lint_options(f):
    """Options shared by `validate` and `plan`."""
    options = [
        click.argument("file", type=click.Path(dir_okay=False, path_type=Path)),
        click.option("--param", "params", multiple=True, metavar="NAME=VALUE", help="Runtime parameter value (repeatable)"),
        click.option(
            "--templates",
            "template_dir",
            default=None,
            type=click.Path(file_okay=False, path_type=Path),
            help="Directory template paths are resolved against (defaults to the file's directory)",
        ),
        click.option("--max-depth", default=None, type=int, help="Maximum template nesting depth"),
        click.option("--strict/--no-strict", default=None, help="Treat warnings as failures"),
        click.option("--workers", default=None, type=int, help="Threads used to validate stages"),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _settings(max_depth, strict, workers) -> LintSettings:
    console = get_console()
    try:
        return LintSettings.from_env(max_template_depth=max_depth, strict=strict, workers=workers)
    except (ValidationError, ValueError) as e:
        console.print_error(
            "Invalid settings",
            "Could not build settings from options and PIPELINT_* environment variables.",
            details=[str(e)],
        )
        sys.exit(EXIT_USAGE)


def _run_lint(file: Path, params, template_dir, settings: LintSettings) -> LintReport:
    console = get_console()
    bindings = parse_params(params)
    template_root = template_dir if template_dir is not None else file.parent

    try:
        document = load_document(file)
    except FileNotFoundError:
        console.print_error(
            "Pipeline file not found",
            f"Could not find pipeline file: {file}",
            suggestion="Pass the path to an azure-pipelines.yml file:\n  pipelint validate azure-pipelines.yml",
        )
        sys.exit(EXIT_USAGE)
    except LoadError as e:
        console.print_error("Failed to load pipeline", str(e))
        sys.exit(EXIT_USAGE)

    console.print_lint_started(str(file), str(template_root), bindings)
    return lint(document, bindings, DirectoryTemplateSource(template_root), settings)


def _finish(report: LintReport, settings: LintSettings) -> None:
    console = get_console()
    result = report.result
    console.print_findings(result)
    console.print_summary(len(result.errors), len(result.warnings), strict=settings.strict)
    if report.failed(strict=settings.strict):
        sys.exit(EXIT_FINDINGS)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """pipelint: validate Azure Pipelines YAML and plan its jobs."""
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@lint_options
def validate(file, params, template_dir, max_depth, strict, workers):
    """Validate a pipeline file and its templates."""
    console = get_console()
    settings = _settings(max_depth, strict, workers)
    try:
        report = _run_lint(file, params, template_dir, settings)
    except click.ClickException:
        raise
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_FINDINGS)
    _finish(report, settings)


@cli.command()
@lint_options
def plan(file, params, template_dir, max_depth, strict, workers):
    """Print the execution plan: batches of jobs that can run together."""
    console = get_console()
    settings = _settings(max_depth, strict, workers)
    try:
        report = _run_lint(file, params, template_dir, settings)
    except click.ClickException:
        raise
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_FINDINGS)
    if report.plan is not None:
        implicit = settings.implicit_stage_name if report.pipeline and report.pipeline.implicit_stage else None
        console.print_plan(report.plan, implicit_stage=implicit)
    _finish(report, settings)


if __name__ == "__main__":
    cli()

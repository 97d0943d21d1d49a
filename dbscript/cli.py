#!/usr/bin/env python3
"""
dbscript – replay SQL scripts exported by database tools.

• `dbscript split FILE`            show how a script is cut into statements
• `dbscript run FILE… -e ENV`      execute scripts against a configured DB

Splitting and tolerance options come from the `script:` section of
dbscript.config.yml; command‑line flags win over the file.
"""
from __future__ import annotations

import collections
import logging
import pathlib
import sys

import click
import sqlparse

from dbscript import __version__
from dbscript.config import ConfigError, Environment, ScriptOptions, load, load_options
from dbscript.driver import connection
from dbscript.errors import ScriptError
from dbscript.executor import ScriptExecutor
from dbscript.model import ExecutionOutcome
from dbscript.resource import ScriptResource, load_script
from dbscript.splitter import resolve_separator, split_sql_script

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def _load_env(ctx, _param, value) -> Environment:
    try:
        return load(ctx.obj["config_path"], value)
    except ConfigError as exc:
        click.echo(f"Config error: {exc}", err=True)
        sys.exit(1)


def _options(ctx, **overrides) -> ScriptOptions:
    try:
        return load_options(ctx.obj["config_path"]).merged(**overrides)
    except ConfigError as exc:
        click.echo(f"Config error: {exc}", err=True)
        sys.exit(1)


@click.group()
@click.option(
    "-c", "--config", "config_path", type=click.Path(), help="config YAML"
)
@click.option("-v", "--verbose", is_flag=True, help="log every statement")
@click.pass_context
def main(ctx, config_path, verbose):
    _configure_logging(verbose)
    ctx.obj = {"config_path": pathlib.Path(config_path) if config_path else None}


@main.command()
def version():
    click.echo(__version__)


@main.command("split")
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.option("--separator")
@click.option("--encoding")
@click.option("--pretty", is_flag=True, help="reindent each statement")
@click.pass_context
def split_cmd(ctx, script, separator, encoding, pretty):
    opts = _options(ctx, separator=separator, encoding=encoding)
    resource = ScriptResource(script, opts.encoding)
    try:
        text = load_script(resource, opts.comment_prefix, opts.separator)
        statements = split_sql_script(
            text,
            resolve_separator(text, opts.separator),
            opts.comment_prefix,
            opts.block_comment_start,
            opts.block_comment_end,
            resource=resource,
        )
    except (ScriptError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    for stmt in statements:
        sql = stmt.text
        if pretty:
            sql = sqlparse.format(sql, reindent=True, keyword_case="upper")
        click.echo(f"-- #{stmt.number}")
        click.echo(sql)


@main.command("run")
@click.argument("scripts", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("-e", "--env", callback=_load_env, expose_value=True)
@click.option("--separator")
@click.option("--encoding")
@click.option("--continue-on-error", is_flag=True)
@click.option("--ignore-failed-drops", is_flag=True)
@click.pass_context
def run_cmd(ctx, scripts, env, separator, encoding, continue_on_error, ignore_failed_drops):
    opts = _options(
        ctx,
        separator=separator,
        encoding=encoding,
        continue_on_error=continue_on_error or None,
        ignore_failed_drops=ignore_failed_drops or None,
    )
    executor = ScriptExecutor(opts)

    with connection(env) as conn:
        for script in scripts:
            click.echo(f"▶ Running {script}")
            try:
                executor.execute(conn, ScriptResource(script, opts.encoding))
            except (ScriptError, ValueError) as exc:
                click.echo(f"Error: {exc}", err=True)
                sys.exit(1)

            counts = collections.Counter(outcome.value for _, outcome in executor.outcomes)
            recovered = sum(1 for _, outcome in executor.recovery_outcomes if outcome is ExecutionOutcome.EXECUTED)
            summary = ", ".join(f"{name} {n}" for name, n in sorted(counts.items()))
            click.echo(f"  {summary or 'no statements'}  |  recovered blocks {recovered}")

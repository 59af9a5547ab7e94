# cli.py
from __future__ import annotations

import json
import sys
from dataclasses import replace
from pathlib import Path

import click

from buildserver.client import APIError, BuildServerClient
from buildserver.errors import StepError
from buildserver.logs import configure_logging
from buildserver.runner import CommandRunner
from buildserver.settings import Settings
from buildserver.steps.repos import checkout_revisions, read_manifest, restore_mainline
from buildserver.ui.console import Console, get_console, set_console


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """Build server: serialized build and deploy of HTML simulations."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--host", default=None, help="Interface to bind (defaults to settings)")
@click.option("--port", default=None, type=int, help="Port to listen on (defaults to 16371)")
@click.option("--log-file", default=None, type=click.Path(dir_okay=False, path_type=Path), help="Also log to this file")
@click.option("--silent", is_flag=True, default=False, help="Do not log to the console")
@click.option("--verbose", is_flag=True, default=False, help="Log output of every build command")
@click.pass_context
def serve(ctx, host, port, log_file, silent, verbose):
    """Run the build server."""
    console = get_console()
    try:
        settings = Settings.from_env()
        settings = replace(
            settings,
            host=host or settings.host,
            port=port or settings.port,
            verbose=verbose or settings.verbose,
        )
        settings.validate_for_server()
    except ValueError as e:
        console.print_error(
            "Invalid configuration",
            str(e),
            suggestion="Set BUILD_SERVER_AUTHORIZATION_CODE or add buildServerAuthorizationCode to the deploy config.",
        )
        sys.exit(1)

    configure_logging(log_file=log_file, silent=silent, debug=ctx.obj.get("debug", False))
    console.print_server_started(
        host=settings.host,
        port=settings.port,
        repos_root=str(settings.repos_root.resolve()),
        log_file=str(log_file) if log_file else None,
    )

    import uvicorn

    from buildserver.server.main import create_app

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


@cli.command()
@click.option("--api", required=True, help="Build server base URL (e.g., http://localhost:16371)")
@click.option("--sim", "sim_name", required=True, help="Simulation (repository) name, e.g. area-builder")
@click.option("--version", "version", required=True, help="Version to deploy; suffixes are stripped by the server")
@click.option(
    "--dependencies",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="dependencies.json with the revision of every repository",
)
@click.option("--locales", default=None, help="Comma-separated locales, or * for all")
@click.option("--server", "server_name", default=None, help="Destination server override")
@click.option("--token", envvar="BUILD_SERVER_AUTHORIZATION_CODE", required=True, help="Authorization code")
@click.pass_context
def deploy(ctx, api, sim_name, version, dependencies, locales, server_name, token):
    """Queue a deploy on a running build server."""
    console = get_console()
    try:
        dependencies_json = json.loads(dependencies.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print_error("Invalid dependencies file", f"{dependencies} is not valid JSON", details=[str(e)])
        sys.exit(1)

    console.print_debug(f"GET {api.rstrip('/')}/deploy-html-simulation simName={sim_name} version={version}")
    client = BuildServerClient(api)
    try:
        response = client.deploy(
            sim_name=sim_name,
            version=version,
            dependencies=dependencies_json,
            authorization_code=token,
            locales=locales,
            server_name=server_name,
        )
    except APIError as e:
        console.print_error("Deploy request failed", str(e), suggestion="Check the server URL and authorization code.")
        sys.exit(1)

    console.print_deploy_queued(
        sim_name=response.get("sim_name", sim_name),
        version=response.get("version", version),
        message=response.get("message", ""),
        position=int(response.get("queue_position", 0)),
    )


@cli.command()
@click.option("--api", required=True, help="Build server base URL (e.g., http://localhost:16371)")
def status(api):
    """Show the running build and the number of queued builds."""
    console = get_console()
    try:
        health = BuildServerClient(api).health()
    except APIError as e:
        console.print_error("Status request failed", str(e), suggestion="Is the build server running?")
        sys.exit(1)

    console.print_debug(f"health response: {health}")
    console.print_info(f"Running: {health.get('running') or '(idle)'}")
    console.print_info(f"Queued: {health.get('queued', 0)}")


@cli.command("checkout-revisions")
@click.option(
    "--manifest",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="dependencies.json to check out",
)
@click.option("--repos-root", default=None, type=click.Path(file_okay=False, path_type=Path), help="Directory holding the working copies")
@click.pass_context
def checkout_revisions_cmd(ctx, manifest, repos_root):
    """Check out the revision declared for every repository in a manifest."""
    console = get_console()
    settings = Settings.from_env()
    root = repos_root or settings.repos_root
    try:
        revisions = read_manifest(manifest)
        checkout_revisions(CommandRunner(), root, revisions)
    except (ValueError, StepError) as e:
        console.print_error("Checkout failed", str(e))
        sys.exit(1)

    console.print_info(f"Checked out {len(revisions)} repo(s):")
    for name, rev in revisions.items():
        console.print_checkout(name, rev.sha)


@cli.command("checkout-mainline")
@click.argument("repos", nargs=-1, required=True)
@click.option("--repos-root", default=None, type=click.Path(file_okay=False, path_type=Path), help="Directory holding the working copies")
@click.option("--branch", default=None, help="Mainline branch (defaults to settings)")
@click.pass_context
def checkout_mainline_cmd(ctx, repos, repos_root, branch):
    """Restore the named working copies to their mainline branch."""
    console = get_console()
    settings = Settings.from_env()
    root = repos_root or settings.repos_root
    mainline = branch or settings.mainline_branch
    try:
        restore_mainline(CommandRunner(), root, repos, mainline)
    except StepError as e:
        console.print_error("Checkout failed", str(e))
        sys.exit(1)

    console.print_info(f"Checked out {mainline}:")
    for name in repos:
        console.print_checkout(name, mainline)


if __name__ == "__main__":
    cli()

# steps/publish.py
from __future__ import annotations

import logging
import shlex
import shutil
from pathlib import Path
from typing import List

from ..errors import StepError
from ..pipeline import BuildContext

logger = logging.getLogger(__name__)

LATEST_HTACCESS = (
    "RewriteEngine on\n"
    "RewriteBase /sims/html/{sim}/\n"
    "RewriteRule latest(.*) {version}$1\n"
    'Header set Access-Control-Allow-Origin "*"\n'
)

DOWNLOAD_HTACCESS = (
    "RewriteEngine On\n"
    "RewriteCond %{QUERY_STRING} =download\n"
    "RewriteRule ([^/]*)$ - [L,E=download:$1]\n"
    'Header onsuccess set Content-disposition "attachment; filename=%{download}e" env=download\n'
)


def latest_htaccess(sim_name: str, version: str) -> str:
    """Rewrite rules pointing the "latest" alias at `version`."""
    return LATEST_HTACCESS.format(sim=sim_name, version=version)


def make_version_dir(ctx: BuildContext) -> None:
    ctx.version_dir.mkdir(parents=True, exist_ok=True)


def copy_build_output(ctx: BuildContext) -> None:
    """
    Copy the contents of the build directory into the version directory,
    merging with whatever a previous deploy left there.
    """
    src = ctx.build_output_dir
    if not src.is_dir():
        raise StepError(step="copy build output", message=f"build output not found: {src}")
    for entry in sorted(src.iterdir()):
        target = ctx.version_dir / entry.name
        if entry.is_dir():
            shutil.copytree(entry, target, dirs_exist_ok=True)
        else:
            shutil.copy2(entry, target)
    logger.info("copied build output from %s to %s", src, ctx.version_dir)


def write_latest_htaccess(ctx: BuildContext) -> None:
    path = ctx.destination_dir / ".htaccess"
    path.write_text(latest_htaccess(ctx.job.sim_name, str(ctx.job.version)), encoding="utf-8")
    logger.info("wrote %s", path)


def write_download_htaccess(ctx: BuildContext) -> None:
    path = ctx.version_dir / ".htaccess"
    path.write_text(DOWNLOAD_HTACCESS, encoding="utf-8")
    logger.info("wrote %s", path)


# ---------------------------------------------------------------------
# Secondary host
# ---------------------------------------------------------------------

def secondary_copy_commands(ctx: BuildContext) -> List[str]:
    """
    One scp per top-level entry of the build directory.

    `scp -r build host:dir` would create `dir/build` when `dir` already exists
    (which it does after a translation-only deploy), so the directory itself
    is never the source; its entries are copied into the version directory.
    """
    settings = ctx.settings
    dest = f"{ctx.job.sim_name}/{ctx.job.version}"
    if settings.secondary_path:
        dest = f"{settings.secondary_path.rstrip('/')}/{dest}"
    remote = shlex.quote(f"{settings.secondary_user}@{settings.secondary_host}:{dest}")
    commands = []
    for entry in sorted(ctx.build_output_dir.iterdir()):
        flag = "-r " if entry.is_dir() else ""
        commands.append(f"scp {flag}{shlex.quote(entry.name)} {remote}")
    return commands


def copy_to_secondary_host(ctx: BuildContext) -> None:
    if not ctx.settings.secondary_host:
        logger.info("no secondary host configured, skipping copy")
        return
    for command in secondary_copy_commands(ctx):
        ctx.runner.check("copy to secondary host", command, ctx.build_output_dir)

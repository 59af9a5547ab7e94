# steps/catalog.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from .. import git
from ..errors import StepError
from ..model import CatalogEntry
from ..pipeline import BuildContext

logger = logging.getLogger(__name__)

STEP = "register in catalog"


def latest_url(site_host: str, sim_name: str) -> str:
    return f"http://{site_host}/sims/html/{sim_name}/latest/{sim_name}_en.html"


def upsert_entry(entries: List[Dict[str, Any]], entry: CatalogEntry) -> List[Dict[str, Any]]:
    """
    Update every record whose projectName matches, or append a new one.
    Unknown keys on existing records are kept.
    """
    out = []
    found = False
    for record in entries:
        record = dict(record)
        if record.get("projectName") == entry.project_name:
            record["simTitle"] = entry.sim_title
            record["testUrl"] = entry.test_url
            found = True
        out.append(record)
    if not found:
        out.append(entry.to_dict())
    return out


def update_catalog(path: Path, entry: CatalogEntry) -> bool:
    """
    Read-modify-write the catalog file. Writes only when the serialized content
    changed; returns whether it did.
    """
    try:
        original = path.read_text(encoding="utf-8")
    except OSError as e:
        raise StepError(step=STEP, message=f"couldn't read catalog {path}: {e}") from e

    try:
        data = json.loads(original)
    except json.JSONDecodeError as e:
        raise StepError(step=STEP, message=f"catalog {path} is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise StepError(step=STEP, message=f"catalog {path} must contain a JSON array")

    contents = json.dumps(upsert_entry(data, entry), indent=2)
    if contents == original:
        return False

    try:
        path.write_text(contents, encoding="utf-8")
    except OSError as e:
        raise StepError(step=STEP, message=f"couldn't write catalog {path}: {e}") from e
    return True


def register_in_catalog(ctx: BuildContext) -> None:
    if not ctx.sim_title:
        raise StepError(step=STEP, message="simulation title unknown; translations manifest must run first")

    entry = CatalogEntry(
        project_name=ctx.job.sim_name,
        sim_title=ctx.sim_title,
        test_url=latest_url(ctx.settings.site_host_for(ctx.server), ctx.job.sim_name),
    )
    changed = update_catalog(ctx.settings.catalog_file, entry)
    if not changed:
        logger.info("catalog already lists %s, nothing to commit", ctx.job.sim_name)
        return

    repo = ctx.repo_dir(ctx.settings.catalog_repo)
    ctx.runner.run_best_effort(git.pull(), repo)
    ctx.runner.run_best_effort(
        git.commit_all(f"[automated commit] add {ctx.sim_title} to simInfoArray"),
        repo,
    )
    ctx.runner.run_best_effort(git.push("origin", ctx.settings.mainline_branch), repo)

# steps/site.py
from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from urllib.parse import urlencode

from ..pipeline import BuildContext

logger = logging.getLogger(__name__)


def synchronize_url(site_host: str, sim_name: str) -> str:
    query = urlencode({"projectName": f"html/{sim_name}"})
    return f"http://{site_host}/services/synchronize-project?{query}"


def notify_site(ctx: BuildContext) -> None:
    """
    Ask the website to synchronize the project so the new simulation or
    translation appears. Best-effort: every failure is logged, none aborts.
    """
    project = f"html/{ctx.job.sim_name}"
    url = synchronize_url(ctx.settings.site_host_for(ctx.server), ctx.job.sim_name)
    try:
        with urllib.request.urlopen(url, timeout=ctx.settings.notify_timeout_seconds) as response:
            body = response.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as e:
        logger.error("request to synchronize project %s failed: %s %s", project, e.code, e.reason)
        return
    except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
        logger.error("request to synchronize project %s failed: %s", project, e)
        return

    try:
        sync = json.loads(body)
    except json.JSONDecodeError as e:
        logger.error("invalid JSON from synchronize project %s: %s", project, e)
        return

    if isinstance(sync, dict) and sync.get("success"):
        logger.info("request to synchronize project %s on %s succeeded", project, ctx.server)
    else:
        error = sync.get("error") if isinstance(sync, dict) else sync
        logger.error(
            "request to synchronize project %s on %s failed with message: %s",
            project,
            ctx.server,
            error,
        )

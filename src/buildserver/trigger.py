"""Validation of inbound deploy requests into typed jobs."""

from __future__ import annotations

import hmac
import json
import re
from typing import Any, Dict, Optional, Tuple
from urllib.parse import unquote

from pydantic import BaseModel, Field, ValidationError

from .errors import InputError
from .model import ALL_LOCALES, Job, Revision, Version
from .settings import Settings
from .steps.repos import NON_REPO_KEYS

MISSING_FIELDS = "missing one or more required query parameters: repos, simName, version, authorizationCode"

# these values end up in shell commands and filesystem paths
_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
_REVISION_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._/-]*$")
_LOCALE_RE = re.compile(r"^[A-Za-z]{2,3}(_[A-Za-z0-9]{2,4})?$")
_HOST_RE = re.compile(r"^[A-Za-z0-9.-]+$")


class DeployRequest(BaseModel):
    """Raw query parameters of a deploy trigger, as sent by deploy tooling."""

    repos: Optional[str] = None
    sim_name: Optional[str] = Field(default=None, alias="simName")
    version: Optional[str] = None
    locales: Optional[str] = None
    authorization_code: Optional[str] = Field(default=None, alias="authorizationCode", repr=False)
    server_name: Optional[str] = Field(default=None, alias="serverName")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_query(cls, params: Dict[str, Any]) -> DeployRequest:
        try:
            return cls.model_validate(dict(params))
        except ValidationError as e:
            raise InputError(f"malformed request: {e}") from e


def check_authorization(request: DeployRequest, secret: str) -> None:
    supplied = request.authorization_code or ""
    if not secret or not hmac.compare_digest(supplied.encode("utf-8"), secret.encode("utf-8")):
        raise InputError("wrong authorization code", unauthorized=True)


def parse_repos(raw: str) -> Dict[str, Revision]:
    """Decode the URL-encoded dependencies.json payload."""
    try:
        data = json.loads(unquote(raw))
    except json.JSONDecodeError as e:
        raise InputError(f"repos is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InputError("repos must be a JSON object of repository -> revision")

    repos: Dict[str, Revision] = {}
    for name, entry in data.items():
        if name in NON_REPO_KEYS:
            continue
        if not _NAME_RE.match(name):
            raise InputError(f"invalid repository name: {name!r}")
        if not isinstance(entry, dict):
            raise InputError(f"repos[{name!r}] must be an object with a sha")
        sha = entry.get("sha")
        if not isinstance(sha, str) or not _REVISION_RE.match(sha):
            raise InputError(f"repos[{name!r}] has a missing or invalid sha")
        branch = entry.get("branch")
        if branch is not None and (not isinstance(branch, str) or not _REVISION_RE.match(branch)):
            raise InputError(f"repos[{name!r}] has an invalid branch")
        repos[name] = Revision(sha=sha, branch=branch)
    return repos


def parse_locales(raw: Optional[str]) -> Tuple[str, ...]:
    """`None` or `*` means all locales; otherwise a comma-separated list."""
    if raw is None:
        return (ALL_LOCALES,)
    text = unquote(raw).strip()
    if text in ("", ALL_LOCALES):
        return (ALL_LOCALES,)
    locales = tuple(part.strip() for part in text.split(",") if part.strip())
    for locale in locales:
        if not _LOCALE_RE.match(locale):
            raise InputError(f"invalid locale: {locale!r}")
    return locales


def to_job(request: DeployRequest, settings: Settings) -> Job:
    """
    Validate `request` and build a Job. Raises InputError for anything that
    must not reach the queue, including an authorization mismatch.
    """
    if not (request.repos and request.sim_name and request.version and request.authorization_code):
        raise InputError(MISSING_FIELDS)
    check_authorization(request, settings.authorization_code)

    sim_name = request.sim_name
    if not _NAME_RE.match(sim_name):
        raise InputError(f"invalid simName: {sim_name!r}")

    repos = parse_repos(request.repos)
    if sim_name not in repos:
        raise InputError(f"repos does not declare a revision for {sim_name}")

    server = request.server_name or settings.production_server
    if not _HOST_RE.match(server):
        raise InputError(f"invalid serverName: {server!r}")

    return Job(
        sim_name=sim_name,
        version=Version.parse(request.version),
        repos=repos,
        locales=parse_locales(request.locales),
        server=server,
        authorization=request.authorization_code,
    )

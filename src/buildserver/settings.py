"""Runtime configuration for the build server."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_CONFIG_FILE = Path("~/.phet/build-local.json")

# deploy-config file key -> Settings field
_CONFIG_FILE_KEYS = {
    "buildServerAuthorizationCode": "authorization_code",
    "productionServerName": "production_server",
    "devDeployServer": "secondary_host",
    "devUsername": "secondary_user",
    "devDeployPath": "secondary_path",
    "emailUsername": "email_username",
    "emailPassword": "email_password",
    "emailServer": "email_server",
    "emailTo": "email_to",
}


@dataclass(slots=True)
class EmailSettings:
    """Failure-notification mail settings."""

    server: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    to: str = ""
    sender: str = "PhET Build Server <phethelp@colorado.edu>"

    @property
    def enabled(self) -> bool:
        return bool(self.username and self.password and self.to and self.server)


@dataclass(slots=True)
class Settings:
    """Build server settings, grouped roughly by pipeline concern."""

    host: str = "0.0.0.0"
    port: int = 16371

    repos_root: Path = Path("..")
    orchestrator_repo: str = "chipper"
    tooling_repo: str = "perennial"
    translations_repo: str = "babel"
    catalog_repo: str = "rosetta"
    catalog_path: str = "data/simInfoArray.json"
    mainline_branch: str = "master"
    scratch_dir: Path = Path("js/build-server/tmp")

    destination_root: Path = Path("/data/web/htdocs/phetsims/sims/html")
    production_server: str = "figaro.colorado.edu"
    production_site_host: str = "phet.colorado.edu"
    test_server: str = "simian.colorado.edu"
    test_site_host: str = "phet-dev.colorado.edu"

    secondary_host: str = ""
    secondary_user: str = ""
    secondary_path: str = ""

    clone_url_template: str = "https://github.com/phetsims/{repo}.git"
    install_command: str = "npm install"
    build_command: str = "grunt build --brand=phet --lint=false --locales={locales}"
    thumbnails_command: str = "grunt generate-thumbnails"

    authorization_code: str = field(default="", repr=False)
    email: EmailSettings = field(default_factory=EmailSettings)
    step_timeout_seconds: float = 3600.0
    notify_timeout_seconds: float = 30.0
    verbose: bool = False

    @property
    def orchestrator_dir(self) -> Path:
        return self.repos_root / self.orchestrator_repo

    @property
    def tooling_dir(self) -> Path:
        return self.repos_root / self.tooling_repo

    @property
    def catalog_file(self) -> Path:
        return self.repos_root / self.catalog_repo / self.catalog_path

    def site_host_for(self, server: str) -> str:
        """Website that serves content published to `server`."""
        if server == self.test_server:
            return self.test_site_host
        return self.production_site_host

    def validate_for_server(self) -> None:
        if not self.authorization_code:
            raise ValueError(
                "An authorization code is required "
                "(BUILD_SERVER_AUTHORIZATION_CODE or buildServerAuthorizationCode)",
            )
        if self.port <= 0:
            raise ValueError("BUILD_SERVER_PORT must be positive")
        if self.step_timeout_seconds < 0:
            raise ValueError("BUILD_SERVER_STEP_TIMEOUT_SECONDS must be >= 0")

    @classmethod
    def from_env(cls, config_file: Path | None = None) -> Settings:
        """
        Load settings from a JSON deploy-config file (if present) overlaid with
        BUILD_SERVER_* environment variables.
        """
        path = config_file or Path(os.getenv("BUILD_SERVER_CONFIG", str(DEFAULT_CONFIG_FILE)))
        settings = cls()
        file_values = _read_config_file(path.expanduser())
        if file_values:
            settings = _apply_config_file(settings, file_values)

        email = replace(
            settings.email,
            server=os.getenv("BUILD_SERVER_EMAIL_SERVER", settings.email.server),
            username=os.getenv("BUILD_SERVER_EMAIL_USERNAME", settings.email.username),
            password=os.getenv("BUILD_SERVER_EMAIL_PASSWORD", settings.email.password),
            to=os.getenv("BUILD_SERVER_EMAIL_TO", settings.email.to),
        )
        return replace(
            settings,
            host=os.getenv("BUILD_SERVER_HOST", settings.host),
            port=int(os.getenv("BUILD_SERVER_PORT", str(settings.port))),
            repos_root=Path(os.getenv("BUILD_SERVER_REPOS_ROOT", str(settings.repos_root))),
            mainline_branch=os.getenv("BUILD_SERVER_MAINLINE_BRANCH", settings.mainline_branch),
            destination_root=Path(
                os.getenv("BUILD_SERVER_DESTINATION_ROOT", str(settings.destination_root)),
            ),
            production_server=os.getenv("BUILD_SERVER_PRODUCTION_SERVER", settings.production_server),
            test_server=os.getenv("BUILD_SERVER_TEST_SERVER", settings.test_server),
            secondary_host=os.getenv("BUILD_SERVER_SECONDARY_HOST", settings.secondary_host),
            secondary_user=os.getenv("BUILD_SERVER_SECONDARY_USER", settings.secondary_user),
            secondary_path=os.getenv("BUILD_SERVER_SECONDARY_PATH", settings.secondary_path),
            authorization_code=os.getenv(
                "BUILD_SERVER_AUTHORIZATION_CODE",
                settings.authorization_code,
            ),
            email=email,
            step_timeout_seconds=float(
                os.getenv("BUILD_SERVER_STEP_TIMEOUT_SECONDS", str(settings.step_timeout_seconds)),
            ),
            verbose=_env_bool("BUILD_SERVER_VERBOSE", default=settings.verbose),
        )


def _read_config_file(path: Path) -> Optional[Dict[str, Any]]:
    if not path.is_file():
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Deploy config {path} must contain a JSON object")
    return data


def _apply_config_file(settings: Settings, values: Dict[str, Any]) -> Settings:
    updates: Dict[str, Any] = {}
    email_updates: Dict[str, Any] = {}
    for key, attr in _CONFIG_FILE_KEYS.items():
        if key not in values or values[key] in (None, ""):
            continue
        if attr.startswith("email_"):
            email_updates[attr[len("email_"):]] = str(values[key])
        else:
            updates[attr] = str(values[key])
    if email_updates:
        updates["email"] = replace(settings.email, **email_updates)
    return replace(settings, **updates)


def _env_bool(name: str, *, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}

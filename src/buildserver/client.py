# client.py
from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Dict, Optional
from urllib.parse import urlencode, urljoin


class APIError(Exception):
    """Raised when a request to the build server fails."""
    pass


class BuildServerClient:
    """HTTP client for triggering deploys on a running build server."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        """
        Args:
            base_url: Base URL of the build server (e.g., "http://figaro:16371")
            timeout: Socket timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> dict:
        """
        GET `path` and return the parsed JSON body.

        Raises:
            APIError: If the request fails or the body is not JSON
        """
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        if params:
            url = f"{url}?{urlencode(params)}"

        req = urllib.request.Request(url, headers={"Accept": "application/json"}, method="GET")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
                return json.loads(body) if body else {}
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else ""
            detail = error_body
            try:
                detail = json.loads(error_body).get("detail", error_body)
            except (json.JSONDecodeError, AttributeError):
                pass
            raise APIError(f"Request failed: {e.code} {e.reason}. {detail}")
        except urllib.error.URLError as e:
            raise APIError(f"Network error: {e.reason}")
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON response: {e}")

    def deploy(
        self,
        *,
        sim_name: str,
        version: str,
        dependencies: dict,
        authorization_code: str,
        locales: Optional[str] = None,
        server_name: Optional[str] = None,
    ) -> dict:
        """
        Queue a deploy. Returns the server's acknowledgement; the build outcome
        is only reported through logs and failure email.
        """
        params = {
            "repos": json.dumps(dependencies),
            "simName": sim_name,
            "version": version,
            "authorizationCode": authorization_code,
        }
        if locales:
            params["locales"] = locales
        if server_name:
            params["serverName"] = server_name
        return self._get("/deploy-html-simulation", params)

    def health(self) -> dict:
        return self._get("/health")

"""Backing stores for the persisted state.

Both stores follow the same contract:

    load() -> PersistedState | None     None when nothing has been saved yet
    save(state) -> None                 raises a PersistenceError subclass

Stores do blocking I/O; the session calls them from an executor.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import requests
from pydantic import ValidationError

from .config import Settings
from .errors import PersistenceConflict, PersistenceError, PersistenceUnavailable, SchemaError
from .schema import PersistedState, dump_state, parse_state

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"


def _decode(raw: dict, source: str) -> PersistedState:
    try:
        return parse_state(raw)
    except (SchemaError, ValidationError, ValueError, TypeError) as e:
        raise PersistenceError(f"Invalid data in {source}: {e}") from e


class LocalJsonStore:
    """State as a pretty-printed JSON file at a fixed path."""

    name = "local"

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[PersistedState]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError
            raise PersistenceError(f"Corrupt JSON in {self.path}: {e}") from e
        except OSError as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e
        return _decode(raw, str(self.path))

    def save(self, state: PersistedState) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(dump_state(state), f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e


class RemoteRepoStore:
    """State as a file in a GitHub repository, via the contents API.

    Every save must carry the blob sha of the version it replaces. The sha is
    captured on load and refreshed from each save response.
    """

    name = "github"

    def __init__(
        self,
        repo: Optional[str],
        path: str,
        token: Optional[str],
        branch: str = "main",
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ):
        self.repo = repo
        self.path = path.lstrip("/")
        self.token = token
        self.branch = branch
        self.timeout = timeout
        self.sha: Optional[str] = None
        self._http = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{GITHUB_API}/repos/{self.repo}/contents/{self.path}"

    def _headers(self) -> dict:
        if not self.repo or not self.token:
            raise PersistenceUnavailable("GitHub storage needs PULSE_GITHUB_REPO and PULSE_GITHUB_TOKEN")
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }

    def _request(self, method: str, **kwargs) -> requests.Response:
        headers = self._headers()
        try:
            return self._http.request(method, self.url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise PersistenceError(f"GitHub {method} timed out") from e
        except requests.exceptions.ConnectionError as e:
            raise PersistenceError("GitHub unreachable") from e
        except requests.exceptions.RequestException as e:
            raise PersistenceError(f"GitHub {method} failed: {e}") from e

    @staticmethod
    def _check_auth(response: requests.Response) -> None:
        if response.status_code in (401, 403):
            raise PersistenceUnavailable(f"GitHub rejected the token ({response.status_code})")

    def load(self) -> Optional[PersistedState]:
        response = self._request("GET", params={"ref": self.branch})
        self._check_auth(response)
        if response.status_code == 404:
            self.sha = None
            return None
        if response.status_code != 200:
            raise PersistenceError(f"GitHub GET returned {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise PersistenceError(f"GitHub GET returned a non-JSON body: {e}") from e
        if not isinstance(body, dict):
            raise PersistenceError(f"GitHub GET returned {type(body).__name__}, expected a file object")
        self.sha = body.get("sha")
        try:
            raw = json.loads(base64.b64decode(body.get("content") or "").decode("utf-8"))
        except (ValueError, TypeError) as e:
            raise PersistenceError(f"Corrupt JSON in {self.repo}/{self.path}: {e}") from e
        return _decode(raw, f"{self.repo}/{self.path}")

    def save(self, state: PersistedState) -> None:
        content = json.dumps(dump_state(state), indent=2).encode("utf-8")
        payload = {
            "message": f"Update {self.path} ({datetime.now().strftime('%Y-%m-%d %H:%M')})",
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if self.sha:
            payload["sha"] = self.sha

        response = self._request("PUT", json=payload)
        self._check_auth(response)
        if response.status_code in (409, 422):
            raise PersistenceConflict(f"Remote file changed since last load ({response.status_code})")
        if response.status_code not in (200, 201):
            raise PersistenceError(f"GitHub PUT returned {response.status_code}")

        self.sha = response.json().get("content", {}).get("sha", self.sha)
        logger.info(f"Saved {self.repo}/{self.path} at {self.sha}")


def build_store(settings: Settings):
    if settings.storage == "github":
        return RemoteRepoStore(
            repo=settings.github_repo,
            path=settings.github_path,
            token=settings.github_token,
            branch=settings.github_branch,
            timeout=settings.http_timeout,
        )
    return LocalJsonStore(settings.data_file)

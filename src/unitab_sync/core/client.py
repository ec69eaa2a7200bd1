import threading
from typing import Any

import requests

from ..config import Config

GITHUB_ACCEPT = "application/vnd.github.v3+json"


class GistClient:
    """Thin GitHub REST client for the endpoints the sync provider needs.

    Responses are returned as decoded JSON.  HTTP errors surface as
    ``requests.HTTPError`` from ``raise_for_status()``; callers translate
    them.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.api_url = config.api_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        return self._get_session()

    @property
    def timeout(self) -> tuple[float, float]:
        return (self.config.connect_timeout, self.config.read_timeout)

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Accept": GITHUB_ACCEPT,
                "Content-Type": "application/json",
            }
        )
        if self.config.github_token:
            session.headers["Authorization"] = (
                f"Bearer {self.config.github_token}"
            )
        return session

    def _request(
        self, method: str, path: str, payload: dict | None = None
    ) -> Any:
        session = self._get_session()
        response = session.request(
            method,
            f"{self.api_url}{path}",
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def get_user(self) -> dict:
        """
        Return the authenticated user (``GET /user``).
        """
        return self._request("GET", "/user")

    def get_gist(self, gist_id: str) -> dict:
        return self._request("GET", f"/gists/{gist_id}")

    def list_gists(self, per_page: int = 100) -> list[dict]:
        """
        List the authenticated user's gists (first page only).
        """
        return self._request("GET", f"/gists?per_page={per_page}")

    def create_gist(
        self,
        filename: str,
        content: str,
        description: str,
        public: bool = False,
    ) -> dict:
        return self._request(
            "POST",
            "/gists",
            {
                "description": description,
                "public": public,
                "files": {filename: {"content": content}},
            },
        )

    def update_gist(
        self,
        gist_id: str,
        filename: str,
        content: str,
        description: str,
    ) -> dict:
        return self._request(
            "PATCH",
            f"/gists/{gist_id}",
            {
                "description": description,
                "files": {filename: {"content": content}},
            },
        )

    def delete_gist(self, gist_id: str) -> None:
        self._request("DELETE", f"/gists/{gist_id}")

    def get_raw(self, url: str) -> str:
        """
        Fetch a truncated gist file's full content from its ``raw_url``.
        """
        response = self._get_session().get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.text

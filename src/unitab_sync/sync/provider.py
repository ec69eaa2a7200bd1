"""Remote provider adapter backed by a GitHub Gist.

This is the only module that sees raw ``requests`` exceptions.  Every
failure is translated into the error taxonomy of ``unitab_sync.errors``:

* 401, and 403 outside rate limiting -> ``AuthenticationError``
* 404 -> ``NotFoundError``
* connection errors, timeouts, 5xx, rate limiting -> ``NetworkError``
* unparseable or schema-invalid documents -> ``DocumentValidationError``

Successful ``upload``/``delete_remote`` calls return an ``UploadResult``;
failures raise, so callers keep the ``ErrorKind``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol

import requests
from pydantic import ValidationError

from ..core.client import GistClient
from ..errors import (
    AuthenticationError,
    DocumentValidationError,
    NetworkError,
    NotFoundError,
)
from .models import AccountInfo, Dataset, UploadResult, parse_iso

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "unitab-data.json"
DEFAULT_DESCRIPTION = "UniTab Browser Extension Data"
TOKEN_CACHE_TTL = 300.0


class RemoteProvider(Protocol):
    """Interface the sync engine consumes."""

    @property
    def credential_fingerprint(self) -> str | None: ...

    def is_authenticated(self) -> bool: ...

    def invalidate(self) -> None: ...

    def upload(self, dataset: Dataset) -> UploadResult: ...

    def download(self) -> Dataset: ...

    def has_remote_updates(self, since: str | None) -> bool: ...

    def delete_remote(self) -> UploadResult: ...

    def get_account(self) -> AccountInfo | None: ...


class TTLCache:
    """Single-slot-per-key cache whose entries expire after *ttl* seconds.

    Args:
        ttl: Entry lifetime in seconds.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self, ttl: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> tuple[bool, Any]:
        """Return ``(hit, value)``; expired entries count as misses."""
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        stored_at, value = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[key]
            return False, None
        return True, value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self) -> None:
        self._entries.clear()


@contextmanager
def translate_errors(action: str) -> Iterator[None]:
    """Translate ``requests`` failures raised inside the block.

    Args:
        action: Short description used in error messages, e.g.
            ``"download gist"``.
    """
    try:
        yield
    except requests.HTTPError as e:
        response = e.response
        status = response.status_code if response is not None else None
        if status == 401:
            raise AuthenticationError(
                f"GitHub rejected the token while trying to {action}",
                status_code=status,
            ) from e
        if status == 403:
            if (
                response is not None
                and response.headers.get("X-RateLimit-Remaining") == "0"
            ):
                raise NetworkError(
                    f"GitHub rate limit reached while trying to {action}",
                    status_code=status,
                ) from e
            raise AuthenticationError(
                f"Token lacks permission to {action} (needs 'gist' scope)",
                status_code=status,
            ) from e
        if status == 404:
            raise NotFoundError(
                f"Not found while trying to {action}", status_code=status
            ) from e
        raise NetworkError(
            f"GitHub returned HTTP {status} while trying to {action}",
            status_code=status,
        ) from e
    except requests.JSONDecodeError as e:
        raise DocumentValidationError(
            f"GitHub returned malformed JSON while trying to {action}"
        ) from e
    except requests.Timeout as e:
        raise NetworkError(f"Timed out while trying to {action}") from e
    except requests.RequestException as e:
        raise NetworkError(f"Could not {action}: {e}") from e


class GistProvider:
    """Store the dataset as one JSON file in a private gist.

    Args:
        client: HTTP client for the GitHub API.
        filename: Name of the file inside the gist.
        description: Gist description used on create/update.
        gist_id: Known gist id; located by filename when ``None``.
        on_gist_id: Called with the new id whenever it is located, created
            or forgotten, so it can be persisted.
        token_ttl: Lifetime of cached token-validation results (seconds).
        clock: Monotonic time source for the cache.
    """

    def __init__(
        self,
        client: GistClient,
        filename: str = DEFAULT_FILENAME,
        description: str = DEFAULT_DESCRIPTION,
        gist_id: str | None = None,
        on_gist_id: Callable[[str | None], None] | None = None,
        token_ttl: float = TOKEN_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._filename = filename
        self._description = description
        self._gist_id = gist_id
        self._on_gist_id = on_gist_id
        self._account_cache = TTLCache(token_ttl, clock)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @property
    def credential_fingerprint(self) -> str | None:
        token = self._client.config.github_token
        if not token:
            return None
        return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]

    @property
    def gist_id(self) -> str | None:
        return self._gist_id

    def invalidate(self) -> None:
        """Drop cached token-validation results."""
        self._account_cache.invalidate()

    def get_account(self) -> AccountInfo | None:
        """Return the authenticated user, or ``None`` without a token.

        Raises:
            AuthenticationError: Token rejected.
            NetworkError: GitHub unreachable.
        """
        fingerprint = self.credential_fingerprint
        if fingerprint is None:
            return None
        hit, cached = self._account_cache.get(fingerprint)
        if hit:
            if cached is None:
                raise AuthenticationError("GitHub token is invalid (cached)")
            return cached

        try:
            with translate_errors("validate token"):
                user = self._client.get_user()
        except AuthenticationError:
            self._account_cache.set(fingerprint, None)
            raise
        try:
            account = AccountInfo(
                id=str(user["id"]),
                login=user.get("login", ""),
                name=user.get("name"),
            )
        except (KeyError, TypeError, ValidationError) as e:
            raise DocumentValidationError(
                "GitHub /user response is missing the user id"
            ) from e
        self._account_cache.set(fingerprint, account)
        return account

    def is_authenticated(self) -> bool:
        """Whether a token is configured and accepted by GitHub.

        Raises:
            NetworkError: GitHub unreachable, so validity is unknown.
        """
        try:
            return self.get_account() is not None
        except AuthenticationError:
            return False

    # ------------------------------------------------------------------
    # Document transfer
    # ------------------------------------------------------------------

    def download(self) -> Dataset:
        """Fetch and validate the remote dataset.

        Raises:
            NotFoundError: No gist or no data file exists yet.
            DocumentValidationError: The file is not a valid dataset.
        """
        gist_id = self._locate_gist()
        if gist_id is None:
            raise NotFoundError("No remote data gist found")

        try:
            with translate_errors("download gist"):
                gist = self._client.get_gist(gist_id)
        except NotFoundError:
            logger.warning("Gist %s no longer exists", gist_id)
            self._remember_gist(None)
            raise

        file_entry = (gist.get("files") or {}).get(self._filename)
        if file_entry is None:
            raise NotFoundError(
                f"Gist {gist_id} has no file named {self._filename}"
            )

        content = file_entry.get("content")
        if file_entry.get("truncated") or content is None:
            with translate_errors("download gist file"):
                content = self._client.get_raw(file_entry["raw_url"])
        return parse_document(content)

    def upload(self, dataset: Dataset) -> UploadResult:
        """Write *dataset* to the gist, creating it when needed.

        A 404 on update means the gist was deleted remotely; it is
        recreated.
        """
        content = json.dumps(dataset.to_document(), indent=2)
        gist_id = self._locate_gist()
        gist = None
        if gist_id is not None:
            try:
                with translate_errors("update gist"):
                    gist = self._client.update_gist(
                        gist_id, self._filename, content, self._description
                    )
            except NotFoundError:
                logger.warning(
                    "Gist %s disappeared; creating a new one", gist_id
                )
                self._remember_gist(None)

        if gist is None:
            with translate_errors("create gist"):
                gist = self._client.create_gist(
                    self._filename, content, self._description
                )
            self._remember_gist(gist.get("id"))
            logger.info("Created gist %s", self._gist_id)

        return UploadResult(
            success=True,
            timestamp=gist.get("updated_at") or dataset.timestamp,
            version=dataset.version,
        )

    def has_remote_updates(self, since: str | None) -> bool:
        """Whether the gist changed after *since* (ISO 8601).

        With no *since* any existing gist counts as an update.
        """
        gist_id = self._locate_gist()
        if gist_id is None:
            return False
        try:
            with translate_errors("check gist for updates"):
                gist = self._client.get_gist(gist_id)
        except NotFoundError:
            self._remember_gist(None)
            return False
        if since is None:
            return True
        return parse_iso(gist.get("updated_at")) > parse_iso(since)

    def delete_remote(self) -> UploadResult:
        """Delete the gist.  Deleting a missing gist succeeds."""
        gist_id = self._locate_gist()
        if gist_id is not None:
            try:
                with translate_errors("delete gist"):
                    self._client.delete_gist(gist_id)
            except NotFoundError:
                logger.info("Gist %s was already deleted", gist_id)
            self._remember_gist(None)
        return UploadResult(success=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _locate_gist(self) -> str | None:
        """Return the known gist id or search the user's gists by filename."""
        if self._gist_id is not None:
            return self._gist_id
        with translate_errors("list gists"):
            gists = self._client.list_gists()
        for gist in gists or []:
            if self._filename in (gist.get("files") or {}):
                logger.info("Found existing data gist %s", gist["id"])
                self._remember_gist(gist["id"])
                return self._gist_id
        return None

    def _remember_gist(self, gist_id: str | None) -> None:
        self._gist_id = gist_id
        if self._on_gist_id is not None:
            self._on_gist_id(gist_id)


def parse_document(content: str) -> Dataset:
    """Parse a dataset document.

    Raises:
        DocumentValidationError: *content* is not JSON or not a dataset.
    """
    try:
        return Dataset.model_validate(json.loads(content))
    except json.JSONDecodeError as e:
        raise DocumentValidationError(
            f"Remote document is not valid JSON: {e.msg}"
        ) from e
    except ValidationError as e:
        raise DocumentValidationError(
            f"Remote document failed validation: {e.error_count()} error(s)"
        ) from e

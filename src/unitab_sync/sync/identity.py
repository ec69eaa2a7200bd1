"""Device and account identity.

The device id is generated once per install and persisted in the sync
metadata.  Wiping local storage yields a new id on the next run.

The account id comes from the remote provider's authenticated user and is
cached in metadata together with a fingerprint of the credential it was
derived from; a credential change forces a fresh lookup.
"""

from __future__ import annotations

import logging
import platform
import secrets
import socket
import string
import time
from typing import TYPE_CHECKING

from ..errors import SyncError
from .models import AccountInfo, DeviceInfo, SyncMetadata

if TYPE_CHECKING:
    from .provider import RemoteProvider
    from .state import LocalStore

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits

_PLATFORMS = {
    "Windows": "Windows",
    "Darwin": "macOS",
    "Linux": "Linux",
}


def random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def generate_device_id() -> str:
    """Return a new ``device_<epoch-ms>_<random>`` id."""
    suffix = random_suffix()
    return f"device_{int(time.time() * 1000)}_{suffix}"


def detect_platform() -> str:
    return _PLATFORMS.get(platform.system(), "Unknown")


class IdentityResolver:
    """Resolve local device id and remote account id.

    Args:
        store: Local store holding ``SyncMetadata``.
        provider: Remote provider used to look up the authenticated user.
        device_name: Configured display name; overrides the generated one.
    """

    def __init__(
        self,
        store: LocalStore,
        provider: RemoteProvider,
        device_name: str | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._device_name = device_name

    def get_device_id(self) -> str:
        with self._store.lock:
            metadata = self._store.get_metadata()
            if metadata.device_id:
                return metadata.device_id
            device_id = generate_device_id()
            self._store.update_metadata(device_id=device_id)
        logger.info("Generated device id %s", device_id)
        return device_id

    def get_account_id(self) -> str | None:
        """Return the remote account id, or ``None`` if it cannot be resolved.

        The cached value is reused while the credential fingerprint matches.
        """
        metadata = self._cached_account()
        if metadata is not None:
            return metadata.account_id
        if self._provider.credential_fingerprint is None:
            return None

        account = self._lookup_account()
        if account is None:
            return None
        self._store.update_metadata(
            account_id=account.id,
            account_login=account.login or None,
            account_fingerprint=self._provider.credential_fingerprint,
        )
        return account.id

    def device_info(self, lookup: bool = True) -> DeviceInfo:
        """Build the identity stamped on local writes.

        The name is derived from persisted metadata only, so it is the same
        across restarts whether or not the account was looked up live.

        Args:
            lookup: Resolve the account id through the provider when it is
                not cached.  With ``False`` only the cached id is used, so
                no network call is made.
        """
        device_platform = detect_platform()
        if lookup:
            self.get_account_id()
        cached = self._cached_account()
        account_id = cached.account_id if cached is not None else None
        login = cached.account_login if cached is not None else None
        if self._device_name:
            name = self._device_name
        elif login:
            name = f"{login}'s {device_platform} Device"
        else:
            name = f"{socket.gethostname()} ({device_platform})"
        return DeviceInfo(
            id=self.get_device_id(),
            name=name,
            platform=device_platform,
            account_id=account_id,
        )

    def invalidate(self) -> None:
        """Forget the cached account id."""
        self._store.update_metadata(
            account_id=None, account_login=None, account_fingerprint=None
        )

    def _cached_account(self) -> SyncMetadata | None:
        """Metadata whose cached account matches the current credential."""
        fingerprint = self._provider.credential_fingerprint
        if fingerprint is None:
            return None
        metadata = self._store.get_metadata()
        if (
            metadata.account_id is not None
            and metadata.account_fingerprint == fingerprint
        ):
            return metadata
        return None

    def _lookup_account(self) -> AccountInfo | None:
        try:
            return self._provider.get_account()
        except SyncError as e:
            logger.warning("Could not resolve account id: %s", e.message)
            return None

"""Shared pytest fixtures for unitab-sync tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from unitab_sync.config import Config
from unitab_sync.errors import AuthenticationError, NotFoundError
from unitab_sync.service import SyncService
from unitab_sync.sync.models import (
    AccountInfo,
    Dataset,
    DeviceInfo,
    Group,
    Tab,
    UploadResult,
)
from unitab_sync.sync.state import LocalStore

LOCAL_DEVICE = "device_1700000000000_localabcd"
REMOTE_DEVICE = "device_1700000000001_remoteabc"
T0 = "2026-01-01T00:00:00.000Z"


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a real GitHub token",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeTimer:
    def __init__(self, when: float, seq: int, callback):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Manually advanced clock for the scheduler.

    ``advance()`` fires due timers in order, including timers armed by
    callbacks that run during the advance.
    """

    def __init__(self) -> None:
        self._now = 0.0
        self._seq = 0
        self.timers: list[FakeTimer] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay, callback) -> FakeTimer:
        self._seq += 1
        timer = FakeTimer(self._now + delay, self._seq, callback)
        self.timers.append(timer)
        return timer

    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [t for t in self.pending() if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self.timers.remove(timer)
            self._now = timer.when
            timer.callback()
        self._now = target


class FakeProvider:
    """In-memory ``RemoteProvider``.

    Queue exceptions in ``download_errors`` / ``upload_errors`` to make the
    next calls fail.
    """

    def __init__(
        self,
        remote: Dataset | None = None,
        account: AccountInfo | None = AccountInfo(id="1001", login="octocat"),
        token: str | None = "ghp_test",
    ) -> None:
        self.remote = remote
        self.account = account
        self.token = token
        self.download_errors: list[Exception] = []
        self.upload_errors: list[Exception] = []
        self.uploads: list[Dataset] = []
        self.download_calls = 0
        self.account_calls = 0
        self.remote_updated = True
        self.invalidated = False

    @property
    def credential_fingerprint(self) -> str | None:
        return f"fp-{self.token}" if self.token else None

    def is_authenticated(self) -> bool:
        try:
            return self.get_account() is not None
        except AuthenticationError:
            return False

    def invalidate(self) -> None:
        self.invalidated = True

    def get_account(self) -> AccountInfo | None:
        self.account_calls += 1
        if not self.token:
            return None
        if self.account is None:
            raise AuthenticationError("bad credentials", status_code=401)
        return self.account

    def download(self) -> Dataset:
        self.download_calls += 1
        if self.download_errors:
            raise self.download_errors.pop(0)
        if self.remote is None:
            raise NotFoundError("No remote data gist found")
        return self.remote

    def upload(self, dataset: Dataset) -> UploadResult:
        if self.upload_errors:
            raise self.upload_errors.pop(0)
        self.uploads.append(dataset)
        self.remote = dataset
        return UploadResult(
            success=True,
            timestamp="2026-02-01T12:00:00.000Z",
            version=dataset.version,
        )

    def has_remote_updates(self, since: str | None) -> bool:
        return self.remote is not None and self.remote_updated

    def delete_remote(self) -> UploadResult:
        self.remote = None
        return UploadResult(success=True)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_group(
    group_id: int,
    name: str | None = None,
    urls: tuple[str, ...] = ("https://example.com/",),
    created_at: str = T0,
    updated_at: str | None = None,
    locked: bool = False,
) -> Group:
    return Group(
        id=group_id,
        name=name if name is not None else f"Group {group_id}",
        created_at=created_at,
        updated_at=updated_at,
        locked=locked,
        tabs=[Tab(title=url, url=url) for url in urls],
    )


def make_dataset(
    groups: list[Group] | tuple[Group, ...] = (),
    device_id: str = LOCAL_DEVICE,
    account_id: str | None = None,
    timestamp: str = T0,
    version: str = "v1",
    settings: dict | None = None,
) -> Dataset:
    return Dataset(
        version=version,
        timestamp=timestamp,
        device=DeviceInfo(id=device_id, name="Test", account_id=account_id),
        groups=list(groups),
        settings=settings or {},
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    return tmp_path / "unitab.json"


@pytest.fixture
def config(data_file: Path) -> Config:
    """A Config with short, predictable scheduler timings."""
    return Config(
        github_token="ghp_test",
        data_file=str(data_file),
        device_name="Test Device",
        debounce_seconds=5.0,
        max_retries=3,
        retry_base_delay=1.0,
        retry_multiplier=2.0,
        retry_max_delay=30.0,
    )


@pytest.fixture
def store(data_file: Path) -> LocalStore:
    """A LocalStore whose device id is LOCAL_DEVICE."""
    local = LocalStore(data_file)
    local.update_metadata(device_id=LOCAL_DEVICE)
    return local


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def service(config, store, provider, clock) -> SyncService:
    """A SyncService wired to fakes; nothing touches the network or timers."""
    svc = SyncService(config, store=store, provider=provider, clock=clock)
    yield svc
    svc.close()

"""End-to-end provider round trip against the real GitHub API.

Gated by ``--run-live``.  Requires UNITAB_GITHUB_TOKEN with the 'gist'
scope.  A throwaway filename is used so existing sync data is never
touched, and the gist is deleted afterwards.
"""

import os
import uuid

import pytest
from conftest import make_dataset, make_group

from unitab_sync.config import Config
from unitab_sync.core.client import GistClient
from unitab_sync.errors import NotFoundError
from unitab_sync.sync.provider import GistProvider


@pytest.mark.live
class TestLiveGistRoundTrip:
    @pytest.fixture
    def provider(self):
        token = os.environ.get("UNITAB_GITHUB_TOKEN")
        if not token:
            pytest.skip("UNITAB_GITHUB_TOKEN not set")
        client = GistClient(Config(github_token=token))
        provider = GistProvider(
            client,
            filename=f"unitab-live-{uuid.uuid4().hex[:8]}.json",
            description="unitab-sync live test",
        )
        yield provider
        provider.delete_remote()

    def test_upload_download_delete(self, provider):
        assert provider.is_authenticated()
        dataset = make_dataset([make_group(1, name="Live")])

        result = provider.upload(dataset)
        assert result.success
        assert provider.gist_id is not None

        fetched = provider.download()
        assert fetched.group_ids() == {1}
        assert fetched.groups[0].name == "Live"

        provider.delete_remote()
        assert provider.gist_id is None
        with pytest.raises(NotFoundError):
            provider.download()

"""
Unit tests for the hosted media purge task.
"""

from unittest.mock import patch

import pytest
from cloudinary.exceptions import GeneralError

from app.core.config import settings
from app.services.media_host import MediaHostClient
from app.tasks.media_tasks import purge_media


def host():
    return MediaHostClient(cloud_name="demo", api_key="key", api_secret="secret")


class TestPurgeMedia:
    @pytest.mark.asyncio
    async def test_counts_each_outcome(self):
        def destroy(public_id, **options):
            if public_id == "keep/broken":
                raise GeneralError("Server error")
            if public_id == "keep/gone":
                return {"result": "not found"}
            return {"result": "ok"}

        assets = [
            {"public_id": "keep/image", "resource_type": "image"},
            {"public_id": "keep/audio", "resource_type": "video"},
            {"public_id": "keep/gone"},
            {"public_id": "keep/broken"},
        ]

        with patch("cloudinary.uploader.destroy", side_effect=destroy):
            stats = await purge_media(assets, host())

        assert stats == {"deleted": 2, "missing": 1, "failed": 1}

    @pytest.mark.asyncio
    async def test_resource_type_defaults_to_image(self):
        with patch("cloudinary.uploader.destroy", return_value={"result": "ok"}) as destroy:
            await purge_media([{"public_id": "a", "resource_type": "video"}, {"public_id": "b"}], host())

        assert [call.kwargs["resource_type"] for call in destroy.call_args_list] == ["video", "image"]

    @pytest.mark.asyncio
    async def test_unconfigured_host(self, monkeypatch):
        monkeypatch.setattr(settings, "cloudinary_cloud_name", None)
        client = MediaHostClient(api_key="key", api_secret="secret")

        with patch("cloudinary.uploader.destroy") as destroy:
            stats = await purge_media([{"public_id": "a"}, {"public_id": "b"}], client)

        assert stats == {"deleted": 0, "missing": 0, "failed": 2}
        destroy.assert_not_called()

    @pytest.mark.asyncio
    async def test_nothing_to_purge(self):
        with patch("cloudinary.uploader.destroy") as destroy:
            assert await purge_media([], host()) == {"deleted": 0, "missing": 0, "failed": 0}

        destroy.assert_not_called()

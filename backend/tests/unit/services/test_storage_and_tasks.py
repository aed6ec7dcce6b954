"""
Unit Tests for Storage Client and Celery Tasks
Tests for: upload validation, object keys, S3/MinIO calls, beat schedule, job tasks
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from botocore.exceptions import ClientError

from app.core.celery_app import celery_app
from app.core.exceptions import StorageError, ValidationError
from app.tasks import subscription_tasks
from app.utils.storage_client import StorageClient, build_object_key, validate_upload


class TestValidateUpload:
    """Test validate_upload"""

    def test_image_accepted(self):
        assert validate_upload("Logo.PNG", "image/png", 1024, kind="image") == "png"

    @pytest.mark.parametrize("filename,kind,message", [
        (None, None, "No file uploaded"),
        ("payload.exe", None, "Invalid file type"),
        ("deck.pdf", "image", "Invalid file type"),
    ])
    def test_rejections(self, filename, kind, message):
        with pytest.raises(ValidationError) as exc_info:
            validate_upload(filename, "application/octet-stream", 10, kind=kind)

        assert exc_info.value.message == message

    def test_too_large(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_upload("deck.pdf", "application/pdf", 50 * 1024 * 1024 + 1, kind="document")

        assert exc_info.value.message.startswith("File too large")

    def test_object_key_layout(self):
        key = build_object_key("user-1", "video", "demo.MP4")

        assert key.startswith("pitches/user-1/videos/")
        assert key.endswith(".mp4")


class TestStorageClient:
    """Test StorageClient against a mocked S3 client"""

    def _s3(self) -> StorageClient:
        storage = StorageClient()
        storage.is_minio = False
        storage._client = MagicMock()
        return storage

    def test_upload_returns_key_and_url(self):
        storage = self._s3()

        uploaded = storage.upload_file(b"data", "users/1/avatar.png", "image/png")

        assert uploaded["public_id"] == "users/1/avatar.png"
        assert uploaded["url"].endswith("/users/1/avatar.png")
        extra = storage._client.upload_fileobj.call_args.kwargs["ExtraArgs"]
        assert extra == {"ContentType": "image/png"}

    def test_upload_failure_raises(self):
        storage = self._s3()
        storage._client.upload_fileobj.side_effect = ClientError({"Error": {"Code": "500"}}, "PutObject")

        with pytest.raises(StorageError):
            storage.upload_file(b"data", "users/1/avatar.png")

    def test_delete_failure_returns_false(self):
        storage = self._s3()
        storage._client.delete_object.side_effect = ClientError({"Error": {"Code": "404"}}, "DeleteObject")

        assert storage.delete_file("users/1/missing.png") is False


class TestSubscriptionTasks:
    """Test the beat schedule and Celery job wrappers"""

    def test_beat_schedule(self):
        schedule = celery_app.conf.beat_schedule

        assert set(schedule) == {"two-day-reminder", "expired-subscriptions", "stripe-sync"}
        assert schedule["two-day-reminder"]["task"] == "app.tasks.subscription_tasks.send_two_day_reminders"

    def test_task_runs_job(self):
        job = AsyncMock(return_value={"checked": 2, "sent": 1})

        with patch.object(subscription_tasks.scheduled_jobs, "send_two_day_reminders", new=job):
            result = subscription_tasks.send_two_day_reminders.apply().get()

        assert result == {"checked": 2, "sent": 1}
        job.assert_awaited_once()

    def test_expire_task(self):
        job = AsyncMock(return_value={"checked": 0, "expired": 0})

        with patch.object(subscription_tasks.scheduled_jobs, "expire_subscriptions", new=job):
            result = subscription_tasks.expire_subscriptions.apply().get()

        assert result == {"checked": 0, "expired": 0}

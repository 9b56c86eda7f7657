from __future__ import annotations

from pathlib import Path

import pytest

from storyboard.settings import ArchiveSettings


def test_settings_defaults_when_environment_is_empty() -> None:
    settings = ArchiveSettings.from_env({})

    assert settings.data_dir == Path("data")
    assert settings.database_path == Path("data") / "storyboard.db"
    assert settings.max_archive_size_mb == 500
    assert settings.max_archive_size_bytes == 500 * 1024 * 1024
    assert settings.compression_level == 9
    assert settings.rollback_on_failure is False
    assert settings.storage_backend == "local"
    assert settings.s3_bucket is None


def test_settings_read_values_from_environment() -> None:
    settings = ArchiveSettings.from_env(
        {
            "STORYBOARD_DATA_DIR": " ~/storyboards ",
            "STORYBOARD_DB_PATH": "/var/lib/storyboard/main.db",
            "STORYBOARD_MAX_ARCHIVE_SIZE_MB": "25",
            "STORYBOARD_ARCHIVE_COMPRESSION_LEVEL": "3",
            "STORYBOARD_IMPORT_ROLLBACK": "yes",
            "STORYBOARD_STORAGE_BACKEND": "S3",
            "STORYBOARD_S3_BUCKET": "boards",
            "STORYBOARD_S3_PREFIX": "tenant-a",
            "STORYBOARD_S3_REGION": "eu-west-1",
            "STORYBOARD_S3_ENDPOINT_URL": "http://localhost:9000",
        }
    )

    assert settings.data_dir == Path("~/storyboards").expanduser()
    assert settings.database_path == Path("/var/lib/storyboard/main.db")
    assert settings.max_archive_size_bytes == 25 * 1024 * 1024
    assert settings.compression_level == 3
    assert settings.rollback_on_failure is True
    assert settings.storage_backend == "s3"
    assert settings.s3_bucket == "boards"
    assert settings.s3_prefix == "tenant-a"
    assert settings.s3_region == "eu-west-1"
    assert settings.s3_endpoint_url == "http://localhost:9000"


def test_settings_treat_blank_values_as_unset() -> None:
    settings = ArchiveSettings.from_env(
        {
            "STORYBOARD_DATA_DIR": "   ",
            "STORYBOARD_MAX_ARCHIVE_SIZE_MB": "",
            "STORYBOARD_IMPORT_ROLLBACK": "",
        }
    )

    assert settings.data_dir == Path("data")
    assert settings.max_archive_size_mb == 500
    assert settings.rollback_on_failure is False


@pytest.mark.parametrize(
    ("environ", "message"),
    [
        ({"STORYBOARD_MAX_ARCHIVE_SIZE_MB": "lots"}, "STORYBOARD_MAX_ARCHIVE_SIZE_MB"),
        ({"STORYBOARD_MAX_ARCHIVE_SIZE_MB": "0"}, "STORYBOARD_MAX_ARCHIVE_SIZE_MB"),
        (
            {"STORYBOARD_ARCHIVE_COMPRESSION_LEVEL": "12"},
            "STORYBOARD_ARCHIVE_COMPRESSION_LEVEL",
        ),
        ({"STORYBOARD_IMPORT_ROLLBACK": "maybe"}, "STORYBOARD_IMPORT_ROLLBACK"),
        ({"STORYBOARD_STORAGE_BACKEND": "ftp"}, "STORYBOARD_STORAGE_BACKEND"),
        ({"STORYBOARD_STORAGE_BACKEND": "s3"}, "STORYBOARD_S3_BUCKET"),
    ],
)
def test_settings_reject_invalid_values(environ: dict[str, str], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        ArchiveSettings.from_env(environ)

"""
Pytest configuration and fixtures
"""

import pytest
from pathlib import Path
from datetime import date
from typing import Callable
from core.config import Settings
from core.logging import ErrorLog
from tests.helpers import ARTICLE_FIELDS, TEST_DATABASE_URL, FakeDocumentStore, write_dbf


@pytest.fixture
def dbf_writer() -> Callable[..., Path]:
    """Write a .dbf archive: dbf_writer(path, fields, records, deleted=())"""
    return write_dbf


@pytest.fixture
def article_archive(tmp_path) -> Path:
    """AVB article archive with 3 records, the second one with a NaN price"""
    return write_dbf(
        tmp_path / "_dbf" / "AVB" / "article.dbf",
        ARTICLE_FIELDS,
        [
            ["A0001", "Marteau", 12.5, 4, date(2021, 3, 14), True],
            ["A0002", "Tournevis", "nan", 10, date(2022, 7, 1), False],
            ["A0003", "Scie", 30.0, 2, None, None],
        ]
    )


@pytest.fixture
def error_log(tmp_path):
    """Error log writing under the test's temporary directory"""
    log = ErrorLog(tmp_path / "logs" / "migration_errors.log")
    yield log
    log.close()


@pytest.fixture
def store_factory():
    """Build FakeDocumentStore instances"""
    return FakeDocumentStore


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at temporary archive, bindings and log locations"""
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        ARCHIVE_ROOT=str(tmp_path / "_dbf"),
        BINDINGS_DIR=str(tmp_path / "bindings"),
        ERROR_LOG_PATH=str(tmp_path / "logs" / "migration_errors.log"),
        SITES=["AVB"],
        PROGRESS_ENABLED=False,
        RECORD_RUN_HISTORY=False,
    )

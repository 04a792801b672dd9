# ============================================================================
# File: tests/integration/test_migration_runner.py
# ============================================================================

import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID
from sqlalchemy.exc import OperationalError

from core.exceptions import ConfigurationError, DatabaseConnectionError
from ingestion.runner import MigrationRunner, RunContext, format_elapsed
from models.base import ETLStatus, RecordType, RunState
from models.migration_run import MigrationRun
from tests.helpers import ARTICLE_FIELDS, FakeDocumentStore, article_rows, write_dbf


def write_binding(settings, site, record_type, collection):
    path = Path(settings.BINDINGS_DIR) / site / f"{site.lower()}_{record_type.module_suffix}.py"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f'COLLECTION = "{collection}"\n', encoding="utf-8")


def write_article_archive(settings, site, count=3):
    return write_dbf(Path(settings.ARCHIVE_ROOT) / site / "article.dbf", ARTICLE_FIELDS, article_rows(count))


def make_session_maker():
    session = AsyncMock()
    session.add = MagicMock()
    session.connection = AsyncMock(return_value=AsyncMock())
    maker = MagicMock()
    maker.return_value.__aenter__.return_value = session
    maker.return_value.__aexit__.return_value = False
    return maker, session


@pytest.fixture
def stores():
    return {}


@pytest.fixture
def engine():
    return AsyncMock()


@pytest.fixture
def runner_factory(test_settings, error_log, stores, engine):
    """Runner wired to in-memory stores and a mocked engine"""

    def build(config=None, store_factory=None):
        def default_store_factory(binding, session):
            return stores.setdefault(binding.collection, FakeDocumentStore(binding.collection))

        return MigrationRunner(
            config=config or test_settings,
            error_log=error_log,
            engine_factory=lambda url: engine,
            store_factory=store_factory or default_store_factory,
        )

    return build


@pytest.fixture
def avb_site(test_settings):
    """AVB with bound article and supplier; only the article archive exists"""
    write_binding(test_settings, "AVB", RecordType.ARTICLE, "avb_articles")
    write_binding(test_settings, "AVB", RecordType.SUPPLIER, "avb_suppliers")
    write_article_archive(test_settings, "AVB")


@pytest.mark.asyncio
async def test_full_run(avb_site, runner_factory, stores, engine):
    """Loads bound pairs, reports missing archives, skips unbound pairs"""
    maker, _ = make_session_maker()

    with patch("ingestion.runner.verify_connection", AsyncMock()), \
         patch("ingestion.runner.create_session_maker", return_value=maker):
        summary = await runner_factory().run()

    assert summary.state == RunState.COMPLETED
    assert [o.label for o in summary.outcomes] == ["AVB/article", "AVB/supplier"]

    article = summary.outcome_for("AVB", RecordType.ARTICLE)
    assert article.status == ETLStatus.SUCCESS
    assert article.source_count == 3
    assert article.inserted_count == 3
    assert len(stores["avb_articles"].documents) == 3

    supplier = summary.outcome_for("AVB", RecordType.SUPPLIER)
    assert supplier.status == ETLStatus.SKIPPED
    assert supplier.inserted_count == 0
    assert stores["avb_suppliers"].prepared is False

    skipped_types = {entry.record_type for entry in summary.skipped}
    assert skipped_types == set(RecordType) - {RecordType.ARTICLE, RecordType.SUPPLIER}

    assert summary.total_source_count == 3
    assert summary.total_inserted_count == 3
    assert summary.completed_at is not None
    engine.dispose.assert_awaited_once()


@pytest.mark.asyncio
async def test_missing_site_directory_skipped(avb_site, runner_factory, error_log):
    """Site ZZ does not exist: warning, no outcome, other sites unchanged"""
    maker, _ = make_session_maker()

    with patch("ingestion.runner.verify_connection", AsyncMock()), \
         patch("ingestion.runner.create_session_maker", return_value=maker):
        baseline = await runner_factory().run(sites=["AVB"])
        summary = await runner_factory().run(sites=["ZZ", "AVB"])

    assert summary.state == RunState.COMPLETED
    assert "ZZ" not in summary.sites
    assert all(o.site != "ZZ" for o in summary.outcomes)
    assert [(o.label, o.inserted_count) for o in summary.outcomes] == \
        [(o.label, o.inserted_count) for o in baseline.outcomes]

    site_skips = [entry for entry in summary.skipped if entry.site == "ZZ"]
    assert len(site_skips) == 1
    assert site_skips[0].record_type is None
    assert "ZZ: site directory" in error_log.path.read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_missing_archive_does_not_block_other_types(test_settings, runner_factory):
    write_binding(test_settings, "AVB", RecordType.ARTICLE, "avb_articles")
    write_binding(test_settings, "AVB", RecordType.CLASS_NUMBER, "avb_class_numbers")
    write_binding(test_settings, "AVB", RecordType.CUSTOMER, "avb_customers")
    write_article_archive(test_settings, "AVB")
    write_dbf(
        Path(test_settings.ARCHIVE_ROOT) / "AVB" / "clients.dbf",
        [("NUMERO", "N", 6, 0), ("NOM", "C", 20, 0)],
        [[1, "Dupont"], [2, "Wamytan"]]
    )
    maker, _ = make_session_maker()

    with patch("ingestion.runner.verify_connection", AsyncMock()), \
         patch("ingestion.runner.create_session_maker", return_value=maker):
        summary = await runner_factory().run()

    statuses = {o.record_type: o.status for o in summary.outcomes}
    assert statuses == {
        RecordType.ARTICLE: ETLStatus.SUCCESS,
        RecordType.CLASS_NUMBER: ETLStatus.SKIPPED,
        RecordType.CUSTOMER: ETLStatus.SUCCESS,
    }
    assert summary.outcome_for("AVB", RecordType.CUSTOMER).inserted_count == 2


@pytest.mark.asyncio
async def test_connection_failure_aborts(avb_site, runner_factory, stores, engine, error_log):
    """Unreachable destination: aborted, empty summary, nothing loaded"""
    failure = DatabaseConnectionError(
        "Failed to connect to the destination database",
        original_exception=OSError("Connection refused")
    )

    with patch("ingestion.runner.verify_connection", AsyncMock(side_effect=failure)), \
         patch("ingestion.runner.DbfArchive") as mock_archive:
        summary = await runner_factory().run()

    assert summary.state == RunState.ABORTED
    assert summary.outcomes == []
    assert stores == {}
    mock_archive.assert_not_called()
    engine.dispose.assert_awaited_once()
    assert "Migration aborted" in error_log.path.read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_engine_creation_failure_aborts(avb_site, test_settings, error_log):
    def broken_engine(url):
        raise ValueError("Could not parse SQLAlchemy URL")

    runner = MigrationRunner(config=test_settings, error_log=error_log, engine_factory=broken_engine)
    summary = await runner.run()

    assert summary.state == RunState.ABORTED
    assert summary.outcomes == []


@pytest.mark.asyncio
async def test_missing_connection_string(avb_site, test_settings, runner_factory, engine):
    """No connection string: fails before connecting or opening any archive"""
    config = test_settings.model_copy(update={"DATABASE_URL": None, "DATABASE_URL_DEV": None})
    probe = AsyncMock()

    with patch("ingestion.runner.verify_connection", probe), \
         patch("ingestion.runner.DbfArchive") as mock_archive:
        with pytest.raises(ConfigurationError):
            await runner_factory(config=config).run()

    probe.assert_not_called()
    mock_archive.assert_not_called()


@pytest.mark.asyncio
async def test_fallback_connection_string(avb_site, test_settings, error_log, engine):
    config = test_settings.model_copy(update={"DATABASE_URL": None, "DATABASE_URL_DEV": "postgresql+asyncpg://dev/db"})
    used_urls = []
    maker, _ = make_session_maker()

    def engine_factory(url):
        used_urls.append(url)
        return engine

    runner = MigrationRunner(
        config=config,
        error_log=error_log,
        engine_factory=engine_factory,
        store_factory=lambda binding, session: FakeDocumentStore(binding.collection),
    )
    with patch("ingestion.runner.verify_connection", AsyncMock()), \
         patch("ingestion.runner.create_session_maker", return_value=maker):
        summary = await runner.run()

    assert used_urls == ["postgresql+asyncpg://dev/db"]
    assert summary.state == RunState.COMPLETED


@pytest.mark.asyncio
async def test_unexpected_pair_error_recorded(test_settings, runner_factory, stores):
    write_binding(test_settings, "AVB", RecordType.ARTICLE, "avb_articles")
    write_binding(test_settings, "AW", RecordType.ARTICLE, "aw_articles")
    write_article_archive(test_settings, "AVB")
    write_article_archive(test_settings, "AW")
    config = test_settings.model_copy(update={"SITES": ["AVB", "AW"]})

    def store_factory(binding, session):
        if binding.site == "AVB":
            raise RuntimeError("session unusable")
        return stores.setdefault(binding.collection, FakeDocumentStore(binding.collection))

    maker, _ = make_session_maker()
    with patch("ingestion.runner.verify_connection", AsyncMock()), \
         patch("ingestion.runner.create_session_maker", return_value=maker):
        summary = await runner_factory(config=config, store_factory=store_factory).run()

    assert summary.state == RunState.COMPLETED
    failed = summary.outcome_for("AVB", RecordType.ARTICLE)
    assert failed.status == ETLStatus.FAILED
    assert "session unusable" in failed.errors[0]
    assert summary.outcome_for("AW", RecordType.ARTICLE).inserted_count == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [1, 2, 4])
async def test_outcome_order_independent_of_concurrency(test_settings, runner_factory, concurrency):
    sites = ["AVB", "AW", "DQ", "FMB", "HD"]
    for index, site in enumerate(sites):
        write_binding(test_settings, site, RecordType.ARTICLE, f"{site.lower()}_articles")
        write_binding(test_settings, site, RecordType.SUPPLIER, f"{site.lower()}_suppliers")
        write_article_archive(test_settings, site, count=index + 1)
    config = test_settings.model_copy(update={"SITES": sites, "MAX_CONCURRENT_LOADS": concurrency})
    maker, _ = make_session_maker()

    with patch("ingestion.runner.verify_connection", AsyncMock()), \
         patch("ingestion.runner.create_session_maker", return_value=maker):
        summary = await runner_factory(config=config).run()

    assert [o.label for o in summary.outcomes] == [
        f"{site}/{record_type.value}" for site in sites
        for record_type in (RecordType.ARTICLE, RecordType.SUPPLIER)
    ]
    assert [o.inserted_count for o in summary.outcomes if o.record_type == RecordType.ARTICLE] == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_record_types_run_in_declaration_order(avb_site, runner_factory):
    maker, _ = make_session_maker()

    with patch("ingestion.runner.verify_connection", AsyncMock()), \
         patch("ingestion.runner.create_session_maker", return_value=maker):
        summary = await runner_factory().run(record_types=[RecordType.SUPPLIER, RecordType.ARTICLE])

    assert [o.record_type for o in summary.outcomes] == [RecordType.ARTICLE, RecordType.SUPPLIER]
    assert summary.skipped == []


@pytest.mark.asyncio
async def test_run_history_recorded(avb_site, test_settings, runner_factory):
    config = test_settings.model_copy(update={"RECORD_RUN_HISTORY": True})
    maker, session = make_session_maker()

    with patch("ingestion.runner.verify_connection", AsyncMock()), \
         patch("ingestion.runner.create_session_maker", return_value=maker):
        summary = await runner_factory(config=config).run()

    session.add.assert_called_once()
    run = session.add.call_args.args[0]
    assert isinstance(run, MigrationRun)
    assert run.run_id == summary.run_id
    assert run.records_inserted == 3
    assert [o.site for o in run.outcomes] == ["AVB", "AVB"]
    session.commit.assert_awaited()


@pytest.mark.asyncio
async def test_run_history_failure_not_fatal(avb_site, test_settings, runner_factory, error_log):
    config = test_settings.model_copy(update={"RECORD_RUN_HISTORY": True})
    maker, session = make_session_maker()
    session.commit.side_effect = OperationalError("INSERT", {}, Exception("read-only transaction"))

    with patch("ingestion.runner.verify_connection", AsyncMock()), \
         patch("ingestion.runner.create_session_maker", return_value=maker):
        summary = await runner_factory(config=config).run()

    assert summary.state == RunState.COMPLETED
    assert summary.total_inserted_count == 3
    assert "failed to record run history" in error_log.path.read_text(encoding="utf-8")


class TestRunContext:
    """Test elapsed time helpers"""

    def test_format_elapsed(self):
        assert format_elapsed(0) == "0h 0m 0s"
        assert format_elapsed(59.9) == "0h 0m 59s"
        assert format_elapsed(3725) == "1h 2m 5s"
        assert format_elapsed(90061) == "25h 1m 1s"

    def test_context_holds_summary(self, error_log):
        context = RunContext(error_log=error_log)

        assert isinstance(context.run_id, UUID)
        assert context.run_id == context.summary.run_id
        assert context.elapsed_seconds() >= 0
        assert context.format_elapsed().endswith("s")

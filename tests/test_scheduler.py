"""Tests for the interval scheduler."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from catalog_ingest.db.models_ingestion import IngestionJobDB, IngestionSourceDB
from catalog_ingest.ingestion.registry import SourceDefinition
from catalog_ingest.ingestion.scheduler import Scheduler, idempotency_key, time_bucket
from catalog_ingest.ingestion.sources import ensure_source

# Exactly on an hour boundary, so +59 minutes stays in the same 60-minute window.
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def add_source(session: Session, slug: str, every: int | None = 60, active: bool = True, **config):
    definition = SourceDefinition(
        slug=slug,
        name=slug,
        kind="offers_head",
        schedule_every_minutes=every,
        active=active,
        config=config or {"jobKind": "offers.head_refresh.bulk", "jobPayload": {"limit": 5}},
    )
    ensure_source(session, definition)
    session.commit()


def jobs(session: Session) -> list[IngestionJobDB]:
    return list(session.execute(select(IngestionJobDB).order_by(IngestionJobDB.created_at)).scalars())


class TestBuckets:
    """Tests for time_bucket and idempotency_key."""

    def test_bucket_is_stable_within_window(self) -> None:
        """Test that times in one window share a bucket."""
        assert time_bucket(NOW, 60) == time_bucket(NOW + timedelta(minutes=59), 60)
        assert time_bucket(NOW, 60) + 1 == time_bucket(NOW + timedelta(minutes=60), 60)

    def test_bucket_value(self) -> None:
        """Test the bucket is epoch minutes divided by the interval."""
        assert time_bucket(NOW, 1) == int(NOW.timestamp()) // 60

    def test_key_default_and_prefix(self) -> None:
        """Test key formats."""
        assert idempotency_key("offers-head", None, 42) == "schedule:offers-head:42"
        assert idempotency_key("offers-head", "nightly", 42) == "nightly:42"


class TestScheduler:
    """Tests for Scheduler.run."""

    def test_enqueues_one_job_per_window(self, session: Session) -> None:
        """Test that repeated runs in one window dedupe."""
        add_source(session, "offers-head")
        scheduler = Scheduler(session)

        first = scheduler.run(now=NOW)
        second = scheduler.run(now=NOW + timedelta(minutes=10))

        assert first.enqueued == 1
        assert first.deduped == 0
        assert second.enqueued == 0
        assert second.deduped == 1
        rows = jobs(session)
        assert len(rows) == 1
        assert rows[0].idempotency_key == f"schedule:offers-head:{time_bucket(NOW, 60)}"
        assert rows[0].kind == "offers.head_refresh.bulk"
        assert first.job_ids == [rows[0].id]

    def test_next_window_enqueues_again(self, session: Session) -> None:
        """Test that a new window produces a new job."""
        add_source(session, "offers-head")
        scheduler = Scheduler(session)

        scheduler.run(now=NOW)
        stats = scheduler.run(now=NOW + timedelta(minutes=60))

        assert stats.enqueued == 1
        assert len(jobs(session)) == 2

    def test_prefix_replaces_default_key(self, session: Session) -> None:
        """Test idempotencyPrefix from the config."""
        add_source(
            session,
            "offers-head",
            jobKind="offers.head_refresh.bulk",
            idempotencyPrefix="hourly-head",
        )

        Scheduler(session).run(now=NOW)

        assert jobs(session)[0].idempotency_key == f"hourly-head:{time_bucket(NOW, 60)}"

    def test_invalid_config_is_skipped(self, session: Session) -> None:
        """Test that an unknown job kind skips the source."""
        add_source(session, "broken", jobKind="offers.teleport")
        add_source(session, "offers-head")

        stats = Scheduler(session).run(now=NOW)

        assert stats.scanned == 2
        assert stats.skipped == 1
        assert stats.enqueued == 1
        assert len(jobs(session)) == 1

    def test_undecodable_config_is_skipped(self, session: Session) -> None:
        """Test that a corrupt stored config does not stop other sources."""
        add_source(session, "corrupt")
        add_source(session, "offers-head")
        session.execute(
            update(IngestionSourceDB)
            .where(IngestionSourceDB.slug == "corrupt")
            .values(config_json="{not json")
        )
        session.commit()

        stats = Scheduler(session).run(now=NOW)

        assert stats.scanned == 2
        assert stats.skipped == 1
        assert stats.errors == 0
        assert stats.enqueued == 1
        assert jobs(session)[0].idempotency_key.startswith("schedule:offers-head:")

    def test_missing_job_kind_is_skipped(self, session: Session) -> None:
        """Test a config without jobKind."""
        add_source(session, "no-kind", somethingElse=True)

        stats = Scheduler(session).run(now=NOW)

        assert stats.skipped == 1
        assert jobs(session) == []

    def test_bad_payload_counts_as_error(self, session: Session) -> None:
        """Test that a payload rejected by the queue is an error, not a crash."""
        add_source(
            session,
            "bad-payload",
            jobKind="offers.head_refresh.bulk",
            jobPayload={"limit": 0},
        )
        add_source(session, "offers-head")

        stats = Scheduler(session).run(now=NOW)

        assert stats.errors == 1
        assert stats.enqueued == 1

    @pytest.mark.parametrize(("every", "active"), [(None, True), (0, True), (60, False)])
    def test_unscheduled_sources_are_ignored(
        self, session: Session, every: int | None, active: bool
    ) -> None:
        """Test which sources the scheduler scans."""
        add_source(session, "ignored", every=every, active=active)

        stats = Scheduler(session).run(now=NOW)

        assert stats.scanned == 0
        assert jobs(session) == []

    def test_limit_sources(self, session: Session) -> None:
        """Test the scan limit, in slug order."""
        add_source(session, "b-source")
        add_source(session, "a-source")

        stats = Scheduler(session).run(now=NOW, limit_sources=1)

        assert stats.scanned == 1
        assert jobs(session)[0].idempotency_key.startswith("schedule:a-source:")

    def test_stats_to_dict(self, session: Session) -> None:
        """Test the serialized counters."""
        add_source(session, "offers-head")
        data = Scheduler(session).run(now=NOW).to_dict()
        assert set(data) == {"scanned", "enqueued", "deduped", "skipped", "errors", "jobIds"}

"""
Catalog Ingestion Pipeline
==========================

Pipeline stages:
1. Schedule - Scheduler enqueues one recurring job per source and time window
2. Queue - JobQueue stores, prioritizes, claims and retries jobs
3. Fetch - Worker handlers HEAD or GET offer pages under a timeout
4. Snapshot - SnapshotIngestor writes a content-hashed snapshot only on change
5. Seed - SeedIngestor ingests curated YAML/JSON records the same way

Normalization of snapshots into canonical rows lives in
catalog_ingest.normalization. The worker is imported from
catalog_ingest.ingestion.worker.
"""

from catalog_ingest.ingestion.job_queue import ClaimedJob, EnqueueResult, JobQueue
from catalog_ingest.ingestion.registry import (
    GlobalConfig,
    SourceDefinition,
    SourceRegistry,
    load_registry,
)
from catalog_ingest.ingestion.scheduler import Scheduler, SchedulerStats
from catalog_ingest.ingestion.snapshots import IngestResult, SnapshotIngestor
from catalog_ingest.ingestion.sources import ensure_source, finish_run, start_run

__all__ = [
    # Queue
    "ClaimedJob",
    "EnqueueResult",
    "JobQueue",
    # Registry
    "GlobalConfig",
    "SourceDefinition",
    "SourceRegistry",
    "load_registry",
    # Scheduler
    "Scheduler",
    "SchedulerStats",
    # Snapshots
    "IngestResult",
    "SnapshotIngestor",
    # Sources and runs
    "ensure_source",
    "finish_run",
    "start_run",
]

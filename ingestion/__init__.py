"""
Terviseamet water-quality feed synchronization pipeline.

Modules:
    feeds: Feed descriptors and refresh intervals
    runner: Sync orchestrator (fetch → parse → load → status diff)
    scheduler: APScheduler integration for periodic syncs
    status_diff: Latest-status refresh and change detection
    notifier: Notification collaborator interface

Subpackages:
    extractors: Conditional HTTP fetcher with change detection
    transformers: Field normalizers, quality heuristics and XML parsers
    loaders: Idempotent upserts into the database

Architecture:
    For every feed descriptor, in order:

    1. Fetch - conditional GET, skipped inside the refresh interval
    2. Parse - one pure parser per document kind
    3. Load - upsert by external key, one transaction per feed

    After all feeds, the places touched by sample imports get their
    latest status recomputed, and transitions are sent to subscribers.

Usage:
    from ingestion.runner import SyncRunner

Example:
    async with async_session_maker() as session:
        summary = await SyncRunner(session).sync_from_terviseamet(force=True)
        print(summary.model_dump(by_alias=True))
"""

__all__ = [
    "FeedDescriptor",
    "SyncRunner",
    "SyncScheduler",
    "ConditionalFetcher",
    "WaterQualityLoader",
    "StatusRefresher",
    "StatusNotifier",
    "LoggingStatusNotifier",
]

"""
Sync pipeline components for Zabbix -> InfluxDB replication.

This package contains all components of the incremental sync engine:

Modules:
    checkpoint: Durable per-table cursors (file or database backed)
    runner: Sync orchestrator running one checkpointed cycle per table
    scheduler: APScheduler integration for the daemon loop

Subpackages:
    extractors: Zabbix history extraction with server failover
    transformers: Row-to-metric mapping with per-table value decoding
    loaders: InfluxDB line protocol client and retried batch delivery

Architecture:
    Each cycle follows a checkpoint-then-process approach:

    1. Checkpoint - Read the cursor and advance it to now minus lookback
    2. Extract - Query rows with clock >= previous cursor, oldest first
    3. Transform - Map rows lazily to normalized MetricRecord points
    4. Load - Deliver fixed-size batches, each with bounded retry

    A cycle that fails after step 1 restores the previous cursor, so the
    window is reprocessed on the next pass (at-least-once delivery).

Usage:
    from ingestion.runner import SyncRunner, build_sync_runner

Example:
    runner = build_sync_runner(load_settings("config.toml"))
    results = await runner.run_all()

    for result in results:
        print(f"{result.source_name}: {result.status.value}, {result.records_written} written")

Error Handling:
    All components raise exceptions from core.exceptions. The runner turns
    them into FAILED or SKIPPED results, so one table never stops another.
"""

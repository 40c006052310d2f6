"""
Scenario Configuration Models

Defines Pydantic models for the parameters of each stress scenario:
- Change tracking (stream consumption under concurrent mutation)
- Replace-into with deliberate conflicts under table maintenance
- Vacuum / auto-vacuum under insert load
- Multi-table insert under table maintenance
- Explicit-transaction conflict matrix

A config is built once from CLI input and never mutated during a run.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ScenarioConfig(BaseModel):
    """Common base: immutable, unknown fields rejected."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class ChangeTrackingConfig(ScenarioConfig):
    """
    Configuration for the change-tracking (stream) scenario.
    """

    num_derived_streams: int = Field(5, ge=0, description="Number of derived streams")
    stream_consumption_concurrency: int = Field(
        3, ge=0, description="Degree of concurrency that a stream is consumed with"
    )
    times_consumption_per_stream: int = Field(
        10, ge=0, description="Times each consumer consumes its stream"
    )
    show_stream_consumption_errors: bool = Field(
        False, description="Log every failed stream consumption"
    )
    append_only_stream: bool = Field(
        False, description="Append-only streams instead of standard streams"
    )
    clustered_table: bool = Field(
        False, description="Cluster the base table and recluster it concurrently"
    )
    seed_rows: int = Field(10, ge=0, description="Rows inserted before streams exist")
    insert_rows_per_statement: int = Field(
        100, ge=1, description="Rows per statement of the insertion worker"
    )


class ReplaceIntoConfig(ScenarioConfig):
    """
    Configuration for the replace-into conflict scenario.
    """

    iterations: int = Field(100, ge=0, description="Number of replace-into batches")
    batch_size: int = Field(1000, ge=1, description="Rows per replace-into batch")
    conflict_interval: int = Field(
        7,
        ge=0,
        description="Re-replace overlapping history batches every N batches (0=never)",
    )
    correlation_factor: int = Field(
        7, ge=1, description="id2 = id1 * correlation_factor for every row"
    )


class VacuumConfig(ScenarioConfig):
    """
    Configuration for the vacuum-under-load scenario.
    """

    insertion_concurrency: int = Field(5, ge=0, description="Concurrent inserters")
    insertion_iteration: int = Field(
        1000, ge=0, description="Inserts executed by each inserter"
    )
    vacuum_concurrency: int = Field(5, ge=0, description="Concurrent vacuum workers")


class AutoVacuumConfig(ScenarioConfig):
    """
    Configuration for the auto-vacuum scenario (small snapshot retention).
    """

    concurrency: int = Field(10, ge=0, description="Concurrent insertion workers")
    inserts_per_iteration: int = Field(
        20, ge=0, description="Insert operations per worker"
    )
    insert_batch_size: int = Field(10, ge=1, description="Rows per insert operation")
    snapshots_to_keep: int = Field(
        3, ge=1, description="DATA_RETENTION_NUM_SNAPSHOTS_TO_KEEP of the test table"
    )


class MultiTableInsertConfig(ScenarioConfig):
    """
    Configuration for the multi-table insert scenario.
    """

    runs: int = Field(100, ge=0, description="Executions of the multi-table insert")
    table_count: int = Field(10, ge=1, description="Number of routed target tables")
    maintained_tables: int = Field(
        9, ge=0, description="Tables t0..tN-1 under concurrent maintenance"
    )
    rows_per_run: int = Field(10000, ge=0, description="Source rows per execution")

    @field_validator("maintained_tables")
    @classmethod
    def validate_maintained_tables(cls, v, info):
        """Maintenance can only target tables that exist."""
        table_count = info.data.get("table_count", 10)
        if v > table_count:
            raise ValueError("maintained_tables must be <= table_count")
        return v

    @field_validator("rows_per_run")
    @classmethod
    def validate_rows_per_run(cls, v, info):
        """Rows are routed by c % table_count, so each table gets an equal share."""
        table_count = info.data.get("table_count", 10)
        if table_count and v % table_count != 0:
            raise ValueError("rows_per_run must be a multiple of table_count")
        return v

    @property
    def rows_per_table(self) -> int:
        return self.rows_per_run // self.table_count


class ExplicitTxnConfig(ScenarioConfig):
    """
    Configuration for the explicit-transaction matrix.
    """

    database: str = Field("test_txn", description="Database the matrix runs in")

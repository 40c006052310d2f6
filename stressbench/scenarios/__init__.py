"""
Scenario builders.

Each variant module exposes ``build(config) -> Scenario``; ``build_scenario``
picks the builder from the config type.
"""

from __future__ import annotations

from typing import Callable

from stressbench.models.scenario_config import (
    AutoVacuumConfig,
    ChangeTrackingConfig,
    ExplicitTxnConfig,
    MultiTableInsertConfig,
    ReplaceIntoConfig,
    ScenarioConfig,
    VacuumConfig,
)
from stressbench.scenarios import (
    auto_vacuum,
    change_tracking,
    explicit_txn,
    multi_table_insert,
    replace_into,
    vacuum,
)
from stressbench.scenarios.base import Scenario, load_script, split_script

BUILDERS: dict[type[ScenarioConfig], Callable[..., Scenario]] = {
    ChangeTrackingConfig: change_tracking.build,
    ReplaceIntoConfig: replace_into.build,
    VacuumConfig: vacuum.build,
    AutoVacuumConfig: auto_vacuum.build,
    MultiTableInsertConfig: multi_table_insert.build,
    ExplicitTxnConfig: explicit_txn.build,
}


def build_scenario(config: ScenarioConfig) -> Scenario:
    try:
        builder = BUILDERS[type(config)]
    except KeyError:
        raise ValueError(f"No scenario for config type {type(config).__name__}") from None
    return builder(config)


__all__ = [
    # Registry
    "BUILDERS",
    "build_scenario",
    # Scenario value
    "Scenario",
    "load_script",
    "split_script",
]

"""
Data models for scenario configuration, worker roles and run results.
"""

from .results import (
    CategoryCount,
    ResultTally,
    RunReport,
    VerificationAssertion,
    VerificationReport,
    WorkerOutcome,
)
from .scenario_config import (
    AutoVacuumConfig,
    ChangeTrackingConfig,
    ExplicitTxnConfig,
    MultiTableInsertConfig,
    ReplaceIntoConfig,
    ScenarioConfig,
    VacuumConfig,
)
from .workload import PlanFn, RoleKind, Statement, WorkerRole, fixed_plan, looping

__all__ = [
    # Results
    "CategoryCount",
    "ResultTally",
    "RunReport",
    "VerificationAssertion",
    "VerificationReport",
    "WorkerOutcome",
    # Scenario configs
    "AutoVacuumConfig",
    "ChangeTrackingConfig",
    "ExplicitTxnConfig",
    "MultiTableInsertConfig",
    "ReplaceIntoConfig",
    "ScenarioConfig",
    "VacuumConfig",
    # Workload roles
    "PlanFn",
    "RoleKind",
    "Statement",
    "WorkerRole",
    "fixed_plan",
    "looping",
]

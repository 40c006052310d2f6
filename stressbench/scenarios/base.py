"""
Scenario definition.

Every workload variant is a ``Scenario`` value: SQL for each phase, the worker
roles, and the verification battery. The driver runs all of them the same way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence

from stressbench.config import settings
from stressbench.core.verification import Check, DiagnosticQuery
from stressbench.models.results import VerificationAssertion
from stressbench.models.workload import WorkerRole

# Scripted scenarios receive the session factory and return the assertions
# they recorded step by step.
ScriptFn = Callable[[Any], Awaitable[list[VerificationAssertion]]]


def split_script(text: str) -> list[str]:
    """Split a SQL script on ';', dropping blank/whitespace-only segments."""
    return [part.strip() for part in str(text).split(";") if part.strip()]


def load_script(relative_path: str | Path, *, sql_dir: Path | None = None) -> list[str]:
    """Read a setup script from the SQL directory and split it into statements."""
    base = Path(sql_dir) if sql_dir is not None else Path(settings.SQL_DIR)
    path = Path(relative_path)
    if not path.is_absolute():
        path = base / path
    return split_script(path.read_text(encoding="utf-8"))


@dataclass
class Scenario:
    """
    A named combination of setup, worker roles, drain and verification.

    Attributes:
        name: Scenario name (used in logs and the report)
        options: Parameters echoed at the start and end of the run
        setup: Statements run on a bare session before anything else
        session: Statements replayed on every worker/verification session
        seed: Statements run once after setup, before workers start
        unbounded: Roles looping until shutdown
        staging: Statements run after unbounded workers started
        bounded: Roles running a fixed number of iterations
        script: Scripted multi-session steps run in the bounded phase
        drain: Statements run once after every worker stopped
        checks: Verification battery
        diagnostics: Informational queries logged after verification
    """

    name: str
    options: dict[str, Any] = field(default_factory=dict)
    setup: Sequence[str] = ()
    session: Sequence[str] = ()
    seed: Sequence[str] = ()
    unbounded: Sequence[WorkerRole] = ()
    staging: Sequence[str] = ()
    bounded: Sequence[WorkerRole] = ()
    script: ScriptFn | None = None
    drain: Sequence[str] = ()
    checks: Sequence[Check] = ()
    diagnostics: Sequence[DiagnosticQuery] = ()

    @property
    def planned_bounded_iterations(self) -> int:
        return sum(role.planned_iterations for role in self.bounded)

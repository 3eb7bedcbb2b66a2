import sys

import pytest

from support import TOOL_TEMPLATE


@pytest.fixture
def make_tool(tmp_path):
    """Write an executable fake maintenance tool and return its path."""

    def factory(
        stdout: str = "",
        stderr: str = "",
        code: int = 0,
        sleep: float = 0.0,
        crash: bool = False,
        ignore_term: bool = False,
        argv_file: str = "",
        helper_sleep: float = 0.0,
        helper_pid_file: str = "",
        name: str = "maintenancetool",
    ) -> str:
        path = tmp_path / name
        path.write_text(
            TOOL_TEMPLATE.format(
                python=sys.executable,
                stdout=stdout,
                stderr=stderr,
                code=code,
                sleep=sleep,
                crash=crash,
                ignore_term=ignore_term,
                argv_file=argv_file,
                helper_sleep=helper_sleep,
                helper_pid_file=helper_pid_file,
            ),
            encoding="utf-8",
        )
        path.chmod(0o755)
        return str(path)

    return factory


@pytest.fixture
def orchestrators():
    """Factory for orchestrators that are closed after the test."""
    from autoupdater import UpdateOrchestrator

    created = []

    def factory(*args, **kwargs):
        orch = UpdateOrchestrator(*args, **kwargs)
        created.append(orch)
        return orch

    yield factory
    for orch in created:
        orch.close()

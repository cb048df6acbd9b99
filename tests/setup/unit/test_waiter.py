"""
Unit tests for SetupWaiter
"""

import asyncio

import pytest

from flightplan.setup.status_store import ServiceInstance, SetupState, SetupStatus, StatusStore
from flightplan.setup.waiter import SetupWaiter, WaitOutcome, main, wait_for_setup


@pytest.fixture
def store(tmp_path):
    return StatusStore.for_workspace(tmp_path)


@pytest.mark.asyncio
async def test_ready_before_timeout(store, tmp_path):
    """Test running -> ready exits with success and reports the service"""
    store.write(SetupStatus(step="installing postgres"))

    async def finish():
        await asyncio.sleep(0.2)
        store.write(
            SetupStatus(
                status=SetupState.READY,
                services=[ServiceInstance("postgres", "postgres://flightplan@localhost:5432/flightplan", 5432)],
            )
        )

    writer = asyncio.ensure_future(finish())
    result = await wait_for_setup(tmp_path, timeout=5, poll_interval=0.05)
    await writer

    assert result.outcome is WaitOutcome.SUCCESS
    assert result.exit_code == 0
    assert result.elapsed < 5
    assert result.status.services[0].url == "postgres://flightplan@localhost:5432/flightplan"


@pytest.mark.asyncio
async def test_failed_surfaces_error(store):
    store.write(SetupStatus(status=SetupState.FAILED, step="setup command 1/2", error="Command failed with code 1: npm ci"))

    result = await SetupWaiter(store, poll_interval=0.05).wait(timeout=5)

    assert result.outcome is WaitOutcome.FAILURE
    assert result.exit_code == 1
    assert result.error == "Command failed with code 1: npm ci"


@pytest.mark.asyncio
async def test_missing_file_times_out(store):
    """Test a document that never appears yields the timeout outcome"""
    result = await SetupWaiter(store, poll_interval=0.05).wait(timeout=0.3)

    assert result.outcome is WaitOutcome.TIMEOUT
    assert result.exit_code == 2
    assert result.elapsed >= 0.3


@pytest.mark.asyncio
async def test_malformed_document_keeps_waiting(store):
    store.path.write_text("{partial")

    result = await SetupWaiter(store, poll_interval=0.05).wait(timeout=0.2)

    assert result.outcome is WaitOutcome.TIMEOUT


def test_cli_exit_codes(tmp_path, capsys):
    """Test the CLI maps outcomes to exit codes"""
    store = StatusStore.for_workspace(tmp_path)
    store.write(
        SetupStatus(
            status=SetupState.READY,
            services=[ServiceInstance("redis", "redis://localhost:6379", 6379)],
        )
    )

    assert main([str(tmp_path), "--timeout", "2"]) == 0
    output = capsys.readouterr().out
    assert "Setup complete" in output
    assert "redis://localhost:6379" in output

    assert main([str(tmp_path / "elsewhere"), "--timeout=0.2"]) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

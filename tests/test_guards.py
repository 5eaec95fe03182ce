"""Tests for operation guards and refresh coalescing."""

import asyncio

import pytest

from socialmine.errors import OperationInProgressError
from socialmine.guards import KeyedGuard, OperationGuard, RefreshGate


class TestOperationGuard:
    def test_rejects_reentry(self):
        guard = OperationGuard("submission")
        with guard.hold():
            assert guard.busy
            with pytest.raises(OperationInProgressError):
                with guard.hold():
                    pass
        assert not guard.busy

    def test_released_on_exception(self):
        guard = OperationGuard("submission")
        with pytest.raises(ValueError):
            with guard.hold():
                raise ValueError("boom")
        assert not guard.busy


class TestKeyedGuard:
    def test_keys_are_independent(self):
        guard = KeyedGuard("decryption")
        with guard.hold("a"):
            with guard.hold("b"):
                assert guard.is_held("a") and guard.is_held("b")
            with pytest.raises(OperationInProgressError):
                with guard.hold("a"):
                    pass
        assert not guard.busy


class TestRefreshGate:
    @pytest.mark.asyncio
    async def test_single_caller_runs_once(self):
        calls = []

        async def operation():
            calls.append(len(calls))
            return len(calls)

        gate = RefreshGate(operation)
        assert await gate.run() == 1
        assert not gate.busy

    @pytest.mark.asyncio
    async def test_overlapping_callers_share_one_follow_up(self):
        release = asyncio.Event()
        runs = []

        async def operation():
            runs.append(len(runs) + 1)
            if len(runs) == 1:
                await release.wait()
            return runs[-1]

        gate = RefreshGate(operation)
        first = asyncio.create_task(gate.run())
        await asyncio.sleep(0)
        assert gate.busy

        waiters = [asyncio.create_task(gate.run()) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()

        assert await first == 1
        assert await asyncio.gather(*waiters) == [2] * 5
        assert runs == [1, 2]
        assert not gate.busy

    @pytest.mark.asyncio
    async def test_follow_up_runs_after_failed_run(self):
        release = asyncio.Event()
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) == 1:
                await release.wait()
                raise RuntimeError("rpc down")
            return "ok"

        gate = RefreshGate(operation)
        first = asyncio.create_task(gate.run())
        await asyncio.sleep(0)
        second = asyncio.create_task(gate.run())
        await asyncio.sleep(0)
        release.set()

        with pytest.raises(RuntimeError):
            await first
        assert await second == "ok"

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_run(self):
        release = asyncio.Event()

        async def operation():
            await release.wait()
            return "snapshot"

        gate = RefreshGate(operation)
        impatient = asyncio.create_task(gate.run())
        await asyncio.sleep(0)
        patient = asyncio.create_task(gate.run())
        await asyncio.sleep(0)

        impatient.cancel()
        release.set()

        assert await patient == "snapshot"

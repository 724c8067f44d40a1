"""
Tests for ExecutionGate -- single permit, FIFO hand-off, timeouts.
"""

from __future__ import annotations

import threading
import time

import pytest

from enginebridge.execution.gate import ExecutionGate


class TestBasics:
    def test_acquire_release(self):
        gate = ExecutionGate()
        assert gate.acquire(holder="job-1")
        assert gate.locked
        assert gate.holder == "job-1"
        gate.release()
        assert not gate.locked
        assert gate.holder is None

    def test_timeout_when_held(self):
        gate = ExecutionGate()
        gate.acquire()
        assert gate.acquire(timeout=0.05) is False
        assert gate.waiting == 0
        gate.release()

    def test_release_unheld_raises(self):
        with pytest.raises(RuntimeError):
            ExecutionGate().release()

    def test_hold_context(self):
        gate = ExecutionGate()
        with gate.hold("x"):
            assert gate.locked
        assert not gate.locked


class TestExclusivity:
    def test_never_two_holders(self):
        gate = ExecutionGate()
        inside = 0
        peak = 0
        lock = threading.Lock()

        def work():
            nonlocal inside, peak
            with gate.hold():
                with lock:
                    inside += 1
                    peak = max(peak, inside)
                time.sleep(0.005)
                with lock:
                    inside -= 1

        threads = [threading.Thread(target=work) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert peak == 1


class TestFifo:
    def test_waiters_served_in_arrival_order(self):
        gate = ExecutionGate()
        gate.acquire()
        order: list[int] = []

        def waiter(n: int):
            with gate.hold():
                order.append(n)

        threads = []
        for n in range(5):
            t = threading.Thread(target=waiter, args=(n,))
            t.start()
            threads.append(t)
            deadline = time.monotonic() + 2
            while gate.waiting < n + 1 and time.monotonic() < deadline:
                time.sleep(0.001)
        gate.release()
        for t in threads:
            t.join()
        assert order == [0, 1, 2, 3, 4]

    def test_timed_out_waiter_does_not_block_queue(self):
        gate = ExecutionGate()
        gate.acquire()
        result: list[bool] = []

        quitter = threading.Thread(target=lambda: result.append(gate.acquire(timeout=0.05)))
        quitter.start()
        quitter.join()
        assert result == [False]

        got = threading.Event()

        def patient():
            with gate.hold():
                got.set()

        t = threading.Thread(target=patient)
        t.start()
        gate.release()
        assert got.wait(2)
        t.join()

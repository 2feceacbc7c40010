import asyncio
import threading
import time

import pytest

from arm_template_deployment.static.threads import run_in_daemon_thread


class TestRunInDaemonThread:
    """Tests for awaiting blocking calls."""

    def test_returns_result(self):
        assert asyncio.run(run_in_daemon_thread(sum, [1, 2, 3])) == 6

    def test_raises_error(self):
        def fail():
            raise ValueError("rejected")

        with pytest.raises(ValueError, match="rejected"):
            asyncio.run(run_in_daemon_thread(fail))

    def test_runs_off_the_event_loop_thread(self):
        assert asyncio.run(run_in_daemon_thread(threading.current_thread)) is not threading.main_thread()

    def test_cancel_does_not_wait_for_blocking_call(self, caplog):
        release = threading.Event()

        async def cancel_while_blocked():
            task = asyncio.ensure_future(run_in_daemon_thread(release.wait, 30))
            await asyncio.sleep(0.1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        started = time.monotonic()
        asyncio.run(cancel_while_blocked())
        elapsed = time.monotonic() - started
        release.set()

        assert elapsed < 5
        assert "Stopped waiting for wait, it is abandoned in the background" in caplog.text

    def test_timeout_during_blocking_call_returns_promptly(self):
        release = threading.Event()

        started = time.monotonic()
        with pytest.raises(asyncio.TimeoutError):
            asyncio.run(asyncio.wait_for(run_in_daemon_thread(release.wait, 30), timeout=0.1))
        elapsed = time.monotonic() - started
        release.set()

        assert elapsed < 5

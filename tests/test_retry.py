"""
可靠性包装测试
==============

测试有界重试、指数退避、取消与调用计数。
"""

import asyncio

import pytest

from agentswarm.config.settings import RetryConfig
from agentswarm.exceptions import GenerationFailure, RunCancelled
from agentswarm.llm.retry import RetryingGenerator, backoff_delay, call_with_retry

from conftest import ScriptedService, SleepRecorder


class Flaky:
    """前 failures 次调用失败，之后成功"""

    def __init__(self, failures: int, result: str = "done"):
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"attempt {self.calls} failed")
        return self.result


class TestBackoffDelay:
    """退避时长测试"""

    def test_exponential(self):
        assert [backoff_delay(i, 1.0, 2.0) for i in range(3)] == [1.0, 2.0, 4.0]

    def test_jitter_bounds(self):
        for _ in range(50):
            delay = backoff_delay(1, 1.0, 2.0, jitter=True)
            assert 2.0 <= delay <= 2.2


class TestCallWithRetry:
    """call_with_retry() 测试"""

    def test_success_on_first_attempt_does_not_retry(self):
        fn = Flaky(0)
        sleep = SleepRecorder()

        assert asyncio.run(call_with_retry(fn, sleep=sleep)) == "done"
        assert fn.calls == 1
        assert sleep.delays == []

    def test_succeeds_on_third_attempt(self):
        """测试前两次失败、第三次成功：恰好 3 次调用，等待 1s 与 2s"""
        fn = Flaky(2)
        sleep = SleepRecorder()

        result = asyncio.run(call_with_retry(fn, max_attempts=3, base_delay=1.0, multiplier=2.0, sleep=sleep))

        assert result == "done"
        assert fn.calls == 3
        assert sleep.delays == [1.0, 2.0]

    def test_exhausted_attempts_raise_generation_failure(self):
        """测试始终失败时抛出 GenerationFailure 并保留底层原因"""
        fn = Flaky(10)
        sleep = SleepRecorder()

        with pytest.raises(GenerationFailure) as exc_info:
            asyncio.run(call_with_retry(fn, max_attempts=3, label="rules", sleep=sleep))

        error = exc_info.value
        assert fn.calls == 3
        assert error.label == "rules"
        assert error.attempts == 3
        assert isinstance(error.last_error, ConnectionError)
        assert error.__cause__ is error.last_error
        assert sleep.delays == [1.0, 2.0]

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            asyncio.run(call_with_retry(Flaky(0), max_attempts=0))

    def test_cancel_before_attempt(self):
        fn = Flaky(0)

        async def scenario():
            event = asyncio.Event()
            event.set()
            await call_with_retry(fn, cancel_event=event)

        with pytest.raises(RunCancelled):
            asyncio.run(scenario())
        assert fn.calls == 0

    def test_cancel_during_backoff(self):
        """测试退避等待期间设置取消事件会立即中止"""
        fn = Flaky(10)

        async def scenario():
            event = asyncio.Event()
            asyncio.get_running_loop().call_later(0.01, event.set)
            await call_with_retry(fn, base_delay=30.0, cancel_event=event)

        with pytest.raises(RunCancelled):
            asyncio.run(asyncio.wait_for(scenario(), timeout=5))
        assert fn.calls == 1

    def test_backoff_with_cancel_event_still_waits(self):
        fn = Flaky(1)

        async def scenario():
            return await call_with_retry(fn, base_delay=0.01, cancel_event=asyncio.Event())

        assert asyncio.run(scenario()) == "done"
        assert fn.calls == 2


class TestRetryingGenerator:
    """RetryingGenerator 测试"""

    def test_counts_calls_including_retries(self):
        service = ScriptedService(responses={"rules": '{"ok": true}'}, failures={"rules": 2})
        sleep = SleepRecorder()
        generator = RetryingGenerator(service, RetryConfig(max_attempts=3), sleep=sleep)

        text = asyncio.run(generator.generate("node:rules", "go", label="rules"))

        assert text == '{"ok": true}'
        assert generator.calls == 3
        assert generator.calls_by_label == {"rules": 3}
        assert generator.provider == "fake"
        assert sleep.delays == [1.0, 2.0]

    def test_uses_retry_config(self):
        service = ScriptedService(failures={"rules": -1})
        sleep = SleepRecorder()
        config = RetryConfig(max_attempts=2, base_delay_seconds=0.5, backoff_multiplier=3.0)
        generator = RetryingGenerator(service, config, sleep=sleep)

        with pytest.raises(GenerationFailure):
            asyncio.run(generator.generate("node:rules", "go", label="rules"))

        assert generator.calls == 2
        assert sleep.delays == [0.5]

"""
提供商解析测试
==============

测试按优先级探测、固定第一个可用的服务，以及全部不可用时的错误。
"""

import asyncio

import pytest

from agentswarm.config.settings import Settings
from agentswarm.exceptions import ProviderUnavailable
from agentswarm.llm.resolver import HEALTH_CHECK_OPTIONS, ProviderResolver, resolve_provider
from agentswarm.llm.service import ChatModelService

from conftest import ScriptedService


class TestResolveProvider:
    """resolve_provider() 测试"""

    def test_first_healthy_provider_wins(self):
        """测试 P1 不可用、P2 可用时选择 P2，且 P3 从未被探测"""
        p1 = ScriptedService("p1", healthy=False)
        p2 = ScriptedService("p2")
        p3 = ScriptedService("p3")

        chosen = asyncio.run(resolve_provider([p1, p2, p3]))

        assert chosen is p2
        assert len(p1.calls_for("health_check")) == 1
        assert len(p2.calls_for("health_check")) == 1
        assert p3.calls == []

    def test_all_unavailable(self):
        services = [ScriptedService("p1", healthy=False), ScriptedService("p2", healthy=False)]

        with pytest.raises(ProviderUnavailable) as exc_info:
            asyncio.run(resolve_provider(services))

        error = exc_info.value
        assert error.candidates == ["p1", "p2"]
        assert set(error.errors) == {"p1", "p2"}
        assert "p1 is unreachable" in error.errors["p1"]

    def test_no_candidates(self):
        with pytest.raises(ProviderUnavailable) as exc_info:
            asyncio.run(resolve_provider([]))
        assert exc_info.value.candidates == []

    def test_health_check_is_minimal(self):
        """测试探测调用使用固定的极小请求"""
        service = ScriptedService("p1")
        asyncio.run(resolve_provider([service]))

        key, system_prompt, user_message, options = service.calls[0]
        assert key == "health_check"
        assert system_prompt == "Reply with OK"
        assert user_message == "test"
        assert options == HEALTH_CHECK_OPTIONS
        assert options.max_tokens == 5

    def test_health_check_is_not_retried(self):
        service = ScriptedService("p1", healthy=False)
        with pytest.raises(ProviderUnavailable):
            asyncio.run(resolve_provider([service]))
        assert len(service.calls) == 1


class TestProviderResolver:
    """ProviderResolver 测试"""

    def test_explicit_services_in_given_order(self, mock_settings):
        services = [ScriptedService("b"), ScriptedService("a")]
        resolver = ProviderResolver(mock_settings, services)
        assert resolver.candidates() == services

    def test_priority_filters_explicit_services(self, mock_settings):
        a, b = ScriptedService("a"), ScriptedService("b")
        resolver = ProviderResolver(mock_settings, [a, b])
        assert resolver.candidates(["b", "missing", "a"]) == [b, a]

    def test_candidates_from_settings(self):
        """测试按配置的优先级创建服务，跳过未知提供商"""
        settings = Settings(provider_priority="openai, bogus, local", openai_api_key="sk-test")
        candidates = ProviderResolver(settings).candidates()

        assert [service.name for service in candidates] == ["openai", "local"]
        assert all(isinstance(service, ChatModelService) for service in candidates)

    def test_resolve_skips_unhealthy(self, mock_settings):
        down = ScriptedService("down", healthy=False)
        fake = ScriptedService("fake")
        resolver = ProviderResolver(mock_settings, [down, fake])

        assert asyncio.run(resolver.resolve()) is fake
        assert asyncio.run(resolver.resolve(["fake"])) is fake
        assert len(down.calls) == 1


class TestProviderSettings:
    """提供商配置测试"""

    def test_priority_parsing(self):
        settings = Settings(provider_priority=" Anthropic,openai,,anthropic , groq ")
        assert settings.get_provider_priority() == ["anthropic", "openai", "groq"]

    def test_unknown_provider_config(self):
        with pytest.raises(ValueError):
            Settings().get_llm_config("bogus")

    def test_openrouter_uses_fixed_base_url(self):
        config = Settings(openrouter_api_key="key").get_llm_config("openrouter")
        assert config.provider == "openrouter"
        assert config.base_url == "https://openrouter.ai/api/v1"
        assert config.api_key == "key"

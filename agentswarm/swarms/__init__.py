"""
Swarm 注册模块
==============

按名称查找声明式 Swarm 配置。
"""

from typing import Dict, List

from agentswarm.swarms.base import NodeSpec, SwarmDefinition
from agentswarm.swarms.code_critique import CODE_CRITIQUE
from agentswarm.swarms.music_edu import MUSIC_EDU

_SWARMS: Dict[str, SwarmDefinition] = {
    MUSIC_EDU.name: MUSIC_EDU,
    CODE_CRITIQUE.name: CODE_CRITIQUE,
}


def get_swarm(name: str) -> SwarmDefinition:
    """
    按名称获取 Swarm

    Raises:
        KeyError: 名称未注册
    """
    key = name.strip().lower().replace("-", "_")
    if key not in _SWARMS:
        raise KeyError(f"未知的 Swarm: {name}（可用: {', '.join(list_swarms())}）")
    return _SWARMS[key]


def list_swarms() -> List[str]:
    return sorted(_SWARMS)


def register_swarm(definition: SwarmDefinition) -> None:
    _SWARMS[definition.name] = definition


__all__ = [
    "NodeSpec",
    "SwarmDefinition",
    "get_swarm",
    "list_swarms",
    "register_swarm",
]

"""User-Agent rotation for the browser context of a run."""

from __future__ import annotations

import random
from typing import Iterable, Optional

from ..config import BrowserConfig


class UserAgentPool:
    """Distinct user agents, one drawn at random per browser context."""

    def __init__(self, user_agents: Iterable[str] | None = None) -> None:
        # 去重并保持配置中的顺序
        self._uas: list[str] = list(dict.fromkeys(ua.strip() for ua in user_agents or () if ua.strip()))

    @classmethod
    def from_config(cls, config: BrowserConfig) -> "UserAgentPool":
        entries = config.user_agent_list if isinstance(config.user_agent_list, list) else None
        return cls(entries)

    @property
    def empty(self) -> bool:
        return not self._uas

    def get(self) -> Optional[str]:
        if not self._uas:
            return None
        return random.choice(self._uas)


__all__ = ["UserAgentPool"]

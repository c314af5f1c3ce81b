"""Pydantic models used across the Affiliation-Crawler configuration flow."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


def _coerce_range(value: Any, label: str) -> tuple[float, float]:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        low, high = float(value[0]), float(value[1])
        if low < 0 or high < 0:
            raise ValueError(f"{label} values must be non-negative")
        if high < low:
            raise ValueError(f"{label} upper bound must be >= lower bound")
        return (low, high)
    raise ValueError(f"{label} expects a two-item list or tuple")


class SelectorConfig(BaseModel):
    """CSS anchors the page agent relies on."""

    search_input: str = 'input[name="q"]'
    results_list: str = ".gs_r"
    author_attribution: str = ".gs_fmaa"
    profile_marker: str = ".gsc_prf_il"
    affiliation: str = ".gsc_prf_ila"


class SiteConfig(BaseModel):
    """Scholarly index endpoints and URL shapes used to classify navigations."""

    home_url: str = "https://scholar.google.com/scholar?hl=en"
    surface_pattern: str = "https://scholar.google.com/scholar?hl=en*"
    results_url_fragment: str = "scholar.google.com/scholar?"
    profile_url_fragment: str = "scholar.google.com/citations?user="
    selectors: SelectorConfig = Field(default_factory=SelectorConfig)
    # 仅按姓氏匹配作者链接；开启后额外比较名字首字母
    require_first_initial: bool = False
    institution_keywords: list[str] = Field(
        default_factory=lambda: ["University", "Institute", "College"]
    )

    @model_validator(mode="after")
    def _validate_urls(self) -> "SiteConfig":
        if not self.home_url:
            raise ValueError("home_url cannot be empty")
        if not self.results_url_fragment or not self.profile_url_fragment:
            raise ValueError("URL fragments cannot be empty")
        return self


class PacingConfig(BaseModel):
    """Delays (seconds) that shape the request cadence against the index."""

    settle_delay: float = 0.5
    advance_delay_range: tuple[float, float] = (15.0, 20.0)
    typing_delay_range: tuple[float, float] = (0.15, 0.25)
    click_delay_range: tuple[float, float] = (2.0, 3.0)
    poll_interval: float = 0.1
    wait_timeout: float = 10.0

    @field_validator(
        "advance_delay_range", "typing_delay_range", "click_delay_range", mode="before"
    )
    @classmethod
    def _coerce_ranges(cls, value: Any, info) -> tuple[float, float]:
        return _coerce_range(value, info.field_name)

    @model_validator(mode="after")
    def _validate_scalars(self) -> "PacingConfig":
        if self.settle_delay < 0:
            raise ValueError("settle_delay must be >= 0")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if self.wait_timeout <= 0:
            raise ValueError("wait_timeout must be > 0")
        return self


class BrowserConfig(BaseModel):
    """Playwright launch and context options."""

    headless: bool = False
    viewport_size: tuple[int, int] = (1920, 1080)
    locale: str = "en-US"
    user_agent_list: list[str] | Path | None = None
    extra_headers: dict[str, str] = Field(default_factory=dict)
    navigation_timeout: int = 30000  # 毫秒

    @model_validator(mode="after")
    def _apply_user_agents(self) -> "BrowserConfig":
        if isinstance(self.user_agent_list, Path):
            if not self.user_agent_list.exists():
                raise ValueError(f"UA file not found: {self.user_agent_list}")
            content = self.user_agent_list.read_text(encoding="utf-8").splitlines()
            self.user_agent_list = [line.strip() for line in content if line.strip()]
        return self


class GlobalConfig(BaseModel):
    """Top-level settings shared by the CLI and the orchestrator."""

    site: SiteConfig = Field(default_factory=SiteConfig)
    pacing: PacingConfig = Field(default_factory=PacingConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    store_path: Path = Field(default=Path("data/store.db"))
    outputs_dir: Path = Field(default=Path("data/outputs"))
    preview_limit: int = 10

    @field_validator("store_path", "outputs_dir", mode="before")
    @classmethod
    def _coerce_paths(cls, value: Any) -> Path:
        return Path(value)

    def resolve(self, path: Path, base_dir: Path) -> Path:
        """Return ``path`` anchored at ``base_dir`` when it is relative."""

        if not path.is_absolute():
            return (base_dir / path).resolve()
        return path


__all__ = [
    "BrowserConfig",
    "GlobalConfig",
    "PacingConfig",
    "SelectorConfig",
    "SiteConfig",
]

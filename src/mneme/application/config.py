from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mneme.application.mode_policy import DEFAULT_MODE_POOLS, ModePolicy, ModePool
from mneme.domain.constants import (
    DEFAULT_DAILY_NEW_LIMIT,
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_FETCH_LIMIT,
    DEFAULT_MAXIMUM_INTERVAL,
    SEED_THRESHOLD,
)
from mneme.domain.study.models import CardState, StudyMode

def config_dir() -> Path:
    """~/.config/mneme, resolved when called so HOME changes are honoured."""
    return Path.home() / ".config/mneme"


class ModePoolSettings(BaseModel):
    """Configurable mode pool for one maturity state."""

    fixed: list[StudyMode] = Field(default_factory=list)
    pool: list[StudyMode] = Field(default_factory=list)
    pick: int = 0

    @model_validator(mode="after")
    def check_pick(self) -> "ModePoolSettings":
        if self.pick < 0 or self.pick > len(self.pool):
            raise ValueError(f"pick={self.pick} is out of range for a pool of {len(self.pool)}")
        return self


def _default_pools() -> dict[str, ModePoolSettings]:
    return {
        state.name.lower(): ModePoolSettings(
            fixed=list(p.fixed), pool=list(p.pool), pick=p.pick
        )
        for state, p in DEFAULT_MODE_POOLS.items()
    }


class AppConfig(BaseSettings):
    """
    Configuration model for mneme.
    Supports loading from:
    1. Environment variables (MNEME_*)
    2. Config file (~/.config/mneme/config.toml)
    3. Manual overrides (CLI / HTTP)
    """

    model_config = SettingsConfigDict(
        env_prefix="MNEME_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Storage
    backend: Literal["sqlite", "memory"] = "sqlite"
    db_path: Path = Field(default_factory=lambda: config_dir() / "mneme.db")
    log_dir: Path = Field(default_factory=lambda: config_dir() / "logs")

    # Learner defaults (CLI)
    user_id: str = "local"

    # Queue
    daily_new_limit: int = Field(default=DEFAULT_DAILY_NEW_LIMIT, ge=0)
    fetch_limit: int = Field(default=DEFAULT_FETCH_LIMIT, ge=1)
    seed_threshold: int = Field(default=SEED_THRESHOLD, ge=0)
    auto_seed: bool = True

    # Scheduler
    desired_retention: float = Field(default=DEFAULT_DESIRED_RETENTION, gt=0.0, lt=1.0)
    maximum_interval: int = Field(default=DEFAULT_MAXIMUM_INTERVAL, ge=1)
    enable_fuzzing: bool = True

    # Mode assignment
    mode_pools: dict[str, ModePoolSettings] = Field(default_factory=_default_pools)

    # Server
    host: str = "127.0.0.1"
    port: int = 8777

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        toml_files = [
            config_dir() / "config.toml",
            Path.home() / ".mneme.toml",
        ]

        # First existing file wins
        toml_file = next((f for f in toml_files if f.exists()), None)

        # Earlier sources take priority: overrides > env > file
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("db_path", "log_dir", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("mode_pools", mode="after")
    @classmethod
    def check_states(cls, v: dict[str, ModePoolSettings]) -> dict[str, ModePoolSettings]:
        known = {s.name.lower() for s in CardState}
        unknown = set(v) - known
        if unknown:
            raise ValueError(f"Unknown card states in mode_pools: {sorted(unknown)}")
        # Partial overrides fall back to the defaults for the other states
        merged = _default_pools()
        merged.update(v)
        return merged

    def build_mode_policy(self) -> ModePolicy:
        """Turn the configured pools into a ModePolicy (validates duplicates)."""
        pools = {
            CardState[name.upper()]: ModePool(
                fixed=tuple(p.fixed), pool=tuple(p.pool), pick=p.pick
            )
            for name, p in self.mode_pools.items()
        }
        return ModePolicy(pools)


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/mneme/config.toml (if exists)
    3. Environment variables (MNEME_*)
    4. cli_overrides (passed from Typer / HTTP requests), None values dropped
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    config = AppConfig(**overrides)

    if config.backend == "sqlite":
        config.db_path.parent.mkdir(parents=True, exist_ok=True)

    return config

"""
News tracker settings.

Settings come from a `.news-tracker.yml` file, from environment variables
and from keyword overrides given by the caller, in increasing order of
precedence, on top of the defaults declared by the dataclasses below.
API keys are only ever read from the environment or the file and are
redacted when the configuration is rendered with `to_dict()`.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import yaml

from .db import default_db_path
from .llm.base import LLMConfig


logger = logging.getLogger(__name__)


# Default configuration file names (in order of precedence)
CONFIG_FILE_NAMES = [
    ".news-tracker.yml",
    ".news-tracker.yaml",
    "news-tracker.yml",
    "news-tracker.yaml",
]

# Environment variable holding each service's API key
API_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "news": "NEWS_API_KEY",
}


@dataclass
class TierConfig:
    """One completion provider in the answer fallback chain."""

    name: str
    provider: str
    model: str = ""
    style: str = "structured"  # "structured" or "simplified"
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    temperature: float = 0.3
    max_tokens: int = 800
    timeout: float = 10.0
    max_retries: int = 1

    def to_llm_config(self, api_key: Optional[str] = None) -> LLMConfig:
        """Convert to LLMConfig for provider initialization."""
        return LLMConfig(
            provider=self.provider,
            model=self.model,
            api_key=self.api_key or api_key,
            api_base=self.api_base,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
            max_retries=self.max_retries,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "TierConfig":
        return cls(
            name=data.get("name") or data["provider"],
            provider=data["provider"],
            model=data.get("model", ""),
            style=data.get("style", "structured"),
            api_key=data.get("api_key"),
            api_base=data.get("api_base"),
            temperature=data.get("temperature", 0.3),
            max_tokens=data.get("max_tokens", 800),
            timeout=data.get("timeout", 10.0),
            max_retries=data.get("max_retries", 1),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "provider": self.provider,
            "model": self.model,
            "style": self.style,
            "api_key": "***" if self.api_key else None,  # Redact API key
            "api_base": self.api_base,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
        }


def default_tiers() -> List[TierConfig]:
    return [
        TierConfig(name="primary", provider="gemini", style="structured"),
        TierConfig(
            name="secondary",
            provider="openai",
            model="gpt-3.5-turbo",
            style="simplified",
            max_tokens=300,
        ),
    ]


@dataclass
class SummarizerConfig:
    """Completion provider used to summarize posts and comments."""

    provider: Optional[str] = None  # None: first answer tier with an API key
    model: str = ""
    max_tokens: int = 250
    temperature: float = 0.3
    timeout: float = 10.0


@dataclass
class EmbeddingConfig:
    """Embedding provider settings."""

    provider: str = "auto"  # "openai", "hashing" or "auto"
    model: Optional[str] = None
    dimension: Optional[int] = None
    timeout: float = 10.0


@dataclass
class NewsConfig:
    """External headline settings."""

    enabled: bool = True
    page_size: int = 7
    timeout: float = 5.0


@dataclass
class IndexerConfig:
    """Memory indexer settings."""

    batch_size: int = 50
    full_limit: int = 500
    min_post_length: int = 20
    min_comment_length: int = 15
    max_workers: int = 1
    post_minute: int = 0
    comment_minute: int = 30
    startup_delay: float = 10.0


@dataclass
class ComposerConfig:
    """Answer composer settings."""

    top_k: int = 5
    cooldown_seconds: float = 60.0
    community_limit: int = 30


@dataclass
class NewsTrackerConfig:
    """
    Complete configuration for the news tracker.

    Example YAML configuration:
        ```yaml
        database:
          path: "~/.news_tracker/news.db"

        providers:
          - name: primary
            provider: gemini
            style: structured
          - name: secondary
            provider: openai
            model: gpt-3.5-turbo
            style: simplified

        embedding:
          provider: openai

        composer:
          top_k: 5
          cooldown_seconds: 60
        ```
    """

    db_path: str = field(default_factory=default_db_path)
    providers: List[TierConfig] = field(default_factory=default_tiers)
    summarizer: SummarizerConfig = field(default_factory=SummarizerConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    news: NewsConfig = field(default_factory=NewsConfig)
    indexer: IndexerConfig = field(default_factory=IndexerConfig)
    composer: ComposerConfig = field(default_factory=ComposerConfig)
    api_keys: Dict[str, str] = field(default_factory=dict)

    def api_key_for(self, service: str) -> Optional[str]:
        return self.api_keys.get(service) or None

    @classmethod
    def from_dict(cls, data: dict) -> "NewsTrackerConfig":
        """Create configuration from dictionary."""
        database = data.get("database", {})
        summarizer = data.get("summarizer", {})
        embedding = data.get("embedding", {})
        news = data.get("news", {})
        indexer = data.get("indexer", {})
        composer = data.get("composer", {})

        providers = data.get("providers")
        tiers = [TierConfig.from_dict(p) for p in providers] if providers is not None else default_tiers()

        return cls(
            db_path=os.path.expanduser(database.get("path") or default_db_path()),
            providers=tiers,
            summarizer=SummarizerConfig(
                provider=summarizer.get("provider"),
                model=summarizer.get("model", ""),
                max_tokens=summarizer.get("max_tokens", 250),
                temperature=summarizer.get("temperature", 0.3),
                timeout=summarizer.get("timeout", 10.0),
            ),
            embedding=EmbeddingConfig(
                provider=embedding.get("provider", "auto"),
                model=embedding.get("model"),
                dimension=embedding.get("dimension"),
                timeout=embedding.get("timeout", 10.0),
            ),
            news=NewsConfig(
                enabled=news.get("enabled", True),
                page_size=news.get("page_size", 7),
                timeout=news.get("timeout", 5.0),
            ),
            indexer=IndexerConfig(
                batch_size=indexer.get("batch_size", 50),
                full_limit=indexer.get("full_limit", 500),
                min_post_length=indexer.get("min_post_length", 20),
                min_comment_length=indexer.get("min_comment_length", 15),
                max_workers=indexer.get("max_workers", 1),
                post_minute=indexer.get("post_minute", 0),
                comment_minute=indexer.get("comment_minute", 30),
                startup_delay=indexer.get("startup_delay", 10.0),
            ),
            composer=ComposerConfig(
                top_k=composer.get("top_k", 5),
                cooldown_seconds=composer.get("cooldown_seconds", 60.0),
                community_limit=composer.get("community_limit", 30),
            ),
            api_keys={k: v for k, v in (data.get("api_keys") or {}).items() if v},
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary, with API keys redacted."""
        return {
            "database": {"path": self.db_path},
            "providers": [tier.to_dict() for tier in self.providers],
            "summarizer": {
                "provider": self.summarizer.provider,
                "model": self.summarizer.model,
                "max_tokens": self.summarizer.max_tokens,
                "temperature": self.summarizer.temperature,
                "timeout": self.summarizer.timeout,
            },
            "embedding": {
                "provider": self.embedding.provider,
                "model": self.embedding.model,
                "dimension": self.embedding.dimension,
                "timeout": self.embedding.timeout,
            },
            "news": {
                "enabled": self.news.enabled,
                "page_size": self.news.page_size,
                "timeout": self.news.timeout,
            },
            "indexer": {
                "batch_size": self.indexer.batch_size,
                "full_limit": self.indexer.full_limit,
                "min_post_length": self.indexer.min_post_length,
                "min_comment_length": self.indexer.min_comment_length,
                "max_workers": self.indexer.max_workers,
                "post_minute": self.indexer.post_minute,
                "comment_minute": self.indexer.comment_minute,
                "startup_delay": self.indexer.startup_delay,
            },
            "composer": {
                "top_k": self.composer.top_k,
                "cooldown_seconds": self.composer.cooldown_seconds,
                "community_limit": self.composer.community_limit,
            },
            "api_keys": {service: "***" for service in self.api_keys},
        }


def _search_dirs(start_path: Optional[str]) -> Iterator[Path]:
    if start_path:
        yield Path(start_path)
    cwd = Path.cwd()
    yield cwd
    yield from cwd.parents
    yield Path.home()


def find_config_file(start_path: Optional[str] = None) -> Optional[Path]:
    """
    Locate a news tracker config file.

    `start_path` is tried first, then the working directory and each of its
    parents, then the home directory. Within a directory the names in
    CONFIG_FILE_NAMES are tried in order.
    """
    for directory in _search_dirs(start_path):
        for name in CONFIG_FILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                logger.debug(f"Using config file {candidate}")
                return candidate
    return None


def load_yaml_file(file_path: Path) -> dict:
    """Parse a YAML config file; unreadable or non-mapping files yield {}."""
    try:
        data = yaml.safe_load(Path(file_path).read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error loading config file {file_path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {file_path}: top level must be a mapping")
        return {}
    return data


def _env_number(name: str, cast):
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r}")
        return None


def load_config_from_env() -> dict:
    """
    Load configuration from environment variables.

    Supported environment variables:
    - NEWS_TRACKER_DB_PATH: SQLite database path
    - NEWS_TRACKER_TOP_K: Memory records used as answer context
    - NEWS_TRACKER_COOLDOWN_SECONDS: Rate-limit cooldown window
    - NEWS_TRACKER_EMBEDDING_PROVIDER: "openai" or "hashing"
    - OPENAI_API_KEY, ANTHROPIC_API_KEY, GEMINI_API_KEY, NEWS_API_KEY

    Returns:
        Dictionary with configuration from environment.
    """
    config: dict = {"database": {}, "composer": {}, "embedding": {}, "api_keys": {}}

    if os.environ.get("NEWS_TRACKER_DB_PATH"):
        config["database"]["path"] = os.environ["NEWS_TRACKER_DB_PATH"]

    top_k = _env_number("NEWS_TRACKER_TOP_K", int)
    if top_k is not None:
        config["composer"]["top_k"] = top_k

    cooldown = _env_number("NEWS_TRACKER_COOLDOWN_SECONDS", float)
    if cooldown is not None:
        config["composer"]["cooldown_seconds"] = cooldown

    if os.environ.get("NEWS_TRACKER_EMBEDDING_PROVIDER"):
        config["embedding"]["provider"] = os.environ["NEWS_TRACKER_EMBEDDING_PROVIDER"]

    for service, env_var in API_KEY_ENV_VARS.items():
        if os.environ.get(env_var):
            config["api_keys"][service] = os.environ[env_var]

    return config


def load_config(
    config_path: Optional[str] = None,
    project_path: Optional[str] = None,
    **overrides: Any,
) -> NewsTrackerConfig:
    """
    Build the effective configuration.

    Layers, lowest first: defaults, the YAML file (`config_path`, or the
    first file `find_config_file(project_path)` turns up), environment
    variables, then keyword overrides such as `composer={"top_k": 3}`.
    """
    layers = []

    if config_path:
        if Path(config_path).exists():
            layers.append(load_yaml_file(Path(config_path)))
        else:
            logger.warning(f"Config file not found: {config_path}")
    else:
        found = find_config_file(project_path)
        if found:
            layers.append(load_yaml_file(found))

    layers.append(load_config_from_env())
    layers.append(overrides)

    merged: dict = {}
    for layer in layers:
        merged = _deep_merge(merged, layer)
    return NewsTrackerConfig.from_dict(merged)


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively overlay `override` on `base`; None values never overwrite."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        elif value is not None:
            merged[key] = value
    return merged

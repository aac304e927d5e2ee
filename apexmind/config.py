"""
Apexmind Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    """Application configuration loaded from environment variables."""

    # LLM Provider Configuration
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "anthropic")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "claude-sonnet-4-5")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Local LLM Configuration (Ollama). Example: http://localhost:11434
    LOCAL_LLM_BASE_URL: str | None = os.getenv("LOCAL_LLM_BASE_URL")

    # Budget / mode selection
    FREE_TIER_LIMIT: int = int(os.getenv("FREE_TIER_LIMIT", "100"))
    FORCE_MOCK_MODE: bool = _env_flag("FORCE_MOCK_MODE")
    USAGE_WINDOW_SECONDS: float = float(os.getenv("USAGE_WINDOW_SECONDS", str(24 * 60 * 60)))
    MOCK_QUALITY_THRESHOLD: float = float(os.getenv("MOCK_QUALITY_THRESHOLD", "0.8"))
    CACHED_MODE_PROBABILITY: float = float(os.getenv("CACHED_MODE_PROBABILITY", "0.3"))

    # Response cache
    CACHE_DURATION_SECONDS: float = float(os.getenv("CACHE_DURATION_SECONDS", "300"))
    CACHE_SIMILARITY_THRESHOLD: float = float(os.getenv("CACHE_SIMILARITY_THRESHOLD", "0.7"))
    MAX_CACHE_ENTRIES: int = int(os.getenv("MAX_CACHE_ENTRIES", "100"))
    CACHE_CLEANUP_INTERVAL_SECONDS: float = float(os.getenv("CACHE_CLEANUP_INTERVAL_SECONDS", "60"))

    # Inference boundary
    INFERENCE_TIMEOUT_SECONDS: float = float(os.getenv("INFERENCE_TIMEOUT_SECONDS", "10"))

    # Thought streaming
    THOUGHT_CHUNK_DELAY_SECONDS: float = float(os.getenv("THOUGHT_CHUNK_DELAY_SECONDS", "0.05"))

    # Persistence
    MEMORY_DIR: Path = Path(os.getenv("APEXMIND_MEMORY_DIR", "agent_memories"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.FREE_TIER_LIMIT < 0:
            raise ValueError("FREE_TIER_LIMIT must be >= 0")

        if not 0.0 <= cls.CACHE_SIMILARITY_THRESHOLD <= 1.0:
            raise ValueError("CACHE_SIMILARITY_THRESHOLD must be between 0 and 1")

        if cls.INFERENCE_TIMEOUT_SECONDS <= 0:
            raise ValueError("INFERENCE_TIMEOUT_SECONDS must be positive; inference calls always time out")

        # Mock mode never reaches a provider, so credentials are optional there.
        if cls.FORCE_MOCK_MODE:
            return

        if cls.LLM_PROVIDER == "ollama":
            return

        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider. "
                "Set FORCE_MOCK_MODE=true to run on local synthesis only."
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider. "
                "For local LLMs, set LLM_PROVIDER=ollama instead."
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Apexmind Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  Free Tier Limit: {cls.FREE_TIER_LIMIT} calls / {int(cls.USAGE_WINDOW_SECONDS)}s",
            f"  Force Mock Mode: {cls.FORCE_MOCK_MODE}",
            f"  Cache: {cls.MAX_CACHE_ENTRIES} entries, {int(cls.CACHE_DURATION_SECONDS)}s, "
            f"similarity >= {cls.CACHE_SIMILARITY_THRESHOLD}",
            f"  Inference Timeout: {cls.INFERENCE_TIMEOUT_SECONDS}s",
        ]
        return "\n".join(lines)

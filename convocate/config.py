"""
Convocate - Configuration Management
Loads the YAML configuration and applies environment overrides.
"""

import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False


@dataclass
class OllamaConfig:
    """Ollama runtime configuration."""
    base_url: str
    timeout: int
    retry_attempts: int
    retry_delay: int
    max_concurrent_calls: int = 2


@dataclass
class ModelConfig:
    """Model selection and generation knobs for one call site."""
    model: str
    max_output_tokens: int
    temperature: float


@dataclass
class ModelsConfig:
    """Models used by each stage."""
    style: ModelConfig
    chat: ModelConfig
    score: ModelConfig


@dataclass
class UploadConfig:
    """Upload validation and persona limits."""
    max_file_size_mb: float = 1
    max_files: int = 10
    allowed_extensions: List[str] = field(default_factory=lambda: [".csv", ".json", ".txt", ".xml"])
    min_messages_per_sender: int = 10
    max_personas_per_client: int = 2

    @property
    def max_file_bytes(self) -> int:
        return int(self.max_file_size_mb * 1024 * 1024)


@dataclass
class SamplingConfig:
    """Style sample sizing."""
    max_sample_lines: int = 75
    chars_budget: int = 8000


@dataclass
class ThreadingConfig:
    """Thread reconstruction windows."""
    thread_window_minutes: float = 10
    burst_window_minutes: float = 5


@dataclass
class ChatConfig:
    """Practice chat limits."""
    max_messages_per_client: int = 40
    max_message_length: int = 4000
    transcript_context: int = 15


@dataclass
class ScoringConfig:
    """Deferred scoring configuration."""
    result_ttl_seconds: int = 600
    workers: int = 4


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"


@dataclass
class AppConfig:
    """Complete application configuration."""
    ollama: OllamaConfig
    models: ModelsConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    threading: ThreadingConfig = field(default_factory=ThreadingConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    base_path: Path = field(default_factory=lambda: Path.cwd())


class ConfigManager:
    """
    Manages configuration loading.

    Priority for each overridable setting:
    1. Environment variable (CONVOCATE_*)
    2. config/default.yaml
    """

    def __init__(self, base_path: Optional[Path] = None):
        self.base_path = base_path or Path.cwd()
        self.config_dir = self.base_path / "config"
        self._config: Optional[AppConfig] = None

    def load_yaml(self, filepath: Path) -> Dict[str, Any]:
        """Load a YAML configuration file."""
        if not filepath.exists():
            raise FileNotFoundError(f"Configuration file not found: {filepath}")

        with open(filepath, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    def load_default_config(self) -> Dict[str, Any]:
        """Load default configuration."""
        default_file = self.config_dir / "default.yaml"
        return self.load_yaml(default_file)

    def apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply CONVOCATE_* environment variables on top of file values."""
        ollama_url = os.environ.get("CONVOCATE_OLLAMA_URL")
        if ollama_url:
            data.setdefault("ollama", {})["base_url"] = ollama_url

        log_level = os.environ.get("CONVOCATE_LOG_LEVEL")
        if log_level:
            data.setdefault("logging", {})["level"] = log_level.upper()

        server = data.setdefault("server", {})
        if os.environ.get("CONVOCATE_HOST"):
            server["host"] = os.environ["CONVOCATE_HOST"]
        if os.environ.get("CONVOCATE_PORT"):
            server["port"] = int(os.environ["CONVOCATE_PORT"])
        if os.environ.get("CONVOCATE_DEBUG"):
            server["debug"] = os.environ["CONVOCATE_DEBUG"].lower() == "true"

        return data

    def load(self) -> AppConfig:
        """
        Load complete application configuration.

        Returns:
            Complete AppConfig instance.
        """
        data = self.apply_env_overrides(self.load_default_config())
        models = data["models"]

        self._config = AppConfig(
            ollama=OllamaConfig(**data["ollama"]),
            models=ModelsConfig(
                style=ModelConfig(**models["style"]),
                chat=ModelConfig(**models["chat"]),
                score=ModelConfig(**models["score"])
            ),
            server=ServerConfig(**data.get("server", {})),
            upload=UploadConfig(**data.get("upload", {})),
            sampling=SamplingConfig(**data.get("sampling", {})),
            threading=ThreadingConfig(**data.get("threading", {})),
            chat=ChatConfig(**data.get("chat", {})),
            scoring=ScoringConfig(**data.get("scoring", {})),
            logging=LoggingConfig(**data.get("logging", {})),
            base_path=self.base_path
        )

        return self._config

    @property
    def config(self) -> AppConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load()
        return self._config

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the active configuration for the health endpoint."""
        config = self.config
        return {
            "style_model": config.models.style.model,
            "chat_model": config.models.chat.model,
            "score_model": config.models.score.model,
            "max_personas_per_client": config.upload.max_personas_per_client,
            "max_messages_per_client": config.chat.max_messages_per_client
        }


# Global config manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(base_path: Optional[Path] = None) -> ConfigManager:
    """Get or create the global config manager."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(base_path)
    return _config_manager

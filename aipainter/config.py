"""
Configuration management for AIPainter.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import httpx
import yaml

from aipainter.core.stable_diffusion import DEFAULT_API_URL, DEFAULT_MODEL_ID, DEFAULT_TIMEOUT


GLOBAL_CONFIG_DIR = Path.home() / ".aipainter"
GLOBAL_CONFIG_FILE = GLOBAL_CONFIG_DIR / "config.yaml"


@dataclass
class APIKeys:
    """API key configuration."""

    stablediffusion: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "APIKeys":
        return cls(
            stablediffusion=data.get("stablediffusion", ""),
        )

    @classmethod
    def from_env(cls) -> "APIKeys":
        """Load API keys from environment variables."""
        return cls(
            stablediffusion=os.getenv("STABLEDIFFUSION_API_KEY", ""),
        )

    def merge_env(self) -> "APIKeys":
        """Merge with environment variables (env takes precedence)."""
        env_keys = APIKeys.from_env()
        return APIKeys(
            stablediffusion=env_keys.stablediffusion or self.stablediffusion,
        )


@dataclass
class ApiSettings:
    """Generation endpoint settings."""

    url: str = DEFAULT_API_URL
    model_id: str = DEFAULT_MODEL_ID
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_dict(cls, data: dict) -> "ApiSettings":
        return cls(
            url=data.get("url", DEFAULT_API_URL),
            model_id=data.get("model_id", DEFAULT_MODEL_ID),
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
        )

    def merge_env(self) -> "ApiSettings":
        """Endpoint and model can be overridden from the environment."""
        return ApiSettings(
            url=os.getenv("AIPAINTER_API_URL") or self.url,
            model_id=os.getenv("AIPAINTER_MODEL_ID") or self.model_id,
            timeout=self.timeout,
        )


@dataclass
class Defaults:
    """Default CLI settings."""

    output_dir: str = "generations"
    download_images: bool = True
    inline_preview: bool = False  # iTerm2/Kitty/WezTerm only
    retries: int = 0  # extra attempts after a transport failure

    @classmethod
    def from_dict(cls, data: dict) -> "Defaults":
        return cls(
            output_dir=data.get("output_dir", "generations"),
            download_images=data.get("download_images", True),
            inline_preview=data.get("inline_preview", False),
            retries=data.get("retries", 0),
        )


@dataclass
class Config:
    """Complete configuration."""

    api_keys: APIKeys = field(default_factory=APIKeys)
    api: ApiSettings = field(default_factory=ApiSettings)
    defaults: Defaults = field(default_factory=Defaults)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from file and environment."""
        config_path = config_path or GLOBAL_CONFIG_FILE

        # Start with defaults
        config = cls()

        # Load from file if exists
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
                config.api_keys = APIKeys.from_dict(data.get("api_keys", {}))
                config.api = ApiSettings.from_dict(data.get("api", {}))
                config.defaults = Defaults.from_dict(data.get("defaults", {}))

        # Merge environment variables (they take precedence)
        config.api_keys = config.api_keys.merge_env()
        config.api = config.api.merge_env()

        return config

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        config_path = config_path or GLOBAL_CONFIG_FILE
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "api_keys": {
                "stablediffusion": self.api_keys.stablediffusion,
            },
            "api": {
                "url": self.api.url,
                "model_id": self.api.model_id,
                "timeout": self.api.timeout,
            },
            "defaults": {
                "output_dir": self.defaults.output_dir,
                "download_images": self.defaults.download_images,
                "inline_preview": self.defaults.inline_preview,
                "retries": self.defaults.retries,
            },
        }

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.api_keys.stablediffusion:
            issues.append("Stable Diffusion API key not configured (STABLEDIFFUSION_API_KEY)")

        try:
            url = httpx.URL(self.api.url)
        except httpx.InvalidURL as e:
            issues.append(f"API url is invalid ({e}): {self.api.url}")
        else:
            if url.scheme not in ("http", "https") or not url.host:
                issues.append(f"API url is not an http(s) URL: {self.api.url}")

        if self.api.timeout <= 0:
            issues.append("API timeout must be positive")

        if self.defaults.retries < 0:
            issues.append("defaults.retries must be >= 0")

        return issues

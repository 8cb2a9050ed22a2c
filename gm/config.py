"""Configuration loading from settings.yaml and .env."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv


def load_config(
    config_dir: str | Path | None = None,
) -> dict:
    """Load settings.yaml and .env, return merged config dict."""
    if config_dir is None:
        config_dir = Path(__file__).resolve().parent.parent / "config"
    config_dir = Path(config_dir)

    # Load .env (silently skip if missing)
    env_path = config_dir / ".env"
    load_dotenv(env_path)

    settings_path = config_dir / "settings.yaml"
    if not settings_path.exists():
        raise FileNotFoundError(f"Config not found: {settings_path}")

    with open(settings_path, encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    cfg["_secrets"] = {
        "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY", ""),
        "ai_agent_api_key": os.getenv("AI_AGENT_API_KEY", ""),
    }

    # The proxy URL differs per deployment, so the environment wins over the file.
    env_url = os.getenv("AI_AGENT_API_URL", "")
    if env_url:
        cfg["ai_agent"] = {**(cfg.get("ai_agent") or {}), "base_url": env_url}

    return cfg

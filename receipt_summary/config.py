"""TOML configuration loader for the receipt sync."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class WebDAVConfig:
    root_url: str = "https://ideadapt.net/nextcloud"
    share_id: str = ""
    share_password: str = ""
    ledger_id: str = ""
    ledger_password: str = ""
    state_id: str = ""
    state_password: str = ""
    timeout: float = 20.0
    list_timeout: float = 60.0


@dataclass
class GDriveConfig:
    credentials_path: str = "~/.config/receipt-summary/gdrive_credentials.json"
    token_path: str = "~/.config/receipt-summary/gdrive_token.json"
    folder_id: str = ""
    ledger_file_id: str = ""
    state_file_id: str = ""


@dataclass
class ShareConfig:
    backend: str = "webdav"
    webdav: WebDAVConfig = field(default_factory=WebDAVConfig)
    gdrive: GDriveConfig = field(default_factory=GDriveConfig)


@dataclass
class ClaudeConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class GeminiConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"
    poll_interval: float = 1.5
    max_wait: float = 120.0


@dataclass
class AIConfig:
    backend: str = "claude"
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)


@dataclass
class SyncConfig:
    batch_size: int = 50
    max_attempts: int = 2
    tabular_content_types: list[str] = field(default_factory=lambda: ["text/csv"])
    schedule: str = "*/30 * * * *"


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class AppConfig:
    share: ShareConfig = field(default_factory=ShareConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _env(value: str, *names: str) -> str:
    """Return ``value`` or the first non-empty environment variable."""
    if value:
        return value
    for name in names:
        if os.environ.get(name):
            return os.environ[name]
    return ""


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    Share credentials and API keys can be supplied via environment variables.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    shr = raw.get("share", {})
    ai = raw.get("ai", {})
    syn = raw.get("sync", {})
    log = raw.get("logging", {})

    dav_cfg = shr.get("webdav", {})
    gdr_cfg = shr.get("gdrive", {})
    claude_cfg = ai.get("claude", {})
    gemini_cfg = ai.get("gemini", {})

    defaults = AppConfig()

    return AppConfig(
        share=ShareConfig(
            backend=shr.get("backend", "webdav"),
            webdav=WebDAVConfig(
                root_url=dav_cfg.get("root_url", defaults.share.webdav.root_url),
                share_id=_env(dav_cfg.get("share_id", ""), "SHARE_ID"),
                share_password=_env(
                    dav_cfg.get("share_password", ""), "SHARE_PASSWORD"
                ),
                ledger_id=_env(
                    dav_cfg.get("ledger_id", ""), "LEDGER_ID", "ANALYZED_ID"
                ),
                ledger_password=_env(
                    dav_cfg.get("ledger_password", ""),
                    "LEDGER_PASSWORD",
                    "ANALYZED_PASSWORD",
                ),
                state_id=_env(dav_cfg.get("state_id", ""), "STATE_ID"),
                state_password=_env(
                    dav_cfg.get("state_password", ""), "STATE_PASSWORD"
                ),
                timeout=float(dav_cfg.get("timeout", 20.0)),
                list_timeout=float(dav_cfg.get("list_timeout", 60.0)),
            ),
            gdrive=GDriveConfig(
                credentials_path=gdr_cfg.get(
                    "credentials_path", defaults.share.gdrive.credentials_path
                ),
                token_path=gdr_cfg.get("token_path", defaults.share.gdrive.token_path),
                folder_id=gdr_cfg.get("folder_id", ""),
                ledger_file_id=gdr_cfg.get("ledger_file_id", ""),
                state_file_id=gdr_cfg.get("state_file_id", ""),
            ),
        ),
        ai=AIConfig(
            backend=ai.get("backend", "claude"),
            claude=ClaudeConfig(
                api_key=_env(claude_cfg.get("api_key", ""), "ANTHROPIC_API_KEY"),
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
            gemini=GeminiConfig(
                api_key=_env(gemini_cfg.get("api_key", ""), "GEMINI_API_KEY"),
                model=gemini_cfg.get("model", "gemini-2.0-flash"),
                poll_interval=float(gemini_cfg.get("poll_interval", 1.5)),
                max_wait=float(gemini_cfg.get("max_wait", 120.0)),
            ),
        ),
        sync=SyncConfig(
            batch_size=syn.get("batch_size", 50),
            max_attempts=syn.get("max_attempts", 2),
            tabular_content_types=syn.get("tabular_content_types", ["text/csv"]),
            schedule=syn.get("schedule", "*/30 * * * *"),
        ),
        logging=LoggingConfig(
            level=log.get("level", "INFO"),
        ),
    )

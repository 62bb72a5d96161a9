from pydantic import BaseModel, Field, field_validator
from typing import Literal


class CouchDBSettings(BaseModel):
    url: str = "http://localhost:5984"
    database: str = "obsidian-livesync"
    username: str = ""
    password: str = ""
    timeout: float = Field(default=30.0, gt=0)
    retries: int = Field(default=1, ge=0, le=1)


class LiveSyncConfig(BaseModel):
    couchdb: CouchDBSettings = Field(default_factory=CouchDBSettings)
    vault_root: str = "."
    extensions: list[str] = Field(default_factory=lambda: [".md"])
    debounce_ms: int = Field(default=200, ge=0)
    max_concurrency: int = Field(default=8, gt=0)
    ignore_dirs: list[str] = Field(default_factory=lambda: [".git", ".obsidian", "node_modules"])
    verbose: bool = False
    dry_run: bool = False
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["text", "json"] = "text"

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        exts = []
        for ext in value:
            ext = ext.strip()
            if not ext:
                continue
            exts.append(ext if ext.startswith(".") else f".{ext}")
        return exts

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

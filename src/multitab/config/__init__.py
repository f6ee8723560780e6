"""Configuration — Pydantic models for multitab settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from multitab.pty.buffer import DEFAULT_CEILING, DEFAULT_FLOOR
from multitab.pty.session import default_shell


class TerminalConfig(BaseModel):
    """How shells are spawned."""

    shell: str | None = Field(
        default=None,
        description="Shell to run in new tabs. Falls back to $SHELL, then the platform default.",
    )
    cwd: str | None = Field(default=None, description="Working directory for new shells")
    cols: int = Field(default=80, gt=0, description="Initial width before the UI reports one")
    rows: int = Field(default=24, gt=0, description="Initial height before the UI reports one")
    term: str = Field(default="xterm-256color", description="Value of TERM in the child")
    env: dict[str, str] = Field(
        default_factory=dict, description="Extra environment variables for the child"
    )

    def resolve_shell(self) -> str:
        return self.shell or default_shell()


class BufferConfig(BaseModel):
    """Per-session output retention."""

    ceiling: int = Field(
        default=DEFAULT_CEILING,
        gt=0,
        description="Characters retained before the oldest output is dropped",
    )
    floor: int = Field(
        default=DEFAULT_FLOOR,
        gt=0,
        description="Characters kept after a truncation",
    )

    @model_validator(mode="after")
    def _floor_within_ceiling(self) -> BufferConfig:
        if self.floor > self.ceiling:
            raise ValueError(
                f"buffer floor ({self.floor}) must not exceed ceiling ({self.ceiling})"
            )
        return self


class KeyBindingConfig(BaseModel):
    """Multiplexer commands, as Textual key names.

    Any key not bound here is passed through to the active shell.
    """

    quit: str = Field(default="ctrl+q")
    new_tab: str = Field(default="ctrl+t")
    close_tab: str = Field(default="ctrl+w")
    next_tab: str = Field(default="ctrl+right")
    prev_tab: str = Field(default="ctrl+left")

    @model_validator(mode="after")
    def _no_duplicates(self) -> KeyBindingConfig:
        keys = [self.quit, self.new_tab, self.close_tab, self.next_tab, self.prev_tab]
        if len(set(keys)) != len(keys):
            raise ValueError(f"key bindings must be distinct: {keys}")
        return self


class MultitabConfig(BaseModel):
    """Top-level multitab configuration."""

    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    buffer: BufferConfig = Field(default_factory=BufferConfig)
    keys: KeyBindingConfig = Field(default_factory=KeyBindingConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> MultitabConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            MULTITAB_SHELL           - Shell for new tabs (overrides $SHELL)
            MULTITAB_CWD             - Working directory for new shells
            MULTITAB_TERM            - TERM value passed to shells
            MULTITAB_BUFFER_CEILING  - Retained characters per tab
            MULTITAB_BUFFER_FLOOR    - Characters kept after truncation
        """
        load_dotenv()

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        terminal = config_data.get("terminal", {})

        env_shell = os.environ.get("MULTITAB_SHELL")
        if env_shell:
            terminal["shell"] = env_shell

        env_cwd = os.environ.get("MULTITAB_CWD")
        if env_cwd:
            terminal["cwd"] = env_cwd

        env_term = os.environ.get("MULTITAB_TERM")
        if env_term:
            terminal["term"] = env_term

        if terminal:
            config_data["terminal"] = terminal

        buffer = config_data.get("buffer", {})

        env_ceiling = os.environ.get("MULTITAB_BUFFER_CEILING")
        if env_ceiling:
            buffer["ceiling"] = int(env_ceiling)

        env_floor = os.environ.get("MULTITAB_BUFFER_FLOOR")
        if env_floor:
            buffer["floor"] = int(env_floor)

        if buffer:
            config_data["buffer"] = buffer

        return cls.model_validate(config_data)

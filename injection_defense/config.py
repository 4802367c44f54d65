"""Toolkit configuration."""

import os
from dataclasses import dataclass
from pathlib import Path

from .binder import PARAMSTYLES

ENV_PREFIX = "INJECTION_DEFENSE_"


@dataclass(frozen=True)
class ToolkitConfig:
    """Settings for a Toolkit instance.

    Built once and shared read-only. Follows the frozen, self-validating
    dataclass pattern used for policies.
    """

    sql_paramstyle: str = "named"
    html_policy: str = "basic"
    policy_file: Path | None = None
    max_message_echo: int = 80

    def __post_init__(self) -> None:
        """Validate configuration."""
        errors = []

        if self.sql_paramstyle not in PARAMSTYLES:
            errors.append(
                f"sql_paramstyle must be one of {list(PARAMSTYLES)}, got {self.sql_paramstyle!r}"
            )
        if not self.html_policy:
            errors.append("html_policy cannot be empty")
        if self.max_message_echo < 0:
            errors.append(f"max_message_echo must be >= 0, got {self.max_message_echo}")

        if errors:
            raise ValueError(f"Invalid ToolkitConfig: {'; '.join(errors)}")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ToolkitConfig":
        """Read INJECTION_DEFENSE_* variables, falling back to defaults.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}
        if env.get(f"{ENV_PREFIX}PARAMSTYLE"):
            kwargs["sql_paramstyle"] = env[f"{ENV_PREFIX}PARAMSTYLE"].strip().lower()
        if env.get(f"{ENV_PREFIX}HTML_POLICY"):
            kwargs["html_policy"] = env[f"{ENV_PREFIX}HTML_POLICY"].strip()
        if env.get(f"{ENV_PREFIX}POLICY_FILE"):
            kwargs["policy_file"] = Path(env[f"{ENV_PREFIX}POLICY_FILE"])
        if env.get(f"{ENV_PREFIX}MAX_MESSAGE_ECHO"):
            raw = env[f"{ENV_PREFIX}MAX_MESSAGE_ECHO"]
            try:
                kwargs["max_message_echo"] = int(raw)
            except ValueError:
                raise ValueError(
                    f"{ENV_PREFIX}MAX_MESSAGE_ECHO must be an integer, got: {raw!r}"
                ) from None
        return cls(**kwargs)

from __future__ import annotations
import dataclasses
import os
import pathlib
import typing as t
import yaml

from dbscript.constants import (
    DEFAULT_BLOCK_COMMENT_END_DELIMITER,
    DEFAULT_BLOCK_COMMENT_START_DELIMITER,
    DEFAULT_COMMENT_PREFIX,
    DEFAULT_STATEMENT_SEPARATOR,
)

_DEFAULT_PATH = pathlib.Path("dbscript.config.yml")


class ConfigError(RuntimeError):
    """Raised for any user‑visible configuration problem."""


class Environment:
    """
    A thin value‑object holding the attributes required to open a MariaDB
    connection.  Nothing here talks to the database.
    """

    def __init__(self, name: str, d: dict[str, t.Any]) -> None:
        self.name: str = name
        try:
            self.host: str = d["host"]
            self.database: str = d["database"]
            self.user: str = d["user"]
            raw_pwd: str = str(d["password"])
        except KeyError as exc:
            raise ConfigError(f"Environment {name!r} is missing {exc.args[0]!r}") from exc
        self.port: int = int(d.get("port", 3306))

        # Allow `${ENV_VAR}` syntax for secrets
        self.password: str = (
            os.getenv(raw_pwd[2:-1], "") if raw_pwd.startswith("${") else raw_pwd
        )

    def dsn(self) -> dict[str, t.Any]:
        """Return kwargs that mysql‑connector understands."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": self.database,
        }


@dataclasses.dataclass(frozen=True)
class ScriptOptions:
    """How a script is split and how tolerant its execution is."""

    separator: str = DEFAULT_STATEMENT_SEPARATOR
    comment_prefix: str = DEFAULT_COMMENT_PREFIX
    block_comment_start: str = DEFAULT_BLOCK_COMMENT_START_DELIMITER
    block_comment_end: str = DEFAULT_BLOCK_COMMENT_END_DELIMITER
    continue_on_error: bool = False
    ignore_failed_drops: bool = False
    encoding: str = "utf-8"

    @classmethod
    def from_mapping(cls, d: dict[str, t.Any] | None) -> ScriptOptions:
        d = d or {}
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ConfigError(f"Unknown script option(s): {', '.join(unknown)}")
        return cls(**d)

    def merged(self, **overrides: t.Any) -> ScriptOptions:
        """Return a copy with every non-``None`` override applied."""
        return dataclasses.replace(
            self, **{k: v for k, v in overrides.items() if v is not None}
        )


def _read(path: pathlib.Path | str | None) -> tuple[pathlib.Path, dict[str, t.Any] | None]:
    cfg_file = pathlib.Path(path) if path else _DEFAULT_PATH
    if not cfg_file.exists():
        return cfg_file, None
    with cfg_file.open() as fh:
        return cfg_file, yaml.safe_load(fh) or {}


def load(path: pathlib.Path | str | None = None, env: str | None = None) -> Environment:
    """
    Parse *path* (or the default YAML) and return an :class:`Environment`.
    """
    cfg_file, raw = _read(path)
    if raw is None:
        raise ConfigError(f"Config file {cfg_file} not found.")

    env_name = env or raw.get("default_env")
    if not env_name:
        raise ConfigError("No environment specified and no default_env in config")

    try:
        return Environment(env_name, raw["environments"][env_name])
    except KeyError as exc:
        raise ConfigError(f"Environment {env_name!r} not found in config") from exc


def load_options(path: pathlib.Path | str | None = None) -> ScriptOptions:
    """
    Return the ``script:`` section of *path* as :class:`ScriptOptions`.
    A missing file or section yields the defaults.
    """
    _, raw = _read(path)
    if not raw:
        return ScriptOptions()
    return ScriptOptions.from_mapping(raw.get("script"))

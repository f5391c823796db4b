"""YAML configuration: global + project files, generation profiles, tool settings."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from codefacts.catalog.scanner import DEFAULT_EXCLUDE_DIRS, DEFAULT_INCLUDE, ScanPolicy
from codefacts.context_oracle.assembler import DEFAULT_MARGIN
from codefacts.errors import ConfigError
from codefacts.indexing.tagger import DEFAULT_TAGGER_COMMAND
from codefacts.infrastructure.db import STATE_DIR
from codefacts.llm import DEFAULT_API_BASE, DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_MODEL, LLMConfig

CONFIG_FILENAME = "config.yml"
PROFILE_ENV = "CODEFACTS_PROFILE"
FALLBACK_KEY_ENV = "OPENAI_API_KEY"
DEFAULT_PROFILE = "openai"

GLOBAL_TEMPLATE = """\
# ~/.config/codefacts/config.yml
default_profile: openai
lang: en
model: gpt-4.1-mini
max_output_tokens: 1200

profiles:
  openai:
    provider: openai
    api_base: https://api.openai.com/v1
    api_key_env: OPENAI_API_KEY
  local:
    provider: openai
    api_base: http://localhost:8000/v1
    api_key: EMPTY
    model: qwen2.5-coder-32b
"""

PROJECT_TEMPLATE = """\
# .codefacts/config.yml (project override)
# default_profile: local
# model: qwen2.5-coder-32b
# tagger:
#   command: ctags -n --output-format=json --languages=C,C++ --fields=+KlnSmt --extras=+F --sort=no -L - -f -
# scan:
#   exclude_dirs: [.git, .codefacts, build, third_party]
#   gitignore: true
# explain:
#   window: 8
"""


@dataclass(frozen=True)
class Profile:
    """One named generation endpoint."""

    provider: str = "openai"
    api_base: str | None = None
    api_key: str | None = None
    api_key_env: str | None = None
    model: str | None = None


@dataclass
class CodefactsConfig:
    """Effective configuration after merging the global and project files."""

    default_profile: str | None = None
    model: str | None = None
    max_output_tokens: int | None = None
    lang: str = "auto"
    profiles: dict[str, Profile] = field(default_factory=dict)
    tagger_command: tuple[str, ...] = DEFAULT_TAGGER_COMMAND
    scan_policy: ScanPolicy = field(default_factory=ScanPolicy)
    explain_window: int = DEFAULT_MARGIN
    global_path: Path | None = None
    project_path: Path | None = None

    @property
    def profile_name(self) -> str:
        """``$CODEFACTS_PROFILE``, else ``default_profile``, else ``openai``."""
        return os.environ.get(PROFILE_ENV) or self.default_profile or DEFAULT_PROFILE

    def profile(self) -> Profile:
        """Return the active profile.

        Raises
        ------
        ConfigError
            If a profile other than the built-in ``openai`` is selected but
            not defined in any config file.
        """
        name = self.profile_name
        if name in self.profiles:
            return self.profiles[name]
        if name == DEFAULT_PROFILE:
            return Profile()
        msg = (
            f"profile {name!r} not found "
            f"(define it in {global_config_path()} or {STATE_DIR}/{CONFIG_FILENAME})"
        )
        raise ConfigError(msg)

    def api_key_source(self) -> str:
        """Where the API key comes from, without revealing it."""
        prof = self.profile()
        if prof.api_key_env:
            return f"env:{prof.api_key_env}"
        if prof.api_key:
            return "config (hidden)"
        return f"env:{FALLBACK_KEY_ENV}"

    def llm_config(
        self,
        *,
        model: str | None = None,
        max_output_tokens: int | None = None,
    ) -> LLMConfig:
        """Resolve the generation settings, command-line overrides first."""
        prof = self.profile()
        if prof.api_key_env:
            api_key = os.environ.get(prof.api_key_env)
        elif prof.api_key:
            api_key = prof.api_key
        else:
            api_key = os.environ.get(FALLBACK_KEY_ENV)
        return LLMConfig(
            model=model or self.model or prof.model or DEFAULT_MODEL,
            api_base=prof.api_base or DEFAULT_API_BASE,
            api_key=api_key or None,
            max_output_tokens=(
                max_output_tokens or self.max_output_tokens or DEFAULT_MAX_OUTPUT_TOKENS
            ),
            profile=self.profile_name,
        )


def global_config_path() -> Path:
    return Path.home() / ".config" / "codefacts" / CONFIG_FILENAME


def project_config_path(project_root: Path) -> Path:
    return project_root / STATE_DIR / CONFIG_FILENAME


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        msg = f"{path}: cannot read config: {exc}"
        raise ConfigError(msg) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"{path}: config must be a mapping, got {type(data).__name__}"
        raise ConfigError(msg)
    return data


def merge_raw(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay *override* on *base*; ``profiles`` merge by name, sections by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def _opt_int(raw: dict[str, Any], key: str, source: str) -> int | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        msg = f"{source}: '{key}' must be a positive integer, got {value!r}"
        raise ConfigError(msg)
    return value


def _str_list(value: Any, key: str, source: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(shlex.split(value))
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    msg = f"{source}: '{key}' must be a string or a list of strings"
    raise ConfigError(msg)


def _section(raw: dict[str, Any], key: str, source: str) -> dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        msg = f"{source}: '{key}' must be a mapping"
        raise ConfigError(msg)
    return value


def _parse_profiles(raw: dict[str, Any], source: str) -> dict[str, Profile]:
    profiles: dict[str, Profile] = {}
    for name, body in _section(raw, "profiles", source).items():
        if not isinstance(body, dict):
            msg = f"{source}: profile {name!r} must be a mapping"
            raise ConfigError(msg)
        profiles[str(name)] = Profile(
            provider=str(body.get("provider") or "openai"),
            api_base=body.get("api_base"),
            api_key=body.get("api_key"),
            api_key_env=body.get("api_key_env"),
            model=body.get("model"),
        )
    return profiles


def parse_config(raw: dict[str, Any], source: str = "config") -> CodefactsConfig:
    """Validate merged raw YAML data into a :class:`CodefactsConfig`.

    Raises
    ------
    ConfigError
        On wrong value types.
    """
    tagger = _section(raw, "tagger", source)
    scan = _section(raw, "scan", source)
    explain = _section(raw, "explain", source)

    command = DEFAULT_TAGGER_COMMAND
    if tagger.get("command"):
        command = _str_list(tagger["command"], "tagger.command", source)

    gitignore = scan.get("gitignore", True)
    if not isinstance(gitignore, bool):
        msg = f"{source}: 'scan.gitignore' must be true or false, got {gitignore!r}"
        raise ConfigError(msg)
    policy = ScanPolicy(
        include=_str_list(scan["include"], "scan.include", source)
        if "include" in scan else DEFAULT_INCLUDE,
        exclude_dirs=_str_list(scan["exclude_dirs"], "scan.exclude_dirs", source)
        if "exclude_dirs" in scan else DEFAULT_EXCLUDE_DIRS,
        gitignore=gitignore,
    )

    window = explain.get("window", DEFAULT_MARGIN)
    if isinstance(window, bool) or not isinstance(window, int) or window < 0:
        msg = f"{source}: 'explain.window' must be a non-negative integer, got {window!r}"
        raise ConfigError(msg)

    return CodefactsConfig(
        default_profile=raw.get("default_profile"),
        model=raw.get("model"),
        max_output_tokens=_opt_int(raw, "max_output_tokens", source),
        lang=str(raw.get("lang") or "auto"),
        profiles=_parse_profiles(raw, source),
        tagger_command=command,
        scan_policy=policy,
        explain_window=window,
    )


def load_config(project_root: Path, *, global_path: Path | None = None) -> CodefactsConfig:
    """Load the global config, overlay the project config and validate the result."""
    gpath = global_path or global_config_path()
    ppath = project_config_path(project_root)
    global_raw = _read_yaml(gpath)
    project_raw = _read_yaml(ppath)

    cfg = parse_config(merge_raw(global_raw, project_raw), source=str(ppath))
    cfg.global_path = gpath if gpath.is_file() else None
    cfg.project_path = ppath
    return cfg


def init_config_files(
    project_root: Path, *, global_path: Path | None = None
) -> list[tuple[Path, bool]]:
    """Write template config files that do not exist yet.

    Returns ``(path, created)`` for the global and the project file.
    """
    out: list[tuple[Path, bool]] = []
    for path, template in (
        (global_path or global_config_path(), GLOBAL_TEMPLATE),
        (project_config_path(project_root), PROJECT_TEMPLATE),
    ):
        if path.exists():
            out.append((path, False))
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(template, encoding="utf-8")
        out.append((path, True))
    return out


# Settable keys: top-level and section keys, and the fields of ``profiles.<name>``.
# Keys in _YAML_VALUE_KEYS take a YAML scalar or list; the rest are plain strings.
_TOP_LEVEL_KEYS = frozenset({"default_profile", "lang", "model", "max_output_tokens"})
_SECTION_KEYS = frozenset({
    "tagger.command",
    "scan.include",
    "scan.exclude_dirs",
    "scan.gitignore",
    "explain.window",
})
PROFILE_FIELDS = ("provider", "api_base", "api_key", "api_key_env", "model")
# Short aliases for fields of the active profile.
_PROFILE_ALIASES = {
    "provider": "provider",
    "api_base": "api_base",
    "api_key": "api_key",
    "api_key_env": "api_key_env",
    "profile_model": "model",
}
_YAML_VALUE_KEYS = frozenset({
    "max_output_tokens",
    "scan.include",
    "scan.exclude_dirs",
    "scan.gitignore",
    "explain.window",
})


def _config_path_for_key(key: str, raw: dict[str, Any], profile: str | None) -> list[str]:
    if key in _TOP_LEVEL_KEYS or key in _SECTION_KEYS:
        return key.split(".")
    if key.startswith("profiles."):
        parts = key.split(".")
        if len(parts) != 3 or not parts[1]:
            msg = f"use profiles.<name>.<field>, got {key!r}"
            raise ConfigError(msg)
        if parts[2] not in PROFILE_FIELDS:
            msg = (
                f"unknown profile field {parts[2]!r} "
                f"(expected one of {', '.join(PROFILE_FIELDS)})"
            )
            raise ConfigError(msg)
        return parts
    if key in _PROFILE_ALIASES:
        name = (
            profile or os.environ.get(PROFILE_ENV) or raw.get("default_profile")
            or DEFAULT_PROFILE
        )
        return ["profiles", str(name), _PROFILE_ALIASES[key]]
    msg = f"unknown config key {key!r}"
    raise ConfigError(msg)


def _parse_value(key: str, value: str) -> Any:
    if key not in _YAML_VALUE_KEYS:
        return value
    try:
        return yaml.safe_load(value)
    except yaml.YAMLError as exc:
        msg = f"{key}: cannot parse value {value!r}: {exc}"
        raise ConfigError(msg) from exc


def set_config_value(
    path: Path, key: str, value: str, *, profile: str | None = None
) -> list[str]:
    """Set *key* to *value* in the config file at *path* and rewrite it.

    *key* is a top-level key, a ``section.key``, ``profiles.<name>.<field>``,
    or a short alias (``api_base``, ``api_key``, ``api_key_env``, ``provider``,
    ``profile_model``) for a field of *profile*, else of the active profile.
    The updated file is validated before it is written. Comments in the file
    are not preserved.

    Returns the resolved key path.

    Raises
    ------
    ConfigError
        On an unknown key, a value of the wrong type, or an unreadable file.
    """
    raw = _read_yaml(path)
    key_path = _config_path_for_key(key, raw, profile)

    node = raw
    for part in key_path[:-1]:
        child = node.get(part)
        if child is None:
            child = {}
        elif not isinstance(child, dict):
            msg = f"{path}: {part!r} must be a mapping"
            raise ConfigError(msg)
        else:
            child = dict(child)
        node[part] = child
        node = child
    node[key_path[-1]] = _parse_value(".".join(key_path), value)

    parse_config(raw, source=str(path))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        yaml.safe_dump(raw, default_flow_style=False, sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
    return key_path

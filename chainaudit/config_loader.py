"""
Configuration Loader for the chainaudit analysis engine.

Implements a layered configuration system:
    hardcoded defaults < profile YAML < .chainaudit.yml < env vars < explicit overrides

Usage:
    from chainaudit.config_loader import build_unified_config
    config = build_unified_config(profile="ci")
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent

# ---------------------------------------------------------------------------
# Default configuration
# ---------------------------------------------------------------------------

def get_default_config() -> Dict[str, Any]:
    """Return all configuration parameters with sensible defaults.

    This is the lowest-priority layer.  Every configurable key must appear
    here so that downstream code never needs to guard against missing keys.
    """
    return {
        # -- AI --
        "ai_provider": "auto",
        "model": "auto",
        "anthropic_api_key": "",
        "openai_api_key": "",
        "ai_max_tokens": 4000,
        "ai_temperature": 0.1,
        "ai_retry_attempts": 2,

        # -- Fallback ladder --
        "enable_ai_fallback": True,
        "enable_basic_validation": True,
        "enable_cached_results": True,
        "skip_fallback_on_unrecoverable": True,
        "max_retry_attempts": 3,
        "retry_base_delay": 1.0,
        "attempt_timeout": 120.0,
        "result_cache_ttl_seconds": 600,

        # -- Job queue --
        "run_job_concurrency": 1,
        "platform_job_concurrency": 3,
        "cross_platform_job_concurrency": 1,
        "platform_job_stagger": 1.0,

        # -- Fan-in waits --
        "platform_poll_interval": 2.0,
        "platform_wait_timeout": 600.0,
        "cross_platform_poll_interval": 1.0,
        "cross_platform_wait_timeout": 300.0,
        "progress_retention_hours": 24,

        # -- Continue-vs-abort policy --
        "continue_on_multi_platform_failure": True,
        "continue_on_recoverable_failure": True,

        # -- Cross-platform aggregation --
        "bridge_locking_penalty_critical": 30,
        "bridge_locking_penalty_high": 20,
        "bridge_message_penalty_critical": 25,
        "bridge_message_penalty_high": 15,
        "bridge_validator_penalty_critical": 20,
        "bridge_validator_penalty_high": 10,
        "consistency_issue_risk": 0.7,
        "consistency_risk_threshold": 0.5,
        "enable_cross_platform_ai": True,
    }

# ---------------------------------------------------------------------------
# Profile loading
# ---------------------------------------------------------------------------

def _profile_search_paths(profile_name: str) -> List[Path]:
    """Return candidate YAML paths for *profile_name*, in priority order."""
    return [
        PACKAGE_ROOT / "profiles" / f"{profile_name}.yml",                 # built-in
        Path.home() / ".chainaudit" / "profiles" / f"{profile_name}.yml",  # user
        Path(".chainaudit") / "profiles" / f"{profile_name}.yml",          # project-local
    ]


def _load_raw_profile(profile_name: str, _chain: Optional[List[str]] = None) -> dict:
    """Load raw YAML dict for *profile_name*, resolving ``_extends``.

    Raises
    ------
    FileNotFoundError
        If the profile YAML cannot be found in any search path.
    ValueError
        If a circular ``_extends`` chain is detected.
    """
    if _chain is None:
        _chain = []

    if profile_name in _chain:
        raise ValueError(
            f"Circular profile inheritance detected: "
            f"{' -> '.join(_chain)} -> {profile_name}"
        )
    _chain.append(profile_name)

    loaded_path: Optional[Path] = None
    for candidate in _profile_search_paths(profile_name):
        if candidate.is_file():
            loaded_path = candidate
            break

    if loaded_path is None:
        raise FileNotFoundError(
            f"Profile '{profile_name}' not found.  Searched: "
            + ", ".join(str(p) for p in _profile_search_paths(profile_name))
        )

    logger.info("Loading profile '%s' from %s", profile_name, loaded_path)
    with open(loaded_path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    parent_name = raw.pop("_extends", None)
    if parent_name:
        parent = _load_raw_profile(parent_name, _chain=_chain)
        raw = _deep_merge_nested(parent, raw)

    return raw


def _deep_merge_nested(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (nested dicts)."""
    merged = dict(base)
    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _deep_merge_nested(merged[key], value)
        else:
            merged[key] = value
    return merged

# ---------------------------------------------------------------------------
# Flatten nested YAML -> flat config dict
# ---------------------------------------------------------------------------

# Sections whose keys map straight onto flat config keys
_DIRECT_SECTIONS = ("fallback", "queue", "waits", "policy", "aggregation")


def flatten_profile(nested: dict) -> Dict[str, Any]:
    """Convert a nested profile YAML dict to a flat config dict.

    Mapping rules:
    - ``nested["ai"]["provider"]``  -> ``ai_provider``
    - ``nested["ai"]["max_tokens"]`` -> ``ai_max_tokens``
    - ``nested["ai"]["temperature"]`` -> ``ai_temperature``
    - ``nested["ai"][key]``         -> key (``model``, api keys)
    - ``nested["bridge_penalties"][dimension][severity]``
                                    -> ``bridge_{dimension}_penalty_{severity}``
    - any other section (``fallback``, ``queue``, ``waits``, ``policy``,
      ``aggregation``): ``nested[section][key]`` -> key (directly)
    - Top-level scalar keys (``name``, ``description``) pass through.

    Only non-None values are included.
    """
    flat: Dict[str, Any] = {}

    ai = nested.get("ai")
    if isinstance(ai, dict):
        for key, value in ai.items():
            if value is None:
                continue
            if key in ("provider", "max_tokens", "temperature", "retry_attempts"):
                flat[f"ai_{key}"] = value
            else:
                flat[key] = value

    for section in _DIRECT_SECTIONS:
        block = nested.get(section)
        if isinstance(block, dict):
            for key, value in block.items():
                if value is not None:
                    flat[key] = value

    # -- bridge_penalties (two-level) --
    penalties = nested.get("bridge_penalties")
    if isinstance(penalties, dict):
        for dimension, by_severity in penalties.items():
            if not isinstance(by_severity, dict):
                continue
            for severity, value in by_severity.items():
                if value is not None:
                    flat[f"bridge_{dimension}_penalty_{severity}"] = value

    for scalar_key in ("name", "description"):
        if nested.get(scalar_key) is not None:
            flat[scalar_key] = nested[scalar_key]

    return flat


def load_profile(profile_name: str) -> Dict[str, Any]:
    """Load a profile by name and return a flat config dict.

    Search order (first match wins):
      1. ``chainaudit/profiles/{name}.yml``       (built-in)
      2. ``~/.chainaudit/profiles/{name}.yml``    (user)
      3. ``.chainaudit/profiles/{name}.yml``      (project-local)

    The ``_extends`` key enables profile inheritance: the parent profile is
    loaded first and the child values are overlaid on top.
    """
    return flatten_profile(_load_raw_profile(profile_name))

# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

ENV_PREFIX = "CHAINAUDIT_"

# Keys whose env var does not follow the CHAINAUDIT_<KEY> convention
_ENV_ALIASES: Dict[str, tuple] = {
    "anthropic_api_key": ("ANTHROPIC_API_KEY",),
    "openai_api_key": ("OPENAI_API_KEY",),
}


def _coerce(raw: str, type_tag: str) -> Any:
    """Convert a raw env-var string to the appropriate Python type."""
    if type_tag == "bool":
        return raw.lower() in ("true", "1", "yes")
    if type_tag == "int":
        return int(raw)
    if type_tag == "float":
        return float(raw)
    return raw


def _type_tag(default: Any) -> str:
    if isinstance(default, bool):
        return "bool"
    if isinstance(default, int):
        return "int"
    if isinstance(default, float):
        return "float"
    return "str"


def load_env_overrides() -> Dict[str, Any]:
    """Load configuration values from explicitly-set environment variables.

    Every default key ``foo_bar`` can be set via ``CHAINAUDIT_FOO_BAR``;
    API keys additionally honour the provider's own variable name.  Values
    are coerced to the type of the default.  Variables that are absent are
    skipped so that defaults or profile values are not overwritten.
    """
    overrides: Dict[str, Any] = {}

    for config_key, default in get_default_config().items():
        env_names = (ENV_PREFIX + config_key.upper(),) + _ENV_ALIASES.get(config_key, ())
        type_tag = _type_tag(default)
        for env_name in env_names:
            if env_name in os.environ:
                try:
                    overrides[config_key] = _coerce(os.environ[env_name], type_tag)
                except (ValueError, TypeError) as exc:
                    logger.warning(
                        "Ignoring env var %s: could not convert %r to %s (%s)",
                        env_name, os.environ[env_name], type_tag, exc,
                    )
                break  # first match wins

    return overrides

# ---------------------------------------------------------------------------
# Merge helpers
# ---------------------------------------------------------------------------

def deep_merge(base: dict, override: dict) -> dict:
    """Merge *override* into *base*.  Only non-None override values win.

    This operates on **flat** dicts (no recursive descent).
    """
    merged = dict(base)
    for key, value in override.items():
        if value is not None:
            merged[key] = value
    return merged


def _load_project_yml(repo_path: str) -> Dict[str, Any]:
    """Load ``.chainaudit.yml`` from *repo_path*; empty dict if absent."""
    yml_path = Path(repo_path) / ".chainaudit.yml"
    if not yml_path.is_file():
        return {}

    logger.info("Loading .chainaudit.yml from %s", yml_path)
    with open(yml_path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    return flatten_profile(raw)

# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def build_unified_config(
    profile: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    repo_path: str = ".",
) -> Dict[str, Any]:
    """Build a fully-merged configuration dict.

    Layer precedence (last wins):
        1. Hard-coded defaults          (``get_default_config()``)
        2. Profile YAML                 (``load_profile()``)
        3. ``.chainaudit.yml``          (project-level overrides)
        4. Environment variables        (``load_env_overrides()``)
        5. Explicit overrides           (*overrides*)

    Parameters
    ----------
    profile:
        Explicit profile name.  If ``None``, the ``CHAINAUDIT_PROFILE`` env
        var is consulted.
    overrides:
        Flat dict of values supplied by the embedding application.
    repo_path:
        Directory searched for ``.chainaudit.yml``.
    """
    config = get_default_config()

    profile_name = profile or os.environ.get("CHAINAUDIT_PROFILE")
    if profile_name:
        try:
            config = deep_merge(config, load_profile(profile_name))
            logger.info("Applied profile '%s'", profile_name)
        except FileNotFoundError:
            logger.warning("Profile '%s' not found; skipping", profile_name)

    project_values = _load_project_yml(repo_path)
    if project_values:
        config = deep_merge(config, project_values)
        logger.info("Applied .chainaudit.yml overrides (%d keys)", len(project_values))

    env_overrides = load_env_overrides()
    if env_overrides:
        config = deep_merge(config, env_overrides)
        logger.debug("Applied %d env-var overrides", len(env_overrides))

    if overrides:
        config = deep_merge(config, overrides)
        logger.debug("Applied %d explicit overrides", len(overrides))

    return config


def list_available_profiles() -> List[str]:
    """Return the names of all available profiles."""
    names: set = set()
    search_dirs = [
        PACKAGE_ROOT / "profiles",
        Path.home() / ".chainaudit" / "profiles",
        Path(".chainaudit") / "profiles",
    ]
    for directory in search_dirs:
        if directory.is_dir():
            for yml_file in directory.glob("*.yml"):
                names.add(yml_file.stem)
    return sorted(names)

# ---------------------------------------------------------------------------
# Configuration validation
# ---------------------------------------------------------------------------

_VALID_AI_PROVIDERS = {"auto", "anthropic", "openai", "none"}


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Validate a configuration dict and return a list of warnings/errors.

    An empty list means the config is valid.
    """
    issues: List[str] = []

    provider = config.get("ai_provider", "auto")
    if provider not in _VALID_AI_PROVIDERS:
        issues.append(
            f"ERROR: ai_provider '{provider}' is not one of "
            f"{', '.join(sorted(_VALID_AI_PROVIDERS))}."
        )
    if provider == "anthropic" and not config.get("anthropic_api_key"):
        issues.append("ERROR: ai_provider is 'anthropic' but ANTHROPIC_API_KEY is not set.")
    if provider == "openai" and not config.get("openai_api_key"):
        issues.append("ERROR: ai_provider is 'openai' but OPENAI_API_KEY is not set.")

    if config.get("max_retry_attempts", 1) < 1:
        issues.append("ERROR: max_retry_attempts must be at least 1.")

    for key in (
        "platform_poll_interval",
        "platform_wait_timeout",
        "cross_platform_poll_interval",
        "cross_platform_wait_timeout",
    ):
        if config.get(key, 1) <= 0:
            issues.append(f"ERROR: {key} must be positive.")

    for key in ("run_job_concurrency", "platform_job_concurrency", "cross_platform_job_concurrency"):
        if config.get(key, 1) < 1:
            issues.append(f"ERROR: {key} must be at least 1.")

    risk = config.get("consistency_issue_risk", 0.7)
    threshold = config.get("consistency_risk_threshold", 0.5)
    if not 0.0 <= risk <= 1.0 or not 0.0 <= threshold <= 1.0:
        issues.append("ERROR: consistency risk values must be within [0, 1].")
    elif risk <= threshold:
        issues.append(
            "WARNING: consistency_issue_risk <= consistency_risk_threshold; "
            "no consistency issue will be surfaced as a potential inconsistency."
        )

    for key, value in config.items():
        if key.startswith("bridge_") and "_penalty_" in key and value < 0:
            issues.append(f"ERROR: {key} must not be negative.")

    return issues

# ================================================================
# File     : config.py
# Purpose  : Configuration management for GroupKennel
# Notes    : Handles initial creation, loading, env/CLI overrides and
#            validation of the assessment settings
# ================================================================

import copy
import pathlib
from typing import Any, Dict, Optional

from groupkennel.core.activity import DEFAULT_INACTIVE_DAYS
from groupkennel.core.utils import fncPrintMessage, fncEnsureFolder, fncReadJSON, fncWriteJSON, fncLoadEnv

DEFAULT_HOME = pathlib.Path.home() / ".groupkennel"
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.json"


# ================================================================
# Function: fncDefaultConfig
# Purpose : Return a default configuration dictionary
# Notes   : Written to disk when no config file exists yet
# ================================================================
def fncDefaultConfig() -> dict:
    return {
        "version": "1.0",
        "groupkennel_home": str(DEFAULT_HOME),
        "debug": False,
        "providers": {
            "entra": {
                "tenant_id": "",
                "client_id": "",
                "client_secret": "",
                "authority": "https://login.microsoftonline.com"
            }
        },
        "assessment": {
            "inactive_days_threshold": DEFAULT_INACTIVE_DAYS,
            "include_guests": False,
            "include_audit": True,
            "member_sample": True,
            "parallel": 1
        }
    }


def _merge_defaults(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Fill keys missing from an older config file with defaults."""
    merged = fncDefaultConfig()
    for key, val in (cfg or {}).items():
        if isinstance(val, dict) and isinstance(merged.get(key), dict):
            for sub_key, sub_val in val.items():
                if isinstance(sub_val, dict) and isinstance(merged[key].get(sub_key), dict):
                    merged[key][sub_key].update(sub_val)
                else:
                    merged[key][sub_key] = sub_val
        else:
            merged[key] = val
    return merged


# ================================================================
# Function: fncInitConfig
# Purpose : Create or load configuration file
# Notes   : Ensures base folder exists; returns full config dict
# ================================================================
def fncInitConfig(config_path: Optional[str] = None) -> dict:
    path = pathlib.Path(config_path or DEFAULT_CONFIG_PATH)
    fncEnsureFolder(path.parent)

    if not path.exists():
        fncPrintMessage(f"No config found at {path}. Creating default...", "warn")
        fncWriteJSON(str(path), fncDefaultConfig())
    return fncLoadConfig(str(path))


# ================================================================
# Function: fncLoadConfig
# Purpose : Load configuration file and apply environment overrides
# Notes   : GROUPKENNEL_TENANT_ID, _CLIENT_ID, _CLIENT_SECRET,
#           GROUPKENNEL_INACTIVE_DAYS
# ================================================================
def fncLoadConfig(config_path: str) -> dict:
    cfg = _merge_defaults(fncReadJSON(config_path))
    entra = cfg["providers"]["entra"]

    entra.update({
        "tenant_id": fncLoadEnv("GROUPKENNEL_TENANT_ID", entra.get("tenant_id")),
        "client_id": fncLoadEnv("GROUPKENNEL_CLIENT_ID", entra.get("client_id")),
        "client_secret": fncLoadEnv("GROUPKENNEL_CLIENT_SECRET", entra.get("client_secret")),
    })

    env_days = fncLoadEnv("GROUPKENNEL_INACTIVE_DAYS")
    if env_days:
        cfg["assessment"]["inactive_days_threshold"] = env_days

    fncPrintMessage(f"Loaded configuration from {config_path}", "debug")
    return cfg


# ================================================================
# Function: fncGetProviderConfig
# Purpose : Return config block for a specific provider
# ================================================================
def fncGetProviderConfig(cfg: dict, provider: str) -> dict:
    providers = cfg.get("providers", {})
    if provider not in providers:
        fncPrintMessage(f"Provider not found in config: {provider}", "warn")
        return {}
    return providers[provider]


# ================================================================
# Function: fncApplyCliOverrides
# Purpose : Apply command-line flags to the loaded config
# Notes   : Only flags the user actually passed override the file
# ================================================================
def fncApplyCliOverrides(cfg: dict, args) -> dict:
    cfg = copy.deepcopy(cfg)
    assessment = cfg.setdefault("assessment", {})

    if getattr(args, "debug", None):
        cfg["debug"] = True
    if getattr(args, "inactive_days", None) is not None:
        assessment["inactive_days_threshold"] = args.inactive_days
    if getattr(args, "include_guests", None):
        assessment["include_guests"] = True
    if getattr(args, "no_audit", None):
        assessment["include_audit"] = False
    if getattr(args, "no_member_sample", None):
        assessment["member_sample"] = False
    if getattr(args, "parallel", None) is not None:
        assessment["parallel"] = args.parallel
    return cfg


def _positive_int(value: Any, default: int, name: str) -> int:
    try:
        if isinstance(value, bool):
            raise ValueError
        as_int = int(value)
        if as_int <= 0 or str(as_int) != str(value).strip():
            raise ValueError
        return as_int
    except (TypeError, ValueError):
        fncPrintMessage(f"Invalid {name} {value!r}; using {default}.", "warn")
        return default


# ================================================================
# Function: fncGetAssessmentConfig
# Purpose : Validated assessment settings for modules
# Notes   : Bad thresholds fall back to defaults with a warning
# ================================================================
def fncGetAssessmentConfig(cfg: dict) -> Dict[str, Any]:
    raw = (cfg or {}).get("assessment") or {}
    defaults = fncDefaultConfig()["assessment"]
    return {
        "inactive_days_threshold": _positive_int(
            raw.get("inactive_days_threshold", defaults["inactive_days_threshold"]),
            defaults["inactive_days_threshold"], "inactive_days_threshold",
        ),
        "include_guests": bool(raw.get("include_guests", defaults["include_guests"])),
        "include_audit": bool(raw.get("include_audit", defaults["include_audit"])),
        "member_sample": bool(raw.get("member_sample", defaults["member_sample"])),
        "parallel": _positive_int(raw.get("parallel", defaults["parallel"]), defaults["parallel"], "parallel"),
    }


# ================================================================
# Function: fncIsDebug
# Purpose : Return whether debug mode is enabled in config
# ================================================================
def fncIsDebug(cfg: dict) -> bool:
    return bool(cfg.get("debug", False))

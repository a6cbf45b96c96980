import os
from pathlib import Path
import toml
from typing import Dict, Any, Optional


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    env_path = os.environ.get("SIGNSMITH_CONFIG")
    if env_path:
        return Path(env_path)
    return Path.home() / ".signsmith" / "config.toml"


def load_config() -> Dict[str, Any]:
    """Load configuration from TOML file."""
    config_path = get_config_path()
    if not config_path.exists():
        return {}

    try:
        return toml.load(config_path)
    except Exception as e:
        raise ValueError(f"Failed to load config {config_path}: {e}")


def get_setting(
    section: str, key: str, env_var: Optional[str] = None, default: Any = None
) -> Any:
    """Resolve a setting from the environment first, then the config file."""
    if env_var:
        env_value = os.environ.get(env_var)
        if env_value:
            return env_value

    value = load_config().get(section, {}).get(key)
    if value is None or value == "":
        return default
    return value


def get_keychain_name() -> str:
    return get_setting("signing", "keychain_name", "SIGNSMITH_KEYCHAIN_NAME", "login")


def get_keychain_password() -> Optional[str]:
    return get_setting("signing", "keychain_password", "SIGNSMITH_KEYCHAIN_PASSWORD")


def get_certificate_name() -> str:
    return get_setting("signing", "certificate_name", default="distribution")


def get_profiles_dir() -> Path:
    """Get the directory where provisioning profiles are installed."""
    profiles_dir = get_setting("signing", "profiles_dir", "SIGNSMITH_PROFILES_DIR")
    if profiles_dir:
        return Path(profiles_dir).expanduser()

    return Path.home() / "Library" / "MobileDevice" / "Provisioning Profiles"

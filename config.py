import os
import yaml

from config_schema import AppConfigSchema, validate_app_config

APP_VERSION = "1.0.0"


class YamlConfig:
    """Load and save application settings in a YAML file."""

    ENV_OVERRIDES = {
        "PROTOCOL_DB": "db_path",
        "LOG_LEVEL": "log_level",
    }

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        return data

    def save(self, data: dict) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(dict(data), f)


def load_config(path: str = "settings.yaml") -> AppConfigSchema:
    """Return the validated application config; environment variables win."""
    data = YamlConfig(path).load()
    for env, key in YamlConfig.ENV_OVERRIDES.items():
        value = os.environ.get(env)
        if value:
            data[key] = value
    return validate_app_config(data)

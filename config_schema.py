from pydantic import BaseModel, Field, ValidationError, field_validator

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class AppConfigSchema(BaseModel):
    db_path: str = "protocols.db"
    reminder_delay: float = Field(default=1.0, ge=0)
    notification_icon: str = "/icon-192x192.png"
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {value}")
        return level


def validate_app_config(data: dict) -> AppConfigSchema:
    try:
        return AppConfigSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))

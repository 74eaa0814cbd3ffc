from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

from driver_alerts.exceptions import ConfigError

class AppSettings(BaseSettings):
    name: str = "Driver Alerts"
    version: str = "1.0.0"

class PathSettings(BaseSettings):
    db_path: Path = Path("./data/driver_alerts.db")
    headers_path: Path = Path("./config/headers.yaml")


class ImportSettings(BaseSettings):
    header_scan_rows: int = 30
    header_min_matches: int = 3
    blank_row_run: int = 3  # consecutive blank rows closing a section
    max_sub_header_rows: int = 2
    auto_create_vehicles: bool = True
    skip_duplicate_files: bool = True
    template_profile: str = "sysweb"


class TemplateProfile(BaseModel):
    """
    Column offsets used only when a compound header's fine sub-labels cannot be found.
    Offsets are relative to the coarse "movements" header column.
    """
    check_in_offset: int = 0
    check_out_offset: int = 4
    sub_header_rows: int = 1

class LoggingSettings(BaseSettings):
    level: str = "INFO"

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_nested_delimiter="__", env_file=".env", extra="ignore")
    app: AppSettings = AppSettings()
    paths: PathSettings = PathSettings()
    imports: ImportSettings = ImportSettings()
    templates: dict[str, TemplateProfile] = {"sysweb": TemplateProfile()}
    logging: LoggingSettings = LoggingSettings()

    def template(self, name: Optional[str] = None) -> TemplateProfile:
        key = name or self.imports.template_profile
        profile = self.templates.get(key)
        if profile is None:
            raise ConfigError(f"Unknown template profile '{key}'")
        return profile

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        # Load from default path if exists
        default_path = Path("config/settings.yaml")
        path = config_path or (default_path if default_path.exists() else None)

        if not path:
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
            return cls(**config_data)
        except (OSError, yaml.YAMLError, ValidationError) as exc:
            raise ConfigError(f"Invalid settings file {path}: {exc}") from exc

settings = Settings.load()

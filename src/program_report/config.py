"""Configuration management for Program Report."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import tomli_w

DEFAULT_CACHE_TTL_SECONDS = 300


@dataclass(frozen=True)
class FieldConfig:
    """Custom field IDs for the Jira instance being reported on."""

    story_points: str = "customfield_10005"
    sprint: str = "customfield_10007"
    epic_start: str = "customfield_11535"
    epic_end: str = "customfield_11728"

    def search_fields(self) -> list[str]:
        """Field projection requested on every issue search."""
        return [
            "summary",
            "description",
            "status",
            "issuetype",
            "assignee",
            "duedate",
            "created",
            "parent",
            "issuelinks",
            self.story_points,
            self.sprint,
            self.epic_start,
            self.epic_end,
        ]


@dataclass
class Config:
    """Configuration for the Jira connection, field mapping and report cache."""

    jira_url: str
    jira_email: str
    jira_api_token: str
    fields: FieldConfig = field(default_factory=FieldConfig)
    cache_dir: Path | None = None
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS

    def validate(self) -> list[str]:
        """Validate configuration values. Returns list of error messages."""
        errors: list[str] = []

        if not self.jira_url:
            errors.append("JIRA URL is required")
        else:
            parsed = urlparse(self.jira_url)
            if parsed.scheme not in ("http", "https"):
                errors.append("JIRA URL must start with http:// or https://")
            if not parsed.netloc:
                errors.append("JIRA URL must include a domain")

        if not self.jira_email:
            errors.append("JIRA email is required")
        elif "@" not in self.jira_email:
            errors.append("JIRA email must be a valid email address")

        if not self.jira_api_token:
            errors.append("JIRA API token is required")

        if not isinstance(self.cache_ttl_seconds, int) or isinstance(self.cache_ttl_seconds, bool):
            errors.append("Cache TTL must be a whole number of seconds")
        elif self.cache_ttl_seconds <= 0:
            errors.append("Cache TTL must be a positive number of seconds")

        return errors


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    return Path.home() / ".program-report"


def get_config_path() -> Path:
    """Get the configuration file path."""
    return get_config_dir() / "config.toml"


def get_default_cache_dir() -> Path:
    return get_config_dir() / "cache"


def config_exists() -> bool:
    """Check if configuration file exists."""
    return get_config_path().exists()


def load_config() -> Config:
    """Load configuration from TOML file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
    """
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration not found at {config_path}. "
            "Create ~/.program-report/config.toml to set up."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    jira_section = data.get("jira", {})
    fields_section = data.get("fields", {})
    cache_section = data.get("cache", {})

    defaults = FieldConfig()
    fields = FieldConfig(
        story_points=fields_section.get("story_points", defaults.story_points),
        sprint=fields_section.get("sprint", defaults.sprint),
        epic_start=fields_section.get("epic_start", defaults.epic_start),
        epic_end=fields_section.get("epic_end", defaults.epic_end),
    )

    cache_dir = cache_section.get("directory")

    config = Config(
        jira_url=jira_section.get("url", ""),
        jira_email=jira_section.get("email", ""),
        jira_api_token=jira_section.get("api_token", ""),
        fields=fields,
        cache_dir=Path(cache_dir).expanduser() if cache_dir else None,
        cache_ttl_seconds=cache_section.get("ttl_seconds", DEFAULT_CACHE_TTL_SECONDS),
    )

    errors = config.validate()
    if errors:
        raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

    return config


def save_config(config: Config) -> None:
    """Save configuration to TOML file."""
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)

    config_path = get_config_path()

    data: dict = {
        "jira": {
            "url": config.jira_url,
            "email": config.jira_email,
            "api_token": config.jira_api_token,
        },
        "fields": {
            "story_points": config.fields.story_points,
            "sprint": config.fields.sprint,
            "epic_start": config.fields.epic_start,
            "epic_end": config.fields.epic_end,
        },
    }

    cache_data: dict = {"ttl_seconds": config.cache_ttl_seconds}
    if config.cache_dir:
        cache_data["directory"] = str(config.cache_dir)
    data["cache"] = cache_data

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)

"""Public operations: program search and cached report retrieval."""

from datetime import timedelta

from program_report.cache import FileStore, ReportCache
from program_report.config import Config, config_exists, get_default_cache_dir, load_config
from program_report.exceptions import ConfigNotFoundError, InvalidConfigError
from program_report.jira_client import JiraClient
from program_report.models import CachedReport, ProgramOption
from program_report.report import build_program_report, report_to_dict, search_programs


def load_service_config() -> Config:
    """Load configuration, raising report errors instead of I/O errors.

    Raises:
        ConfigNotFoundError: If config file not found
        InvalidConfigError: If config is invalid
    """
    if not config_exists():
        raise ConfigNotFoundError(
            "Configuration not found. Create ~/.program-report/config.toml to set up."
        )
    try:
        return load_config()
    except ValueError as e:
        raise InvalidConfigError(f"Invalid configuration: {e}") from e


def build_report_cache(config: Config, client=None, store=None) -> ReportCache:
    """Wire a ReportCache to a Jira client and the configured store."""
    client = client or JiraClient(config)
    store = store or FileStore(config.cache_dir or get_default_cache_dir())
    return ReportCache(
        store,
        lambda program_key: build_program_report(client, program_key, config.fields),
        ttl=timedelta(seconds=config.cache_ttl_seconds),
    )


def search_programs_for_query(query: str) -> list[ProgramOption]:
    """Find issues that could be programs, by key or summary."""
    query = (query or "").strip()
    if len(query) < 2:
        return []
    config = load_service_config()
    return search_programs(JiraClient(config), query)


def get_program_report(program_key: str, force_refresh: bool = False) -> CachedReport:
    """Return the program report, from cache when fresh enough."""
    config = load_service_config()
    return build_report_cache(config).get(program_key.strip(), force_refresh=force_refresh)


def cached_report_to_dict(cached: CachedReport) -> dict:
    """Report dict annotated with ``fromCache`` and ``cacheAge`` (milliseconds)."""
    data = report_to_dict(cached.report)
    data["fromCache"] = cached.from_cache
    data["cacheAge"] = (
        int(cached.cache_age.total_seconds() * 1000) if cached.cache_age is not None else None
    )
    return data

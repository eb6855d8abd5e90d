"""
Configuration management for the Tender Harvester.
"""

import os
import re
from enum import Enum
from pathlib import Path
from string import Formatter
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

# Fields a portal adapter may populate during the list or detail phase.
LIST_FIELDS = (
    "title", "agency", "region", "project_reference", "created_at",
    "listing_expiry_date", "status", "category", "city",
)
DETAIL_FIELDS = LIST_FIELDS + (
    "buyer_organization", "detailed_description", "contact_person",
    "contact_email", "contact_phone", "project_type", "agreement_type",
)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "data" / "default.yaml"

DEFAULT_LOGIN_MARKERS = [
    "login required",
    "must login to your account",
    "please log in to view",
    "sign in to view",
]


class AppConfig(BaseModel):
    """Application configuration."""
    name: str = "Tender Harvester"
    version: str = "0.1.0"
    environment: str = Field(default_factory=lambda: os.getenv("APP_ENVIRONMENT", "development"))

    @field_validator("environment", mode="before")
    @classmethod
    def get_environment_from_env(cls, v):
        if v is None:
            return os.getenv("APP_ENVIRONMENT", "development")
        return v


class ScrapingConfig(BaseModel):
    """Page driver timing and pacing settings. Durations are in seconds."""
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    viewport_width: int = 1920
    viewport_height: int = 1080
    navigation_timeout: float = 120.0
    list_timeout: float = 60.0
    detail_timeout: float = 60.0
    back_timeout: float = 30.0
    optional_step_timeout: float = 5.0
    poll_interval: float = 0.5
    settle_delay: float = 2.0
    scroll_step: int = 400
    scroll_max_rounds: int = 25
    request_delay: float = 1.0
    debug_slowdown: float = 3.0


class BudgetConfig(BaseModel):
    """Item budget and deadline settings for a run."""
    min_per_target: int = 5
    target_timeout: float = 900.0
    run_timeout: float = 3600.0


class WebhookConfig(BaseModel):
    """Batch delivery settings."""
    batch_size: int = 10
    batch_delay: float = 1.0
    signature_header: str = "x-apify-signature"
    request_timeout: float = 30.0
    response_snippet_length: int = 500
    secret: str = Field(default_factory=lambda: os.getenv("WEBHOOK_SECRET", ""))

    @field_validator("batch_size")
    @classmethod
    def check_batch_size(cls, v):
        if v < 1:
            raise ValueError("batch_size must be at least 1")
        return v


class StorageConfig(BaseModel):
    """Local dataset and key-value store locations."""
    base_dir: str = Field(default_factory=lambda: os.getenv("HARVESTER_STORAGE_DIR", "storage"))
    dataset: str = "default"
    key_value_store: str = "default"
    input_key: str = "INPUT"
    output_key: str = "OUTPUT"

    @field_validator("base_dir", mode="before")
    @classmethod
    def get_base_dir_from_env(cls, v):
        env_dir = os.getenv("HARVESTER_STORAGE_DIR")
        if env_dir:
            return env_dir
        return v or "storage"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = "text"
    file: Optional[str] = None


class PaginationStrategy(str, Enum):
    """How a portal exposes more results than fit on one page."""
    NEXT_BUTTON = "next_button"
    SCROLL = "scroll"
    NONE = "none"


class PaginationConfig(BaseModel):
    """Pagination settings for a portal adapter."""
    strategy: PaginationStrategy = PaginationStrategy.NONE
    next_selector: Optional[str] = None
    wait_for_navigation: bool = True
    max_pages: int = 0

    @field_validator("next_selector")
    @classmethod
    def strip_selector(cls, v):
        return v.strip() if v else v


class LabelValuePair(BaseModel):
    """A label/value block layout on a detail page (e.g. ``.field > .label + .value``)."""
    container: str
    label: str
    value: str


class EntryStep(BaseModel):
    """A control clicked between loading a portal's entry page and its result list."""
    selector: str
    optional: bool = False
    wait_for_navigation: bool = True


class PortalTarget(BaseModel):
    """One portal or portal tenant to crawl."""
    key: str
    label: str
    list_url: str
    region_hint: str = ""
    city_hint: str = ""
    agency_hint: str = ""
    adapter: str = ""


class AdapterConfig(BaseModel):
    """Selectors and strategies for one portal family."""
    label: str
    targets: List[PortalTarget] = Field(default_factory=list)
    family_domains: List[str] = Field(default_factory=list)
    listing_path: str = "/"
    request_delay: Optional[float] = None

    # List phase
    entry_steps: List[EntryStep] = Field(default_factory=list)
    list_ready_selectors: List[str] = Field(default_factory=lambda: ["table tbody tr"])
    row_selector: str = "table tbody tr"
    min_cells: int = 0
    columns: Dict[str, int] = Field(default_factory=dict)
    field_selectors: Dict[str, str] = Field(default_factory=dict)
    title_selector: Optional[str] = None
    link_selector: str = "a[href]"
    link_in_next_row: bool = False
    reference_pattern: Optional[str] = None
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)

    # Detail phase
    follow_details: bool = True
    detail_url_template: Optional[str] = None
    row_click_selector: Optional[str] = None
    row_click_navigates: bool = True
    detail_frame_selector: Optional[str] = None
    detail_ready_selectors: List[str] = Field(default_factory=lambda: ["body"])
    detail_labels: Dict[str, List[str]] = Field(default_factory=dict)
    detail_selectors: Dict[str, str] = Field(default_factory=dict)
    label_value_pairs: List[LabelValuePair] = Field(default_factory=list)
    description_selectors: List[str] = Field(default_factory=list)
    contact_selectors: List[str] = Field(default_factory=list)
    login_markers: List[str] = Field(default_factory=lambda: list(DEFAULT_LOGIN_MARKERS))

    @field_validator("columns", "field_selectors")
    @classmethod
    def check_list_fields(cls, v):
        unknown = set(v) - set(LIST_FIELDS)
        if unknown:
            raise ValueError(f"Unknown list fields: {sorted(unknown)}")
        return v

    @field_validator("detail_labels", "detail_selectors")
    @classmethod
    def check_detail_fields(cls, v):
        unknown = set(v) - set(DETAIL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown detail fields: {sorted(unknown)}")
        return v

    @field_validator("detail_url_template", "row_click_selector")
    @classmethod
    def check_row_template(cls, v):
        if v:
            try:
                names = {name for _, name, _, _ in Formatter().parse(v) if name}
            except ValueError as e:
                raise ValueError(f"Invalid row template {v!r}: {e}")
            unknown = names - set(LIST_FIELDS)
            if unknown:
                raise ValueError(f"Unknown row fields in template: {sorted(unknown)}")
        return v

    @field_validator("reference_pattern")
    @classmethod
    def check_reference_pattern(cls, v):
        if v:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid reference_pattern: {e}")
        return v


class Config(BaseModel):
    """Main configuration class."""
    app: AppConfig = Field(default_factory=AppConfig)
    scraping: ScrapingConfig = Field(default_factory=ScrapingConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    adapters: Dict[str, AdapterConfig] = Field(default_factory=dict)


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to configuration file. If None, uses default location.

    Returns:
        Config object with all settings.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    return Config(**config_data)


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Config object with all settings.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Optional[str] = None) -> Config:
    """
    Reload configuration from file.

    Args:
        config_path: Path to configuration file. If None, uses default location.

    Returns:
        Updated Config object.
    """
    global _config
    _config = load_config(config_path)
    return _config

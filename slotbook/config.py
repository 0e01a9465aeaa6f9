"""
Configuration management using Pydantic models loaded from YAML.
"""

from enum import Enum
from pathlib import Path
from typing import List, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import AvailabilityRule, Credential, Principal, Role, parse_clock


class BusyReadPolicy(str, Enum):
    """What slot queries do when the seller's calendar cannot be read."""
    FAIL_OPEN = "fail_open"  # offer slots as if the seller were free
    FAIL_CLOSED = "fail_closed"  # offer no slots


class GoogleSettings(BaseModel):
    """OAuth client used to refresh Google Calendar credentials."""
    client_id: str = ""
    client_secret: str = ""


class GraphSettings(BaseModel):
    """Azure AD application used to refresh Microsoft Graph credentials."""
    client_id: str = ""
    tenant_id: str = "common"
    client_secret: str = ""

    def get_authority_url(self) -> str:
        """Get the formatted authority URL."""
        return f"https://login.microsoftonline.com/{self.tenant_id}"


class CalendarLink(BaseModel):
    """Calendar credential seeded for a user."""
    provider: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[str] = None

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, value: str) -> str:
        value = value.lower()
        if value not in ("google", "graph", "mock"):
            raise ValueError(f"Unknown calendar provider '{value}'")
        return value

    def to_credential(self) -> Credential:
        return Credential(
            provider=self.provider,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=pendulum.parse(self.expires_at) if self.expires_at else None,
        )


class UserConfig(BaseModel):
    """User known to the identity collaborator."""
    id: str
    name: str
    email: str
    role: Role
    api_token: Optional[str] = None
    calendar: Optional[CalendarLink] = None

    def to_principal(self) -> Principal:
        return Principal(
            id=self.id,
            role=self.role,
            email=self.email.lower(),
            name=self.name,
            calendar_connected=self.calendar is not None,
        )


class AvailabilityConfig(BaseModel):
    """One weekly availability entry."""
    seller_id: str
    day_of_week: int
    start_time: str
    end_time: str
    active: bool = True

    @field_validator("day_of_week")
    @classmethod
    def validate_day(cls, value: int) -> int:
        if value not in range(7):
            raise ValueError(f"day_of_week must be between 0 and 6, got {value}")
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, value: str) -> str:
        parse_clock(value)
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "AvailabilityConfig":
        """Ensure the window opens before it closes."""
        if parse_clock(self.start_time) >= parse_clock(self.end_time):
            raise ValueError("end_time must be later than start_time")
        return self

    def to_rule(self) -> AvailabilityRule:
        return AvailabilityRule(
            seller_id=self.seller_id,
            day_of_week=self.day_of_week,
            start_time=self.start_time,
            end_time=self.end_time,
            active=self.active,
        )


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    slot_duration_minutes: int = 60
    gateway_timeout_seconds: float = 10.0
    busy_read_policy: BusyReadPolicy = BusyReadPolicy.FAIL_OPEN
    prevent_double_booking: bool = False
    data_dir: Optional[Path] = None
    log_level: str = "INFO"
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    graph: GraphSettings = Field(default_factory=GraphSettings)
    users: List[UserConfig] = Field(default_factory=list)
    availability: List[AvailabilityConfig] = Field(default_factory=list)

    @field_validator("slot_duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure slot duration is positive."""
        if value <= 0:
            raise ValueError("slot_duration_minutes must be greater than zero")
        return value

    @field_validator("gateway_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("gateway_timeout_seconds must be greater than zero")
        return value

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level '{value}'")
        return value

    @field_validator("users")
    @classmethod
    def validate_users(cls, value: List[UserConfig]) -> List[UserConfig]:
        """Ensure user ids, emails and api tokens are unique."""
        seen_ids: set[str] = set()
        seen_emails: set[str] = set()
        seen_tokens: set[str] = set()
        for user in value:
            email_key = user.email.lower()
            if user.id in seen_ids:
                raise ValueError(f"Duplicate user id detected: {user.id}")
            if email_key in seen_emails:
                raise ValueError(f"Duplicate user email detected: {user.email}")
            if user.api_token:
                if user.api_token in seen_tokens:
                    raise ValueError(f"Duplicate api token for user {user.id}")
                seen_tokens.add(user.api_token)
            seen_ids.add(user.id)
            seen_emails.add(email_key)
        return value

    @model_validator(mode="after")
    def validate_availability(self) -> "AppConfig":
        """Ensure rules reference sellers and there is one rule per seller and day."""
        roles = {user.id: user.role for user in self.users}
        seen: set[tuple[str, int]] = set()
        for entry in self.availability:
            if roles.get(entry.seller_id) != Role.SELLER:
                raise ValueError(f"Availability references unknown seller '{entry.seller_id}'")
            key = (entry.seller_id, entry.day_of_week)
            if key in seen:
                raise ValueError(
                    f"Duplicate availability for seller {entry.seller_id} on day {entry.day_of_week}"
                )
            seen.add(key)
        return self

    def appointments_file(self) -> Optional[Path]:
        return self.data_dir / "appointments.json" if self.data_dir else None

    def credentials_file(self) -> Path:
        base = self.data_dir or Path.home()
        return base / ".slotbook_credentials.json"

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path

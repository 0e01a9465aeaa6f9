"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from slotbook.config import AppConfig, BusyReadPolicy, CalendarLink
from slotbook.domain.models import Role

CONFIG_YAML = """
timezone: Europe/Berlin
slot_duration_minutes: 30
busy_read_policy: fail_closed
users:
  - id: alice
    name: Alice
    email: Alice@Example.com
    role: seller
    api_token: alice-token
    calendar:
      provider: Google
      refresh_token: r
      expires_at: "2024-11-25T10:00:00Z"
  - id: bob
    name: Bob
    email: bob@example.com
    role: buyer
availability:
  - {seller_id: alice, day_of_week: 1, start_time: "09:00", end_time: "17:00"}
"""


def _users():
    return [
        {"id": "alice", "name": "Alice", "email": "a@example.com", "role": "seller"},
        {"id": "bob", "name": "Bob", "email": "b@example.com", "role": "buyer"},
    ]


class TestLoadFromYaml:
    def test_load(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(CONFIG_YAML, encoding="utf-8")

        config = AppConfig.load_from_yaml(config_file)

        assert config.timezone == "Europe/Berlin"
        assert config.slot_duration_minutes == 30
        assert config.busy_read_policy == BusyReadPolicy.FAIL_CLOSED
        assert config.prevent_double_booking is False
        assert config.users[0].calendar.provider == "google"
        assert config.availability[0].to_rule().day_of_week == 1

    def test_principals_from_users(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(CONFIG_YAML, encoding="utf-8")

        config = AppConfig.load_from_yaml(config_file)
        alice, bob = (user.to_principal() for user in config.users)

        assert alice.role == Role.SELLER
        assert alice.email == "alice@example.com"
        assert alice.calendar_connected
        assert not bob.calendar_connected

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AppConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("users: [unclosed", encoding="utf-8")

        with pytest.raises(ValueError):
            AppConfig.load_from_yaml(config_file)

    def test_non_mapping_root(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError, match="mapping"):
            AppConfig.load_from_yaml(config_file)


class TestValidation:
    def test_defaults(self):
        config = AppConfig()

        assert config.timezone == "UTC"
        assert config.slot_duration_minutes == 60
        assert config.busy_read_policy == BusyReadPolicy.FAIL_OPEN
        assert config.appointments_file() is None

    def test_data_dir_files(self):
        config = AppConfig(data_dir=Path("/tmp/slotbook"))

        assert config.appointments_file() == Path("/tmp/slotbook/appointments.json")
        assert config.credentials_file() == Path("/tmp/slotbook/.slotbook_credentials.json")

    @pytest.mark.parametrize("field,value", [
        ("slot_duration_minutes", 0),
        ("gateway_timeout_seconds", -1),
        ("timezone", "Mars/Olympus"),
        ("log_level", "LOUD"),
        ("busy_read_policy", "maybe"),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            AppConfig(**{field: value})

    def test_duplicate_user_ids(self):
        users = _users()
        users[1]["id"] = "alice"

        with pytest.raises(ValidationError, match="Duplicate user id"):
            AppConfig(users=users)

    def test_availability_must_reference_seller(self):
        with pytest.raises(ValidationError, match="unknown seller"):
            AppConfig(
                users=_users(),
                availability=[{"seller_id": "bob", "day_of_week": 1, "start_time": "09:00", "end_time": "17:00"}],
            )

    def test_one_rule_per_seller_and_day(self):
        entry = {"seller_id": "alice", "day_of_week": 1, "start_time": "09:00", "end_time": "17:00"}

        with pytest.raises(ValidationError, match="Duplicate availability"):
            AppConfig(users=_users(), availability=[entry, dict(entry)])

    @pytest.mark.parametrize("start,end", [("17:00", "09:00"), ("9am", "17:00"), ("09:00", "24:00")])
    def test_invalid_availability_window(self, start, end):
        with pytest.raises(ValidationError):
            AppConfig(
                users=_users(),
                availability=[{"seller_id": "alice", "day_of_week": 1, "start_time": start, "end_time": end}],
            )

    def test_unknown_calendar_provider(self):
        with pytest.raises(ValidationError):
            CalendarLink(provider="caldav")

"""Tests for settings loading and validation."""

from uuid import UUID

import pytest
from pydantic import ValidationError

from registrar.core.config import Settings


class TestSettingsDefaults:
    def test_defaults(self):
        config = Settings(_env_file=None)

        assert config.SLA_HOURS_NORMAL == 120
        assert config.SLA_HOURS_URGENT == 24
        assert config.AUTO_APPROVE_THRESHOLD == 1
        assert config.AUTO_APPROVER_ID == UUID(int=0)
        assert config.WAITLIST_MAX_LENGTH is None
        assert config.ESCALATION_ENABLED is True
        assert config.ALLOCATION_MAX_WORKERS == 1

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SLA_HOURS_URGENT", "12")
        monkeypatch.setenv("WAITLIST_MAX_LENGTH", "5")
        monkeypatch.setenv("LOG_FORMAT", "json")

        config = Settings(_env_file=None)

        assert config.SLA_HOURS_URGENT == 12
        assert config.WAITLIST_MAX_LENGTH == 5
        assert config.LOG_FORMAT == "json"

    def test_empty_environment_value_is_ignored(self, monkeypatch):
        monkeypatch.setenv("SLA_HOURS_NORMAL", "")

        assert Settings(_env_file=None).SLA_HOURS_NORMAL == 120


class TestSettingsValidation:
    def test_urgent_sla_cannot_exceed_normal(self):
        with pytest.raises(ValidationError, match="SLA_HOURS_URGENT"):
            Settings(_env_file=None, SLA_HOURS_NORMAL=24, SLA_HOURS_URGENT=48)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("SLA_HOURS_NORMAL", 0),
            ("PREFERENCE_RANK_WEIGHT", -1.0),
            ("WAITLIST_MAX_LENGTH", -1),
            ("ALLOCATION_MAX_WORKERS", 0),
        ],
    )
    def test_rejects_out_of_range_values(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})


class TestSlaHours:
    def test_urgent_priority_uses_urgent_window(self):
        config = Settings(_env_file=None, URGENT_PRIORITY_LEVEL=2)

        assert config.sla_hours_for(0) == config.SLA_HOURS_NORMAL
        assert config.sla_hours_for(1) == config.SLA_HOURS_NORMAL
        assert config.sla_hours_for(2) == config.SLA_HOURS_URGENT
        assert config.sla_hours_for(5) == config.SLA_HOURS_URGENT

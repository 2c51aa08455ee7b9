from typing import Literal
from uuid import UUID

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )
    PROJECT_NAME: str = "registrar"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    # Observability Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "console"

    # Schedule change SLA, in hours from submission
    # 24 hours * 5 days, the default overdue cutoff of the registrar office
    SLA_HOURS_NORMAL: int = Field(default=24 * 5, gt=0)
    SLA_HOURS_URGENT: int = Field(default=24, gt=0)
    URGENT_PRIORITY_LEVEL: int = 2

    # Approval policy
    AUTO_APPROVE_ENABLED: bool = True
    AUTO_APPROVE_THRESHOLD: int = 1
    AUTO_APPROVER_ID: UUID = UUID(int=0)

    # Escalation
    ESCALATION_ENABLED: bool = True
    ESCALATION_TARGET: str = "registrar-office"

    # Waitlists (None = unbounded)
    WAITLIST_MAX_LENGTH: int | None = Field(default=None, ge=0)
    WAITLIST_CRITICAL_PERCENT: float = Field(default=90.0, gt=0, le=100)

    # Admission priority weights
    PREFERENCE_RANK_WEIGHT: float = Field(default=100.0, ge=0)
    PRIORITY_SCORE_WEIGHT: float = Field(default=1.0, ge=0)

    # Sections are independent, so allocation may fan out across threads
    ALLOCATION_MAX_WORKERS: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _check_sla_ordering(self) -> Self:
        if self.SLA_HOURS_URGENT > self.SLA_HOURS_NORMAL:
            raise ValueError(
                "SLA_HOURS_URGENT must not exceed SLA_HOURS_NORMAL "
                f"({self.SLA_HOURS_URGENT} > {self.SLA_HOURS_NORMAL})"
            )
        return self

    def sla_hours_for(self, priority_level: int) -> int:
        """SLA window for a change request of the given priority level."""
        if priority_level >= self.URGENT_PRIORITY_LEVEL:
            return self.SLA_HOURS_URGENT
        return self.SLA_HOURS_NORMAL


settings = Settings()

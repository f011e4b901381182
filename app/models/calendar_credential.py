from datetime import UTC, datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _naive_utc(dt: datetime) -> datetime:
    """For TIMESTAMP WITHOUT TIME ZONE: store as naive UTC."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.replace(tzinfo=None)


class CalendarCredential(SQLModel, table=True):
    __tablename__ = "calendar_credentials"
    id: int | None = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="accounts.id", unique=True, index=True)
    access_token: str
    refresh_token: str
    # Plain DateTime columns: values are naive UTC (TIMESTAMP WITHOUT TIME ZONE)
    token_expires_at: datetime = Field(sa_column=Column(DateTime(), nullable=False))
    created_at: datetime = Field(
        default_factory=_utc_naive_now, sa_column=Column(DateTime(), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=_utc_naive_now, sa_column=Column(DateTime(), nullable=False)
    )

    def model_post_init(self, __context: object) -> None:
        """Ensure token_expires_at is naive UTC for asyncpg TIMESTAMP WITHOUT TIME ZONE."""
        if self.token_expires_at is not None:
            self.token_expires_at = _naive_utc(self.token_expires_at)

    def __repr__(self) -> str:
        # Tokens stay out of logs and tracebacks
        return (
            f"CalendarCredential(account_id={self.account_id!r}, "
            f"token_expires_at={self.token_expires_at!r})"
        )


class CalendarStatus(SQLModel):
    connected: bool
    token_expires_at: datetime | None = None

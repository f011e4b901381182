from sqlmodel import Field, SQLModel


class Account(SQLModel, table=True):
    """Clinic tenant. Rows are owned by the auth system; this service only reads them."""

    __tablename__ = "accounts"
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    full_name: str | None = None
    timezone: str | None = None  # IANA zone; falls back to settings.calendar_timezone

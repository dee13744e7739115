from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel


class Service(SQLModel, table=True):
    __tablename__ = "services"
    __table_args__ = (CheckConstraint("duration_minutes > 0", name="ck_services_duration_positive"),)
    id: int | None = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="providers.id", index=True)
    name: str
    description: str | None = None
    duration_minutes: int
    price_cents: int | None = None
    is_active: bool = True


class ServicePublic(SQLModel):
    id: int
    name: str
    description: str | None = None
    duration_minutes: int
    price_cents: int | None = None

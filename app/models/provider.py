from sqlmodel import Field, SQLModel


class ProviderBase(SQLModel):
    full_name: str
    slug: str = Field(unique=True, index=True, max_length=100)
    title: str | None = None
    bio: str | None = None
    timezone: str = "UTC"  # IANA name; availability rules are wall-clock in this zone
    accept_online_booking: bool = True
    public_profile_enabled: bool = True
    is_active: bool = True


class Provider(ProviderBase, table=True):
    __tablename__ = "providers"
    id: int | None = Field(default=None, primary_key=True)

    @property
    def is_publicly_bookable(self) -> bool:
        return self.is_active and self.accept_online_booking and self.public_profile_enabled


class ProviderPublic(SQLModel):
    id: int
    full_name: str
    title: str | None = None
    bio: str | None = None
    timezone: str

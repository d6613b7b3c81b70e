import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class ListingStatus(str, enum.Enum):
    """Lifecycle of a listing after it was submitted from the bot."""

    PENDING_REVIEW = "pending_review"
    PUBLISHED = "published"
    SOLD = "sold"


class Base(DeclarativeBase):
    """
    Base class of all models.
    Carries the common id, created_at and updated_at columns.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class User(Base):
    __tablename__ = "users"

    telegram_id: Mapped[int] = mapped_column(
        BigInteger, unique=True, index=True, nullable=False
    )
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, telegram_id={self.telegram_id}, username='{self.username}')>"


class Property(Base):
    """A property listing, either submitted from the bot or imported."""

    __tablename__ = "properties"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    property_type: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[float] = mapped_column(Float, index=True, nullable=False)
    beds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    baths: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sqft: Mapped[float] = mapped_column(Float, nullable=False)

    address: Mapped[str] = mapped_column(String(512), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    owner_telegram_id: Mapped[int | None] = mapped_column(BigInteger, index=True, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ListingStatus.PENDING_REVIEW.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    images: Mapped[list["PropertyImage"]] = relationship(
        back_populates="property",
        cascade="all, delete-orphan",
        order_by="PropertyImage.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, title='{self.title}', price={self.price})>"


class PropertyImage(Base):
    __tablename__ = "property_images"

    property_id: Mapped[int] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"), index=True, nullable=False
    )
    file_id: Mapped[str] = mapped_column(String(255), nullable=False)  # Telegram file reference
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    property: Mapped[Property] = relationship(back_populates="images")


class SavedProperty(Base):
    __tablename__ = "saved_properties"
    __table_args__ = (UniqueConstraint("user_telegram_id", "property_id", name="uq_saved_property"),)

    user_telegram_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    property_id: Mapped[int] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"), index=True, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SavedProperty(user={self.user_telegram_id}, property={self.property_id})>"


class MapRequest(Base):
    """Short-lived link between a map URL token and the map payload it shows."""

    __tablename__ = "map_requests"

    request_token: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    user_telegram_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    map_data_json: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<MapRequest(id={self.id}, user_id={self.user_telegram_id}, "
            f"token='{self.request_token[:8]}...', expires_at='{self.expires_at}')>"
        )

"""User model — guests, hosts, drivers and operators."""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stayride.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

USER_ROLES = {"guest", "host", "driver", "admin"}


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Marketplace account. Credentials live with the identity service."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    role: Mapped[str] = mapped_column(String(50), default="guest", nullable=False)  # guest, host, driver, admin

    # Referral programme
    referral_code: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    referred_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    referral_rewards: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    referral_rewarded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String
from mediahub.core.base import Base, TimestampedMixin

class User(Base, TimestampedMixin):
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(50), unique=True)

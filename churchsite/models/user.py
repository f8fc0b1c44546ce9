import enum

from sqlalchemy import Column, DateTime, Enum, Integer, String

from churchsite.database import Base
from churchsite.utils.timeutils import utcnow


class RoleEnum(str, enum.Enum):
    user = "user"
    admin = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, index=True)
    email = Column(String, unique=True, nullable=False)
    role = Column(Enum(RoleEnum), default=RoleEnum.user, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == RoleEnum.admin

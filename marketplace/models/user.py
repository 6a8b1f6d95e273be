from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String
from sqlalchemy.sql import func

from marketplace.core.database import Base

# Roles
ROLE_USER = "user"  # default, has never bought a course
ROLE_LEARNER = "learner"
ROLE_TUTOR = "tutor"
ROLE_ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(120), unique=True, index=True, nullable=False)
    full_name = Column(String(100), nullable=False)

    # Account status
    is_active = Column(Boolean, default=True, nullable=False)
    role = Column(String(20), default=ROLE_USER, nullable=False)

    # Tutor wallet, credited on settlement
    wallet_balance = Column(Numeric(14, 2), nullable=False, default=0)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"User(id={self.id}, email={self.email}, role={self.role})"

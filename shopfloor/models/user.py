from sqlalchemy import Column, Integer, String, DateTime, Boolean

from shopfloor.db import Base
from shopfloor.utils.timeutil import utcnow


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(String(16), nullable=False, default="employee")  # admin|employee
    api_key_hash = Column(String(128), unique=True, nullable=True)  # sha256 of the bearer token
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

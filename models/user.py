from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    telegram_id = Column(Integer, unique=True, index=True, nullable=True)
    name = Column(String, nullable=False)
    registered = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class Clip(Base):
    __tablename__ = "clips"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    subtitle = Column(Text, nullable=False, default="")
    game = Column(String(255), nullable=False)
    duration = Column(String(16), nullable=False, default="")
    file_path = Column(String(512), nullable=False)
    owner_id = Column(Integer, nullable=False, index=True)
    upload_date = Column(DateTime(timezone=True), nullable=False, index=True)
    video_hash = Column(String(64), nullable=False, unique=True, index=True)
    is_private = Column(Boolean, nullable=False, default=True)
    views = Column(Integer, nullable=False, default=0)

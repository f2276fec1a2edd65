# database/post.py
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey
from database.database import Base
from database.utils import utcnow

class Post(Base):
    __tablename__ = "posts"
    __table_args__ = {"sqlite_autoincrement": True}

    id          = Column(Integer, primary_key=True, autoincrement=True)
    title       = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    tags        = Column(Text)                                # "python,sql,web"
    image_data  = Column(Text)                                # data:image/...;base64,...
    audio_data  = Column(Text)
    video_data  = Column(Text)
    author_id   = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at  = Column(DateTime, default=utcnow, nullable=False)
    likes_count = Column(Integer, default=0, nullable=False)  # = COUNT(likes) pour ce post

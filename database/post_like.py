from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from database.database import Base
from database.utils import utcnow

class PostLike(Base):
    __tablename__ = "likes"

    id         = Column(Integer, primary_key=True, autoincrement=True)
    post_id    = Column(Integer, ForeignKey("posts.id"), nullable=False)
    user_id    = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("post_id", "user_id", name="ux_like"),
        {"sqlite_autoincrement": True},
    )  # 1 like / user

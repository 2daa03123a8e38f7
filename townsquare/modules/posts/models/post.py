import enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func

from townsquare.db.session import Base

class PostCategory(str, enum.Enum):
    GENERAL = "GENERAL"
    ANNOUNCEMENT = "ANNOUNCEMENT"
    QUESTION = "QUESTION"

class Post(Base):
    __tablename__ = "posts"

    id = Column(String, primary_key=True, index=True)
    content = Column(Text, nullable=False)
    image_url = Column(String, nullable=True)
    category = Column(Enum(PostCategory, name="post_category"), default=PostCategory.GENERAL, nullable=False)
    author_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Denormalized counters, only ever changed through the counters service
    like_count = Column(Integer, default=0, nullable=False)
    comment_count = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("like_count >= 0", name="post_like_count_non_negative"),
        CheckConstraint("comment_count >= 0", name="post_comment_count_non_negative"),
        Index("ix_posts_active_created", "is_active", "created_at"),
    )

from .auth  import AccountService
from .posts import FeedService, FeedItem, PostDetail

__all__ = [
    "AccountService",
    "FeedService", "FeedItem", "PostDetail",
]

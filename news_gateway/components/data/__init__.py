"""Read-only access to the preference and article stores."""

from news_gateway.components.data.articles import ArticleRepository, ArticleStore
from news_gateway.components.data.preferences import (
    PreferenceRepository,
    PreferenceStore,
    RoomCache,
    rooms_from_user_record,
)

__all__ = [
    "ArticleRepository",
    "ArticleStore",
    "PreferenceRepository",
    "PreferenceStore",
    "RoomCache",
    "rooms_from_user_record",
]

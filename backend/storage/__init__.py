from .account_store import AccountExistsError, AccountStore, normalize_email
from .chat_sessions import (
    ChatMessage,
    ChatSession,
    ChatSessionStore,
    InMemoryChatSessionStore,
    SQLiteChatSessionStore,
)
from .database import SQLiteStoreDB
from .donation_store import DonationCenterCatalog, DonationReportStore

__all__ = [
    "AccountExistsError",
    "AccountStore",
    "ChatMessage",
    "ChatSession",
    "ChatSessionStore",
    "DonationCenterCatalog",
    "DonationReportStore",
    "InMemoryChatSessionStore",
    "SQLiteChatSessionStore",
    "SQLiteStoreDB",
    "normalize_email",
]

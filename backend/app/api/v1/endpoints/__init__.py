# API endpoints
from . import auth, users, pitches, investors, favourites, chat, contact, subscriptions, webhooks, health

__all__ = ["auth", "users", "pitches", "investors", "favourites", "chat", "contact", "subscriptions", "webhooks", "health"]

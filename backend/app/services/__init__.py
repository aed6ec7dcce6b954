from app.services.email_service import EmailService, email_service
from app.services.stripe_service import StripeBillingService, stripe_billing_service
from app.services.chat_service import ChatService
from app.services.chat_websocket import ChatConnectionManager, chat_manager

__all__ = [
    # Integrations
    "EmailService",
    "email_service",
    "StripeBillingService",
    "stripe_billing_service",
    # Chat
    "ChatService",
    "ChatConnectionManager",
    "chat_manager",
]

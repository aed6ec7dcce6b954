import re

from fastapi import APIRouter, HTTPException, status, Request

from app.core.logging_config import logger
from app.core.rate_limiter import limiter, CONTACT_LIMIT
from app.schemas.contact import ContactForm
from app.services.email_service import email_service, send_in_background, CONTACT_SUBJECT_LABELS

router = APIRouter()

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@router.post("")
@limiter.limit(CONTACT_LIMIT)
async def submit_contact_form(request: Request, form: ContactForm):
    """Forward a contact form to the support inbox (rate limited: 5/min)"""
    name = (form.name or "").strip()
    email = (form.email or "").strip()
    subject = (form.subject or "").strip()
    message = (form.message or "").strip()

    if not name or not email or not subject or not message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="All fields are required")
    if not EMAIL_PATTERN.match(email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please provide a valid email address")
    if subject not in CONTACT_SUBJECT_LABELS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid subject selected")

    if not await email_service.send_contact_form(name, email, subject, message):
        logger.error(f"[Contact] Failed to forward message from {email}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send your message. Please try again later."
        )

    send_in_background(email_service.send_contact_confirmation(email, name, subject))
    logger.info(f"[Contact] Message received from {email} ({subject})")
    return {"message": "Your message has been sent successfully. We'll get back to you soon!"}

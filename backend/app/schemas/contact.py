from pydantic import BaseModel
from typing import Optional


class ContactForm(BaseModel):
    # Optional so missing fields give the form's own 400 instead of a 422
    name: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None

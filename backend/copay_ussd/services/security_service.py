# /copay_ussd/services/security_service.py

import asyncio
import re
import bcrypt

from copay_ussd.services.collaborators import PinVerifier

# This service provides core security functionality for the gateway: PIN
# hashing and verification, and phone number normalization.

class SecurityService:
    @staticmethod
    def hash_pin(pin: str) -> str:
        return bcrypt.hashpw(pin.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    @staticmethod
    def verify_pin(pin: str, hashed: str) -> bool:
        """
        Verifies a PIN against a bcrypt hash.
        A missing or malformed hash is a mismatch, never an error.
        """
        try:
            return bcrypt.checkpw(pin.encode('utf-8'), hashed.encode('utf-8'))
        except (ValueError, TypeError, AttributeError):
            return False

class EnhancedSecurityService(SecurityService):
    @staticmethod
    def sanitize_phone_number(phone: str) -> str:
        """
        Sanitizes a phone number.
        - Returns a normalized E.164-style string (e.g., +250788123456) if valid.
        - Returns an empty string for invalid or empty inputs (instead of raising).
        """
        if not phone or not isinstance(phone, str):
            return ""

        # Remove all characters except digits and leading +
        clean_phone = re.sub(r"[^\d+]", "", phone.strip())

        if not clean_phone.startswith("+"):
            clean_phone = "+" + clean_phone.lstrip("+")

        # Require 10–15 digits after +
        if not re.match(r"^\+\d{10,15}$", clean_phone):
            return ""

        return clean_phone


class BcryptPinVerifier(PinVerifier):
    """PIN verifier used by the conversation. bcrypt is CPU-bound, so it runs off the event loop."""

    async def verify(self, pin: str, hashed: str | None) -> bool:
        if not hashed:
            return False
        return await asyncio.to_thread(SecurityService.verify_pin, pin, hashed)


# Globally accessible instance
pin_verifier = BcryptPinVerifier()

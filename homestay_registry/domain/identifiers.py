"""Human-readable reference numbers for applications, certificates and payments"""

import secrets
import string
import time


def format_application_number(prefix: str, year: int, sequence: int) -> str:
    """HP-HS-2025-000042"""
    return f"{prefix}-{year}-{sequence:06d}"


def format_certificate_number(prefix: str, year: int, sequence: int) -> str:
    """HP-HST-2025-00042"""
    return f"{prefix}-{year}-{sequence:05d}"


def generate_payment_reference(prefix: str = "HPT") -> str:
    """Unique attempt reference, capped at 20 characters for the treasury gateway"""
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"{prefix}{int(time.time() * 1000)}{suffix}"[:20]

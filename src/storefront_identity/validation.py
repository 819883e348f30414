"""
Input validation rules for identity operations.

Each validator raises ``ValidationError`` naming the rule that failed, and
returns the normalized value when the input is acceptable.
"""

import ipaddress

from email_validator import EmailNotValidError, validate_email

from .exceptions import ValidationError

EMAIL_MAX_LENGTH = 254
EMAIL_LOCAL_MAX_LENGTH = 64
EMAIL_DOMAIN_MAX_LENGTH = 253

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128

PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15
PHONE_SEPARATORS = " -()+"


def normalize_email(email: str) -> str:
    """Canonical lookup form of an email address."""
    return email.strip().lower()


def validate_email_address(email: str) -> str:
    """
    Validate email format and return its normalized, lower-cased form.

    Structural limits are checked first so the error names the exact rule;
    the address is then syntax-checked without any DNS lookups.
    """
    email = email.strip()
    if not email:
        raise ValidationError("Email is required", rule="email_required")
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValidationError(
            f"Email must not exceed {EMAIL_MAX_LENGTH} characters", rule="email_length"
        )

    parts = email.split("@")
    if len(parts) != 2:
        raise ValidationError("Email must contain exactly one @", rule="email_format")

    local, domain = parts
    if not local or len(local) > EMAIL_LOCAL_MAX_LENGTH:
        raise ValidationError(
            f"Email local part must be 1-{EMAIL_LOCAL_MAX_LENGTH} characters",
            rule="email_local_part",
        )
    if not domain or len(domain) > EMAIL_DOMAIN_MAX_LENGTH or "." not in domain:
        raise ValidationError("Email domain is invalid", rule="email_domain")

    try:
        valid = validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e!s}", rule="email_format")

    return normalize_email(valid.normalized)


def validate_password_complexity(password: str) -> None:
    """
    Validate password strength.

    A password needs 8-128 characters with at least one uppercase letter,
    one lowercase letter, one digit and one printable ASCII symbol.
    """
    if len(password) < PASSWORD_MIN_LENGTH or len(password) > PASSWORD_MAX_LENGTH:
        raise ValidationError(
            f"Password must be {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters long",
            rule="password_length",
        )

    has_upper = has_lower = has_digit = has_special = False
    for char in password:
        if char.isascii() and char.isupper():
            has_upper = True
        elif char.isascii() and char.islower():
            has_lower = True
        elif char.isascii() and char.isdigit():
            has_digit = True
        elif 32 <= ord(char) <= 126:
            has_special = True

    missing = []
    if not has_upper:
        missing.append("one uppercase letter")
    if not has_lower:
        missing.append("one lowercase letter")
    if not has_digit:
        missing.append("one number")
    if not has_special:
        missing.append("one special character")

    if missing:
        raise ValidationError(
            f"Password must contain at least {', '.join(missing)}",
            rule="password_complexity",
            missing=missing,
        )


def validate_phone_number(phone: str) -> str:
    """Validate a phone number and return it with surrounding whitespace removed."""
    digits = phone
    for separator in PHONE_SEPARATORS:
        digits = digits.replace(separator, "")

    if not (PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS) or not all(
        char in "0123456789" for char in digits
    ):
        raise ValidationError(
            f"Phone number must contain {PHONE_MIN_DIGITS}-{PHONE_MAX_DIGITS} digits",
            rule="phone_format",
        )

    return phone.strip()


def normalize_ip_address(ip_address: str | None) -> str | None:
    """Return the canonical form of an IP address, or None if it does not parse."""
    if not ip_address:
        return None
    try:
        return str(ipaddress.ip_address(ip_address.strip()))
    except ValueError:
        return None

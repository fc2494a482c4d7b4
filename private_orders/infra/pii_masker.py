"""
PII (Personally Identifiable Information) masking utilities.
"""
import re


UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)

PII_FIELDS = {
    "email", "phone", "client_name", "client_id", "user_id", "recipient_id",
    "actor_id", "partner_id", "distributor_id",
}


def mask_email(email: str) -> str:
    """Mask email address."""
    if "@" not in email:
        return email
    local, domain = email.split("@", 1)
    masked = "**" if len(local) <= 2 else local[:2] + "*" * (len(local) - 2)
    return f"{masked}@{domain}"


def mask_name(name: str) -> str:
    """Mask name, keeping first and last letters."""
    if len(name) <= 2:
        return "**"
    return name[0] + "*" * (len(name) - 2) + name[-1]


def mask_uuid(uuid_str: str) -> str:
    """Mask UUID (show first 8 chars only)."""
    if len(uuid_str) < 8:
        return "*" * len(uuid_str)
    return uuid_str[:8] + "-****-****-****-************"


def mask_value(key: str, value):
    if not isinstance(value, str):
        return value
    if "@" in value:
        return mask_email(value)
    if UUID_RE.match(value):
        return mask_uuid(value)
    if "name" in key:
        return mask_name(value)
    return value


def mask_pii_in_dict(data: dict) -> dict:
    """Mask PII in dictionary recursively."""
    masked = {}
    for key, value in data.items():
        if isinstance(value, dict):
            masked[key] = mask_pii_in_dict(value)
        elif isinstance(value, list):
            masked[key] = [mask_pii_in_dict(item) if isinstance(item, dict) else item for item in value]
        elif key.lower() in PII_FIELDS:
            masked[key] = mask_value(key.lower(), value)
        else:
            masked[key] = value
    return masked

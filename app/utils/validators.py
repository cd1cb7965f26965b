"""Custom validators"""

from bson import ObjectId
from bson.errors import InvalidId

from app.core.exceptions import ValidationError


def validate_object_id(id_str: str) -> bool:
    """
    Validate if a string is a valid MongoDB ObjectId

    Args:
        id_str: String to validate

    Returns:
        True if valid ObjectId, False otherwise
    """
    try:
        ObjectId(id_str)
        return True
    except (InvalidId, TypeError):
        return False


def to_object_id(id_str: str, label: str = "ID") -> ObjectId:
    """Parse an ObjectId or raise ValidationError naming the field"""
    if not validate_object_id(id_str):
        raise ValidationError(f"Invalid {label}: {id_str}")
    return ObjectId(id_str)


def normalize_email(email: str) -> str:
    return email.strip().lower()

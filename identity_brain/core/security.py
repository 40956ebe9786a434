def redact_id(value: str | None) -> str:
    """
    Redact a user or identity id for logging purposes.
    Shows the first 6 characters followed by ***.
    """
    if not value:
        return "None"
    if len(value) <= 6:
        return value
    return f"{value[:6]}***"

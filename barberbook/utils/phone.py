import re

_NON_DIGITS = re.compile(r"\D")


def normalize_whatsapp_phone(raw: str) -> str:
    """
    Canonical international-digits form of a phone number.
    Returns "" when nothing usable is left.
    """
    digits = _NON_DIGITS.sub("", raw or "")
    if not digits:
        return ""
    # Brazilian numbers without country code (DDD + 8/9 digits)
    if len(digits) in (10, 11):
        return f"55{digits}"
    return digits


def phone_from_remote_jid(remote_jid: str) -> str:
    """'5511999998888@s.whatsapp.net' -> '5511999998888'"""
    bare = (remote_jid or "").split("@")[0]
    return normalize_whatsapp_phone(bare)

# =======================================================================================
# vehicle_gate/utils/validators.py - Validation Helpers
# =======================================================================================
import re

_NON_HEX = re.compile(r"[^a-fA-F0-9]")
_TAG_FORMAT = re.compile(r"^[A-F0-9]{8,16}$")


class TagFormatValidator:
    """Sanitizes and validates RFID tag identifiers."""

    @staticmethod
    def sanitize(tag: str) -> str:
        """Strip every non-hex character and uppercase the rest."""
        return _NON_HEX.sub("", tag or "").upper()

    @staticmethod
    def is_valid_format(tag: str) -> bool:
        """Tags are 8-16 hex characters with an even length (already sanitized)."""
        return bool(_TAG_FORMAT.match(tag)) and len(tag) % 2 == 0

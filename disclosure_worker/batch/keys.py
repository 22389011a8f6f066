from disclosure_worker.batch.exceptions import InvalidKeyFormatError

KEY_DELIMITER = ":batch-"


def format_request_key(group_id: str, ordinal: int) -> str:
    if KEY_DELIMITER in group_id:
        raise InvalidKeyFormatError(f"Group id must not contain '{KEY_DELIMITER}': {group_id}")
    return f"{group_id}{KEY_DELIMITER}{ordinal}"


def parse_request_key(key: str) -> tuple[str, int]:
    """Split ``"<group_id>:batch-<ordinal>"`` into its parts.

    Raises:
        InvalidKeyFormatError: if the delimiter is missing or repeated, or the
            ordinal is not a non-negative integer.
    """
    parts = key.split(KEY_DELIMITER)
    if len(parts) != 2:
        raise InvalidKeyFormatError(f"Invalid key format: {key}")
    group_id, raw_ordinal = parts
    if not group_id or not (raw_ordinal.isascii() and raw_ordinal.isdigit()):
        raise InvalidKeyFormatError(f"Invalid key format: {key}")
    return group_id, int(raw_ordinal)

import unicodedata

MAX_FILENAME_LENGTH = 255


def is_safe_filename(filename: str) -> bool:
    """
    Check if a filename is safe to use as a metadata key and object key.

    Any script is allowed, including combining marks, punctuation and
    brackets. Only path separators, traversal and control characters are
    refused.

    Args:
        filename: The filename to validate

    Returns:
        True if filename is safe, False otherwise
    """
    if not filename or len(filename) > MAX_FILENAME_LENGTH:
        return False

    # Reject filenames with path traversal or path separators
    dangerous_patterns = ['..', '/', '\\']
    for pattern in dangerous_patterns:
        if pattern in filename:
            return False

    # NUL, CR, LF, tabs and other control or format characters
    for ch in filename:
        if unicodedata.category(ch) in ('Cc', 'Cf', 'Cs', 'Co', 'Cn'):
            return False

    return True

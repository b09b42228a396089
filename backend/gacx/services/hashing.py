"""Domain hash used as the first field of every tracking cookie value."""


def generate_hash(value: str) -> int:
    """
    Hash a string the same way the tracking client does.

    All tracking cookie values begin with a hash of the domain name, so this
    has to match the client bit for bit or the browser-side script will treat
    the cookies as belonging to another site.

    Args:
        value: String to hash (usually the domain name)

    Returns:
        Non-negative integer fingerprint
    """
    if not value:
        return 1

    result = 0
    for char in reversed(value.encode("utf-8")):
        result = ((result << 6) & 0xFFFFFFF) + char + (char << 14)
        left_most_7 = result & 0xFE00000
        if left_most_7 != 0:
            result ^= left_most_7 >> 21

    return result

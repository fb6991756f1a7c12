"""Event type pattern matching.

Event types are delimiter-separated segments (``workflow:step-complete``).
A ``*`` segment in a pattern matches exactly one segment; the bare ``*``
pattern matches every event type.
"""

WILDCARD = "*"
DEFAULT_DELIMITER = ":"


def validate_pattern(pattern: str, delimiter: str = DEFAULT_DELIMITER) -> None:
    """Reject empty patterns and empty segments.

    Raises:
        ValueError: If the pattern is malformed
    """
    if not pattern:
        raise ValueError("Event pattern must not be empty")
    if any(segment == "" for segment in pattern.split(delimiter)):
        raise ValueError(f"Event pattern '{pattern}' has an empty segment")


def matches_pattern(event_type: str, pattern: str, delimiter: str = DEFAULT_DELIMITER) -> bool:
    """Check whether an event type matches a subscription pattern.

    Args:
        event_type: Concrete event type
        pattern: Exact type, pattern with ``*`` segments, or ``*``
        delimiter: Segment delimiter

    Returns:
        True if the pattern matches
    """
    if pattern == WILDCARD or pattern == event_type:
        return True

    pattern_segments = pattern.split(delimiter)
    type_segments = event_type.split(delimiter)
    if len(pattern_segments) != len(type_segments):
        return False

    return all(
        expected == WILDCARD or expected == actual
        for expected, actual in zip(pattern_segments, type_segments, strict=True)
    )

"""Worker ID generation using coolnames for memorable log identifiers."""

from coolname import generate_slug


def generate_worker_id(prefix: str = "") -> str:
    """Generate a memorable worker ID for the logging context.

    Reader group ids stay uuid-based; this id only tags log lines so the
    output of concurrently running sink processes is easy to tell apart.

    Examples:
        >>> generate_worker_id()
        'brave-golden-tiger'
        >>> generate_worker_id("delta-sink")
        'delta-sink-swift-blue-falcon'
    """
    slug = generate_slug(3)
    return f"{prefix}-{slug}" if prefix else slug

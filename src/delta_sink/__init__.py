"""
Delta sink: batched table commits coordinated over a Kafka log topic.

Subpackages:
    channel   - Log connection, coordination channel, message envelope
    storage   - Data files, write sessions, atomic appends (Delta Lake / in-memory)
    writers   - Time-based table commit buffer
    common    - Metrics and logging helpers
"""

__version__ = "0.1.0"

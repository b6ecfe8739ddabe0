"""Browse and manage Kafka topics: watermarks, bounded reads, topic reset."""

__version__ = "1.0.0"

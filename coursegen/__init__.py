"""Generate a course, quiz and explanations from source documents."""

__version__ = "0.1.0"

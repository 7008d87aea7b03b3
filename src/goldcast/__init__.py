"""goldcast - change-triggered gold price broadcasts over chat sessions."""

__version__ = "0.1.0"

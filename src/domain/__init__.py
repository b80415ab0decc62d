"""Domain models and types for the currency quote service.

This package contains in-memory (Pydantic) models describing quote requests
and resolved quotes, the error kinds shared by stores and sources, and the
USD cross-rate arithmetic. They are independent from persistence models so
that the processing cycle can be tested without DB coupling.
"""

__all__ = [
    "quotes",
    "rates",
]

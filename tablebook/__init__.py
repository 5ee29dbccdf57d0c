"""Restaurant table booking engine and payment-gated order lifecycle."""

__version__ = "1.0.0"

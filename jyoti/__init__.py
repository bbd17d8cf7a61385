"""Jyoti Guru gateway.

Admission-gated, retrieval-augmented spiritual guidance served as a
streamed response.
"""

__version__ = "0.3.0"

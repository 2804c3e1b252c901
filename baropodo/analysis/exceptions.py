from __future__ import annotations


class EmptyExtractionError(RuntimeError):
    def __init__(self, message: str = "Empty extraction response"):
        super().__init__(message)

"""Quantifier reasoning.

- qe: Quantifier elimination (model-based projection)
"""

__all__ = [
    "qe",
]

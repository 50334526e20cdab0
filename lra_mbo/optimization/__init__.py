"""Optimization modulo theories.

- omtarith: model-based optimization of linear real objectives
"""

__all__ = [
    "omtarith",
]

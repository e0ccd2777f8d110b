"""
Lab modules behind the lesson's code snippets.

These modules show how the lesson's shell session maps to code. They are:
- Pedagogical: explicit calls into NumPy/SciPy/CuPy, clear naming
- Not a library: use scripts/ep01_*.py to reproduce the lesson's numbers
- Snippet sources: the episode mirrors labeled --8<-- regions
"""

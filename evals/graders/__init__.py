"""
Eval graders.

- CodeGrader: Deterministic checks (fast, cheap, reproducible)
"""

from .code_grader import CodeGrader, CodeGraderResult

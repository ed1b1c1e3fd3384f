"""
Code-Based Graders -- deterministic evaluation with exact criteria.

Use for: contract verdicts, envelope invariants, rollout decisions.
No LLM needed; the rewrite generator is canned in evals/conftest.py.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class CodeGraderResult:
    eval_name: str
    passed: bool
    checks_passed: int = 0
    checks_total: int = 0
    failures: list[str] = field(default_factory=list)

    @property
    def score(self) -> float:
        return self.checks_passed / self.checks_total if self.checks_total else 0.0


class CodeGrader:
    """Runs named check functions against one output.

    Usage:
        grader = CodeGrader("crisis_envelope")
        grader.add_check("shape_invalid", lambda env: not env["_shape_meta"]["ok"])
        result = grader.grade(envelope)
    """

    def __init__(self, eval_name: str):
        self.eval_name = eval_name
        self._checks: list[tuple[str, Callable[[Any], bool]]] = []

    def add_check(self, name: str, check_fn: Callable[[Any], bool]) -> "CodeGrader":
        self._checks.append((name, check_fn))
        return self

    def grade(self, output: Any) -> CodeGraderResult:
        """A check that raises counts as failed; grading itself never raises."""
        failures = []
        passed_count = 0

        for name, check_fn in self._checks:
            try:
                ok = check_fn(output)
            except Exception as e:
                failures.append(f"ERROR: {name} -- {type(e).__name__}: {e}")
                continue
            if ok:
                passed_count += 1
            else:
                failures.append(f"FAIL: {name}")

        if failures:
            logger.info(f"[Eval] {self.eval_name}: {len(failures)} check(s) failed: {failures}")
        return CodeGraderResult(
            eval_name=self.eval_name,
            passed=not failures,
            checks_passed=passed_count,
            checks_total=len(self._checks),
            failures=failures,
        )

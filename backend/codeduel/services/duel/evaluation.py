"""Boundary to the code-evaluation collaborator.

The coordinator never runs submitted code. It calls ``evaluate(code,
challenge)`` and trusts the ``{score, passed, output}`` it gets back.
``GuardedEvaluator`` bounds that call with a timeout and turns every failure
into a zero-score result so a broken submission cannot stall a match.
"""
import ast
import importlib
import logging
import re
import threading
from typing import NamedTuple

from .exceptions import EvaluationError

logger = logging.getLogger(__name__)

DENYLIST = [
    re.compile(r'require\('),
    re.compile(r'import\s*sys'),
    re.compile(r'__import__'),
    re.compile(r'eval\('),
    re.compile(r'exec\('),
    re.compile(r'open\('),
    re.compile(r'file\('),
    re.compile(r'subprocess'),
    re.compile(r'os\.'),
]


class EvaluationResult(NamedTuple):
    score: int
    passed: bool
    output: str

    @classmethod
    def failed(cls, output: str) -> 'EvaluationResult':
        return cls(score=0, passed=False, output=output)


def check_denylist(code: str) -> None:
    for pattern in DENYLIST:
        if pattern.search(code):
            raise EvaluationError('Potentially dangerous code detected')


class StaticEvaluator:
    """Default evaluator: static checks only, nothing is executed.

    Awards the challenge's points when the code passes the denylist, parses,
    defines ``solve_challenge`` and differs from the starter code.
    """

    entrypoint = 'solve_challenge'

    def evaluate(self, code: str, challenge) -> EvaluationResult:
        if not code or not code.strip():
            return EvaluationResult.failed('No code submitted')
        check_denylist(code)
        try:
            tree = ast.parse(code, filename='<submission>')
        except SyntaxError as exc:
            return EvaluationResult.failed(f"SyntaxError: {exc.msg} (line {exc.lineno})")
        if _normalize(code) == _normalize(challenge.starter_code or ''):
            return EvaluationResult.failed('Starter code unchanged')
        if not any(isinstance(node, ast.FunctionDef) and node.name == self.entrypoint for node in ast.walk(tree)):
            return EvaluationResult.failed(f"{self.entrypoint}() is not defined")
        return EvaluationResult(score=int(challenge.points or 0), passed=True, output='All static checks passed')


class GuardedEvaluator:
    """Runs an evaluator with a timeout.

    Each call gets its own daemon thread. A call that overruns is abandoned
    and gives its slot back, so a stalled evaluation never blocks submissions
    in other rooms. ``workers`` bounds the evaluations waited on at once.
    """

    def __init__(self, evaluator, timeout: float = 10.0, workers: int = 4):
        self.evaluator = evaluator
        self.timeout = timeout
        self._slots = threading.BoundedSemaphore(max(1, workers))

    def run(self, code: str, challenge) -> EvaluationResult:
        if not self._slots.acquire(timeout=self.timeout):
            logger.warning(f"[eval-busy] challenge={getattr(challenge, 'id', None)} timeout={self.timeout}s")
            return EvaluationResult.failed('Evaluator busy, try again')
        try:
            return self._run(code, challenge)
        finally:
            self._slots.release()

    def _run(self, code: str, challenge) -> EvaluationResult:
        outcome = {}
        done = threading.Event()

        def target():
            try:
                outcome['result'] = self.evaluator.evaluate(code, challenge)
            except Exception as exc:
                outcome['error'] = exc
            finally:
                done.set()

        threading.Thread(target=target, name='evaluate', daemon=True).start()
        if not done.wait(self.timeout):
            logger.warning(f"[eval-timeout] challenge={getattr(challenge, 'id', None)} timeout={self.timeout}s")
            return EvaluationResult.failed(f"Evaluation timed out after {self.timeout:g}s")
        exc = outcome.get('error')
        if isinstance(exc, EvaluationError):
            return EvaluationResult.failed(exc.message)
        if exc is not None:
            logger.warning(f"[eval-error] challenge={getattr(challenge, 'id', None)} error={exc!r}")
            return EvaluationResult.failed(f"Evaluation failed: {exc}")
        return _sanitize(outcome['result'])


def load_evaluator(dotted_path: str):
    """Instantiate an evaluator from ``package.module.ClassName``."""
    module_name, _, attr = dotted_path.rpartition('.')
    if not module_name:
        raise ValueError(f"EVALUATOR_CLASS must be a dotted path, got {dotted_path!r}")
    module = importlib.import_module(module_name)
    return getattr(module, attr)()


def _sanitize(result) -> EvaluationResult:
    if isinstance(result, dict):
        score, passed, output = result.get('score'), result.get('passed'), result.get('output')
    else:
        score, passed, output = result.score, result.passed, result.output
    try:
        score = max(0, int(score or 0))
    except (TypeError, ValueError):
        score = 0
    return EvaluationResult(score=score, passed=bool(passed), output='' if output is None else str(output))


def _normalize(code: str) -> str:
    return '\n'.join(line.rstrip() for line in code.strip().splitlines())

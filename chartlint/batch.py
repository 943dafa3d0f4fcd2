# chartlint/batch.py
"""
Many files, one worker pool.

Every job parses and evaluates one file on its own and returns its own
diagnostics list; the lists are merged and sorted once all jobs finished.
Grammars and rules are shared read-only between jobs (and pickled for the
process executor).
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .config import DEFAULT_CONFIG, EngineConfig
from .evaluator import Diagnostic, RunContext, config_error_diagnostic, lint, sort_diagnostics
from .grammar import Grammar
from .rules import Rule

logger = logging.getLogger(__name__)

Source = Tuple[str, Union[str, bytes]]


def _lint_job(
    grammar: Grammar,
    rules: Sequence[Rule],
    path: str,
    text: Union[str, bytes],
    config: EngineConfig,
) -> List[Diagnostic]:
    return lint(grammar, rules, text, path, config, RunContext())


def _executor(config: EngineConfig, jobs: int) -> concurrent.futures.Executor:
    workers = max(1, min(config.workers, jobs))
    if config.executor == "process":
        return concurrent.futures.ProcessPoolExecutor(max_workers=workers)
    return concurrent.futures.ThreadPoolExecutor(max_workers=workers)


def lint_sources(
    grammar: Grammar,
    rules: Iterable[Rule],
    sources: Union[Mapping[str, Union[str, bytes]], Iterable[Source]],
    config: Optional[EngineConfig] = None,
) -> List[Diagnostic]:
    """
    Lint every ``(path, text)`` in *sources*.

    Configuration errors are reported once for the whole batch rather than
    once per file. A job that raises is logged and contributes nothing; the
    other files are unaffected.

    Parameters
    ----------
    grammar:
        Grammar for every source.
    rules:
        Rules compiled for *grammar*.
    sources:
        A ``{path: text}`` mapping or an iterable of ``(path, text)`` pairs.
    config:
        ``workers`` and ``executor`` pick the pool; the rest is passed to
        every job.
    """
    config = config or DEFAULT_CONFIG
    items = list(sources.items()) if isinstance(sources, Mapping) else list(sources)
    rules = [r for r in rules if config.is_enabled(r.id)]
    results: List[List[Diagnostic]] = [
        [config_error_diagnostic(r) for r in rules if r.config_error is not None]
    ]
    runnable = [r for r in rules if r.config_error is None]
    if not items:
        return sort_diagnostics(results[0])

    if config.workers <= 1 or len(items) == 1:
        for path, text in items:
            try:
                results.append(_lint_job(grammar, runnable, path, text, config))
            except Exception:
                logger.exception("failed to lint %s", path)
    else:
        with _executor(config, len(items)) as pool:
            futures = {
                pool.submit(_lint_job, grammar, runnable, path, text, config): path
                for path, text in items
            }
            for future in concurrent.futures.as_completed(futures):
                path = futures[future]
                try:
                    results.append(future.result())
                except Exception:
                    logger.exception("failed to lint %s", path)
    logger.debug("linted %d file(s) with %d rule(s)", len(items), len(runnable))
    return sort_diagnostics(d for chunk in results for d in chunk)


__all__ = ["lint_sources"]

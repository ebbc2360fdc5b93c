"""Console output formatting utilities for pipelint."""

from __future__ import annotations

import sys
from typing import Iterable, Optional

from ..model import ExecutionPlan
from ..schema import ERROR, Finding


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_lint_started(self, path: str, template_dir: Optional[str], parameters: dict) -> None:
        """Print lint start information."""
        print("\nVALIDATING")
        print(f"File: {path}")
        if template_dir:
            print(f"Templates: {template_dir}")
        if parameters:
            print(f"Parameters: {', '.join(f'{k}={v}' for k, v in parameters.items())}")

    def print_findings(self, findings: Iterable[Finding]) -> None:
        """Print every finding, errors to stderr."""
        findings = list(findings)
        if not findings:
            return
        self.print_header("FINDINGS")
        for f in findings:
            stream = sys.stderr if f.severity == ERROR else sys.stdout
            print(f"  {f.severity.upper()} [{f.code}] {f.path}: {f.message}", file=stream)

    def print_summary(self, errors: int, warnings: int, strict: bool = False) -> None:
        """Print final error/warning counts."""
        print("\n" + "=" * 40)
        print("RESULT")
        print("=" * 40)
        status = "FAILED" if errors or (strict and warnings) else "OK"
        print(f"  {status}: {errors} error(s), {warnings} warning(s)")
        if strict and warnings and not errors:
            print("  (--strict: warnings count as failures)")

    def print_plan(self, plan: ExecutionPlan, implicit_stage: Optional[str] = None) -> None:
        """
        Print the execution plan, one line per batch.

        Args:
            plan: The resolved plan
            implicit_stage: Stage name to leave out of job labels (the
                pipeline had no `stages:`)
        """
        self.print_header("EXECUTION PLAN")
        if not plan.batches:
            print("  (no jobs)")
            return
        for i, batch in enumerate(plan.batches, start=1):
            labels = [e.job if e.stage == implicit_stage else str(e) for e in batch]
            print(f"  batch {i}: {', '.join(labels)}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console

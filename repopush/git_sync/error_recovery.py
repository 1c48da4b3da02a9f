"""Classification of git transport output into actionable categories."""

import logging
import re
from typing import Any, Dict, List, Optional

from .error_types import OutputCategory, ErrorResolution, RecoveryAction, TransportResult
from .error_strategies import build_error_strategies, build_error_patterns


OVERSIZED_FILE_PATTERNS = [
    re.compile(r"File (.+?) is .*?exceeds GitHub"),
    re.compile(r"File (.+?) exceeds GitHub"),
]

UNTRACKED_BLOCK_START = "untracked working tree files would be overwritten by"
UNTRACKED_BLOCK_END = "Please move or remove them before you"


def _unique(items: List[str]) -> List[str]:
    seen = set()
    unique = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            unique.append(item)
    return unique


def extract_oversized_paths(output: str) -> List[str]:
    """
    Extract file paths named by a GitHub size-limit rejection.

    Args:
        output: Raw push output

    Returns:
        Unique paths in the order they were reported
    """
    paths = []
    for line in output.splitlines():
        for pattern in OVERSIZED_FILE_PATTERNS:
            match = pattern.search(line)
            if match:
                paths.append(match.group(1).strip())
                break
    return _unique(paths)


def extract_untracked_conflict_paths(output: str) -> List[str]:
    """
    Extract the paths listed in an "untracked working tree files would be
    overwritten" error block.

    Args:
        output: Raw pull or checkout output

    Returns:
        Unique relative paths
    """
    paths = []
    collecting = False
    for line in output.splitlines():
        if UNTRACKED_BLOCK_START in line:
            collecting = True
            continue
        if UNTRACKED_BLOCK_END in line:
            collecting = False
            continue
        if collecting:
            stripped = line.strip()
            if stripped:
                paths.append(stripped)
    return _unique(paths)


class OutputClassifier:
    """
    Classifies git transport output once, at the transport boundary.

    Callers branch on the returned TransportResult instead of re-parsing the
    raw text themselves.
    """

    def __init__(self):
        self.logger = logging.getLogger('repopush.git_sync.error_recovery')
        self._error_patterns = build_error_patterns()
        self._recovery_strategies = build_error_strategies()

    def categorize(self, output: str) -> OutputCategory:
        """
        Categorize failed git output based on known signatures.

        Args:
            output: The combined stdout/stderr of the failed call

        Returns:
            OutputCategory enum value
        """
        if not output:
            return OutputCategory.UNKNOWN

        output_lower = output.lower()
        for pattern, category in self._error_patterns:
            if pattern in output_lower:
                self.logger.debug(f"Categorized output as {category}: pattern '{pattern}' found")
                return category

        self.logger.debug("Could not categorize git output")
        return OutputCategory.UNKNOWN

    def classify(self, status: int, output: str, operation: str) -> TransportResult:
        """
        Build the structured result of one git call.

        Args:
            status: Exit status of git
            output: Combined stdout/stderr
            operation: Name of the operation that ran

        Returns:
            TransportResult with category and extracted paths
        """
        if status == 0:
            return TransportResult(
                category=OutputCategory.OK,
                output=output,
                status=status,
                operation=operation
            )

        return TransportResult(
            category=self.categorize(output),
            output=output,
            status=status,
            operation=operation,
            oversized_paths=extract_oversized_paths(output),
            conflict_paths=extract_untracked_conflict_paths(output)
        )

    def resolution_for(self, category: OutputCategory) -> ErrorResolution:
        """Return the recovery strategy for a category, with a generic fallback."""
        resolution = self._recovery_strategies.get(category)
        if resolution:
            return resolution
        return ErrorResolution(
            category=OutputCategory.UNKNOWN,
            action=RecoveryAction.USER_ACTION_REQUIRED,
            user_message="Git reported an unexpected error",
            technical_message="Output did not match any known failure signature",
            resolution_steps=[
                "Read the git output below",
                "Fix the reported problem and run repopush again"
            ]
        )

    def describe_failure(self, result: TransportResult, context: Optional[Dict[str, Any]] = None) -> str:
        """Create a user-facing description of a failed transport call."""
        resolution = self.resolution_for(result.category)
        parts = [
            f"{resolution.user_message} ({result.operation})",
            "",
            "What you can do:",
        ]

        for i, step in enumerate(resolution.resolution_steps, 1):
            parts.append(f"   {i}. {step}")

        parts.extend([
            "",
            "Technical details:",
            f"   - Error: {resolution.technical_message}",
            f"   - Category: {result.category.value}",
            f"   - Exit status: {result.status}"
        ])

        if result.oversized_paths:
            parts.append(f"   - Oversized files: {', '.join(result.oversized_paths)}")
        if result.conflict_paths:
            parts.append(f"   - Untracked conflicts: {', '.join(result.conflict_paths)}")

        if context:
            parts.append("   - Context:")
            for key, value in context.items():
                parts.append(f"     - {key}: {value}")

        return "\n".join(parts)

"""Checks an analysis request before anything is scheduled."""

import logging
import os
from typing import NamedTuple, Optional

from codereview.models.targets import (
    BranchDiffTarget,
    CommitTarget,
    SingleFileTarget,
)
from codereview.services.llm_provider import KEYLESS_PROVIDERS

logger = logging.getLogger(__name__)


class ValidationOutcome(NamedTuple):
    is_valid: bool
    error: Optional[str] = None
    resolved_file_path: Optional[str] = None


def mask_key(api_key: str) -> str:
    if not api_key:
        return ""
    return f"{api_key[:6]}..."


class RequestValidator:
    def validate(self, context) -> ValidationOutcome:
        """Validate a resolved ``AnalysisContext``; never raises."""
        try:
            return self._validate(context)
        except Exception as e:
            logger.exception("[Validation] Unexpected error during request validation")
            return ValidationOutcome(False, f"Validation error: {e}")

    def _validate(self, context) -> ValidationOutcome:
        ai = context.ai
        logger.debug(
            f"[Validation] Provider {ai.provider_name}, API key configured: "
            f"{'yes' if ai.api_key else 'no'} {mask_key(ai.api_key)}"
        )
        if ai.provider_name not in KEYLESS_PROVIDERS and not ai.api_key:
            return self._fail("API key not configured")
        if not ai.model:
            return self._fail("No AI model configured")

        if not context.selected_documents:
            return self._fail("No coding standards selected")

        target = context.target
        if isinstance(target, SingleFileTarget):
            return self._validate_single_file(context.repository_path, target)

        repo_error = self._repository_error(context.repository_path)
        if repo_error:
            return self._fail(repo_error)

        if isinstance(target, CommitTarget) and not target.commit_id:
            return self._fail("Commit ID is required for commit analysis")
        if isinstance(target, BranchDiffTarget):
            if not target.source_branch or not target.target_branch:
                return self._fail("Both source and target branches are required")
            if target.source_branch == target.target_branch:
                return self._fail("Source and target branches cannot be the same")

        logger.info(f"[Validation] All validations passed for analysis type {target.kind}")
        return ValidationOutcome(True)

    def _validate_single_file(self, repository_path: str, target: SingleFileTarget) -> ValidationOutcome:
        if not target.file_path:
            return self._fail("File path is required for single file analysis")
        if target.file_content is not None:
            logger.info("[Validation] File content provided, skipping file system validation")
            return ValidationOutcome(True, None, target.file_path)

        path = target.file_path
        if not os.path.isabs(path):
            path = os.path.join(repository_path or ".", path)
        path = os.path.abspath(path)
        if not os.path.isfile(path):
            return self._fail(f"File not found: {target.file_path}")
        logger.info(f"[Validation] File validation passed for: {path}")
        return ValidationOutcome(True, None, path)

    @staticmethod
    def _repository_error(repository_path: str) -> Optional[str]:
        if not repository_path or not os.path.isdir(repository_path):
            return f"Repository path does not exist: {repository_path}"
        if not os.path.exists(os.path.join(repository_path, ".git")):
            return f"Not a git repository: {repository_path}"
        return None

    @staticmethod
    def _fail(message: str) -> ValidationOutcome:
        logger.warning(f"[Validation] {message}")
        return ValidationOutcome(False, message)


request_validator = RequestValidator()


def get_request_validator() -> RequestValidator:
    return request_validator

"""Produces the text under review: a git diff or a file's content."""

import asyncio
import logging
import os
import subprocess
from pathlib import Path
from typing import List, NamedTuple

from codereview.config import settings
from codereview.exceptions import ContentExtractionError
from codereview.models.targets import (
    AnalysisTarget,
    BranchDiffTarget,
    CommitTarget,
    SingleFileTarget,
    StagedTarget,
    UncommittedTarget,
)

logger = logging.getLogger(__name__)


class ExtractionResult(NamedTuple):
    content: str
    content_error: bool
    is_file_content: bool
    error_message: str = None


class GitContentExtractor:
    """Runs git in a subprocess and enforces diff size ceilings."""

    def __init__(
        self,
        max_uncommitted_bytes: int = None,
        max_diff_bytes: int = None,
        git_timeout_seconds: float = None,
    ):
        self.max_uncommitted_bytes = max_uncommitted_bytes or settings.max_uncommitted_diff_bytes
        self.max_diff_bytes = max_diff_bytes or settings.max_diff_bytes
        self.git_timeout_seconds = git_timeout_seconds or settings.git_timeout_seconds

    async def extract(self, repository_path: str, target: AnalysisTarget) -> ExtractionResult:
        """Never raises; failures come back with ``content_error`` set."""
        logger.info(f"[Content] Extracting {target.kind} from {repository_path}")
        is_file = isinstance(target, SingleFileTarget)
        try:
            if is_file:
                content = await self._read_file(repository_path, target)
            else:
                content = await self._diff(repository_path, target)
        except ContentExtractionError as e:
            logger.warning(f"[Content] {target.kind} extraction failed: {e}")
            return ExtractionResult("", True, is_file, str(e))
        except Exception as e:
            logger.exception(f"[Content] Unexpected error extracting {target.kind}")
            return ExtractionResult("", True, is_file, str(e) or type(e).__name__)

        logger.info(f"[Content] Extracted {len(content)} chars ({target.kind})")
        return ExtractionResult(content, False, is_file, None)

    async def _read_file(self, repository_path: str, target: SingleFileTarget) -> str:
        if target.file_content is not None:
            return target.file_content
        path = Path(target.file_path)
        if not path.is_absolute():
            path = Path(repository_path) / path
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
        except FileNotFoundError as e:
            raise ContentExtractionError(f"File not found: {target.file_path}") from e
        except OSError as e:
            raise ContentExtractionError(f"Error reading file: {e}") from e

    async def _diff(self, repository_path: str, target: AnalysisTarget) -> str:
        if not os.path.isdir(os.path.join(repository_path, ".git")):
            raise ContentExtractionError(f"Not a git repository: {repository_path}")

        if isinstance(target, UncommittedTarget):
            if await self._has_head(repository_path):
                diff = await self._git(repository_path, "diff", "HEAD")
            else:
                # No commits yet: everything is staged or in the worktree
                diff = await self._git(repository_path, "diff", "--cached")
                diff += await self._git(repository_path, "diff")
            self._check_size(diff, self.max_uncommitted_bytes, "Diff", " Commit some changes first.")
        elif isinstance(target, StagedTarget):
            diff = await self._git(repository_path, "diff", "--cached")
            self._check_size(diff, self.max_diff_bytes, "Staged diff")
        elif isinstance(target, CommitTarget):
            if not target.commit_id:
                raise ContentExtractionError("Commit ID is required")
            if not await self._rev_exists(repository_path, target.commit_id):
                raise ContentExtractionError(f"Commit '{target.commit_id}' not found")
            diff = await self._git(repository_path, "show", "--format=", "-M", target.commit_id)
            self._check_size(diff, self.max_diff_bytes, "Commit diff")
        elif isinstance(target, BranchDiffTarget):
            if not target.source_branch or not target.target_branch:
                raise ContentExtractionError("Both source and target branches are required")
            if target.source_branch == target.target_branch:
                raise ContentExtractionError("Source and target branches cannot be the same")
            for label, branch in (("Source", target.source_branch), ("Target", target.target_branch)):
                if not await self._rev_exists(repository_path, branch):
                    raise ContentExtractionError(f"{label} branch '{branch}' not found.")
            diff = await self._git(repository_path, "diff", "-M", target.target_branch, target.source_branch)
            self._check_size(diff, self.max_diff_bytes, "Branch diff")
        else:
            raise ContentExtractionError(f"Unsupported analysis target: {target!r}")
        return diff

    @staticmethod
    def _check_size(diff: str, limit: int, label: str, hint: str = "") -> None:
        size = len(diff.encode("utf-8"))
        if size > limit:
            raise ContentExtractionError(f"{label} too large ({size} bytes > {limit // 1024}KB).{hint}")

    async def _has_head(self, repository_path: str) -> bool:
        return await self._rev_exists(repository_path, "HEAD")

    async def _rev_exists(self, repository_path: str, rev: str) -> bool:
        result = await self._run_git(repository_path, ["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"])
        return result.returncode == 0

    async def _git(self, repository_path: str, *args: str) -> str:
        result = await self._run_git(repository_path, list(args))
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise ContentExtractionError(f"git {args[0]} failed: {stderr or 'exit code ' + str(result.returncode)}")
        return result.stdout

    async def _run_git(self, repository_path: str, args: List[str]) -> subprocess.CompletedProcess:
        """Run a git command in the repo root, off the event loop."""
        try:
            return await asyncio.to_thread(
                subprocess.run,
                ["git", *args],
                cwd=repository_path,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.git_timeout_seconds,
            )
        except FileNotFoundError as e:
            raise ContentExtractionError("git executable not found") from e
        except subprocess.TimeoutExpired as e:
            raise ContentExtractionError(f"git {args[0]} timed out after {self.git_timeout_seconds} seconds") from e


content_extractor = GitContentExtractor()


def get_content_extractor() -> GitContentExtractor:
    return content_extractor

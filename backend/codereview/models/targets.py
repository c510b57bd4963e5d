"""What an analysis looks at: a kind of diff or a single file."""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class UncommittedTarget:
    kind = "uncommitted"


@dataclass(frozen=True)
class StagedTarget:
    kind = "staged"


@dataclass(frozen=True)
class CommitTarget:
    commit_id: str
    kind = "commit"


@dataclass(frozen=True)
class SingleFileTarget:
    file_path: str
    file_content: Optional[str] = None
    kind = "single_file"


@dataclass(frozen=True)
class BranchDiffTarget:
    source_branch: str
    target_branch: str
    kind = "branch"


AnalysisTarget = Union[UncommittedTarget, StagedTarget, CommitTarget, SingleFileTarget, BranchDiffTarget]

ANALYSIS_TYPES = ("uncommitted", "staged", "commit", "single_file", "branch")


def build_target(
    analysis_type: Optional[str],
    commit_id: Optional[str] = None,
    file_path: Optional[str] = None,
    file_content: Optional[str] = None,
    source_branch: Optional[str] = None,
    target_branch: Optional[str] = None,
) -> AnalysisTarget:
    """Build the target variant for a request's ``analysis_type``.

    Missing fields become empty strings; the validator reports them.
    """
    analysis_type = (analysis_type or "uncommitted").strip().lower()
    if analysis_type == "uncommitted":
        return UncommittedTarget()
    if analysis_type == "staged":
        return StagedTarget()
    if analysis_type == "commit":
        return CommitTarget((commit_id or "").strip())
    if analysis_type in ("single_file", "singlefile", "file"):
        return SingleFileTarget((file_path or "").strip(), file_content)
    if analysis_type in ("branch", "pullrequest"):
        return BranchDiffTarget((source_branch or "").strip(), (target_branch or "").strip())
    raise ValueError(f"Invalid analysis type: {analysis_type}")

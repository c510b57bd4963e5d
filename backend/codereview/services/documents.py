"""Loads coding-standard reference documents from a folder."""

import asyncio
import logging
from pathlib import Path
from typing import List

from codereview.exceptions import DocumentLoadError

logger = logging.getLogger(__name__)


class DocumentRetriever:
    async def load_many(self, names: List[str], folder: str) -> List[str]:
        """Read the selected documents in parallel.

        Documents that fail to load are left out; the order of the remaining
        ones follows ``names``.
        """
        if not names:
            return []
        results = await asyncio.gather(
            *(self._load_one(name, folder) for name in names),
            return_exceptions=True,
        )
        documents = []
        for name, result in zip(names, results):
            if isinstance(result, DocumentLoadError):
                logger.warning(f"[Documents] Skipping '{name}': {result}")
            elif isinstance(result, BaseException):
                logger.warning(f"[Documents] Skipping '{name}', unexpected error: {result!r}")
            else:
                documents.append(result)
        logger.info(f"[Documents] Loaded {len(documents)} of {len(names)} documents from {folder}")
        return documents

    async def _load_one(self, name: str, folder: str) -> str:
        path = self.resolve_path(name, folder)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError as e:
            raise DocumentLoadError(f"cannot read {path.name}: {e.strerror or e}") from e
        except UnicodeDecodeError as e:
            raise DocumentLoadError(f"{path.name} is not valid UTF-8") from e

    @staticmethod
    def resolve_path(name: str, folder: str) -> Path:
        if not name or not name.strip():
            raise DocumentLoadError("empty document name")
        filename = name.strip()
        if not filename.lower().endswith(".md"):
            filename += ".md"
        base = Path(folder).resolve()
        path = (base / filename).resolve()
        if base != path.parent and base not in path.parents:
            raise DocumentLoadError(f"'{name}' is outside the documents folder")
        return path


document_retriever = DocumentRetriever()


def get_document_retriever() -> DocumentRetriever:
    return document_retriever

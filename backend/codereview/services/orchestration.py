"""Top-level analysis pipeline: request -> background run -> cached, broadcast result."""

import dataclasses
import logging
import uuid
from typing import Any, Callable, Dict, Optional

from codereview.config import settings
from codereview.exceptions import AnalysisValidationError
from codereview.models.analysis import (
    AnalysisContent,
    AnalysisRecord,
    AnalysisResults,
    AnalysisStatus,
    pseudo_status,
)
from codereview.models.targets import SingleFileTarget
from codereview.schemas import StartAnalysisRequest
from codereview.services.ai_orchestrator import AIAnalysisOrchestrator, AIAnalysisOutcome
from codereview.services.analysis_cache import AnalysisCache, get_analysis_cache
from codereview.services.background import BackgroundTaskRunner
from codereview.services.content_extraction import ExtractionResult, GitContentExtractor
from codereview.services.documents import DocumentRetriever
from codereview.services.llm_provider import LLMProviderService
from codereview.services.preferences import (
    DEFAULT_SESSION_KEY,
    AICredentials,
    AnalysisContext,
    HardDefaults,
    PreferenceStore,
    credentials_from,
    get_preference_store,
    resolve,
)
from codereview.services.progress import ProgressBroadcaster
from codereview.services.response_parser import ResponseParser
from codereview.services.validation import RequestValidator

logger = logging.getLogger(__name__)

LLMFactory = Callable[[str, str], LLMProviderService]


class AnalysisOrchestrationService:
    """Accepts analyses and runs them in the background.

    Status moves Starting -> ReadingChanges -> LoadingDocuments -> CallingAI
    -> Complete | Error. Only the background pipeline writes to an analysis
    after it has been accepted.
    """

    def __init__(
        self,
        cache: AnalysisCache,
        broadcaster: ProgressBroadcaster,
        runner: BackgroundTaskRunner,
        validator: RequestValidator = None,
        extractor: GitContentExtractor = None,
        documents: DocumentRetriever = None,
        parser: ResponseParser = None,
        preferences: Optional[PreferenceStore] = None,
        llm_factory: LLMFactory = LLMProviderService,
        ai_timeout: float = None,
        hard_defaults: HardDefaults = None,
    ):
        self.cache = cache
        self.broadcaster = broadcaster
        self.runner = runner
        self.validator = validator or RequestValidator()
        self.extractor = extractor or GitContentExtractor()
        self.documents = documents or DocumentRetriever()
        self.parser = parser or ResponseParser()
        self.preferences = preferences
        self.llm_factory = llm_factory
        self.ai_timeout = settings.ai_timeout_seconds if ai_timeout is None else ai_timeout
        self.hard_defaults = hard_defaults or HardDefaults.from_settings()

    async def start_analysis(
        self,
        request: StartAnalysisRequest,
        session_key: str = DEFAULT_SESSION_KEY,
        credentials: Optional[AICredentials] = None,
    ) -> str:
        """Validate, create the Starting record and schedule the pipeline.

        Returns the new analysis id without waiting for any AI work. Raises
        AnalysisValidationError, in which case nothing is cached.
        """
        stored = None
        if self.preferences is not None:
            try:
                stored = await self.preferences.load(session_key)
                if credentials is None:
                    credentials = await self.preferences.load_credentials()
            except Exception as e:
                logger.warning(f"[Analysis] Could not load stored preferences for {session_key}: {e}")
        if credentials is None:
            credentials = credentials_from(None)

        try:
            context = resolve(request, stored, self.hard_defaults, credentials)
        except ValueError as e:
            raise AnalysisValidationError(str(e)) from e

        outcome = self.validator.validate(context)
        if not outcome.is_valid:
            raise AnalysisValidationError(outcome.error or "Invalid analysis request")
        if outcome.resolved_file_path and isinstance(context.target, SingleFileTarget):
            context = dataclasses.replace(
                context,
                target=dataclasses.replace(context.target, file_path=outcome.resolved_file_path),
            )

        analysis_id = str(uuid.uuid4())
        record = AnalysisRecord(
            analysis_id,
            model_used=context.model,
            fallback_model=context.ai.fallback_model,
        )
        await self.cache.store(record)
        logger.info(
            f"[Analysis {analysis_id}] Accepted {context.target.kind} analysis of "
            f"{context.repository_path} ({context.language}, model {context.model})"
        )

        await self._remember(session_key, context)

        self.runner.run(
            "analysis",
            analysis_id,
            lambda: self.run_pipeline(analysis_id, context),
            lambda exc: self._report_error(analysis_id, f"Background analysis error: {exc}"),
        )
        return analysis_id

    async def get_status(self, analysis_id: Optional[str]) -> Dict[str, Any]:
        if not analysis_id:
            return pseudo_status(None, AnalysisStatus.NOT_STARTED)
        record = await self.cache.get(analysis_id)
        if record is None:
            return pseudo_status(analysis_id, AnalysisStatus.NOT_FOUND)
        return record.to_status()

    async def get_content(self, analysis_id: str) -> Optional[AnalysisContent]:
        return await self.cache.get_content(analysis_id)

    async def run_pipeline(self, analysis_id: str, context: AnalysisContext) -> None:
        """Background body. Every failure ends in a terminal Error state."""
        try:
            await self.broadcaster.publish_progress(
                analysis_id,
                AnalysisStatus.READING_CHANGES,
                model_used=context.model,
                fallback_model=context.ai.fallback_model,
            )
            extraction = await self.extractor.extract(context.repository_path, context.target)
            if extraction.content_error:
                logger.warning(f"[Analysis {analysis_id}] Content extraction failed: {extraction.error_message}")
                await self.broadcaster.publish_error(
                    analysis_id, extraction.error_message or "Content extraction failed"
                )
                return

            await self.cache.store_content(
                analysis_id, AnalysisContent(extraction.content, extraction.is_file_content)
            )
            if not extraction.content.strip():
                logger.info(f"[Analysis {analysis_id}] Nothing to review, finishing without AI call")
                await self._complete(analysis_id, extraction, "", [], context.model)
                return

            await self.broadcaster.publish_progress(analysis_id, AnalysisStatus.LOADING_DOCUMENTS)
            documents = await self.documents.load_many(context.selected_documents, context.documents_folder)

            await self.broadcaster.publish_progress(
                analysis_id,
                AnalysisStatus.CALLING_AI,
                model_used=context.model,
                fallback_model=context.ai.fallback_model,
            )
            orchestrator = AIAnalysisOrchestrator(
                self.llm_factory(context.ai.provider_name, context.ai.base_url),
                timeout_seconds=self.ai_timeout,
            )
            outcome = await orchestrator.analyze(
                content=extraction.content,
                documents=documents,
                requirements=context.requirements,
                api_key=context.ai.api_key,
                primary_model=context.model,
                fallback_model=context.ai.fallback_model,
                language=context.language,
                is_file_content=extraction.is_file_content,
            )
            await self.process_result(analysis_id, extraction, outcome)
        except Exception as e:
            logger.exception(f"[Analysis {analysis_id}] Analysis error")
            await self._report_error(analysis_id, f"Analysis error: {e}")

    async def process_result(
        self,
        analysis_id: str,
        extraction: ExtractionResult,
        outcome: AIAnalysisOutcome,
    ) -> None:
        if outcome.error:
            logger.warning(f"[Analysis {analysis_id}] AI analysis failed: {outcome.error_message}")
            await self.broadcaster.publish_error(
                analysis_id, outcome.error_message or "AI analysis failed", model_used=outcome.model_used
            )
            return

        feedback = self.parser.parse(outcome.analysis)
        logger.info(
            f"[Analysis {analysis_id}] Complete with {len(feedback)} feedback items (model {outcome.model_used})"
        )
        await self._complete(analysis_id, extraction, outcome.analysis, feedback, outcome.model_used)

    async def _complete(self, analysis_id, extraction, raw_response, feedback, model_used) -> None:
        record = await self.cache.get(analysis_id) or AnalysisRecord(analysis_id)
        result = AnalysisResults(
            analysis_id=analysis_id,
            feedback=list(feedback),
            raw_diff=extraction.content,
            raw_response=raw_response or "",
            is_file_content=extraction.is_file_content,
        )
        await self.broadcaster.publish_complete(record.complete(result, model_used=model_used))

    async def _report_error(self, analysis_id: str, message: str) -> None:
        try:
            await self.broadcaster.publish_error(analysis_id, message)
        except Exception:
            logger.exception(f"[Analysis {analysis_id}] Failed to report error: {message}")

    async def _remember(self, session_key: str, context: AnalysisContext) -> None:
        if self.preferences is None:
            return
        try:
            await self.preferences.remember(session_key, context)
        except Exception as e:
            logger.warning(f"[Analysis] Could not remember preferences for {session_key}: {e}")

    async def shutdown(self) -> None:
        await self.runner.shutdown()


def build_orchestration_service() -> AnalysisOrchestrationService:
    cache = get_analysis_cache()
    return AnalysisOrchestrationService(
        cache=cache,
        broadcaster=ProgressBroadcaster(cache),
        runner=BackgroundTaskRunner(),
        preferences=get_preference_store(),
    )


# Global service instance
orchestration_service = build_orchestration_service()


def get_orchestration_service() -> AnalysisOrchestrationService:
    """Get the global orchestration service instance."""
    return orchestration_service

"""Run loop chaining discovery, intelligence, verification, and enrichment."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from app.clients.errors import ProviderConfigError
from app.clients.exa import ExaClient
from app.clients.hunter import HunterClient
from app.clients.npi import NPIClient
from app.clients.openrouter import OpenRouterClient
from app.clients.snov import SnovClient
from app.clients.youtube import YouTubeClient
from app.config import Settings, settings
from app.models.candidate import Candidate, GateOutcome, GateReason, Identity
from app.models.contact import ContactRecord
from app.models.run import (
    CandidateDebugLog,
    GatedCandidate,
    PipelineRunResult,
    RunStats,
    VerifiedCandidate,
)
from app.models.verification import RegistrySearchResult
from app.observability.metrics import MetricsReporter, metrics
from pipelines.accounting import RunAccumulators
from pipelines.discovery.collector import ChannelSearchClient, collect_candidates
from pipelines.discovery.queries import select_queries
from pipelines.enrichment.context import ContactStrategy, EnrichmentContext
from pipelines.enrichment.waterfall import EmailFinderClient, build_strategies, run_waterfall
from pipelines.enrichment.web_search import WebSearchClient
from pipelines.intelligence.country import is_domestic
from pipelines.intelligence.gate import MAX_DAYS_SINCE_UPLOAD, MIN_SUBSCRIBERS, evaluate_gate
from pipelines.intelligence.identity import CompletionClient, IdentityExtractor, professional_gate
from pipelines.progress import NullProgress, ProgressChannel
from pipelines.snapshot import save_snapshot
from pipelines.verification.registry import RegistryClient, RegistryVerifier
from pipelines.verification.scoring import compute_verification

logger = logging.getLogger("pipelines.orchestrator")

PHASE2_PROGRESS_EVERY = 5
DEFAULT_OUTPUT = Path("runs/pipeline_run.json")


class PipelineError(RuntimeError):
    """Run-level failure surfaced as the single terminal error."""

    def __init__(self, message: str, code: str = "PIPELINE_ERROR") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class PipelineProviders:
    """External collaborators used by one run."""

    youtube: ChannelSearchClient
    llm: CompletionClient
    registry: RegistryClient
    web_search: WebSearchClient
    hunter: EmailFinderClient
    snov: EmailFinderClient

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "PipelineProviders":
        config = config or settings
        timeout = config.provider_timeout_seconds
        return cls(
            youtube=YouTubeClient(config.youtube_api_key, timeout=timeout),
            llm=OpenRouterClient(config.openrouter_api_key, max_retries=config.llm_max_retries),
            registry=NPIClient(timeout=timeout),
            web_search=ExaClient(config.exa_api_key, timeout=timeout),
            hunter=HunterClient(config.hunter_api_key, timeout=timeout),
            snov=SnovClient(config.snov_client_id, config.snov_client_secret, timeout=timeout),
        )

    def close(self) -> None:
        for client in (self.youtube, self.llm, self.registry, self.web_search, self.hunter, self.snov):
            close = getattr(client, "close", None)
            if callable(close):
                close()


@dataclass(frozen=True)
class PipelineOptions:
    max_queries: int = 3
    page_size: int = 50
    video_count: int = 5
    min_subscribers: int = MIN_SUBSCRIBERS
    max_days_since_upload: int = MAX_DAYS_SINCE_UPLOAD
    identity_model: str = "anthropic/claude-haiku-4.5"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 1024

    @classmethod
    def from_settings(cls, config: Settings | None = None, *, max_queries: int | None = None) -> "PipelineOptions":
        config = config or settings
        return cls(
            max_queries=max_queries or config.default_max_queries,
            page_size=config.search_page_size,
            video_count=config.recent_video_count,
            identity_model=config.identity_model,
            llm_temperature=config.llm_temperature,
            llm_max_tokens=config.llm_max_tokens,
        )


@dataclass
class _Identified:
    candidate: Candidate
    identity: Identity
    debug: CandidateDebugLog


@dataclass
class _RunState:
    accumulators: RunAccumulators = field(default_factory=RunAccumulators)
    gated: list[GatedCandidate] = field(default_factory=list)
    debug_logs: list[CandidateDebugLog] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PipelineRunner:
    """Executes one strictly phased, sequential pipeline run per call to ``run``."""

    def __init__(
        self,
        providers: PipelineProviders,
        *,
        options: PipelineOptions | None = None,
        strategies: Sequence[ContactStrategy] | None = None,
        clock: Callable[[], datetime] = _utcnow,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._providers = providers
        self._options = options or PipelineOptions()
        self._strategies = list(strategies) if strategies is not None else build_strategies(
            web_search=providers.web_search,
            hunter=providers.hunter,
            snov=providers.snov,
        )
        self._clock = clock
        self._metrics = metrics_reporter or metrics
        self._extractor = IdentityExtractor(
            providers.llm,
            model=self._options.identity_model,
            temperature=self._options.llm_temperature,
            max_tokens=self._options.llm_max_tokens,
        )
        self._verifier = RegistryVerifier(providers.registry)

    def close(self) -> None:
        self._providers.close()

    def run(self, progress: ProgressChannel | None = None) -> PipelineRunResult:
        """Run all phases.

        Missing credentials abort the run as a ``PipelineError`` carrying the
        provider's ``*_NOT_CONFIGURED`` code; unexpected errors propagate as-is.
        """
        progress = progress or NullProgress()
        started_at = self._clock()
        start = time.perf_counter()
        state = _RunState()

        try:
            candidates = self._discover(progress, state)
            identified = self._identify(candidates, progress, state)
            verified = self._verify_and_enrich(identified, progress, state)
        except ProviderConfigError as exc:
            raise PipelineError(str(exc), code=exc.code) from exc

        accumulators = state.accumulators
        result = PipelineRunResult(
            candidates=verified,
            gated=state.gated,
            costs=accumulators.cost_breakdown(),
            stats=RunStats(
                discovered=len(candidates),
                gated=len(state.gated),
                gated_reasons=dict(accumulators.gate_reasons),
                identified=len(identified),
                verified=len(verified),
                with_email=sum(1 for item in verified if item.contact.email),
                with_linkedin=sum(1 for item in verified if item.contact.linkedin_url),
                with_doximity=sum(1 for item in verified if item.contact.doximity_url),
                with_phone=sum(1 for item in verified if item.contact.phone),
                quota_units=accumulators.quota_units,
            ),
            source_stats=accumulators.source_stats(),
            debug_logs=state.debug_logs,
            started_at=started_at,
            completed_at=self._clock(),
        )
        self._metrics.timing("pipeline.duration_ms", (time.perf_counter() - start) * 1000)
        self._metrics.gauge("pipeline.verified", len(verified))
        logger.info(
            "Pipeline run complete: %s discovered, %s gated, %s verified, $%.4f spent",
            result.stats.discovered,
            result.stats.gated,
            result.stats.verified,
            result.costs.total,
        )
        return result

    def _discover(self, progress: ProgressChannel, state: _RunState) -> list[Candidate]:
        progress.emit("phase", phase=1, label="Discovering channels on YouTube...")
        queries = select_queries(self._options.max_queries)
        logger.info("pipeline.phase", extra={"phase": 1, "queries": len(queries)})
        candidates = collect_candidates(
            self._providers.youtube,
            queries,
            accumulators=state.accumulators,
            page_size=self._options.page_size,
            video_count=self._options.video_count,
        )
        progress.emit("phase", phase=1, label=f"Discovered {len(candidates)} channels", count=len(candidates))
        return candidates

    def _identify(
        self,
        candidates: Sequence[Candidate],
        progress: ProgressChannel,
        state: _RunState,
    ) -> list[_Identified]:
        progress.emit("phase", phase=2, label="Filtering and identifying doctors...")
        logger.info("pipeline.phase", extra={"phase": 2, "candidates": len(candidates)})
        now = self._clock()
        passed: list[_Identified] = []

        for index, candidate in enumerate(candidates, start=1):
            channel = candidate.channel
            debug = CandidateDebugLog(
                channel_id=channel.channel_id,
                channel_title=channel.title,
                discovery=f'Found via query "{channel.discovery_query}"',
            )
            state.debug_logs.append(debug)
            identity = self._admit(candidate, now, debug, state)
            if identity is not None:
                passed.append(_Identified(candidate=candidate, identity=identity, debug=debug))

            if index % PHASE2_PROGRESS_EVERY == 0:
                progress.emit("progress", phase=2, processed=index, total=len(candidates), passed=len(passed))

        progress.emit(
            "phase",
            phase=2,
            label=f"{len(passed)} doctors identified, {len(state.gated)} filtered",
            count=len(passed),
        )
        return passed

    def _admit(
        self,
        candidate: Candidate,
        now: datetime,
        debug: CandidateDebugLog,
        state: _RunState,
    ) -> Identity | None:
        gate = evaluate_gate(
            candidate,
            now=now,
            min_subscribers=self._options.min_subscribers,
            max_days=self._options.max_days_since_upload,
        )
        debug.gate = gate.detail
        if not gate.passed:
            self._reject(candidate, gate, debug, state, status=f"Gated: {gate.reason.value.replace('_', ' ')}")
            return None

        outcome = self._extractor.extract(candidate.channel, candidate.recent_videos)
        if outcome.cost:
            state.accumulators.add_cost("llm", outcome.cost)
        identity = outcome.identity
        if identity is None:
            rejected = GateOutcome(
                passed=False,
                reason=GateReason.EXTRACTION_FAILED,
                detail="FAIL: LLM extraction returned null",
            )
            debug.identity = rejected.detail
            self._reject(candidate, rejected, debug, state, status="Gated: identity extraction failed")
            return None

        professional = professional_gate(identity)
        if not professional.passed:
            debug.identity = professional.detail
            self._reject(candidate, professional, debug, state, status="Gated: not a medical doctor")
            return None

        channel = candidate.channel
        if not is_domestic(channel, identity):
            detail = f"FAIL: Non-US doctor (country: {channel.country}, location: {identity.location})"
            debug.identity = detail
            rejected = GateOutcome(passed=False, reason=GateReason.NON_DOMESTIC, detail=detail)
            self._reject(candidate, rejected, debug, state, status="Gated: non-US doctor")
            return None

        debug.identity = (
            f"SUCCESS: {identity.display_name or 'Unknown'} "
            f"({identity.credentials or 'no creds'}, confidence: {identity.confidence})"
        )
        return identity

    @staticmethod
    def _reject(
        candidate: Candidate,
        outcome: GateOutcome,
        debug: CandidateDebugLog,
        state: _RunState,
        *,
        status: str,
    ) -> None:
        reason = outcome.reason
        state.accumulators.record_gate(reason.value)
        state.gated.append(
            GatedCandidate(
                channel_id=candidate.channel.channel_id,
                title=candidate.channel.title,
                reason=reason,
                detail=outcome.detail,
            )
        )
        debug.final_status = status
        logger.debug("Gated %s: %s", candidate.channel.title, outcome.detail)

    def _verify_and_enrich(
        self,
        identified: Sequence[_Identified],
        progress: ProgressChannel,
        state: _RunState,
    ) -> list[VerifiedCandidate]:
        progress.emit("phase", phase=3, label="Verifying credentials and finding contact info...")
        logger.info("pipeline.phase", extra={"phase": 3, "candidates": len(identified)})
        verified: list[VerifiedCandidate] = []

        for index, item in enumerate(identified, start=1):
            identity = item.identity
            channel = item.candidate.channel
            if identity.last_name:
                registry = self._verifier.verify(identity.first_name or "", identity.last_name, identity.location)
            else:
                registry = RegistrySearchResult()
            verification = compute_verification(identity, registry.matches, registry.total_count)
            npi_number = verification.registry_match.npi_number if verification.registry_match else "none"
            item.debug.verification = (
                f"{verification.tier.value.upper()} (confidence: {verification.confidence}%, NPI: {npi_number})"
            )

            context = EnrichmentContext.build(channel, identity, verification)
            waterfall = run_waterfall(context, self._strategies, accumulators=state.accumulators)
            item.debug.enrichment = waterfall.log
            item.debug.final_status = _final_status(verification.tier.value, waterfall.record)

            verified.append(
                VerifiedCandidate(
                    channel=channel,
                    recent_videos=item.candidate.recent_videos,
                    identity=identity,
                    verification=verification,
                    contact=waterfall.record,
                    discovered_at=self._clock(),
                )
            )
            progress.emit(
                "progress",
                phase=3,
                processed=index,
                total=len(identified),
                candidate=identity.display_name or channel.title,
                tier=verification.tier.value,
            )
        return verified


def _final_status(tier: str, contact: ContactRecord) -> str:
    methods = contact.contact_methods()
    if methods:
        return f"{tier.upper()} - Contact: {', '.join(methods)}"
    return f"{tier.upper()} - NO CONTACT (investigate)"


def error_code_for(exc: BaseException) -> str:
    code = getattr(exc, "code", None)
    return code if isinstance(code, str) and code else "PIPELINE_ERROR"


def start_streaming_run(runner: PipelineRunner) -> ProgressChannel:
    """Run in a background thread; the channel ends with one ``complete`` or ``error`` event."""
    channel = ProgressChannel()

    def _target() -> None:
        try:
            result = runner.run(channel)
        except Exception as exc:  # noqa: BLE001 - every run failure becomes the terminal event
            logger.exception("Pipeline run failed")
            channel.emit("error", error=str(exc) or "Pipeline failed", code=error_code_for(exc))
        else:
            channel.emit("complete", result=result)
        finally:
            channel.close()

    threading.Thread(target=_target, name="pipeline-run", daemon=True).start()
    return channel


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Discover, verify, and enrich dermatologist creators.")
    parser.add_argument("--max-queries", type=int, default=None, help="Number of catalog queries to run.")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT, help="Where to write the run result JSON.")
    parser.add_argument("--snapshot", type=Path, default=None, help="Also capture the run as a demo snapshot.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    args = parse_args(argv if argv is not None else sys.argv[1:])

    providers = PipelineProviders.from_settings(settings)
    runner = PipelineRunner(providers, options=PipelineOptions.from_settings(settings, max_queries=args.max_queries))
    try:
        result = runner.run()
    except PipelineError as exc:
        logger.error("Pipeline failed (%s): %s", exc.code, exc)
        return 1
    finally:
        providers.close()

    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(json.dumps(result.model_dump(mode="json"), indent=2), encoding="utf-8")
    logger.info("Wrote %s verified candidates to %s", len(result.candidates), args.output)
    if args.snapshot:
        save_snapshot(result, args.snapshot)
    return 0


if __name__ == "__main__":
    sys.exit(main())

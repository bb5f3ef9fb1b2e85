from __future__ import annotations

import json
from datetime import timedelta

import pytest

from app.clients.errors import ProviderConfigError
from app.clients.hunter import EmailFinding
from app.models.contact import ContactSource
from app.models.verification import VerificationTier
from pipelines import orchestrator
from pipelines.discovery.queries import select_queries
from pipelines.orchestrator import (
    PipelineError,
    PipelineOptions,
    PipelineProviders,
    PipelineRunner,
    start_streaming_run,
)
from pipelines.progress import ProgressChannel
from tests.helpers.factories import NOW, raw_channel, raw_playlist_item, raw_registry_record
from tests.helpers.metrics_stub import StubMetrics
from tests.helpers.stubs import (
    StubEmailFinder,
    StubLLMClient,
    StubRegistryClient,
    StubWebSearchClient,
    StubYouTubeClient,
)

DOCTOR = {
    "firstName": "Jane",
    "lastName": "Doe",
    "fullDisplay": "Dr. Jane Doe",
    "credentials": "MD, FAAD",
    "isMedicalDoctor": True,
    "isDermatologist": True,
    "boardCertified": True,
    "stateOrLocation": "Austin, TX",
    "countryCode": "US",
    "confidence": "high",
    "reasoning": "Named in description",
}
ESTHETICIAN = {**DOCTOR, "isMedicalDoctor": False, "isDermatologist": False, "reasoning": "Licensed esthetician"}
UK_DOCTOR = {**DOCTOR, "stateOrLocation": "London", "countryCode": "GB"}


def _youtube() -> StubYouTubeClient:
    q1, q2 = select_queries(2)
    recent = [raw_playlist_item("recent", NOW - timedelta(days=3))]
    return StubYouTubeClient(
        search_results={q1: ["UCa", "UCb", "UCc", "UCd"], q2: ["UCe", "UCf", "UCa"]},
        channels={
            "UCa": raw_channel(
                "UCa",
                title="Dr. Jane Doe Dermatology",
                subscribers="120000",
                description="Book at https://www.austinskinclinic.com/book",
            ),
            "UCb": raw_channel("UCb", title="Tiny Derm", subscribers="3000"),
            "UCc": raw_channel("UCc", title="Old Derm", subscribers="50000"),
            "UCd": raw_channel("UCd", title="Glow Esthetics", subscribers="80000"),
            "UCe": raw_channel("UCe", title="London Skin Doc", subscribers="60000", country="GB"),
            "UCf": raw_channel("UCf", title="Mystery Channel", subscribers="70000"),
        },
        playlists={
            "UUa": recent,
            "UUb": recent,
            "UUc": [raw_playlist_item("old", NOW - timedelta(days=200))],
            "UUd": recent,
            "UUe": recent,
            "UUf": recent,
        },
    )


def _providers(**overrides) -> PipelineProviders:
    fields = {
        "youtube": _youtube(),
        "llm": StubLLMClient(
            {
                "Dr. Jane Doe Dermatology": json.dumps(DOCTOR),
                "Glow Esthetics": json.dumps(ESTHETICIAN),
                "London Skin Doc": json.dumps(UK_DOCTOR),
                "Mystery Channel": "Sorry, I cannot tell who this is.",
            },
            input_tokens=1000,
            output_tokens=200,
        ),
        "registry": StubRegistryClient(lambda **_: ([raw_registry_record()], 1)),
        "web_search": StubWebSearchClient(
            linkedin=[{"url": "https://www.linkedin.com/in/jane-doe-md", "title": "Jane Doe, MD - Dermatologist"}],
        ),
        "hunter": StubEmailFinder(EmailFinding(email="jane@austinskinclinic.com", score=88)),
        "snov": StubEmailFinder(),
    }
    fields.update(overrides)
    return PipelineProviders(**fields)


def _runner(providers: PipelineProviders | None = None, metrics=None) -> PipelineRunner:
    return PipelineRunner(
        providers or _providers(),
        options=PipelineOptions(max_queries=2),
        clock=lambda: NOW,
        metrics_reporter=metrics or StubMetrics(),
    )


class ConfigFailingYouTube(StubYouTubeClient):
    def search_channel_ids(self, **_):
        raise ProviderConfigError("youtube", "YOUTUBE_API_KEY")


def test_run_partitions_every_discovered_channel():
    metrics = StubMetrics()
    providers = _providers()

    result = _runner(providers, metrics).run()

    discovered = {"UCa", "UCb", "UCc", "UCd", "UCe", "UCf"}
    verified_ids = {candidate.channel.channel_id for candidate in result.candidates}
    gated_ids = {gated.channel_id for gated in result.gated}
    assert verified_ids == {"UCa"}
    assert verified_ids | gated_ids == discovered
    assert not verified_ids & gated_ids
    assert result.stats.discovered == 6
    assert result.stats.gated == 5
    assert result.stats.identified == result.stats.verified == 1
    assert result.stats.gated_reasons == {
        "low_reach": 1,
        "inactive": 1,
        "not_professional": 1,
        "non_domestic": 1,
        "extraction_failed": 1,
    }
    # 2 searches, 1 detail batch, 6 playlist reads
    assert result.stats.quota_units == 207
    # low-reach and inactive channels never reach the model
    assert len(providers.llm.prompts) == 4
    assert result.costs.llm == pytest.approx(4 * (1000 * 0.80 + 200 * 4.00) / 1_000_000)
    assert result.costs.exa == pytest.approx(0.015)
    assert result.costs.total == pytest.approx(result.costs.llm + result.costs.exa)
    assert result.started_at == NOW and result.completed_at == NOW
    assert {"metric": "pipeline.verified", "value": 1, "tags": {}} in metrics.gauge_calls


def test_verified_candidate_is_scored_and_enriched():
    result = _runner().run()
    candidate = result.candidates[0]

    assert candidate.verification.tier is VerificationTier.GOLD
    assert candidate.verification.registry_match.npi_number == 1234567890
    assert candidate.contact.email == "jane@austinskinclinic.com"
    assert candidate.contact.email_source is ContactSource.HUNTER
    assert candidate.contact.linkedin_source is ContactSource.EXA_LINKEDIN
    assert candidate.contact.phone_source is ContactSource.NPI
    assert result.stats.with_email == result.stats.with_linkedin == result.stats.with_phone == 1
    assert result.source_stats.email == {"hunter": 1}


def test_debug_logs_trace_every_channel():
    result = _runner().run()
    logs = {log.channel_id: log for log in result.debug_logs}

    assert len(logs) == 6
    assert logs["UCb"].gate == "FAIL: 3,000 subs < 5,000 min"
    assert logs["UCb"].final_status == "Gated: low reach"
    assert logs["UCd"].identity == "FAIL: Not a medical doctor (Licensed esthetician)"
    assert logs["UCf"].identity == "FAIL: LLM extraction returned null"
    assert logs["UCe"].final_status == "Gated: non-US doctor"
    assert logs["UCa"].discovery == f'Found via query "{select_queries(1)[0]}"'
    assert logs["UCa"].identity.startswith("SUCCESS: Dr. Jane Doe")
    assert logs["UCa"].verification == "GOLD (confidence: 95%, NPI: 1234567890)"
    assert logs["UCa"].final_status == "GOLD - Contact: email, linkedin, phone"


def test_progress_events_follow_phase_order():
    channel = ProgressChannel()

    _runner().run(channel)
    channel.close()
    events = list(channel.drain(timeout=1))

    assert [event.phase for event in events if event.type == "phase"] == [1, 1, 2, 2, 3]
    phase2 = [event for event in events if event.type == "progress" and event.phase == 2]
    assert [(event.processed, event.total) for event in phase2] == [(5, 6)]
    phase3 = [event for event in events if event.type == "progress" and event.phase == 3]
    assert [(event.candidate, event.tier) for event in phase3] == [("Dr. Jane Doe", "gold")]
    assert not [event for event in events if event.is_terminal]


def test_missing_credentials_abort_the_run():
    runner = _runner(_providers(youtube=ConfigFailingYouTube()))

    with pytest.raises(PipelineError) as excinfo:
        runner.run()

    assert excinfo.value.code == "YOUTUBE_NOT_CONFIGURED"


def test_streaming_run_ends_with_single_complete_event():
    events = list(start_streaming_run(_runner()).drain(timeout=5))

    terminal = [event for event in events if event.is_terminal]
    assert len(terminal) == 1
    assert events[-1].type == "complete"
    assert events[-1].result.stats.verified == 1


def test_streaming_run_reports_error_code():
    events = list(start_streaming_run(_runner(_providers(youtube=ConfigFailingYouTube()))).drain(timeout=5))

    assert events[-1].type == "error"
    assert events[-1].code == "YOUTUBE_NOT_CONFIGURED"
    assert [event.type for event in events].count("error") == 1


def test_cli_writes_result_and_snapshot(tmp_path, monkeypatch):
    monkeypatch.setattr(orchestrator.PipelineProviders, "from_settings", classmethod(lambda cls, config=None: _providers()))
    output = tmp_path / "run.json"
    snapshot = tmp_path / "snapshot.json"

    exit_code = orchestrator.main(["--max-queries", "2", "--output", str(output), "--snapshot", str(snapshot)])

    assert exit_code == 0
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["stats"]["discovered"] == 6
    assert snapshot.exists()


def test_cli_returns_nonzero_on_pipeline_error(tmp_path, monkeypatch):
    monkeypatch.setattr(
        orchestrator.PipelineProviders,
        "from_settings",
        classmethod(lambda cls, config=None: _providers(youtube=ConfigFailingYouTube())),
    )

    assert orchestrator.main(["--output", str(tmp_path / "run.json")]) == 1
    assert not (tmp_path / "run.json").exists()

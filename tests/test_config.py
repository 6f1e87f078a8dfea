from transcript_engine.config import TranscriptEngineConfig
from transcript_engine.domain.granularity import GranularityMode
from transcript_engine.factory import create_engine, create_queue_source, create_turn_store


class TestTranscriptEngineConfig:
    def test_defaults(self, monkeypatch):
        for key in (
            "TRANSCRIPT_ENGINE_AGENT_UID",
            "TRANSCRIPT_ENGINE_GRANULARITY",
            "TRANSCRIPT_ENGINE_IMPLICIT_FINALIZE",
        ):
            monkeypatch.delenv(key, raising=False)
        config = TranscriptEngineConfig()
        assert config.agent_uid == ""
        assert config.granularity == "auto"
        assert config.reassembly_timeout_seconds == 5.0
        assert config.implicit_finalize is True
        assert config.allow_late_corrections is False
        assert config.chunk_queue_size == 256

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TRANSCRIPT_ENGINE_AGENT_UID", "1000")
        monkeypatch.setenv("TRANSCRIPT_ENGINE_GRANULARITY", "word")
        monkeypatch.setenv("TRANSCRIPT_ENGINE_REASSEMBLY_MAX_ATTEMPTS", "3")
        config = TranscriptEngineConfig()
        assert config.agent_uid == "1000"
        assert config.granularity == "word"
        assert config.reassembly_max_attempts == 3


class TestFactory:
    def test_turn_store_uses_configured_granularity(self):
        store = create_turn_store(TranscriptEngineConfig(granularity="block"))
        assert store._granularity.mode is GranularityMode.BLOCK

    def test_queue_source_is_bounded_by_config(self):
        source = create_queue_source(TranscriptEngineConfig(chunk_queue_size=1))
        assert source.push("2001", b"first")
        assert not source.push("2001", b"second")

    def test_engine_is_wired(self):
        engine = create_engine(TranscriptEngineConfig(agent_uid="1000"))
        assert not engine.running
        assert engine.pending_reassembly == 0

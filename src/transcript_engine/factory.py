import logging

from transcript_engine.adapters.queue_source import QueueChunkSource
from transcript_engine.adapters.wire_decoder import WireDecoder
from transcript_engine.config import TranscriptEngineConfig
from transcript_engine.domain.engine import TranscriptEngine
from transcript_engine.domain.granularity import GranularityMode, GranularitySelector
from transcript_engine.domain.reassembler import FragmentReassembler
from transcript_engine.domain.turns import FinalizePolicy, TurnStore, finalize_on_higher_sequence

logger = logging.getLogger(__name__)


def create_decoder(config: TranscriptEngineConfig) -> WireDecoder:
    return WireDecoder(agent_uid=config.agent_uid)


def create_queue_source(config: TranscriptEngineConfig) -> QueueChunkSource:
    return QueueChunkSource(maxsize=config.chunk_queue_size)


def create_turn_store(
    config: TranscriptEngineConfig,
    finalize_policy: FinalizePolicy = finalize_on_higher_sequence,
) -> TurnStore:
    return TurnStore(
        granularity=GranularitySelector(GranularityMode(config.granularity)),
        finalize_policy=finalize_policy,
        implicit_finalize=config.implicit_finalize,
        allow_late_corrections=config.allow_late_corrections,
    )


def create_reassembler(
    config: TranscriptEngineConfig, decoder: WireDecoder
) -> FragmentReassembler:
    return FragmentReassembler(
        decoder.event_from_payload,
        timeout_seconds=config.reassembly_timeout_seconds,
        max_attempts=config.reassembly_max_attempts,
    )


def create_engine(config: TranscriptEngineConfig) -> TranscriptEngine:
    decoder = create_decoder(config)
    engine = TranscriptEngine(
        decoder=decoder,
        turns=create_turn_store(config),
        reassembler=create_reassembler(config, decoder),
        eviction_interval_seconds=config.eviction_sweep_interval_seconds,
    )
    logger.debug(
        "Engine created (agent_uid=%r, granularity=%s)", config.agent_uid, config.granularity
    )
    return engine

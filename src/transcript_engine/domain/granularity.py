from enum import Enum

from transcript_engine.domain.events import TranscriptionFragment


class GranularityMode(Enum):
    AUTO = "auto"
    BLOCK = "block"
    WORD = "word"


class GranularitySelector:
    def __init__(self, mode: GranularityMode = GranularityMode.AUTO) -> None:
        self._mode = mode

    @property
    def mode(self) -> GranularityMode:
        return self._mode

    def select(self, first_fragment: TranscriptionFragment) -> GranularityMode:
        """Decide the granularity for a turn from the fragment that opens it.

        The result never changes for the lifetime of that turn.
        """
        if self._mode is not GranularityMode.AUTO:
            return self._mode
        if first_fragment.has_word_timing:
            return GranularityMode.WORD
        return GranularityMode.BLOCK

from doctext.errors.exceptions import PrematureFinalizeError, ProtocolViolationError
from doctext.protocol.messages import FullText, TextMessage


class ResultAccumulator:
    """Assembles text chunks in arrival order.

    Chunks are never reordered, deduplicated or dropped; ordering is the
    transport's FIFO guarantee.
    """

    def __init__(self) -> None:
        self._chunks: list[str] = []
        self._length = 0
        self._final_received = False
        self._result: str | None = None

    def absorb(self, message: TextMessage) -> None:
        """Append a chunk.

        Raises:
            ProtocolViolationError: if a chunk follows the final one, or a
                full text follows partial chunks.
        """
        if self._final_received:
            raise ProtocolViolationError("Text received after the final chunk")
        if isinstance(message, FullText):
            if self._chunks:
                raise ProtocolViolationError("Full text received after partial chunks")
            is_final = True
        else:
            is_final = message.is_final
        self._chunks.append(message.text)
        self._length += len(message.text)
        self._final_received = is_final

    def finalize(self) -> str:
        """Join all chunks. Idempotent: later calls return the cached text.

        Raises:
            PrematureFinalizeError: if no final chunk has arrived.
        """
        if self._result is not None:
            return self._result
        if not self._final_received:
            raise PrematureFinalizeError(
                f"Cannot finalize after {len(self._chunks)} chunks without a final chunk"
            )
        self._result = "".join(self._chunks)
        return self._result

    @property
    def text(self) -> str:
        if self._result is not None:
            return self._result
        return "".join(self._chunks)

    @property
    def length(self) -> int:
        return self._length

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    @property
    def is_complete(self) -> bool:
        return self._final_received

import threading

DEFAULT_MAX_OUTPUT_CHARS = 1_000_000


class OutputBuffer:
    """Line accumulator that keeps a bounded prefix of a stream."""

    def __init__(self, limit: int = DEFAULT_MAX_OUTPUT_CHARS) -> None:
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self._limit = limit
        self._chunks: list[str] = []
        self._size = 0
        self._truncated = False
        self._lock = threading.Lock()

    def append(self, line: str) -> None:
        with self._lock:
            if self._truncated:
                return

            room = self._limit - self._size
            if len(line) > room:
                if room > 0:
                    self._chunks.append(line[:room])
                    self._size += room
                self._truncated = True
                return

            self._chunks.append(line)
            self._size += len(line)

    @property
    def truncated(self) -> bool:
        return self._truncated

    def text(self) -> str:
        with self._lock:
            text = "".join(self._chunks).rstrip("\r\n")
            if self._truncated:
                marker = f"[output truncated after {self._limit} characters]"
                text = f"{text}\n{marker}" if text else marker
            return text

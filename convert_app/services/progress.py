"""Parser for ffmpeg's ``-progress`` key/value stream.

ffmpeg writes blocks of ``key=value`` lines.  Only two keys matter here:

* ``out_time_ms`` -- elapsed output time in microseconds.  It becomes a
  relative estimate against a fixed 60 second baseline; the real output
  duration is never known to the parser.
* ``progress=end`` -- the terminal marker, which forces 100% and done.

Every other line is a diagnostic and is handed back to the caller to log.
"""
import codecs
from dataclasses import dataclass
from typing import List, Optional

OUT_TIME_KEY = 'out_time_ms'
PROGRESS_KEY = 'progress'
END_VALUE = 'end'

# out_time_ms / 60000 is the percent estimate
PROGRESS_DIVISOR = 60000


@dataclass(frozen=True)
class ProgressEvent:
    """A normalized progress signal."""

    percent: int
    done: bool = False


def estimate_percent(out_time_us: int) -> int:
    """Map an ``out_time_ms`` value onto 0..100, rounding half up."""
    if out_time_us <= 0:
        return 0
    return min(100, int(out_time_us / PROGRESS_DIVISOR + 0.5))


class ProgressParser:
    """Line-oriented parser that tolerates arbitrary chunk boundaries.

    Incomplete trailing lines are buffered until the next chunk completes
    them, so a marker split across reads is still recognized.
    """

    def __init__(self):
        # Multibyte characters may straddle two reads
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._buffer = ''
        self._diagnostics: List[str] = []

    @staticmethod
    def parse_line(line: str) -> Optional[ProgressEvent]:
        """Parse one line; returns None for anything that is not a marker."""
        line = line.strip()
        if '=' not in line:
            return None

        key, value = line.split('=', 1)
        key = key.strip()
        value = value.strip()

        if key == OUT_TIME_KEY:
            try:
                return ProgressEvent(percent=estimate_percent(int(value)))
            except ValueError:
                # ffmpeg reports N/A before the first frame is muxed
                return None
        if key == PROGRESS_KEY and value == END_VALUE:
            return ProgressEvent(percent=100, done=True)
        return None

    def feed(self, chunk) -> List[ProgressEvent]:
        """Consume a chunk of output and return the events it completed."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)

        self._buffer += chunk
        events = []
        while '\n' in self._buffer:
            line, self._buffer = self._buffer.split('\n', 1)
            self._consume(line.rstrip('\r'), events)
        return events

    def flush(self) -> List[ProgressEvent]:
        """Parse whatever is left in the buffer (call at end of stream)."""
        self._buffer += self._decoder.decode(b'', final=True)
        events = []
        if self._buffer:
            line, self._buffer = self._buffer, ''
            self._consume(line.rstrip('\r'), events)
        return events

    def drain_diagnostics(self) -> List[str]:
        """Return and forget the non-progress lines seen so far."""
        lines, self._diagnostics = self._diagnostics, []
        return lines

    def _consume(self, line: str, events: List[ProgressEvent]) -> None:
        event = self.parse_line(line)
        if event is not None:
            events.append(event)
        elif line.strip() and not self._is_progress_field(line):
            self._diagnostics.append(line.strip())

    @staticmethod
    def _is_progress_field(line: str) -> bool:
        # The rest of a -progress block (frame=, fps=, speed=, ...) is noise, not diagnostics
        key, sep, _ = line.partition('=')
        return bool(sep) and key.strip().replace('_', '').isalnum() and ' ' not in key.strip()

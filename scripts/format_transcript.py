"""Print a stored recognizer JSON document as a speaker-attributed transcript.

Usage:
    python scripts/format_transcript.py path/to/transcript.json
"""

import os
import sys
from pathlib import Path

# Add project root to path so we can import meeting_minutes
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from meeting_minutes.domain.errors import ProviderOutputError  # noqa: E402
from meeting_minutes.pipelines.minutes import TranscriptParser  # noqa: E402


def main() -> int:
    if len(sys.argv) < 2:
        print("Usage: python scripts/format_transcript.py [path/to/transcript.json]")
        return 1

    path = Path(sys.argv[1])
    if not path.exists():
        print(f"File '{path}' not found.")
        return 1

    parser = TranscriptParser()
    try:
        transcript = parser.parse_document(path.read_bytes())
    except ProviderOutputError as exc:
        print(f"Could not parse transcript: {exc}")
        return 1

    print(f"Speakers: {transcript.speaker_count}  Duration: {transcript.duration_seconds:.1f}s")
    for speaker in transcript.speakers:
        print(f"  {speaker.id}: {speaker.segment_count} segment(s), {speaker.total_duration:.1f}s")
    print("-------------------------")
    print(parser.format(transcript), end="")
    return 0


if __name__ == "__main__":
    sys.exit(main())

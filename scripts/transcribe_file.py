import asyncio
import os
import sys

# Add project root to path so we can import skillcheck
sys.path.append(os.getcwd())

from skillcheck.services.transcribe import (  # noqa: E402
    MediaPayload,
    TranscriptionError,
    get_transcription_client,
)


async def main():
    if len(sys.argv) < 2:
        print("Usage: python scripts/transcribe_file.py path/to/recording.webm [language]")
        return

    file_path = sys.argv[1]
    language = sys.argv[2] if len(sys.argv) > 2 else None

    if not os.path.exists(file_path):
        print(f"File '{file_path}' not found.")
        return

    print(f"Reading {file_path}...")
    with open(file_path, "rb") as f:
        media = MediaPayload(data=f.read())

    print(f"Transcribing {len(media.data)} bytes using Amazon Transcribe Streaming...")
    try:
        result = await get_transcription_client().transcribe(media, language)
    except TranscriptionError as e:
        kind = "retryable" if e.retryable else "terminal"
        print(f"\nTranscription Error ({kind}): {e}")
        return

    print(f"\n--- Transcript ({result.language}) ---")
    print(result.text)
    print("-------------------------")


if __name__ == "__main__":
    asyncio.run(main())

"""
Transcriber -- audio file or YouTube URL to text.

YouTube audio is pulled with the yt-dlp CLI (hard-killed after 90s) and
all audio is transcribed with OpenAI Whisper. Input problems raise
ValueError; download failures raise YouTubeDownloadError and API
failures raise TranscriptionError.
"""

import logging
import re
import subprocess
import tempfile
import uuid
from pathlib import Path
from typing import Optional, Tuple

from openai import OpenAI

import config

logger = logging.getLogger(__name__)

YOUTUBE_URL_PATTERNS = [
    re.compile(r"^https?://(www\.)?youtube\.com/watch\?v=[\w-]+"),
    re.compile(r"^https?://youtu\.be/[\w-]+"),
    re.compile(r"^https?://(www\.)?youtube\.com/shorts/[\w-]+"),
]


class TranscriptionError(RuntimeError):
    """Download or speech-to-text failure."""


class YouTubeDownloadError(TranscriptionError):
    """yt-dlp could not fetch the video's audio."""


def is_valid_youtube_url(url: Optional[str]) -> bool:
    """Supported formats: youtube.com/watch, youtu.be, youtube.com/shorts."""
    if not url:
        return False
    return any(pattern.match(url.strip()) for pattern in YOUTUBE_URL_PATTERNS)


def safe_audio_filename(title: str) -> str:
    stem = re.sub(r"[^a-zA-Z0-9]", "_", title or "")[:50] or "youtube_audio"
    return f"{stem}.mp3"


class Transcriber:
    """Turns uploaded audio or YouTube videos into transcripts."""

    def __init__(self, client: Optional[OpenAI] = None,
                 download_dir: Optional[Path] = None):
        self._client = client
        self.download_dir = download_dir or Path(tempfile.gettempdir()) / "yt-downloads"

    def transcribe_youtube(self, url: str) -> str:
        if not is_valid_youtube_url(url):
            raise ValueError(
                "Invalid YouTube URL. Supported formats: "
                "youtube.com/watch, youtu.be, youtube.com/shorts"
            )
        audio, title = self.download_youtube_audio(url)
        return self.transcribe(audio, safe_audio_filename(title))

    def download_youtube_audio(self, url: str) -> Tuple[bytes, str]:
        """
        Download a video's audio track as mp3.

        Returns:
            (audio bytes, video title)
        """
        self.download_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.download_dir / f"{uuid.uuid4()}.mp3"

        args = [
            config.YTDLP_BINARY,
            "-x",
            "--audio-format", "mp3",
            "--audio-quality", "5",
            "-o", str(output_path),
            "--no-playlist",
            "--max-filesize", "50M",
            "--socket-timeout", "30",
            "--print", "title",
            "--no-simulate",
        ]
        if config.WARP_PROXY:
            args += ["--proxy", config.WARP_PROXY]
        args.append(url)

        logger.info(f"Downloading YouTube audio: {url}")
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=config.YOUTUBE_DOWNLOAD_TIMEOUT,
            )
        except subprocess.TimeoutExpired:
            output_path.unlink(missing_ok=True)
            raise YouTubeDownloadError("YouTube download timed out")
        except OSError as e:
            raise YouTubeDownloadError(f"Failed to start yt-dlp: {e}") from e

        if result.returncode != 0:
            logger.error(f"yt-dlp error: {result.stderr}")
            output_path.unlink(missing_ok=True)
            raise YouTubeDownloadError(
                f"YouTube download failed ({result.returncode}). "
                f"{_download_help(result.stderr)}"
            )

        try:
            audio = output_path.read_bytes()
        except OSError as e:
            raise YouTubeDownloadError("Failed to read downloaded audio file") from e
        finally:
            output_path.unlink(missing_ok=True)

        title = (result.stdout or "").strip().splitlines()
        title = title[-1] if title else "youtube_audio"
        logger.info(f"Downloaded YouTube audio: {title} ({len(audio)} bytes)")
        return audio, title

    def transcribe(self, audio: bytes, filename: str) -> str:
        """Send audio to Whisper and return the transcript text."""
        if not audio:
            raise ValueError("Audio file is empty")
        if len(audio) > config.MAX_AUDIO_BYTES:
            raise ValueError("Audio file too large. Maximum size is 25MB.")

        try:
            transcript = self._get_client().audio.transcriptions.create(
                model=config.OPENAI_TRANSCRIBE_MODEL,
                file=(filename or "audio.mp3", audio),
                response_format="text",
            )
        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            raise TranscriptionError(f"Transcription failed: {e}") from e

        # response_format="text" returns a plain string
        if not isinstance(transcript, str):
            transcript = getattr(transcript, "text", "") or ""
        return transcript.strip()

    def _get_client(self) -> OpenAI:
        """Get OpenAI client with API key from DB or env."""
        if self._client is None:
            self._client = OpenAI(api_key=config.get_api_key('openai'))
        return self._client


def _download_help(stderr: Optional[str]) -> str:
    stderr = stderr or ""
    if "bot" in stderr or "Sign in" in stderr:
        return ("YouTube blocked this request. Download the audio manually, "
                "then upload it here.")
    return "Try downloading the audio manually and uploading it here."

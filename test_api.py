"""
HTTP API tests using the Flask test client.

Every test builds its own app against a temporary database with an
in-memory sound source, a mocked notifier and mocked OpenAI clients.

Run: python -m unittest test_api
"""

import io
import json
import os
import shutil
import sys
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import config
from api import create_app
from auth import generate_magic_token
from collectors import BaseSoundCollector, TrendingSound, TrendPoint
from content_generator import ContentGenerator
from transcriber import Transcriber, YouTubeDownloadError
from trend_radar.collector import TrendRadarCollector


class StubSoundCollector(BaseSoundCollector):
    """Serves one sound per region, or nothing at all."""

    def __init__(self, sounds_per_region=1):
        self.sounds_per_region = sounds_per_region
        self.calls = []

    def collect_sounds(self, country_code):
        self.calls.append(country_code)
        return [
            TrendingSound(
                clip_id=f"{country_code}-{i}",
                title=f"Sound {i} ({country_code})",
                rank=i + 1,
                trend=[TrendPoint(1, 1.0), TrendPoint(2, 2.0)],
            )
            for i in range(self.sounds_per_region)
        ]

    def health_check(self):
        return True


class ApiTestCase(unittest.TestCase):

    sounds_per_region = 0

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.db_path = Path(self.tmpdir) / "api.db"

        self.patches = [
            patch.object(config, "REGIONS_PER_CYCLE", 3),
            patch.object(config, "ROTATION_OFFSET", 0),
            patch.object(config, "CRON_SECRET", ""),
        ]
        for p in self.patches:
            p.start()

        self.source = StubSoundCollector(self.sounds_per_region)
        self.trend_collector = TrendRadarCollector(
            collector=self.source,
            db_path=self.db_path,
            regions=["US", "GB", "BR", "MX", "DE"],
            clock=lambda: datetime(2024, 1, 1, 0, 15, tzinfo=timezone.utc),
            sleep=lambda seconds: None,
        )

        self.notifier = MagicMock()
        self.notifier.email_configured = True
        self.notifier.send_email.return_value = True

        self.openai = MagicMock()
        self.app = create_app(
            db_path=self.db_path,
            trend_collector=self.trend_collector,
            notifier=self.notifier,
            transcriber=Transcriber(client=self.openai,
                                    download_dir=Path(self.tmpdir) / "yt"),
            content_generator=ContentGenerator(self.db_path, client=self.openai),
        )
        self.app.config["TESTING"] = True
        self.app.config["SHOW_PLACEHOLDER_SOUNDS"] = True
        self.client = self.app.test_client()

    def tearDown(self):
        for p in self.patches:
            p.stop()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def post_sound(self, **body):
        return self.client.post("/sounds", json=body)


# ═══════════════════════════════════════════════════════════════════════
# Sound ingestion and ranked read
# ═══════════════════════════════════════════════════════════════════════

class TestSoundEndpoints(ApiTestCase):

    def test_post_then_read_reports_velocity(self):
        """uses 100 then 150 -> velocity 50, visible on the ranked read."""
        first = self.post_sound(soundId="abc", name="Test Sound", uses=100)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.get_json()["velocity"], 0)
        self.assertTrue(first.get_json()["created"])

        second = self.post_sound(soundId="abc", name="Test Sound", uses=150)
        self.assertEqual(second.status_code, 200)
        body = second.get_json()
        self.assertTrue(body["success"])
        self.assertFalse(body["created"])
        self.assertEqual(body["velocity"], 50)

        listing = self.client.get("/sounds").get_json()
        entry = next(s for s in listing if s["id"] == "abc")
        self.assertEqual(entry["latestUses"], 150)
        self.assertEqual(entry["velocity"], 50)
        self.assertEqual(entry["name"], "Test Sound")

    def test_post_validation(self):
        cases = [
            {"name": "No id", "uses": 1},
            {"soundId": "x", "uses": 1},
            {"soundId": "x", "name": "Bad uses", "uses": "abc"},
            {"soundId": "x", "name": "Negative", "uses": -1},
            {"soundId": "x", "name": "Boolean", "uses": True},
            {"soundId": "x", "name": "Missing uses"},
            {"soundId": "x", "name": "Fraction", "uses": 1.5},
        ]
        for body in cases:
            response = self.client.post("/sounds", json=body)
            self.assertEqual(response.status_code, 400, body)
            self.assertIn("error", response.get_json())

        self.assertEqual(self.trend_collector.store.count_sounds(), 0)

    def test_post_accepts_numeric_strings(self):
        response = self.post_sound(soundId="s", name="Sound", uses="42")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            self.trend_collector.store.get_latest_snapshot("s")["uses"], 42
        )

    def test_non_json_body_is_rejected(self):
        response = self.client.post("/sounds", data="uses=1",
                                    content_type="text/plain")
        self.assertEqual(response.status_code, 400)

    def test_empty_list_returns_placeholders(self):
        sounds = self.client.get("/sounds").get_json()
        self.assertEqual(len(sounds), 3)
        self.assertTrue(all(s["id"].startswith("placeholder-") for s in sounds))

    def test_empty_list_without_placeholders(self):
        self.app.config["SHOW_PLACEHOLDER_SOUNDS"] = False
        self.assertEqual(self.client.get("/sounds").get_json(), [])

    def test_ingestion_failure_still_answers(self):
        with patch.object(self.trend_collector, "fetch_trending_sounds",
                          side_effect=RuntimeError("db locked")):
            response = self.client.get("/sounds")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.get_json()), 3)

    def test_sound_details(self):
        self.assertEqual(self.client.get("/sounds/missing").status_code, 404)

        self.post_sound(soundId="abc", name="Test Sound", uses=100,
                        artist="Someone", tiktokUrl="https://tiktok.com/music/abc")
        self.post_sound(soundId="abc", name="Test Sound", uses=300)

        details = self.client.get("/sounds/abc").get_json()
        self.assertEqual(details["artist"], "Someone")
        self.assertEqual(details["tiktokUrl"], "https://tiktok.com/music/abc")
        self.assertEqual([s["uses"] for s in details["snapshots"]], [300, 100])
        self.assertEqual(details["snapshots"][0]["velocity"], 200)


class TestScrapingThroughApi(ApiTestCase):

    sounds_per_region = 2

    def test_read_scrapes_rotation_window_once(self):
        first = self.client.get("/sounds").get_json()
        self.client.get("/sounds")

        self.assertEqual(self.source.calls, ["US", "GB", "BR"])
        self.assertEqual(len(first), 6)
        self.assertTrue(all(s["velocity"] == 100 for s in first))

    def test_refresh_param_forces_fetch(self):
        self.client.get("/sounds")
        self.client.get("/sounds?refresh=true")
        self.assertEqual(self.source.calls, ["US", "GB", "BR"] * 2)

    def test_full_refresh(self):
        response = self.client.post("/sounds/refresh")
        self.assertEqual(response.status_code, 200)

        body = response.get_json()
        self.assertTrue(body["success"])
        self.assertEqual(body["soundsFound"], 10)
        self.assertEqual(body["alertsSent"], 0)
        self.assertIn("durationMs", body)
        self.assertEqual(self.source.calls, ["US", "GB", "BR", "MX", "DE"])

    def test_full_refresh_requires_secret_when_configured(self):
        self.app.config["CRON_SECRET"] = "s3cret"

        self.assertEqual(self.client.post("/sounds/refresh").status_code, 401)
        wrong = self.client.post("/sounds/refresh",
                                 headers={"Authorization": "Bearer nope"})
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(self.source.calls, [])

        ok = self.client.post("/sounds/refresh",
                              headers={"Authorization": "Bearer s3cret"})
        self.assertEqual(ok.status_code, 200)

    def test_refresh_info(self):
        body = self.client.get("/sounds/refresh").get_json()
        self.assertEqual(body["method"], "POST")


# ═══════════════════════════════════════════════════════════════════════
# Auth and alert settings
# ═══════════════════════════════════════════════════════════════════════

class TestAuthAndSettings(ApiTestCase):

    def login(self, email="creator@example.com"):
        token = generate_magic_token(email, self.app.secret_key)
        return self.client.get("/auth/verify", query_string={"token": token})

    def test_magic_link_flow(self):
        response = self.client.post("/auth", json={"email": " Creator@Example.com "})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"success": True})

        args = self.notifier.send_email.call_args[0]
        self.assertEqual(args[0], "creator@example.com")
        link = args[3].split(": ", 1)[1]
        token = parse_qs(urlparse(link).query)["token"][0]

        verified = self.client.get("/auth/verify", query_string={"token": token})
        self.assertEqual(verified.status_code, 200)
        self.assertEqual(verified.get_json()["user"]["email"], "creator@example.com")

        settings = self.client.get("/alerts/settings")
        self.assertEqual(settings.status_code, 200)
        self.assertEqual(settings.get_json()["emailFrequency"], "daily")

    def test_invalid_email(self):
        response = self.client.post("/auth", json={"email": "not-an-email"})
        self.assertEqual(response.status_code, 400)
        self.notifier.send_email.assert_not_called()

    def test_email_not_configured_still_succeeds(self):
        self.notifier.email_configured = False
        response = self.client.post("/auth", json={"email": "a@b.com"})
        self.assertEqual(response.status_code, 200)
        self.notifier.send_email.assert_not_called()

    def test_bad_token(self):
        self.assertEqual(
            self.client.get("/auth/verify?token=garbage").status_code, 401
        )
        other = generate_magic_token("x@y.com", "some-other-key")
        self.assertEqual(
            self.client.get("/auth/verify", query_string={"token": other}).status_code,
            401,
        )

    def test_settings_require_login(self):
        self.assertEqual(self.client.get("/alerts/settings").status_code, 401)
        self.assertEqual(
            self.client.put("/alerts/settings", json={}).status_code, 401
        )

    def test_update_settings(self):
        self.login()
        response = self.client.put("/alerts/settings", json={
            "emailFrequency": "weekly",
            "velocityThreshold": 150,
            "discordWebhook": "https://discord.com/api/webhooks/1/abc",
        })
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body["emailFrequency"], "weekly")
        self.assertEqual(body["velocityThreshold"], 150)
        self.assertEqual(body["minUses"], config.DEFAULT_MIN_USES)
        self.assertEqual(body["discordWebhook"],
                         "https://discord.com/api/webhooks/1/abc")

    def test_invalid_settings(self):
        self.login()
        for body in ({"emailFrequency": "hourly"},
                     {"velocityThreshold": "lots"},
                     {"minUses": -3},
                     {"colour": "blue"}):
            self.assertEqual(
                self.client.put("/alerts/settings", json=body).status_code, 400, body
            )

    def test_logout(self):
        self.login()
        self.client.post("/auth/logout")
        self.assertEqual(self.client.get("/alerts/settings").status_code, 401)

    def test_dispatch_endpoint(self):
        response = self.client.post("/alerts/dispatch", json={"frequency": "weekly"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["frequency"], "weekly")

        bad = self.client.post("/alerts/dispatch", json={"frequency": "hourly"})
        self.assertEqual(bad.status_code, 400)


# ═══════════════════════════════════════════════════════════════════════
# Transcription and content generation
# ═══════════════════════════════════════════════════════════════════════

class TestContentEndpoints(ApiTestCase):

    def test_transcribe_upload(self):
        self.openai.audio.transcriptions.create.return_value = " hello world \n"

        response = self.client.post(
            "/transcribe",
            data={"file": (io.BytesIO(b"ID3fake-mp3"), "clip.mp3")},
            content_type="multipart/form-data",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"transcript": "hello world"})

        kwargs = self.openai.audio.transcriptions.create.call_args[1]
        self.assertEqual(kwargs["model"], config.OPENAI_TRANSCRIBE_MODEL)
        self.assertEqual(kwargs["file"], ("clip.mp3", b"ID3fake-mp3"))

    def test_transcribe_requires_input(self):
        response = self.client.post("/transcribe", data={},
                                    content_type="multipart/form-data")
        self.assertEqual(response.status_code, 400)

    def test_transcribe_invalid_youtube_url(self):
        response = self.client.post(
            "/transcribe", data={"youtubeUrl": "https://vimeo.com/123"},
            content_type="multipart/form-data",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("Invalid YouTube URL", response.get_json()["error"])

    def test_youtube_download_failure(self):
        transcriber = self.app.extensions["trendcatch"]["transcriber"]
        with patch.object(transcriber, "download_youtube_audio",
                          side_effect=YouTubeDownloadError("YouTube blocked this request")):
            response = self.client.post(
                "/transcribe",
                data={"youtubeUrl": "https://youtu.be/dQw4w9WgXcQ"},
                content_type="multipart/form-data",
            )
        self.assertEqual(response.status_code, 400)

    def test_transcription_api_failure(self):
        self.openai.audio.transcriptions.create.side_effect = RuntimeError("quota")
        response = self.client.post(
            "/transcribe",
            data={"file": (io.BytesIO(b"audio"), "clip.mp3")},
            content_type="multipart/form-data",
        )
        self.assertEqual(response.status_code, 500)

    def _model_returns(self, text):
        completion = MagicMock()
        completion.choices = [MagicMock()]
        completion.choices[0].message.content = text
        completion.usage.prompt_tokens = 1000
        completion.usage.completion_tokens = 2000
        completion.usage.total_tokens = 3000
        self.openai.chat.completions.create.return_value = completion

    def test_generate(self):
        content = {"shortFormScripts": [], "socialPosts": {}, "blogArticle": {},
                   "quotes": ["Ship it."], "contentCalendar": []}
        self._model_returns("```json\n" + json.dumps(content) + "\n```")

        response = self.client.post("/generate", json={"transcript": "We talked."})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["quotes"], ["Ship it."])

    def test_generate_requires_transcript(self):
        response = self.client.post("/generate", json={"transcript": "  "})
        self.assertEqual(response.status_code, 400)
        self.openai.chat.completions.create.assert_not_called()

    def test_generate_unparseable_output(self):
        self._model_returns("Sorry, I can't help with that.")
        response = self.client.post("/generate", json={"transcript": "Hi"})
        self.assertEqual(response.status_code, 500)


class TestServeCommand(unittest.TestCase):

    def test_serve_runs_app_factory(self):
        import main
        tmpdir = tempfile.mkdtemp()
        try:
            with patch.object(config, "DB_PATH", Path(tmpdir) / "serve.db"), \
                    patch("api.create_app") as mock_create_app:
                exit_code = main.main(["serve", "--port", "8080"])
        finally:
            shutil.rmtree(tmpdir, ignore_errors=True)

        self.assertEqual(exit_code, 0)
        mock_create_app.assert_called_once_with()
        mock_create_app.return_value.run.assert_called_once_with(
            host="127.0.0.1", port=8080,
        )



if __name__ == "__main__":
    unittest.main()

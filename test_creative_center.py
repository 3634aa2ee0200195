"""
Creative Center scraper tests.

Covers the __NEXT_DATA__ page parser and the HTTP collector with a mocked
requests session (no network access).

Run: python -m unittest test_creative_center
"""

import json
import os
import sys
import unittest
from unittest.mock import MagicMock

import requests

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import config
from collectors.creative_center import (
    CreativeCenterCollector, parse_creative_center_page,
)


def build_page(payload, attrs=' crossorigin="anonymous"'):
    """Wrap a payload the way the live page embeds it."""
    return (
        "<html><head><title>Popular music</title></head><body>"
        "<div id=\"__next\"></div>"
        f'<script id="__NEXT_DATA__" type="application/json"{attrs}>'
        f"{json.dumps(payload)}</script>"
        "</body></html>"
    )


def sound_list_payload(sounds, pagination=None):
    data = {"soundList": sounds}
    if pagination is not None:
        data["pagination"] = pagination
    return {"props": {"pageProps": {"data": data}}}


SAMPLE_SOUND = {
    "clipId": "7212345678901234567",
    "title": "Paint The Town Red",
    "author": "Doja Cat",
    "cover": "https://p16.example.com/cover.jpeg",
    "link": "https://www.tiktok.com/music/x-7212345678901234567",
    "rank": 2,
    "rankDiff": 3,
    "rankDiffType": 1,
    "duration": 60,
    "countryCode": "US",
    "trend": [
        {"time": 1700000000, "value": 0.4},
        {"time": 1700086400, "value": 0.7},
        {"time": 1700172800, "value": 1.0},
    ],
}


class TestParseCreativeCenterPage(unittest.TestCase):

    def test_parses_sound_list(self):
        html = build_page(sound_list_payload([SAMPLE_SOUND], {"total": 100}))
        result = parse_creative_center_page(html, "US")

        self.assertEqual(len(result.sounds), 1)
        self.assertIsNone(result.error)

        sound = result.sounds[0]
        self.assertEqual(sound.clip_id, "7212345678901234567")
        self.assertEqual(sound.title, "Paint The Town Red")
        self.assertEqual(sound.author, "Doja Cat")
        self.assertEqual(sound.rank, 2)
        self.assertEqual(sound.country_code, "US")
        self.assertEqual(sound.trend_values, [0.4, 0.7, 1.0])

    def test_missing_script_tag_is_no_data(self):
        result = parse_creative_center_page("<html><body>blocked</body></html>", "GB")
        self.assertEqual(result.sounds, [])
        self.assertIn("__NEXT_DATA__", result.error)

    def test_invalid_json_is_no_data(self):
        html = ('<script id="__NEXT_DATA__" type="application/json">'
                '{"props": {broken</script>')
        result = parse_creative_center_page(html, "GB")
        self.assertEqual(result.sounds, [])
        self.assertIn("invalid", result.error)

    def test_missing_data_path_is_no_data(self):
        html = build_page({"props": {"pageProps": {"data": {}}}})
        result = parse_creative_center_page(html, "DE")
        self.assertEqual(result.sounds, [])
        self.assertIn("soundList", result.error)

    def test_empty_body(self):
        self.assertEqual(parse_creative_center_page("", "US").sounds, [])
        self.assertIsNotNone(parse_creative_center_page(None).error)

    def test_records_without_clip_id_are_skipped(self):
        sounds = [{"title": "No id"}, "not-a-dict", SAMPLE_SOUND]
        result = parse_creative_center_page(build_page(sound_list_payload(sounds)))
        self.assertEqual([s.clip_id for s in result.sounds], ["7212345678901234567"])

    def test_region_falls_back_to_requested_country(self):
        record = dict(SAMPLE_SOUND)
        del record["countryCode"]
        result = parse_creative_center_page(
            build_page(sound_list_payload([record])), "JP"
        )
        self.assertEqual(result.sounds[0].country_code, "JP")

    def test_bad_trend_points_are_dropped(self):
        record = dict(SAMPLE_SOUND, trend=[{"time": 1, "value": 0.5}, None,
                                           {"time": "x", "value": 1}])
        result = parse_creative_center_page(build_page(sound_list_payload([record])))
        self.assertEqual(result.sounds[0].trend_values, [0.5])


class TestCreativeCenterCollector(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.collector = CreativeCenterCollector(
            base_url="https://example.test/music", session=self.session, timeout=5,
        )

    def _respond(self, status, text=""):
        response = MagicMock()
        response.status_code = status
        response.text = text
        self.session.get.return_value = response

    def test_collects_sounds_for_country(self):
        self._respond(200, build_page(sound_list_payload([SAMPLE_SOUND])))

        sounds = self.collector.collect_sounds("US")

        self.assertEqual(len(sounds), 1)
        _, kwargs = self.session.get.call_args
        self.assertEqual(kwargs["params"], {"countryCode": "US"})
        self.assertEqual(kwargs["headers"]["User-Agent"], config.USER_AGENT)
        self.assertEqual(kwargs["timeout"], 5)

    def test_non_200_is_no_data(self):
        self._respond(403, "Forbidden")
        self.assertIsNone(self.collector.fetch_page("US"))
        self.assertEqual(self.collector.collect_sounds("US"), [])

    def test_network_error_is_no_data(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        self.assertEqual(self.collector.collect_sounds("US"), [])

    def test_unparseable_page_is_no_data(self):
        self._respond(200, "<html>captcha</html>")
        self.assertEqual(self.collector.collect_sounds("BR"), [])

    def test_health_check(self):
        self._respond(200)
        self.assertTrue(self.collector.health_check())

        self.session.get.side_effect = requests.Timeout("slow")
        self.assertFalse(self.collector.health_check())


if __name__ == "__main__":
    unittest.main()

"""Tests for crewupload.core.output formatting helpers."""

from __future__ import annotations

import json

import pytest

from crewupload.core import output
from crewupload.core.output import (
    OutputFormat,
    format_file_size,
    format_speed,
    format_time,
    format_time_remaining,
    print_output,
)


class TestFormatFileSize:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (0, "0 B"),
            (512, "512 B"),
            (1024, "1.0 KB"),
            (1536, "1.5 KB"),
            (1024**2, "1.0 MB"),
            (5 * 1024**3, "5.0 GB"),
            (3 * 1024**5, "3072.0 TB"),
        ],
    )
    def test_sizes(self, value, expected):
        assert format_file_size(value) == expected


class TestFormatSpeed:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (0, "0 B/s"),
            (100, "100.0 B/s"),
            (2.5 * 1024**2, "2.5 MB/s"),
        ],
    )
    def test_speeds(self, value, expected):
        assert format_speed(value) == expected


class TestFormatTime:
    @pytest.mark.parametrize(
        "seconds, expected",
        [
            (None, "--"),
            (0, "--"),
            (float("inf"), "--"),
            (0.4, "< 1sec"),
            (1, "1sec"),
            (45, "45secs"),
            (61, "1min 1sec"),
            (299, "4mins 59secs"),
            (300, "5mins"),
            (3725, "1hr 2mins"),
            (7200, "2hrs"),
        ],
    )
    def test_durations(self, seconds, expected):
        assert format_time(seconds) == expected

    def test_time_remaining_rounds_up(self):
        assert format_time_remaining(1000, 300) == "4secs"

    def test_time_remaining_without_speed(self):
        assert format_time_remaining(1000, 0) == "--"


class TestPrintOutput:
    def test_json(self, capsys: pytest.CaptureFixture):
        print_output([{"name": "A.mov"}], format=OutputFormat.JSON)

        assert json.loads(capsys.readouterr().out) == [{"name": "A.mov"}]

    def test_table(self, monkeypatch: pytest.MonkeyPatch):
        printed = []
        monkeypatch.setattr(output.console, "print", lambda *a, **k: printed.append(a[0]))

        print_output([{"name": "A.mov", "size": "1.0 KB"}], columns=["name", "size"])

        table = printed[0]
        assert [c.header for c in table.columns] == ["Name", "Size"]
        assert table.row_count == 1

    def test_empty_table(self, monkeypatch: pytest.MonkeyPatch):
        printed = []
        monkeypatch.setattr(output.console, "print", lambda *a, **k: printed.append(a[0]))

        print_output([], columns=["name"])

        assert "No files" in printed[0]

    def test_output_format_from_string(self):
        assert OutputFormat.from_string("JSON") is OutputFormat.JSON

"""Tests for the silence monitor."""

import asyncio

import pytest

from voxtap.audio.silence import SilenceMonitor, silencedetect_filter


class TestSilencedetectFilter:
    def test_threshold_is_negated(self):
        assert silencedetect_filter(30) == "silencedetect=noise=-30dB:d=0.5"

    def test_sign_is_ignored(self):
        assert silencedetect_filter(-45, window=1.0) == "silencedetect=noise=-45dB:d=1"


class TestSilenceMonitor:
    @pytest.mark.asyncio
    async def test_fires_after_continuous_silence(self):
        fired = []
        monitor = SilenceMonitor(0.6, lambda: fired.append(True), min_recording=0)
        monitor.start()

        monitor.feed_line("[silencedetect @ 0x1] silence_start: 1.25")
        assert monitor.is_silent and monitor.armed
        await asyncio.sleep(0.2)

        assert fired == [True]
        assert not monitor.armed

    @pytest.mark.asyncio
    async def test_signal_disarms_timer(self):
        fired = []
        monitor = SilenceMonitor(0.7, lambda: fired.append(True), min_recording=0)
        monitor.start()

        monitor.feed_line("silence_start: 1.0")
        monitor.feed_line("silence_end: 1.1 | silence_duration: 0.1")
        await asyncio.sleep(0.3)

        assert fired == []
        assert not monitor.is_silent

    @pytest.mark.asyncio
    async def test_waits_for_minimum_recording_time(self):
        fired = []
        monitor = SilenceMonitor(0.5, lambda: fired.append(True), min_recording=0.2)
        monitor.start()

        monitor.feed_line("silence_start: 0")
        await asyncio.sleep(0.05)
        assert fired == []
        await asyncio.sleep(0.3)
        assert fired == [True]

    @pytest.mark.asyncio
    async def test_fires_only_once(self):
        fired = []
        monitor = SilenceMonitor(0.5, lambda: fired.append(True), min_recording=0)
        monitor.start()

        monitor.feed_line("silence_start: 0")
        await asyncio.sleep(0.05)
        monitor.feed_line("silence_start: 3")
        await asyncio.sleep(0.05)

        assert fired == [True]

    @pytest.mark.asyncio
    async def test_cancel_ignores_input(self):
        fired = []
        monitor = SilenceMonitor(0.5, lambda: fired.append(True), min_recording=0)
        monitor.start()
        monitor.cancel()

        monitor.feed_line("silence_start: 0")
        await asyncio.sleep(0.05)
        assert fired == []

    def test_lines_before_start_are_ignored(self):
        monitor = SilenceMonitor(1.0, lambda: None)
        monitor.feed_line("silence_start: 0")
        assert not monitor.armed

"""
Unit tests for relay metrics (counters, first-fragment latency, snapshot shape).
No server required.
"""
import unittest

from metrics import streaming_metrics


class TestStreamingMetrics(unittest.TestCase):
    def setUp(self):
        streaming_metrics.reset()

    def test_snapshot_has_required_keys(self):
        s = streaming_metrics.get_snapshot()
        for key in (
            "active_streams",
            "frames_relayed",
            "transcriptions",
            "provider_failures",
            "client_disconnects",
            "cleanup_failures",
            "avg_first_fragment_ms",
            "p95_first_fragment_ms",
        ):
            self.assertIn(key, s)
        self.assertIsNone(s["avg_first_fragment_ms"])

    def test_stream_open_close_never_negative(self):
        streaming_metrics.record_stream_open()
        streaming_metrics.record_stream_close()
        streaming_metrics.record_stream_close()
        self.assertEqual(streaming_metrics.get_snapshot()["active_streams"], 0)

    def test_latency_avg_and_p95(self):
        for ms in range(1, 101):
            streaming_metrics.record_first_fragment_ms(float(ms))
        s = streaming_metrics.get_snapshot()
        self.assertEqual(s["avg_first_fragment_ms"], 50.5)
        self.assertEqual(s["p95_first_fragment_ms"], 95.0)
        self.assertEqual(s["first_fragment_sample_count"], 100)

    def test_failures_by_stage(self):
        streaming_metrics.record_provider_failure("pre_stream")
        streaming_metrics.record_provider_failure("mid_stream")
        streaming_metrics.record_provider_failure("mid_stream")
        failures = streaming_metrics.get_snapshot()["provider_failures"]
        self.assertEqual(failures, {"pre_stream": 1, "mid_stream": 2, "transcription": 0})

    def test_reset(self):
        streaming_metrics.record_frame()
        streaming_metrics.record_cleanup_failure()
        streaming_metrics.reset()
        s = streaming_metrics.get_snapshot()
        self.assertEqual(s["frames_relayed"], 0)
        self.assertEqual(s["cleanup_failures"], 0)


if __name__ == "__main__":
    unittest.main()

from livecall.derived import (
    destination_options,
    effective_recommended_destination,
    effective_segment_options,
)
from livecall.session import CallSession, SegmentOption, build_detected_jobs
from livecall.states import Destination, Segment


class TestRecommendedDestination:
    def test_server_recommendation_wins(self):
        s = CallSession(call_id="CA1", detected_segment=Segment.EMERGENCY,
                        recommended_destination=Destination.SITE_VISIT)
        assert effective_recommended_destination(s) == Destination.SITE_VISIT

    def test_emergency_falls_back_to_dispatch(self):
        s = CallSession(call_id="CA1", detected_segment=Segment.EMERGENCY)
        assert effective_recommended_destination(s) == Destination.EMERGENCY_DISPATCH

    def test_job_and_postcode_gives_instant_quote(self):
        s = CallSession(call_id="CA1")
        s.captured_info.job = "Mount TV"
        s.captured_info.postcode = "SW1A 1AA"
        assert effective_recommended_destination(s) == Destination.INSTANT_QUOTE

    def test_default_is_video_request(self):
        s = CallSession(call_id="CA1")
        s.captured_info.job = "Mount TV"
        assert effective_recommended_destination(s) == Destination.VIDEO_REQUEST


class TestDestinationOptions:
    def test_all_destinations_listed_with_one_recommended(self):
        options = destination_options(CallSession(call_id="CA1"))
        assert [o.destination for o in options] == list(Destination)
        assert [o.destination for o in options if o.recommended] == [Destination.VIDEO_REQUEST]
        assert all(o.description for o in options)

    def test_unmatched_job_hides_instant_quote(self):
        s = CallSession(call_id="CA1")
        s.detected_jobs = build_detected_jobs([
            {"description": "Mount TV", "sku": {"id": "tv-mount"}},
            {"description": "Rebuild garden wall", "matched": False},
        ])
        assert Destination.INSTANT_QUOTE not in [o.destination for o in destination_options(s)]

    def test_all_matched_keeps_instant_quote(self):
        s = CallSession(call_id="CA1")
        s.detected_jobs = build_detected_jobs([{"description": "Mount TV", "sku": {"id": "tv-mount"}}])
        assert Destination.INSTANT_QUOTE in [o.destination for o in destination_options(s)]


class TestSegmentOptions:
    def test_stored_options_returned(self):
        opts = [SegmentOption(segment=Segment.OAP, confidence=70)]
        s = CallSession(call_id="CA1", detected_segment=Segment.OAP, segment_confidence=70, segment_options=opts)
        assert effective_segment_options(s) == opts

    def test_falls_back_to_detected_segment(self):
        s = CallSession(call_id="CA1", detected_segment=Segment.BUDGET, segment_confidence=40)
        assert effective_segment_options(s) == [SegmentOption(segment=Segment.BUDGET, confidence=40)]

    def test_nothing_detected(self):
        assert effective_segment_options(CallSession(call_id="CA1")) == []

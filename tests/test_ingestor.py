import logging

import pytest
from livecall.ingestor import EventIngestor
from livecall.messages import ErrorNotice, MESSAGE_TYPES, SessionEnded
from livecall.states import Destination, Segment, Station

from conftest import OTHER_CALL_ID


def test_every_message_kind_has_a_handler():
    for kind in MESSAGE_TYPES:
        assert hasattr(EventIngestor, f"_on_{kind}")


class TestCallIdFilter:
    def test_other_call_is_dropped(self, ingestor, store, envelope):
        before = store.snapshot().to_dict()
        for raw in (
            envelope("station_update", call_id=OTHER_CALL_ID, state={"currentStation": "SEGMENT"}),
            envelope("segment_confirmed", call_id=OTHER_CALL_ID, segment="OAP"),
            envelope("info_captured", call_id=OTHER_CALL_ID, capturedInfo={"name": "Eve"}),
            envelope("qualified_set", call_id=OTHER_CALL_ID, qualified=True),
            envelope("session_started", call_id=OTHER_CALL_ID),
        ):
            assert ingestor.ingest(raw) is None
        assert store.snapshot().to_dict() == before
        assert ingestor.dropped_count == 5


class TestStationMessages:
    def test_station_update_scenario(self, ingestor, store, envelope):
        before = store.snapshot().to_dict()
        ingestor.ingest(envelope(
            "station_update",
            state={"currentStation": "SEGMENT", "completedStations": ["LISTEN"]},
        ))
        after = store.snapshot().to_dict()
        assert after["currentStation"] == "SEGMENT"
        assert after["completedStations"] == ["LISTEN"]
        for key in before:
            if key not in ("currentStation", "completedStations"):
                assert after[key] == before[key]

    def test_station_update_sets_recommendation(self, ingestor, store, envelope):
        ingestor.ingest(envelope("station_update", state={
            "currentStation": "DESTINATION",
            "completedStations": ["LISTEN", "SEGMENT", "QUALIFY"],
            "recommendedDestination": "INSTANT_QUOTE",
        }))
        assert store.session.recommended_destination == Destination.INSTANT_QUOTE

    def test_session_started_resets_station(self, ingestor, store, envelope):
        store.apply_update({"currentStation": "QUALIFY", "completedStations": ["LISTEN", "SEGMENT"]})
        ingestor.ingest(envelope("session_started", phone="+447700900123"))
        assert store.session.current_station == Station.LISTEN
        assert store.session.completed_stations == []


class TestSegmentMessages:
    def test_segment_detected_scenario(self, ingestor, store, envelope):
        ingestor.ingest(envelope(
            "segment_detected", segment="LANDLORD", confidence=62,
            alternatives=[{"segment": "PROP_MGR", "confidence": 40}],
        ))
        options = [(o.segment.value, o.confidence) for o in store.session.segment_options]
        assert options == [("LANDLORD", 62), ("PROP_MGR", 40)]
        assert store.session.detected_segment == Segment.LANDLORD
        assert store.session.segment_confidence == 62

    @pytest.mark.parametrize("primary,alternatives", [
        (10, [{"segment": "OAP", "confidence": 90}, {"segment": "BUDGET", "confidence": 50},
              {"segment": "PROP_MGR", "confidence": 70}]),
        (55, [{"segment": "OAP", "confidence": 55}, {"segment": "BUDGET", "confidence": 55},
              {"segment": "SMALL_BIZ", "confidence": 55}, {"segment": "PROP_MGR", "confidence": 56}]),
        (80, []),
    ])
    def test_options_at_most_three_sorted_descending(self, ingestor, store, envelope, primary, alternatives):
        ingestor.ingest(envelope("segment_detected", segment="LANDLORD", confidence=primary, alternatives=alternatives))
        confidences = [o.confidence for o in store.session.segment_options]
        assert len(confidences) <= 3
        assert confidences == sorted(confidences, reverse=True)

    def test_ties_broken_by_arrival_order(self, ingestor, store, envelope):
        ingestor.ingest(envelope(
            "segment_detected", segment="LANDLORD", confidence=50,
            alternatives=[{"segment": "OAP", "confidence": 50}, {"segment": "BUDGET", "confidence": 50},
                          {"segment": "PROP_MGR", "confidence": 50}],
        ))
        assert [o.segment for o in store.session.segment_options] == [Segment.LANDLORD, Segment.OAP, Segment.BUDGET]

    def test_unknown_primary_segment_changes_nothing(self, ingestor, store, envelope):
        assert ingestor.ingest(envelope("segment_detected", segment="ALIEN", confidence=99)) is None
        assert store.session.detected_segment is None
        assert store.session.segment_options == []

    def test_segment_confirmed_forces_full_confidence(self, ingestor, store, envelope):
        ingestor.ingest(envelope("segment_detected", segment="LANDLORD", confidence=35))
        ingestor.ingest(envelope("segment_confirmed", segment="BUSY_PRO"))
        assert store.session.detected_segment == Segment.BUSY_PRO
        assert store.session.segment_confidence == 100


class TestInfoMessages:
    def test_sequential_info_captured_scenario(self, ingestor, store, envelope):
        ingestor.ingest(envelope("info_captured", capturedInfo={"postcode": "NG1"}))
        ingestor.ingest(envelope("info_captured", capturedInfo={"name": "Dave"}))
        assert store.session.captured_info.postcode == "NG1"
        assert store.session.captured_info.name == "Dave"

    def test_qualified_set(self, ingestor, store, envelope):
        ingestor.ingest(envelope("qualified_set", qualified=False, notes=["tenant, not owner"]))
        assert store.session.is_qualified is False

    def test_destination_selected(self, ingestor, store, envelope):
        ingestor.ingest(envelope("destination_selected", destination="SITE_VISIT"))
        assert store.session.selected_destination == Destination.SITE_VISIT

    def test_jobs_detected(self, ingestor, store, envelope):
        ingestor.ingest(envelope("jobs_detected", jobs=[
            {"description": "Mount TV", "matched": True, "sku": {"id": "tv-mount-standard", "pricePence": 6500}},
            {"description": "Fix fence", "matched": False},
        ]))
        assert [j.matched for j in store.session.detected_jobs] == [True, False]


class TestNotices:
    def test_session_ended_and_error_surface_without_state_change(self, store, envelope):
        notices = []
        ingestor = EventIngestor(store, on_notice=notices.append)
        before = store.snapshot().to_dict()
        ingestor.ingest(envelope("session_ended"))
        ingestor.ingest(envelope("error", message="Cannot advance"))
        assert store.snapshot().to_dict() == before
        assert isinstance(notices[0], SessionEnded)
        assert isinstance(notices[1], ErrorNotice)
        assert notices[1].message == "Cannot advance"

    def test_failing_notice_handler_is_contained(self, store, envelope):
        def boom(message):
            raise RuntimeError("toast failed")
        ingestor = EventIngestor(store, on_notice=boom)
        assert ingestor.ingest(envelope("session_ended")) is not None


class TestBadInput:
    def test_bad_message_does_not_stop_the_next(self, ingestor, store, envelope, caplog):
        with caplog.at_level(logging.WARNING):
            assert ingestor.ingest("{broken") is None
            assert ingestor.ingest('{"type": "callscript:info_captured"}') is None
        ingestor.ingest(envelope("info_captured", capturedInfo={"postcode": "NG1"}))
        assert store.session.captured_info.postcode == "NG1"
        assert "unparseable" in caplog.text
        assert ingestor.accepted_count == 1

    def test_infinite_confidence_is_dropped(self, ingestor, store):
        raw = '{"type": "callscript:segment_detected", "data": {"callId": "CA_test_123", "segment": "LANDLORD", "confidence": 1e999}}'
        assert ingestor.ingest(raw) is None
        assert store.session.detected_segment is None
        assert ingestor.dropped_count == 1

    def test_infinite_alternative_is_dropped_alone(self, ingestor, store, envelope):
        ingestor.ingest(envelope(
            "segment_detected", segment="LANDLORD", confidence=62,
            alternatives=[{"segment": "OAP", "confidence": float("inf")}],
        ))
        assert [o.segment for o in store.session.segment_options] == [Segment.LANDLORD]

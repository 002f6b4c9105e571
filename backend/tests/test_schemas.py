"""Tests for request and response schemas."""

from app.coverage.cell import Probe
from app.schemas.samples import CellView, ProbeIn, normalize_samples


class TestProbeIn:
    """Tests for ProbeIn field resolution."""

    def test_canonical_names(self):
        probe = ProbeIn.model_validate(
            {
                "id": "p1",
                "latitude": 45.5,
                "longitude": -122.6,
                "timestamp": "2026-10-19T10:00:00.000Z",
                "sourceId": "!a1b2c3d4",
                "sourceName": "Hilltop",
                "pingSuccess": True,
                "signalStrength": -92,
                "signalQuality": 6.5,
            }
        ).to_probe()
        assert probe == Probe(
            id="p1",
            latitude=45.5,
            longitude=-122.6,
            timestamp="2026-10-19T10:00:00.000Z",
            source_id="!a1b2c3d4",
            source_name="Hilltop",
            ping_success=True,
            signal_strength=-92.0,
            signal_quality=6.5,
        )

    def test_short_coordinate_names(self):
        probe = ProbeIn.model_validate({"lat": 1.5, "lon": 2.5}).to_probe()
        assert (probe.latitude, probe.longitude) == (1.5, 2.5)
        probe = ProbeIn.model_validate({"lat": 1.5, "lng": 3.5}).to_probe()
        assert probe.longitude == 3.5

    def test_snake_case_names(self):
        probe = ProbeIn.model_validate(
            {"latitude": 1, "longitude": 2, "source_id": "n1", "ping_success": False}
        ).to_probe()
        assert probe.source_id == "n1"
        assert probe.ping_success is False

    def test_radio_names(self):
        """nodeId/repeaterName/rssi/snr map onto the source fields."""
        probe = ProbeIn.model_validate(
            {"nodeId": "!deadbeef", "repeaterName": "Ridge", "rssi": -101, "snr": -3.25}
        ).to_probe()
        assert probe.source_id == "!deadbeef"
        assert probe.source_name == "Ridge"
        assert probe.signal_strength == -101.0
        assert probe.signal_quality == -3.25

    def test_numeric_identifiers_become_strings(self):
        probe = ProbeIn.model_validate({"id": 42, "nodeId": 305419896}).to_probe()
        assert probe.id == "42"
        assert probe.source_id == "305419896"

    def test_blank_identifiers_are_absent(self):
        probe = ProbeIn.model_validate({"id": "  ", "sourceId": ""}).to_probe()
        assert probe.id is None
        assert probe.source_id is None

    def test_unknown_fields_ignored(self):
        probe = ProbeIn.model_validate({"lat": 1, "lng": 2, "battery": 88}).to_probe()
        assert probe.latitude == 1.0

    def test_missing_coordinates_still_validate(self):
        """Missing coordinates are rejected later, when placing the probe."""
        probe = ProbeIn.model_validate({"id": "p1"}).to_probe()
        assert probe.latitude is None
        assert probe.longitude is None


class TestNormalizeSamples:
    """Tests for normalize_samples()."""

    def test_rejects_non_objects_and_bad_types(self):
        probes, rejected = normalize_samples(
            [{"lat": 1, "lng": 2}, "text", 12, None, {"lat": "north", "lng": 2}]
        )
        assert len(probes) == 1
        assert rejected == 4

    def test_boolean_id_rejected(self):
        probes, rejected = normalize_samples([{"id": True, "lat": 1, "lng": 2}])
        assert probes == []
        assert rejected == 1


class TestCellView:
    """Tests for the camelCase cell rendering."""

    def test_serializes_camel_case(self):
        view = CellView(
            received=1.0,
            lost=0.0,
            samples=1,
            sources={},
            first_seen=None,
            last_update="2026-10-19T10:00:00.000Z",
            success_rate=1.0,
            tier="VeryReliable",
            color="rgba(34, 139, 34, 0.6)",
            bounds={"south": 0, "west": 0, "north": 1, "east": 1},
        )
        data = view.model_dump(by_alias=True)
        assert data["lastUpdate"] == "2026-10-19T10:00:00.000Z"
        assert data["successRate"] == 1.0
        assert "last_update" not in data

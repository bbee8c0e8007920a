from datetime import date

import pytest

from conftest import REGISTRY_GOLF, SPECS_GOLF
from vrm_resolver.models import ProviderName
from vrm_resolver.parsers import (
    extract_number,
    has_useful_data,
    parse_payload,
    parse_registry,
    parse_specs,
    write_off_category,
)


@pytest.mark.parametrize("value, expected", [
    (1968, 1968.0),
    (2.0, 2.0),
    ("1,968 cc", 1968.0),
    ("139 g/km", 139.0),
    ("£32,500", 32500.0),
    ("55.4mpg", 55.4),
    ("n/a", None),
    (None, None),
    (True, None),
])
def test_extract_number(value, expected):
    assert extract_number(value) == expected


def test_parse_registry():
    fields = parse_registry(REGISTRY_GOLF)
    assert fields["make"] == "VOLKSWAGEN"
    assert fields["color"] == "WHITE"
    assert fields["fuel_type"] == "PETROL"
    assert fields["year"] == 2019
    assert fields["engine_size"] == 1.4
    assert fields["co2_emissions"] == 36
    assert fields["tax_due_date"] == date(2025, 3, 1)
    assert fields["mot_expiry"] == date(2025, 2, 14)
    assert fields["emission_class"] == "EURO 6"
    assert "model" not in fields


def test_parse_registry_ignores_bad_dates():
    fields = parse_registry({"make": "FORD", "motExpiryDate": "soon"})
    assert "mot_expiry" not in fields


def test_parse_specs():
    fields = parse_specs(SPECS_GOLF)
    assert fields["make"] == "VOLKSWAGEN"
    assert fields["model"] == "GOLF"
    assert fields["variant"] == "GTE Advance"
    assert fields["body_type"] == "HATCHBACK"
    assert fields["doors"] == 5
    assert fields["engine_size"] == 1.4
    assert fields["combined_mpg"] == 156.9
    assert fields["insurance_group"] == "29E"
    assert fields["co2_emissions"] == 40
    assert fields["power_bhp"] == 201
    assert fields["top_speed_mph"] == 138
    assert fields["color"] == "PURE WHITE"
    assert fields["previous_keepers"] == 2
    assert fields["is_written_off"] is False
    assert fields["is_stolen"] is False


def test_parse_specs_fallback_sections():
    fields = parse_specs({
        "BodyDetails": {"BodyStyle": "SALOON", "NumberOfSeats": "5"},
        "Transmission": {"TransmissionType": "Manual"},
        "DvlaTechnicalDetails": {"EngineCapacityCc": "1995"},
        "VehicleExciseDutyDetails": {"VedRate": {"Standard": {"TwelveMonths": 190}}},
    })
    assert fields["body_type"] == "SALOON"
    assert fields["seats"] == 5
    assert fields["transmission"] == "Manual"
    assert fields["engine_size"] == 2.0
    assert fields["annual_tax"] == 190


@pytest.mark.parametrize("record, expected", [
    ({"category": "s"}, "S"),
    ({"status": "Recorded as CAT N by insurer"}, "N"),
    ({"status": "CATEGORY D"}, "D"),
    ({"status": "written off"}, "unknown"),
])
def test_write_off_category(record, expected):
    assert write_off_category(record) == expected


def test_parse_specs_write_off():
    fields = parse_specs({
        "ModelData": {"Make": "FORD"},
        "VehicleHistory": {
            "writeOffRecord": True,
            "writeoff": [{"status": "CAT S"}],
            "stolenRecord": False,
            "financeRecord": True,
        },
    })
    assert fields["is_written_off"] is True
    assert fields["write_off_category"] == "S"
    assert fields["has_outstanding_finance"] is True


def test_parse_payload_dispatch():
    assert parse_payload(ProviderName.REGISTRY, {"make": "FORD"}) == {"make": "FORD"}
    assert parse_payload(ProviderName.SPECS, {}) == {}


def test_has_useful_data():
    assert has_useful_data({"make": "FORD"})
    assert has_useful_data({"co2_emissions": 0})
    assert not has_useful_data({})
    assert not has_useful_data({"make": "null", "model": " "})
    assert not has_useful_data({"previous_keepers": 3})

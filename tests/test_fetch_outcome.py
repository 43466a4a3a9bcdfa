import json

import pytest

from blob_ingestion.execution import Found, NotFound, Failed, to_record, to_line, parse_line
from conftest import sidecars_body


def test_found_line_round_trip():
    payload = sidecars_body(100, n=3)
    payload["execution_optimistic"] = False
    payload["finalized"] = True
    outcome = Found(slot=100, payload=payload)

    line = to_line(outcome)

    assert line.endswith("\n")
    assert line.count("\n") == 1
    assert parse_line(line) == outcome


def test_found_with_root_round_trip():
    outcome = Found(slot=7, payload={"data": []}, root="0xabc")
    assert to_record(outcome) == {"slot": 7, "status": "found", "response": {"data": []}, "root": "0xabc"}
    assert parse_line(to_line(outcome)) == outcome


def test_embedded_newlines_stay_on_one_line():
    outcome = Found(slot=1, payload={"note": "a\nb", "ünï": "cödé"})
    line = to_line(outcome)
    assert line.count("\n") == 1
    assert parse_line(line.encode("utf-8")).payload == outcome.payload


def test_not_found_has_explicit_marker():
    record = json.loads(to_line(NotFound(slot=102)))
    assert record == {"slot": 102, "status": "not_found", "response": None}
    assert parse_line(to_line(NotFound(slot=102))) == NotFound(slot=102)


def test_failed_is_not_serializable():
    with pytest.raises(TypeError):
        to_line(Failed(slot=10, cause="server_error"))


def test_parse_rejects_unknown_status():
    with pytest.raises(ValueError):
        parse_line('{"slot": 1, "status": "failed"}')


def test_outcomes_expose_status():
    assert Found(slot=1, payload=None).status == "found"
    assert NotFound(slot=1).status == "not_found"
    assert Failed(slot=1, cause="x").status == "failed"

import json

from app.services.scan_payload import encode_scan_payload, is_valid_token, parse_scan_payload

TOKEN = "ab" * 32


def test_encode_is_compact_json():
    raw = encode_scan_payload(token=TOKEN, member_id=42)
    assert " " not in raw
    assert json.loads(raw) == {"t": TOKEN, "m": 42}


def test_parse_structured_payload():
    payload = parse_scan_payload(encode_scan_payload(token=TOKEN, member_id=7))
    assert payload.token == TOKEN
    assert payload.member_id == 7
    assert payload.legacy is False


def test_parse_legacy_bare_token_is_lowercased():
    payload = parse_scan_payload("  " + TOKEN.upper() + "\n")
    assert payload.token == TOKEN
    assert payload.member_id is None
    assert payload.legacy is True


def test_json_without_token_field_falls_back_to_legacy():
    payload = parse_scan_payload('{"m": 5}')
    assert payload.legacy is True
    assert not is_valid_token(payload.token)


def test_broken_json_is_treated_as_legacy():
    payload = parse_scan_payload('{"t": "abc"')
    assert payload.legacy is True


def test_non_numeric_member_id_is_dropped():
    payload = parse_scan_payload(json.dumps({"t": TOKEN, "m": "nobody"}))
    assert payload.token == TOKEN
    assert payload.member_id is None


def test_token_shape():
    assert is_valid_token(TOKEN)
    assert not is_valid_token(TOKEN[:-1])
    assert not is_valid_token(TOKEN + "a")
    assert not is_valid_token("zz" * 32)
    assert not is_valid_token(TOKEN + "\n")
    assert not is_valid_token("")

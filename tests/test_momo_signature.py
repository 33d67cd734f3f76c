import pytest

from evswap.utils import momo_signature


def test_raw_signature_keeps_field_order_and_blanks_missing_values():
    params = {"orderId": "EVS1", "amount": 400000, "accessKey": "ak", "extraData": None}

    raw = momo_signature.build_raw_signature(params, ("accessKey", "amount", "extraData", "orderId", "requestId"))

    assert raw == "accessKey=ak&amount=400000&extraData=&orderId=EVS1&requestId="


def test_signature_is_hex_sha256_and_sensitive_to_values():
    params = {key: "v" for key in momo_signature.CALLBACK_SIGNATURE_FIELDS}

    signature = momo_signature.sign(params, momo_signature.CALLBACK_SIGNATURE_FIELDS, "secret")
    tampered = momo_signature.sign(
        {**params, "amount": "1"}, momo_signature.CALLBACK_SIGNATURE_FIELDS, "secret"
    )

    assert len(signature) == 64
    assert int(signature, 16) >= 0
    assert signature != tampered
    assert momo_signature.signatures_match(signature, signature)
    assert not momo_signature.signatures_match(signature, tampered)
    assert not momo_signature.signatures_match(signature, None)


def test_extra_data_round_trip():
    extra = momo_signature.build_extra_data(1, 13)

    assert extra == "packageId=1&driverId=13"
    assert momo_signature.parse_extra_data(extra) == {"packageId": "1", "driverId": "13"}


def test_extra_data_drops_malformed_pairs():
    values = momo_signature.parse_extra_data("packageId=1=2&driverId&note=ok&=5")

    assert values == {"note": "ok"}
    assert momo_signature.parse_extra_data("") == {}
    assert momo_signature.parse_extra_data(None) == {}


def test_extract_int():
    values = {"packageId": "7", "driverId": "abc"}

    assert momo_signature.extract_int(values, "packageId") == 7
    assert momo_signature.extract_int(values, "driverId") is None
    assert momo_signature.extract_int(values, "missing") is None


@pytest.mark.parametrize("raw", ["1_0", " 42", "42 ", "", "+", "-", "٣", "1.0", "0x1"])
def test_extract_int_rejects_loose_numbers(raw):
    assert momo_signature.extract_int({"packageId": raw}, "packageId") is None


def test_extract_int_accepts_signed_digits():
    assert momo_signature.extract_int({"packageId": "-3"}, "packageId") == -3
    assert momo_signature.extract_int({"packageId": "+7"}, "packageId") == 7


def test_generated_ids_are_unique():
    assert momo_signature.generate_order_id() != momo_signature.generate_order_id()
    assert momo_signature.generate_order_id().startswith("EVS")
    assert momo_signature.generate_request_id() != momo_signature.generate_request_id()

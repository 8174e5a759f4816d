"""Tests for composite response ids."""
import pytest

from postlink.core.exceptions import InvalidResponseIdError
from postlink.models.enums import OfferType
from postlink.services.response_ref import ResponseKey, parse_response_ref


def test_parse_composite_id():
    key = ResponseKey.parse("send_12_delivery_34")
    assert key == ResponseKey(OfferType.SEND, 12, OfferType.DELIVERY, 34)
    assert key.send_id == 12
    assert key.delivery_id == 34


def test_parse_delivery_offer():
    key = ResponseKey.parse("delivery_7_send_3")
    assert key.send_id == 3
    assert key.delivery_id == 7


def test_format_is_inverse_of_parse():
    assert ResponseKey.parse("send_12_delivery_34").format() == "send_12_delivery_34"
    assert str(ResponseKey(OfferType.DELIVERY, 1, OfferType.SEND, 2)) == "delivery_1_send_2"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "send_1_delivery",
        "send_1_delivery_2_3",
        "send_1_send_2",
        "parcel_1_delivery_2",
        "send_0_delivery_2",
        "send_1_delivery_-2",
        "send_x_delivery_2",
        "send_1.5_delivery_2",
    ],
)
def test_malformed_composite_ids_rejected(raw):
    with pytest.raises(InvalidResponseIdError):
        ResponseKey.parse(raw)


def test_parse_response_ref_numeric():
    assert parse_response_ref("42") == 42
    assert parse_response_ref("send_1_delivery_2") == ResponseKey(OfferType.SEND, 1, OfferType.DELIVERY, 2)


def test_parse_response_ref_zero_rejected():
    with pytest.raises(InvalidResponseIdError):
        parse_response_ref("0")

"""
Tests for mapping unverified Stripe events to a merchant.
"""
from uuid import uuid4

import pytest

from substrack.services.tenant_resolver import merchant_id_from_metadata, resolve_merchant_id, subscription_ref

MERCHANT_ID = uuid4()


@pytest.mark.parametrize("obj", [
    {"metadata": {"merchant_id": str(MERCHANT_ID)}},
    {"subscription_details": {"metadata": {"merchant_id": str(MERCHANT_ID)}}},
    {"parent": {"subscription_details": {"metadata": {"merchant_id": str(MERCHANT_ID)}}}},
    {"lines": {"data": [{"metadata": {"merchant_id": str(MERCHANT_ID)}}]}},
    {"items": {"data": [{"metadata": {"merchant_id": str(MERCHANT_ID)}}]}},
])
def test_metadata_locations(obj):
    assert merchant_id_from_metadata(obj) == MERCHANT_ID


def test_invalid_uuid_falls_through_to_next_location():
    obj = {
        "metadata": {"merchant_id": "acme"},
        "parent": {"subscription_details": {"metadata": {"merchant_id": str(MERCHANT_ID)}}},
    }

    assert merchant_id_from_metadata(obj) == MERCHANT_ID


def test_no_metadata():
    assert merchant_id_from_metadata({"metadata": {}, "lines": {"data": []}}) is None


@pytest.mark.parametrize("obj,expected", [
    ({"object": "subscription", "id": "sub_1"}, "sub_1"),
    ({"object": "invoice", "subscription": "sub_2"}, "sub_2"),
    ({"object": "invoice", "subscription": {"id": "sub_3", "object": "subscription"}}, "sub_3"),
    ({"object": "invoice", "parent": {"subscription_details": {"subscription": "sub_4"}}}, "sub_4"),
    ({"object": "checkout.session", "subscription": None}, None),
])
def test_subscription_ref(obj, expected):
    assert subscription_ref(obj) == expected


async def test_resolve_without_any_hint(db):
    event = {"id": "evt_1", "type": "invoice.paid", "data": {"object": {"object": "invoice", "subscription": "sub_x"}}}

    assert await resolve_merchant_id(db, event) is None


async def test_resolve_malformed_event(db):
    assert await resolve_merchant_id(db, {"data": {"object": "not-a-dict"}}) is None
    assert await resolve_merchant_id(db, {}) is None

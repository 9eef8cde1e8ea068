import pytest

from tracker.app.errors import PackageClosedError
from tracker.app.schemas import Package
from tracker.app.status import (
    Action,
    OpenWorkflowPolicy,
    StrictTerminalPolicy,
    policy_for,
    public_status_for,
)


@pytest.mark.parametrize("action,label", [
    ("created", "Order Created"),
    ("in_store", "In Store Processing"),
    ("assigned_destination", "In Transit"),
    ("en_route_to_warehouse", "In Transit"),
    ("arrived_at_warehouse", "In Transit"),
    ("stored_in_warehouse", "In Transit"),
    ("ready_for_dispatch", "In Transit"),
    ("out_for_delivery", "Out for Delivery"),
    ("delivered", "Delivered"),
    ("failed_delivery", "Delivery Attempted"),
    ("returned_to_sender", "Returned to Sender"),
])
def test_known_actions(action, label):
    assert public_status_for(action) == label


@pytest.mark.parametrize("action", ["", "lost_in_space", "DELIVERED", "delivered "])
def test_unknown_actions_fall_back_to_in_transit(action):
    assert public_status_for(action) == "In Transit"


def test_every_action_has_a_label():
    for action in Action:
        assert public_status_for(action.value)


def test_enum_members_map_like_their_values():
    assert public_status_for(Action.OUT_FOR_DELIVERY) == "Out for Delivery"


def _package(internal, public):
    return Package.model_validate({
        "packageId": "abcd1234", "trackingNumber": "TRK-000001", "customerName": "A",
        "recipientName": "B", "destination": "C", "currentInternalStatus": internal,
        "currentPublicStatus": public, "createdAt": "2025-01-01T00:00:00Z",
        "checkpoints": [{"order": 1, "locationName": "Front Desk", "timestamp": "2025-01-01T00:00:00Z",
                         "internalStatus": internal, "publicStatus": public}],
    })


def test_open_policy_accepts_scans_after_delivery():
    OpenWorkflowPolicy().check(_package("delivered", "Delivered"), "in_store")


@pytest.mark.parametrize("terminal", ["delivered", "returned_to_sender"])
def test_strict_policy_rejects_scans_after_terminal_status(terminal):
    with pytest.raises(PackageClosedError):
        StrictTerminalPolicy().check(_package(terminal, public_status_for(terminal)), "in_store")


def test_strict_policy_allows_failed_delivery_retry():
    StrictTerminalPolicy().check(_package("failed_delivery", "Delivery Attempted"), "out_for_delivery")


def test_policy_for():
    assert isinstance(policy_for(True), StrictTerminalPolicy)
    assert isinstance(policy_for(False), OpenWorkflowPolicy)

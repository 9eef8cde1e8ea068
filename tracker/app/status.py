# tracker/app/status.py
from enum import Enum
from typing import Protocol

from .errors import PackageClosedError


class Action(str, Enum):
    CREATED = "created"
    IN_STORE = "in_store"
    ASSIGNED_DESTINATION = "assigned_destination"
    EN_ROUTE_TO_WAREHOUSE = "en_route_to_warehouse"
    ARRIVED_AT_WAREHOUSE = "arrived_at_warehouse"
    STORED_IN_WAREHOUSE = "stored_in_warehouse"
    READY_FOR_DISPATCH = "ready_for_dispatch"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED_DELIVERY = "failed_delivery"
    RETURNED_TO_SENDER = "returned_to_sender"


ORDER_CREATED = "Order Created"
IN_TRANSIT = "In Transit"

PUBLIC_STATUS = {
    Action.CREATED: ORDER_CREATED,
    Action.IN_STORE: "In Store Processing",
    Action.ASSIGNED_DESTINATION: IN_TRANSIT,
    Action.EN_ROUTE_TO_WAREHOUSE: IN_TRANSIT,
    Action.ARRIVED_AT_WAREHOUSE: IN_TRANSIT,
    Action.STORED_IN_WAREHOUSE: IN_TRANSIT,
    Action.READY_FOR_DISPATCH: IN_TRANSIT,
    Action.OUT_FOR_DELIVERY: "Out for Delivery",
    Action.DELIVERED: "Delivered",
    Action.FAILED_DELIVERY: "Delivery Attempted",
    Action.RETURNED_TO_SENDER: "Returned to Sender",
}

TERMINAL_ACTIONS = frozenset({Action.DELIVERED.value, Action.RETURNED_TO_SENDER.value})


def public_status_for(action: str) -> str:
    """Map a raw action token to the customer-facing label.

    Unknown tokens are accepted and reported as "In Transit".
    """
    try:
        return PUBLIC_STATUS[Action(action)]
    except ValueError:
        return IN_TRANSIT


class CompletionPolicy(Protocol):
    def check(self, package, action: str) -> None:
        """Raise if ``action`` may not be appended to ``package``."""
        ...


class OpenWorkflowPolicy:
    """Any action is accepted from any prior status."""

    def check(self, package, action: str) -> None:
        return None


class StrictTerminalPolicy:
    """Rejects further checkpoints once a package was delivered or returned."""

    def check(self, package, action: str) -> None:
        if package.current_internal_status in TERMINAL_ACTIONS:
            raise PackageClosedError(package.package_id, package.current_public_status)


def policy_for(strict_terminal: bool) -> CompletionPolicy:
    return StrictTerminalPolicy() if strict_terminal else OpenWorkflowPolicy()

"""State machines for domain entities.

Deterministic state machine that defines valid status transitions
for orders, plus the priority ordering used to reject out-of-order
carrier updates.
"""

from dataclasses import dataclass
from enum import Enum

from storefront.domain.exceptions import IllegalTransitionError


# ============================================================================
# Order State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State diagram:
        FAILED ◄──────── PENDING ─────────────────────────► CANCELLED
          │   fail        │  ▲                                 ▲
          │               │  │ retry                           │
          └──────────────────┘                                 │
                          │ pay                                │
                          ▼                                    │
                        PAID ──────────────────────────────────┤
                          │ process                            │
                          ▼                                    │
                        PROCESSING ────────────────────────────┤
                          │ ship                               │
                          ▼                                    │
                        SHIPPED ───────────────────────────────┘
                          │ deliver
                          ▼
                        DELIVERED
                          │ complete
                          ▼
                        COMPLETED
    """

    PENDING = "PENDING"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get valid target states in declaration order.

        Returns:
            List of states that can be transitioned to.
        """
        allowed = _ORDER_TRANSITIONS.get(self, set())
        return [s for s in OrderStatus if s in allowed]

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state.

        Returns:
            True if no further transitions are possible.
        """
        return len(_ORDER_TRANSITIONS.get(self, set())) == 0

    def is_cancellable(self) -> bool:
        """Check if order can be cancelled from this state."""
        return self.can_transition_to(OrderStatus.CANCELLED)

    def holds_stock(self) -> bool:
        """Check if an order in this state still holds its stock reservation.

        Stock is committed when the order is created, so every live
        state before delivery holds it. Cancelling from one of these
        states releases the reservation.
        """
        return self in _STOCK_HOLDING

    def is_paid(self) -> bool:
        """Check if payment has been received for an order in this state."""
        return self in {
            OrderStatus.PAID,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.COMPLETED,
        }

    @property
    def priority(self) -> int | None:
        """Position in the forward fulfilment chain.

        CANCELLED and FAILED sit outside the chain and have no priority.
        """
        return _STATUS_PRIORITY.get(self)

    def is_regression_to(self, target: "OrderStatus") -> bool:
        """Check if moving to target would step backwards in the chain.

        Only statuses that both sit on the fulfilment chain are
        compared; anything involving CANCELLED or FAILED is left to the
        transition table.
        """
        if self.priority is None or target.priority is None:
            return False
        return target.priority < self.priority


# Order state transitions (defined outside enum to avoid Enum restrictions)
_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.FAILED},
    OrderStatus.PAID: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {OrderStatus.COMPLETED},
    OrderStatus.FAILED: {OrderStatus.PENDING},  # Payment retry
    OrderStatus.COMPLETED: set(),  # Terminal state
    OrderStatus.CANCELLED: set(),  # Terminal state
}

_STATUS_PRIORITY: dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.PAID: 1,
    OrderStatus.PROCESSING: 2,
    OrderStatus.SHIPPED: 3,
    OrderStatus.DELIVERED: 4,
    OrderStatus.COMPLETED: 5,
}

_STOCK_HOLDING: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.PENDING,
        OrderStatus.PAID,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
    }
)


class ShippingType(str, Enum):
    """How an order is shipped."""

    DOMESTIC = "DOMESTIC"
    INTERNATIONAL = "INTERNATIONAL"


# ============================================================================
# State Transition Result
# ============================================================================


@dataclass(frozen=True)
class StateTransition:
    """Represents an applied status change.

    Attributes:
        from_state: Previous state.
        to_state: New state.
        restores_stock: Whether the change releases the stock reservation.
    """

    from_state: OrderStatus
    to_state: OrderStatus
    restores_stock: bool = False


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_order_transition(
    order_number: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> StateTransition:
    """Validate an order status change and describe it.

    Args:
        order_number: Order number for error message.
        current_status: Current order status.
        target_status: Target order status.

    Returns:
        The StateTransition to apply.

    Raises:
        IllegalTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise IllegalTransitionError(
            order_number=order_number,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )
    return StateTransition(
        from_state=current_status,
        to_state=target_status,
        restores_stock=(
            target_status == OrderStatus.CANCELLED and current_status.holds_stock()
        ),
    )

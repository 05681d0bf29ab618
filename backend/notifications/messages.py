from .fanout import NotificationMessage


def order_offer_message(order) -> NotificationMessage:
    """Message sent to every driver contacted by a broadcast."""
    return NotificationMessage(
        title="New delivery available!",
        body="A new delivery is available. Accept it fast before another driver takes it!",
        push_body="Accept fast! First to claim it gets it.",
        type="info",
        tag=f"order-offer-{order.id}",
        data={
            "type": "order_offer",
            "order_id": str(order.id),
            "store_id": str(order.store_id),
        },
    )


def order_assigned_message(order, driver_name: str) -> NotificationMessage:
    """Message sent to the store owner once a driver claims an order."""
    return NotificationMessage(
        title="Driver assigned",
        body=f"{driver_name} accepted order {str(order.id)[:8]}.",
        type="success",
        tag=f"order-assigned-{order.id}",
        data={
            "type": "order_assigned",
            "order_id": str(order.id),
            "store_id": str(order.store_id),
        },
    )


def order_assignment_request_message(order) -> NotificationMessage:
    """Message sent to a driver the store picked by hand."""
    return NotificationMessage(
        title="New delivery assigned!",
        body=f"You have a new delivery waiting for your acceptance. Order #{str(order.id)[:8]}",
        push_body="Accept the delivery to start.",
        type="info",
        tag=f"order-{order.id}",
        data={
            "type": "new_delivery",
            "order_id": str(order.id),
            "store_id": str(order.store_id),
        },
    )

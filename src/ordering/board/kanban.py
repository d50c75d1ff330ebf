"""Order board: the Kanban view of seller orders, one column per status.

The board holds the last authoritative Order for every card plus the column
the card is currently shown in. A status change moves the card right away
(``move``); once the server answers, the card either settles on the returned
order or goes back to the column it came from (``revert``).
"""

from dataclasses import dataclass

import structlog

from ordering.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CardMove:
    """An optimistic move of one card, kept so it can be undone."""

    order_id: str
    origin: OrderStatus
    target: OrderStatus


class OrderBoard:
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._columns: dict[str, OrderStatus] = {}

    def __contains__(self, order_id) -> bool:
        return str(order_id) in self._orders

    def __len__(self) -> int:
        return len(self._orders)

    def get(self, order_id) -> Order | None:
        return self._orders.get(str(order_id))

    def place(self, order: Order) -> None:
        """Put an authoritative order on the board in its status column."""
        order_id = str(order.id)
        self._orders[order_id] = order
        self._columns[order_id] = OrderStatus(order.status)

    def column_of(self, order_id) -> OrderStatus | None:
        return self._columns.get(str(order_id))

    def column(self, status) -> list[str]:
        """Order ids shown in the ``status`` column, oldest order first."""
        status = OrderStatus(getattr(status, "value", status))
        ids = [order_id for order_id, column in self._columns.items() if column == status]
        return sorted(ids, key=lambda order_id: str(self._orders[order_id].created_at or ""))

    def columns(self) -> dict[OrderStatus, list[str]]:
        return {status: self.column(status) for status in OrderStatus}

    def move(self, order_id, target: OrderStatus) -> CardMove:
        """Show the card in ``target`` before the server has confirmed it."""
        order_id = str(order_id)
        move = CardMove(order_id=order_id, origin=self._columns[order_id], target=target)
        self._columns[order_id] = target
        return move

    def revert(self, move: CardMove) -> None:
        """Send the card back to its origin column, unless it has moved on since."""
        if self._columns.get(move.order_id) != move.target:
            return
        self._columns[move.order_id] = move.origin
        logger.info(
            "Order card moved back",
            order_id=move.order_id,
            origin=move.origin.value,
            target=move.target.value,
        )

    def settle(self, order: Order) -> None:
        """Replace the card with the server's order."""
        self.place(order)

    def clear(self) -> None:
        self._orders.clear()
        self._columns.clear()

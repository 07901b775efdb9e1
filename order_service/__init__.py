"""Order service: carts, orders and the ORDER_* event outbox."""

"""Load balancing over a pool of broker connections."""

from __future__ import annotations


class RabbitLoadBalance:
    """Chooses which pooled connection to use next."""

    def round_robin(self, current_index: int, max_value: int) -> int:
        """Return the index after ``current_index``, wrapping at ``max_value``.

        A pool size of zero always yields index 0. The remainder takes the
        sign of the dividend, so negative indices stay negative.
        """
        if max_value == 0:
            return 0
        following = current_index + 1
        remainder = abs(following) % abs(max_value)
        return remainder if following >= 0 else -remainder
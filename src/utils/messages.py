from typing import Optional

from textual.message import Message

from db.models import Identity, Order


class QuitRequestedMessage(Message):
    """Posted to the app by the quit dialog."""


class UserLogoutMessage(Message):
    """
    Posted to the app when the session has to end: the sign-out button,
    or a screen that found no signed-in identity.
    """


class UserLoginMessage(Message):
    """Posted to the app once LoginScreen has stored the new identity."""

    def __init__(self, identity: Identity) -> None:
        super().__init__()
        self.identity = identity


class CartChangedMessage(Message):
    """
    A cart line was added or removed, or checkout emptied the cart.

    Bubbles from the widget that changed the cart up to its screen, which
    reloads its lines and the cart count in the sidebar.
    """


class NewOrderMessage(Message):
    """Checkout placed an order; posted to the app."""

    def __init__(self, order: Order) -> None:
        super().__init__()
        self.order = order


class ModeSwitchedMessage(Message):
    """
    Posted to the app right before switch_mode, so the switch is logged
    with both ends.
    """

    def __init__(self, old_mode: Optional[str], new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode

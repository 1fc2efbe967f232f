"""Identity provider abstraction with state-change notifications."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class Identity:
    """The provider's handle for a signed-in user."""

    uid: str
    email: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    email_verified: bool = False


StateListener = Callable[[Optional[Identity]], object]


class IdentityProvider(ABC):
    """Interface for sign-in backends.

    Every change of the signed-in identity (sign-in, restore, sign-out) is
    announced to the listeners registered with :meth:`on_state_changed`.
    """

    def __init__(self) -> None:
        self.current_identity: Identity | None = None
        self._listeners: list[StateListener] = []

    def on_state_changed(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_current(self, identity: Identity | None) -> None:
        self.current_identity = identity
        for listener in list(self._listeners):
            listener(identity)

    def sign_out(self) -> None:
        """Forget the signed-in identity."""

        self._set_current(None)

    @abstractmethod
    def sign_in_with_password(self, email: str, password: str) -> Identity:
        """Verify an email/password pair. Raises ``InvalidCredentials``."""

    @abstractmethod
    def sign_in_with_popup(self, assertion: str | None = None) -> Identity:
        """Complete an interactive federated sign-in. Raises ``PopupBlocked``."""

    @abstractmethod
    def sign_in_with_redirect(self) -> str:
        """Start a redirect-based federated sign-in and return its URL."""

    @abstractmethod
    def complete_redirect(self, state: str, assertion: str) -> Identity:
        """Finish a sign-in started by :meth:`sign_in_with_redirect`."""

    @abstractmethod
    def create_account(self, email: str, password: str) -> Identity:
        """Create an email/password account and sign it in."""

    @abstractmethod
    def send_email_verification(self, identity: Identity) -> None:
        """Send an address verification message."""

    @abstractmethod
    def send_password_reset_email(self, email: str) -> None:
        """Send a password reset message."""

    @abstractmethod
    def confirm_email_verification(self, token: str) -> Identity:
        """Apply a verification token."""

    @abstractmethod
    def confirm_password_reset(self, token: str, new_password: str) -> None:
        """Apply a reset token and set the new password."""

    @abstractmethod
    def restore(self, uid: str) -> Identity | None:
        """Re-establish a previously signed-in identity by uid."""

"""
Deterministic decision shortcuts taken before asking the provider.
"""

from ..core.models import Action, ActionKind, CapabilityHints, DecisionResult


class LoginShortcut:
    """
    Fill and submit a detected login form with the session's credentials.

    Taken at most once per locator and never after a successful login, so
    wrong credentials cannot loop.
    """

    def propose(
        self,
        hints: CapabilityHints,
        locator: str,
        attempted_locators: list[str],
        login_successful: bool,
    ) -> DecisionResult | None:
        """
        Build the login batch, or None when the shortcut does not apply.

        Args:
            hints: Capability hints for the current snapshot
            locator: Current locator
            attempted_locators: Locators where login was already attempted
            login_successful: Whether a login already succeeded

        Returns:
            Batch of username, password and submit actions, or None
        """
        if not hints.login_form or hints.credentials is None:
            return None
        if login_successful or locator in attempted_locators:
            return None

        fields = hints.login_fields
        if fields is None or not fields.complete:
            return None

        return DecisionResult.of([
            Action(kind=ActionKind.ENTER_TEXT, target=fields.username_target, text=hints.credentials.username),
            Action(kind=ActionKind.ENTER_TEXT, target=fields.password_target, text=hints.credentials.password),
            Action(kind=ActionKind.ACTIVATE, target=fields.submit_target),
        ])

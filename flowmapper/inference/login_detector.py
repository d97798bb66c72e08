"""
Login Form Detector - recognizes login screens and locates their fields.
"""

from typing import Any

from ..core.models import LoginFields
from ..utils.snapshot import element_tag, element_type, parse_line
from .capabilities import CapabilityDetector


class LoginFormDetector(CapabilityDetector):
    """
    Detects a login form from snapshot text.

    A login screen needs a password field, a username field and a submit
    control, and none of the phrases that mark user creation or sign-up
    forms (which also carry password fields).
    """

    name = "login"

    NOT_LOGIN_INDICATORS = [
        "create user", "new user", "register", "sign up", "signup",
        "create account", "edit user", "update user", "add user",
    ]

    LOGIN_WORDS = ["log in", "login", "sign in", "signin"]

    USERNAME_WORDS = ["username", "user name", "email", "login", "user"]

    def detect(self, snapshot: str) -> dict[str, Any]:
        lower = snapshot.lower()

        if any(indicator in lower for indicator in self.NOT_LOGIN_INDICATORS):
            return {}

        fields = self.find_fields(snapshot)
        if not fields.complete:
            return {}

        return {"login_form": True, "login_fields": fields}

    def find_fields(self, snapshot: str) -> LoginFields:
        """
        Locate username, password and submit targets.

        Args:
            snapshot: Snapshot text

        Returns:
            LoginFields with whatever could be found
        """
        fields = LoginFields()

        for line in snapshot.split("\n"):
            identifier = parse_line(line)
            if identifier is None or "DISABLED" in line:
                continue

            tag = element_tag(line)
            input_type = element_type(line)
            lower = line.lower()

            if tag == "input" and input_type == "password":
                fields.password_target = fields.password_target or identifier.selector
            elif tag == "input" and input_type in (None, "text", "email"):
                if any(word in lower for word in self.USERNAME_WORDS):
                    fields.username_target = fields.username_target or identifier.selector
            elif self._is_submit(tag, input_type, identifier.text.lower()):
                fields.submit_target = fields.submit_target or identifier.selector

        return fields

    def _is_submit(self, tag: str, input_type: str | None, text: str) -> bool:
        if input_type == "submit":
            return True
        if tag in ("button", "a") or input_type == "button":
            return any(word in text for word in self.LOGIN_WORDS)
        return False

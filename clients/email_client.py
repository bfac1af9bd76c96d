"""
Email gateway client for sending emails via HTTP gateway.

Uses HMAC-SHA256 signature for request authentication. Templates are
rendered by the gateway; this client only names the template ("type") and
supplies its variables.
"""

import hashlib
import hmac
import json
import logging

import requests

logger = logging.getLogger(__name__)


class EmailGatewayError(Exception):
    """Raised when email gateway request fails."""


class EmailGatewayClient:
    """Send emails via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str):
        """
        Initialize with gateway credentials.

        Args:
            gateway_url: Full URL to the email gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret

    def _sign_and_send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Args:
            payload: Dict to send as JSON

        Raises:
            EmailGatewayError: On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        signature = hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": signature,
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=10,
            )
        except (requests.exceptions.RequestException, ConnectionError) as e:
            logger.error(f"Email gateway connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}") from e

        try:
            response_data = response.json()
        except ValueError as e:
            logger.error(f"Email gateway returned invalid JSON: {response.text}")
            raise EmailGatewayError("Invalid response from gateway") from e

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Email gateway error: {error_msg}")
            raise EmailGatewayError(f"Gateway error: {error_msg}")

    def send_otp(self, email: str, code: str) -> None:
        """Send a one-time login code.

        Raises:
            EmailGatewayError: On any failure
        """
        self._sign_and_send({"type": "otp", "email": email, "code": code})
        logger.info(f"OTP email sent to {email}")

    def send_magic_link(self, email: str, link: str) -> None:
        """Send a magic login link.

        Raises:
            EmailGatewayError: On any failure
        """
        self._sign_and_send({"type": "magic_link", "email": email, "link": link})
        logger.info(f"Magic link email sent to {email}")

    def send_password_reset(self, email: str, link: str) -> None:
        """Send a password reset link.

        Raises:
            EmailGatewayError: On any failure
        """
        self._sign_and_send({"type": "reset_password", "email": email, "link": link})
        logger.info(f"Password reset email sent to {email}")

    def send_email_verification(self, email: str, link: str) -> None:
        """Send an email address verification link.

        Raises:
            EmailGatewayError: On any failure
        """
        self._sign_and_send({"type": "email_verification", "email": email, "link": link})
        logger.info(f"Verification email sent to {email}")

    def send_organization_invitation(
        self,
        email: str,
        organization_name: str,
        inviter_email: str,
        link: str,
    ) -> None:
        """
        Send an organization invitation.

        Args:
            email: Invitee address
            organization_name: Shown in the subject line
            inviter_email: Who sent the invitation
            link: Accept-invitation page URL

        Raises:
            EmailGatewayError: On any failure
        """
        self._sign_and_send({
            "type": "organization_invitation",
            "email": email,
            "subject": f"You're invited to join {organization_name}",
            "organization_name": organization_name,
            "inviter_email": inviter_email,
            "link": link,
        })
        logger.info(f"Invitation email sent to {email} for {organization_name}")

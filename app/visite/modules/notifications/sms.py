from __future__ import annotations

import base64
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class SmsError(RuntimeError):
    pass


def format_phone_number(phone: str) -> str:
    """Normalize a Moroccan number to E.164 (``0612345678`` -> ``+212612345678``)."""
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("212"):
        return "+" + digits
    if digits.startswith("0"):
        return "+212" + digits[1:]
    if len(digits) == 9:
        return "+212" + digits
    return "+" + digits


@dataclass(frozen=True)
class TwilioSmsClient:
    account_sid: str
    auth_token: str
    sender: str
    base_url: str = "https://api.twilio.com/2010-04-01"
    timeout_seconds: int = 15

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.sender)

    def _auth_header(self) -> str:
        token = f"{self.account_sid}:{self.auth_token}".encode("utf-8")
        return "Basic " + base64.b64encode(token).decode("ascii")

    def _request(self, path: str, data: dict[str, str] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}/Accounts/{self.account_sid}{path}"
        body = urllib.parse.urlencode(data).encode("utf-8") if data is not None else None
        req = urllib.request.Request(url, data=body, method="POST" if body is not None else "GET")
        req.add_header("Authorization", self._auth_header())
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="ignore")
            raise SmsError(f"HTTP {e.code} from Twilio: {detail[:300]}") from e
        except (urllib.error.URLError, OSError) as e:
            raise SmsError(f"Twilio unreachable: {e}") from e
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise SmsError(f"Invalid JSON from Twilio ({path})") from e

    def send(self, to: str, body: str) -> str:
        """Send one SMS; returns the provider message SID."""
        if not self.configured:
            raise SmsError("SMS notifications are not configured (SMS_API_KEY/SMS_SENDER_ID).")
        number = format_phone_number(to)
        result = self._request("/Messages.json", {"To": number, "From": self.sender, "Body": body})
        logger.info("SMS sent to %s (sid=%s)", number, result.get("sid"))
        return str(result.get("sid") or "")

    def test_connection(self) -> bool:
        if not self.configured:
            return False
        try:
            self._request(".json")
        except SmsError as e:
            logger.error("SMS connection test failed: %s", e)
            return False
        return True


def sms_client_from_config(config: dict) -> TwilioSmsClient:
    # SMS_API_KEY is "<AccountSID>:<AuthToken>"
    sid, _, token = (config.get("SMS_API_KEY") or "").strip().partition(":")
    return TwilioSmsClient(
        account_sid=sid.strip(),
        auth_token=token.strip(),
        sender=(config.get("SMS_SENDER_ID") or "").strip(),
    )

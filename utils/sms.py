import httpx

DEFAULT_API_BASE = "https://api.twilio.com/2010-04-01"


def _json_field(resp, key):
    try:
        body = resp.json()
    except ValueError:
        return None
    # Twilio answers with an object; anything else carries no usable field
    return body.get(key) if isinstance(body, dict) else None


class TwilioSms:
    """
    Sends SMS through Twilio's Messages REST endpoint.
    `to` must already be in canonical "+<cc><number>" form.
    """

    def __init__(self, account_sid, auth_token, from_number, api_base=DEFAULT_API_BASE,
                 timeout=10.0, transport=None):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_base = (api_base or DEFAULT_API_BASE).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config) -> "TwilioSms":
        return cls(
            account_sid=config.get("TWILIO_ACCOUNT_SID"),
            auth_token=config.get("TWILIO_AUTH_TOKEN"),
            from_number=config.get("TWILIO_FROM_NUMBER"),
            api_base=config.get("TWILIO_API_BASE") or DEFAULT_API_BASE,
            timeout=float(config.get("NOTIFICATION_TIMEOUT_SECONDS", 10)),
        )

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send(self, to: str, body: str):
        """Returns (message_sid, error)."""
        if not self.configured:
            return None, "SMS not configured"

        url = f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"
        data = {"To": to, "From": self.from_number, "Body": body}

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(url, data=data, auth=(self.account_sid, self.auth_token))
        except httpx.HTTPError as exc:
            return None, f"SMS transport error: {exc}"

        if resp.status_code >= 400:
            # Twilio puts a readable reason in "message"
            reason = _json_field(resp, "message")
            return None, f"Twilio error {resp.status_code}: {reason or resp.text[:200]}"

        return _json_field(resp, "sid") or "", None

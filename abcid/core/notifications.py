import contextlib
from typing import Protocol

import httpx

from abcid.core.config import Settings, settings as default_settings


class Notifier(Protocol):
    async def send_otp(self, *, email: str, phone: str, name: str, code: str) -> None: ...


class DeliveryError(RuntimeError):
    pass


def _otp_html(name: str, code: str, minutes: int) -> str:
    return f"""
    <div style="font-family:Arial,sans-serif;max-width:560px;margin:auto;padding:24px">
      <h2 style="margin:0 0 12px 0;">Hello, {name}</h2>
      <p style="margin:0 0 16px 0;color:#444;line-height:1.5;">
        Use the code below to sign in to the ABC ID verification portal.
      </p>
      <p style="font-size:28px;font-weight:700;letter-spacing:6px;margin:0 0 16px 0;">{code}</p>
      <p style="margin:18px 0 0 0;color:#666;font-size:12px;">
        The code expires in {minutes} minutes. If you did not request it, you can ignore this email.
      </p>
    </div>
    """


class HttpNotifier:
    """
    Delivers OTP codes by email (ZeptoMail) and WhatsApp (Interakt).

    Both channels are attempted; a DeliveryError is raised if either
    one failed, after both have been tried.
    """

    def __init__(self, cfg: Settings = default_settings, client: httpx.AsyncClient | None = None):
        self._cfg = cfg
        self._client = client

    async def send_otp(self, *, email: str, phone: str, name: str, code: str) -> None:
        errors: list[str] = []
        async with self._session() as client:
            for send in (self._send_email, self._send_whatsapp):
                try:
                    await send(client, email=email, phone=phone, name=name, code=code)
                except (DeliveryError, httpx.HTTPError) as exc:
                    errors.append(str(exc))
        if errors:
            raise DeliveryError("; ".join(errors))

    def _session(self):
        if self._client is not None:
            return contextlib.nullcontext(self._client)
        return httpx.AsyncClient(timeout=20)

    async def _send_email(self, client: httpx.AsyncClient, *, email: str, phone: str, name: str, code: str) -> None:
        if not self._cfg.ZEPTOMAIL_TOKEN:
            raise DeliveryError("ZEPTOMAIL_TOKEN not configured")

        payload = {
            "from": {"address": self._cfg.ZEPTOMAIL_FROM_EMAIL, "name": self._cfg.ZEPTOMAIL_FROM_NAME},
            "to": [{"email_address": {"address": email, "name": name}}],
            "subject": "OTP for login",
            "htmlbody": _otp_html(name, code, max(1, self._cfg.OTP_VALIDITY_SECONDS // 60)),
        }
        r = await client.post(
            self._cfg.ZEPTOMAIL_URL,
            headers={"Authorization": f"Zoho-enczapikey {self._cfg.ZEPTOMAIL_TOKEN}"},
            json=payload,
        )
        if r.status_code >= 400:
            raise DeliveryError(f"ZeptoMail error {r.status_code}: {r.text}")

    async def _send_whatsapp(self, client: httpx.AsyncClient, *, email: str, phone: str, name: str, code: str) -> None:
        if not self._cfg.INTERAKT_API_KEY:
            raise DeliveryError("INTERAKT_API_KEY not configured")
        if not phone:
            raise DeliveryError("no phone number on record")

        payload = {
            "countryCode": "+91",
            "phoneNumber": phone,
            "type": "Template",
            "template": {
                "name": self._cfg.INTERAKT_TEMPLATE,
                "languageCode": "en",
                "headerValues": ["Alert"],
                "bodyValues": [code],
            },
            "data": {"message": ""},
        }
        r = await client.post(
            self._cfg.INTERAKT_BASE_URL,
            headers={"Authorization": f"Basic {self._cfg.INTERAKT_API_KEY}"},
            json=payload,
        )
        if r.status_code >= 400:
            raise DeliveryError(f"Interakt error {r.status_code}: {r.text}")

import html
import logging
from typing import Optional

import httpx

from database import insert_document, new_id, now_iso
from errors import UpstreamError, ValidationError
from schemas import ContactEnquiryCreate, ProjectEnquiryCreate
from settings import Settings

logger = logging.getLogger(__name__)

RECAPTCHA_URL = "https://www.google.com/recaptcha/api/siteverify"

ENQUIRY_TEMPLATE = """\
<h2>New enquiry for {project_name}</h2>
<table>
  <tr><td>Name</td><td>{name}</td></tr>
  <tr><td>Email</td><td>{email}</td></tr>
  <tr><td>Phone</td><td>{phone}</td></tr>
  <tr><td>Configuration</td><td>{configuration}</td></tr>
</table>
"""


def render_enquiry_mail(enquiry: dict) -> str:
    return ENQUIRY_TEMPLATE.format(
        project_name=html.escape(enquiry["project_name"]),
        name=html.escape(enquiry["name"]),
        email=html.escape(enquiry["email"]),
        phone=html.escape(enquiry["phone_number"]),
        configuration=html.escape(enquiry.get("configuration") or "-"),
    )


class EnquiryService:
    def __init__(self, db, mailer, settings: Settings, http: Optional[httpx.AsyncClient] = None):
        self.db = db
        self.mailer = mailer
        self.settings = settings
        self.http = http

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        if self.http is not None:
            return await self.http.post(url, **kwargs)
        async with httpx.AsyncClient(timeout=15.0) as client:
            return await client.post(url, **kwargs)

    async def verify_captcha(self, token: Optional[str]) -> None:
        if not self.settings.recaptcha_secret:
            return
        if not token:
            raise ValidationError("CAPTCHA token is missing")
        try:
            response = await self._post(RECAPTCHA_URL, params={
                "secret": self.settings.recaptcha_secret, "response": token})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("CAPTCHA verification failed: %s", e)
            raise UpstreamError("Could not verify CAPTCHA") from e
        if not response.json().get("success"):
            raise ValidationError("Invalid CAPTCHA")

    async def create_project_enquiry(self, data: ProjectEnquiryCreate) -> dict:
        await self.verify_captcha(data.captcha_token)
        doc = {**data.model_dump(exclude={"captcha_token"}), "enquiry_id": new_id(),
               "active": True, "created_at": now_iso()}
        await insert_document(self.db.project_enquiries, doc)
        logger.info("Project enquiry %s for %r", doc["enquiry_id"], doc["project_name"])
        return doc

    async def create_contact_enquiry(self, data: ContactEnquiryCreate) -> dict:
        doc = {**data.model_dump(), "enquiry_id": new_id(), "active": True, "created_at": now_iso()}
        return await insert_document(self.db.contact_enquiries, doc)

    async def notify(self, enquiry: dict) -> None:
        """Mail the sales inbox and push the lead to the CRM. Runs as a background task."""
        if self.settings.enquiry_mail:
            try:
                await self.mailer.send([self.settings.enquiry_mail],
                                       f"You have new Project Enquiry {enquiry['project_name']}",
                                       render_enquiry_mail(enquiry))
            except Exception:
                logger.exception("Enquiry mail for %s failed", enquiry["enquiry_id"])
        if self.settings.lead_api_url:
            try:
                response = await self._post(self.settings.lead_api_url, json={
                    "LeadName": enquiry["name"],
                    "Campaign": "Organic",
                    "Source": "",
                    "Subsource": "",
                    "LeadEmail": enquiry["email"],
                    "LeadPhoneNo": enquiry["phone_number"],
                    "Message": f"This is {enquiry['project_name']} Lead",
                    "ProjectName": enquiry["project_name"],
                })
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error("Lead push for %s failed: %s", enquiry["enquiry_id"], e)

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

import httpx

from ..exceptions import ProtocolFaultError
from ..models import blank_placeholder
from .base import BaseProvider

logger = logging.getLogger(__name__)

SOAP_ACTION = "urn:ec.europa.eu:taxud:vies:services:checkVat:types#checkVat"

ENVELOPE_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/"
                  xmlns:urn="urn:ec.europa.eu:taxud:vies:services:checkVat:types">
  <soapenv:Header/>
  <soapenv:Body>
    <urn:checkVat>
      <urn:countryCode>{country_code}</urn:countryCode>
      <urn:vatNumber>{vat_number}</urn:vatNumber>
    </urn:checkVat>
  </soapenv:Body>
</soapenv:Envelope>"""

_FAULT_MARKER = re.compile(r"<(?:\w+:)?Fault>", re.IGNORECASE)
_XML_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;"}


def build_envelope(country_code: str, vat_number: str) -> str:
    """Render the checkVat SOAP request body."""
    def esc(value: str) -> str:
        return "".join(_XML_ESCAPES.get(ch, ch) for ch in value)

    return ENVELOPE_TEMPLATE.format(country_code=esc(country_code), vat_number=esc(vat_number))


def find_tag(xml: str, tag: str) -> Optional[str]:
    """Return the trimmed text of the first ``<tag>``, ignoring namespace prefixes."""
    pattern = re.compile(
        rf"<(?:\w+:)?{re.escape(tag)}>([\s\S]*?)</(?:\w+:)?{re.escape(tag)}>",
        re.IGNORECASE,
    )
    match = pattern.search(xml)
    return match.group(1).strip() if match else None


def parse_response(xml: str) -> Dict[str, Any]:
    """
    Parse a checkVat response body.

    Returns:
        Dict with valid, name, address, requestDate, countryCode, vatNumber
        (the last three None when the response omits them)

    Raises:
        ProtocolFaultError: If the body carries a SOAP fault
    """
    if _FAULT_MARKER.search(xml):
        fault = find_tag(xml, "faultstring") or "SOAP Fault"
        detail = find_tag(xml, "message") or ""
        raise ProtocolFaultError(f"{fault}: {detail}" if detail else fault)

    valid = (find_tag(xml, "valid") or "").lower() == "true"

    name = find_tag(xml, "name") or find_tag(xml, "traderName") or ""
    name = blank_placeholder(re.sub(r"\s+", " ", name))

    address = find_tag(xml, "address") or find_tag(xml, "traderAddress") or ""
    address = blank_placeholder(address)
    address = re.sub(r"\s*\n\s*", "\n", address).strip()

    return {
        "valid": valid,
        "name": name,
        "address": address,
        "requestDate": find_tag(xml, "requestDate"),
        "countryCode": find_tag(xml, "countryCode"),
        "vatNumber": find_tag(xml, "vatNumber"),
    }


class VIESProvider(BaseProvider):
    """EU VIES checkVat SOAP service.

    Documentation: https://ec.europa.eu/taxation_customs/vies/
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        timeout: float = BaseProvider.DEFAULT_TIMEOUT,
        user_agent: Optional[str] = None,
    ) -> None:
        super().__init__(client, timeout=timeout)
        self.url = url
        self.user_agent = user_agent

    @property
    def provider_name(self) -> str:
        return "VIES"

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "Accept": "text/xml",
            "SOAPAction": SOAP_ACTION,
        }
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        return headers

    async def lookup(self, country_code: str, identifier: str) -> Dict[str, Any]:
        """Check one VAT number against VIES (single attempt)."""
        logger.debug(f"VIES: checking {country_code}/{identifier}")
        response = await self._post(
            self.url,
            content=build_envelope(country_code, identifier).encode("utf-8"),
            headers=self._headers(),
        )
        return parse_response(response.text)

"""Webhook receiving WhatsApp messages relayed by Twilio.

Twilio posts form fields (``From``, ``Body``) and expects a TwiML document
back; the single ``<Message>`` element becomes the bot's reply.
"""

import logging
from xml.etree import ElementTree as ET

from django.http import HttpResponse
from rest_framework.parsers import FormParser, JSONParser
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.orders import providers
from .commands import BotCommands


logger = logging.getLogger(__name__)


def twiml(text: str) -> str:
    root = ET.Element("Response")
    ET.SubElement(root, "Message").text = text
    return '<?xml version="1.0" encoding="UTF-8"?>' + ET.tostring(root, encoding="unicode")


class WhatsAppWebhookView(APIView):
    parser_classes = [FormParser, JSONParser]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "whatsapp"

    def post(self, request):
        sender = str(request.data.get("From") or request.data.get("from") or "")
        body = str(request.data.get("Body") or request.data.get("body") or "").strip()
        logger.info("incoming whatsapp message", extra={"from": sender, "body": body})

        reply = BotCommands(providers.get_order_lifecycle()).handle(sender, body)
        return HttpResponse(twiml(reply), content_type="text/xml", status=200)

from django.urls import path
from .views import WhatsAppWebhookView
app_name = "whatsapp"

urlpatterns = [
    path("whatsapp/", WhatsAppWebhookView.as_view(), name="webhook"),
]

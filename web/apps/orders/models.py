import uuid
from django.db import models


class ShopModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    # WhatsApp number customers use to address the shop from the bot
    phone = models.CharField(max_length=32, unique=True)
    description = models.TextField(blank=True, default="")
    # Merchant identity; null means the shop is managed by admins only
    owner_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "shops"


class MenuItemModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    shop = models.ForeignKey(ShopModel, on_delete=models.CASCADE, related_name="menu_items")
    name = models.CharField(max_length=200)
    price = models.PositiveIntegerField(default=0)
    available = models.BooleanField(default=True)
    # Short code typed by customers in the bot ("order <shop> <code> <qty>")
    external_id = models.CharField(max_length=16, blank=True, default="", db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "menu_items"
        ordering = ["created_at"]


class CounterModel(models.Model):
    name = models.CharField(max_length=64, primary_key=True)
    seq = models.BigIntegerField(default=0)

    class Meta:
        db_table = "counters"


class OrderModel(models.Model):
    # UUID PK exposed in the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Merchant-facing counter, allocated from CounterModel before insert
    sequence_number = models.BigIntegerField(unique=True, editable=False)

    class Status(models.TextChoices):
        RECEIVED = "received"
        ACCEPTED = "accepted"
        PACKED = "packed"
        OUT_FOR_DELIVERY = "out_for_delivery"
        DELIVERED = "delivered"
        CANCELLED = "cancelled"
        FAILED = "failed"

    shop = models.ForeignKey(ShopModel, on_delete=models.PROTECT, related_name="orders")
    customer_name = models.CharField(max_length=200)
    phone = models.CharField(max_length=32)
    address = models.JSONField(null=True, blank=True)
    # Line items snapshot: [{"item_id", "name", "qty", "unit_price"}]
    items = models.JSONField(default=list)
    total = models.PositiveBigIntegerField(default=0)
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.RECEIVED)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["shop", "-created_at"], name="orders_shop_created_idx")]

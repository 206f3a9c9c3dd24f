from django.urls import path
from .views import ShopOrdersView
app_name = "shops"

urlpatterns = [
    path("<uuid:shop_id>/orders/", ShopOrdersView.as_view(), name="shop-orders"),
]

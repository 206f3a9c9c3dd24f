from django.urls import path
from .views import OrdersPingView
from .views import OrdersCollectionView, RetrieveOrderView, OrderStatusView, OrderEventsView
app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # POST create
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/status/", OrderStatusView.as_view(), name="orders-status"),
    path("<uuid:oid>/events/", OrderEventsView.as_view(), name="orders-events"),
]

"""HTTP views for the orders app.

This module contains DRF API views used by the orders service. Views are
kept intentionally small: they validate requests (via Pydantic), resolve the
caller, delegate to the ``OrderLifecycle`` domain service and map its errors
to HTTP responses.

The views obtain a configured ``OrderLifecycle`` from
``get_order_lifecycle()``, which wires the ORM repositories with a
notification fan-out whose messenger is either the HTTP messaging client or
a logging stub depending on runtime settings. This allows tests and local
development to swap implementations without changing view logic.

Error bodies always carry a short code in ``detail`` (``EMPTY_ORDER``,
``NOT_FOUND``, ``FORBIDDEN``, ``INVALID_TRANSITION``,
``STORAGE_UNAVAILABLE``, ``VALIDATION_ERROR``, ``UNAUTHORIZED``) and a human
readable ``message``.
"""
import json
import logging

from django.conf import settings
from django.core.paginator import Paginator
from django.http import StreamingHttpResponse
from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .authorization import caller_from_request
from .domain import OrderError
from .notifications import EVENT_NAME
from .realtime import order_topic
from .schemas import CreateOrderDTO, OrderReadDTO, ShopOrdersQuery, StatusUpdateDTO


logger = logging.getLogger(__name__)


def _error(exc: OrderError) -> Response:
    logger.info("order request rejected", extra={"code": exc.code, "reason": exc.message})
    return Response({"detail": exc.code, "message": exc.message}, status=exc.http_status)


def _validation_error(exc: ValidationError) -> Response:
    return Response(
        {"detail": "VALIDATION_ERROR", "message": str(exc)},
        status=status.HTTP_400_BAD_REQUEST,
    )


def _unauthorized() -> Response:
    return Response(
        {"detail": "UNAUTHORIZED", "message": "Missing or invalid credentials"},
        status=status.HTTP_401_UNAUTHORIZED,
    )


def _project(order) -> dict:
    return OrderReadDTO.from_domain(order).model_dump(mode="json")


class OrdersPingView(APIView):
    """Simple health-check endpoint for the orders module."""

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """Create an order.

    The payload is validated with a Pydantic DTO and handed to the domain
    service, which captures prices, allocates the sequence number, persists
    the order and fans out the creation event. The response is returned as
    soon as the order is stored; notification delivery happens afterwards.
    """
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_create"

    def post(self, request):
        """Create a new order.

        Returns:
            Response: One of the following responses.
            - 201 with the order projection when the order is created.
            - 400 with ``VALIDATION_ERROR`` or ``EMPTY_ORDER``.
            - 404 with ``NOT_FOUND`` when the shop does not exist.
            - 503 with ``STORAGE_UNAVAILABLE`` when persistence fails.
        """
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)

        lifecycle = providers.get_order_lifecycle()
        try:
            order = lifecycle.create_order(
                shop_id=str(dto.shop),
                customer_name=dto.customer_name,
                phone=dto.phone,
                address=dto.address,
                requested_items=[i.to_domain() for i in dto.items],
            )
        except OrderError as e:
            return _error(e)

        return Response(_project(order), status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    """Public status lookup of a single order."""
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        try:
            order = providers.get_order_lifecycle().get_order(str(oid))
        except OrderError as e:
            return _error(e)
        return Response(_project(order), status=200)


class OrderStatusView(APIView):
    """Apply a status transition on behalf of the shop owner or an admin."""
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_status"

    def patch(self, request, oid):
        """Move the order to the requested status.

        Returns:
            Response: 200 with the updated projection, 401 without
            credentials, 403 ``FORBIDDEN``, 404 ``NOT_FOUND``, 409
            ``INVALID_TRANSITION`` or 400 ``VALIDATION_ERROR``.
        """
        caller = caller_from_request(request)
        if caller is None:
            return _unauthorized()
        try:
            dto = StatusUpdateDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)

        try:
            order = providers.get_order_lifecycle().transition_status(str(oid), caller, dto.status)
        except OrderError as e:
            return _error(e)
        return Response(_project(order), status=200)


class _ShopOrderWindow:
    """Lazily counted, sliceable view of a shop's orders for ``Paginator``.

    Slicing turns into one offset/limit query, so every page of the shop's
    history is reachable without loading it whole.
    """

    def __init__(self, lifecycle, shop_id: str, caller):
        self.lifecycle = lifecycle
        self.shop_id = shop_id
        self.caller = caller

    def count(self) -> int:
        return self.lifecycle.count_shop_orders(self.shop_id, self.caller)

    def __getitem__(self, window: slice):
        start = window.start or 0
        return self.lifecycle.list_shop_orders(
            self.shop_id, self.caller, limit=max(0, window.stop - start), offset=start
        )


class ShopOrdersView(APIView):
    """Newest-first, paginated list of a shop's orders for its owner."""
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_list"

    def get(self, request, shop_id):
        caller = caller_from_request(request)
        if caller is None:
            return _unauthorized()
        try:
            query = ShopOrdersQuery.model_validate(request.GET.dict())
        except ValidationError as e:
            return _validation_error(e)

        window = _ShopOrderWindow(providers.get_order_lifecycle(), str(shop_id), caller)
        try:
            p = Paginator(window, query.page_size)
            page_obj = p.get_page(query.page)
            results = [_project(o) for o in page_obj.object_list]
        except OrderError as e:
            return _error(e)

        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": query.page_size,
                "results": results,
            },
            status=200,
        )


def _event_stream(hub, topic: str, client_id, keepalive: float):
    subscription = hub.subscribe(topic, client_id=client_id)
    try:
        yield ": connected\n\n"
        while True:
            event = subscription.get(timeout=keepalive)
            if event is None:
                yield ": keepalive\n\n"
                continue
            yield f"event: {EVENT_NAME}\ndata: {json.dumps(event)}\n\n"
    finally:
        hub.unsubscribe(subscription)


class OrderEventsView(APIView):
    """Server-sent event stream of status updates for one order.

    The client joins the order's topic when the stream opens and leaves it
    when the connection closes. Only updates published while connected are
    delivered; clients fetch the current state from the detail endpoint.
    """
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        try:
            order = providers.get_order_lifecycle().get_order(str(oid))
        except OrderError as e:
            return _error(e)

        response = StreamingHttpResponse(
            _event_stream(
                providers.get_realtime_hub(),
                order_topic(order.id),
                getattr(request, "request_id", None),
                getattr(settings, "REALTIME_KEEPALIVE_SECS", 15.0),
            ),
            content_type="text/event-stream",
        )
        response["Cache-Control"] = "no-cache"
        response["X-Accel-Buffering"] = "no"
        return response

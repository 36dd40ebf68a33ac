"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.

Carts may be anonymous: an anonymous cart is reachable by whoever holds
its ``token`` (``X-Order-Token`` header or ``?token=``).  Owned orders are
reachable by their owner and by staff.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.address import Address
from modules.core.exceptions import NotFound, PersistenceError, ShopError
from modules.core.pagination import StandardResultsSetPagination
from modules.inventory.exceptions import InsufficientStock
from modules.orders.dtos import AddItemDTO, RecordPaymentDTO, SetStatusDTO
from modules.orders.exceptions import OrderNotFound
from modules.orders.factory import build_order_service
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.serializers import (
    AddItemSerializer,
    AddressSerializer,
    CheckoutSerializer,
    CreateCartSerializer,
    DiscountCodeSerializer,
    MergeCartSerializer,
    OrderListSerializer,
    OrderSerializer,
    PaymentSerializer,
    RecordPaymentSerializer,
    SetStatusSerializer,
    ShipperSelectionSerializer,
    ShippingQuoteSerializer,
    UpdateItemSerializer,
)

NOT_FOUND = {"detail": "Order not found."}

CART_ACTIONS = {
    "items",
    "item_detail",
    "clear",
    "address",
    "shipper",
    "discount",
}


def domain_error(exc: ShopError) -> Response:
    """Translate a domain exception into an HTTP response."""
    if isinstance(exc, NotFound):
        return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, InsufficientStock):
        return Response(
            {"detail": str(exc), "available": exc.available},
            status=status.HTTP_409_CONFLICT,
        )
    if isinstance(exc, PersistenceError):
        return Response(
            {"detail": str(exc)}, status=status.HTTP_503_SERVICE_UNAVAILABLE
        )
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


class OrderViewSet(GenericViewSet):
    """ViewSet for cart and order operations.

    Uses ``OrderService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.alive()
    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    search_fields = ["order_number", "buyer_email"]
    ordering_fields = ["created_at", "order_total", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_order_service()

    def get_permissions(self):
        if self.action in {"set_status", "payments"}:
            return [IsAdminUser()]
        if self.action in {"list", "merge"}:
            return [IsAuthenticated()]
        return [AllowAny()]

    def get_throttles(self) -> list[BaseThrottle]:
        throttle_scope: str | None
        if self.action in CART_ACTIONS:
            throttle_scope = "cart_updates"
        elif self.action in {"checkout", "cancel_checkout"}:
            throttle_scope = "checkout"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def get_queryset(self):
        queryset = Order.objects.alive()
        user = self.request.user
        if not user.is_staff:
            queryset = queryset.filter(owner_id=user.pk)
        return queryset

    # ------------------------------------------------------------------
    # Access helpers
    # ------------------------------------------------------------------

    def _token(self, request: Request) -> str:
        return request.headers.get("X-Order-Token") or request.query_params.get(
            "token", ""
        )

    def _can_access(self, request: Request, order: Order) -> bool:
        user = request.user
        if user.is_authenticated and (user.is_staff or order.owner_id == user.pk):
            return True
        token = self._token(request)
        return bool(token) and token == order.token

    def _accessible(self, request: Request, pk) -> Order:
        order = self._service.get_order(pk)
        if not self._can_access(request, order):
            raise OrderNotFound("Order not found.")
        return order

    def _render(self, order: Order, code: int = status.HTTP_200_OK) -> Response:
        fresh = self._service.get_order(order.pk)
        return Response(OrderSerializer(fresh).data, status=code)

    # ------------------------------------------------------------------
    # Create / List / Retrieve / Delete
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/  (a new cart)"""
        serializer = CreateCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        owner = request.user if request.user.is_authenticated else None
        order = self._service.create_cart(
            owner=owner,
            currency=data.get("currency") or None,
            buyer_email=data.get("buyer_email", ""),
        )
        return self._render(order, status.HTTP_201_CREATED)

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Staff see every order; other users see their own.
        """
        queryset = self.filter_queryset(self.get_queryset())
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._accessible(request, pk)
        except OrderNotFound:
            return Response(NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        return Response(OrderSerializer(order).data)

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        """DELETE /api/v1/orders/{pk}/"""
        try:
            order = self._accessible(request, pk)
            self._service.delete_order(order.pk)
        except ShopError as exc:
            return domain_error(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def items(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/items/"""
        serializer = AddItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = AddItemDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            order = self._accessible(request, pk)
            order = self._service.add_item(order.pk, dto)
        except ShopError as exc:
            return domain_error(exc)
        return self._render(order, status.HTTP_201_CREATED)

    @action(
        detail=True,
        methods=["patch", "delete"],
        url_path=r"items/(?P<item_id>[^/.]+)",
    )
    def item_detail(
        self, request: Request, pk: str | None = None, item_id: str | None = None
    ) -> Response:
        """PATCH / DELETE /api/v1/orders/{pk}/items/{item_id}/"""
        try:
            order = self._accessible(request, pk)
            if request.method == "DELETE":
                order = self._service.remove_item(order.pk, item_id)
            else:
                serializer = UpdateItemSerializer(data=request.data)
                serializer.is_valid(raise_exception=True)
                order = self._service.update_item_quantity(
                    order.pk, item_id, serializer.validated_data["quantity"]
                )
        except ShopError as exc:
            return domain_error(exc)
        return self._render(order)

    @action(detail=True, methods=["post"])
    def clear(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/clear/"""
        try:
            order = self._accessible(request, pk)
            order = self._service.clear(order.pk)
        except ShopError as exc:
            return domain_error(exc)
        return self._render(order)

    # ------------------------------------------------------------------
    # Address, shipper, discount code
    # ------------------------------------------------------------------

    @action(detail=True, methods=["put"])
    def address(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/address/"""
        serializer = AddressSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        kind = data.pop("kind")
        try:
            order = self._accessible(request, pk)
            order = self._service.set_address(order.pk, kind, Address(**data))
        except ShopError as exc:
            return domain_error(exc)
        return self._render(order)

    @action(detail=True, methods=["put"])
    def shipper(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/shipper/"""
        serializer = ShipperSelectionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._accessible(request, pk)
            order = self._service.set_shipper(
                order.pk, serializer.validated_data["shipper_id"]
            )
        except ShopError as exc:
            return domain_error(exc)
        return self._render(order)

    @action(detail=True, methods=["get"], url_path="shipping-options")
    def shipping_options(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/shipping-options/"""
        try:
            order = self._accessible(request, pk)
            quotes = self._service.shipping_quotes(order.pk)
        except ShopError as exc:
            return domain_error(exc)
        return Response(ShippingQuoteSerializer(quotes, many=True).data)

    @action(detail=True, methods=["post", "delete"])
    def discount(self, request: Request, pk: str | None = None) -> Response:
        """POST / DELETE /api/v1/orders/{pk}/discount/

        An invalid code resets any applied discount and answers 400 with
        the validator's reasons.
        """
        try:
            order = self._accessible(request, pk)
            if request.method == "DELETE":
                return self._render(self._service.remove_discount_code(order.pk))

            serializer = DiscountCodeSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            code = serializer.validated_data["code"]
            order, validation = self._service.apply_discount_code(order.pk, code)
        except ShopError as exc:
            return domain_error(exc)

        if code.strip() and not validation.is_valid:
            return Response(
                {"detail": "Invalid discount code.", "messages": list(validation.messages)},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return self._render(order)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def checkout(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/checkout/"""
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        actor = request.user if request.user.is_authenticated else None
        try:
            order = self._accessible(request, pk)
            order = self._service.checkout(
                order.pk, serializer.validated_data["gateway"], actor=actor
            )
        except ShopError as exc:
            return domain_error(exc)
        return self._render(order)

    @action(detail=True, methods=["post"], url_path="cancel-checkout")
    def cancel_checkout(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel-checkout/"""
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        actor = request.user if request.user.is_authenticated else None
        try:
            order = self._accessible(request, pk)
            order = self._service.cancel_checkout(
                order.pk, serializer.validated_data["gateway"], actor=actor
            )
        except ShopError as exc:
            return domain_error(exc)
        return self._render(order)

    @action(detail=True, methods=["post"])
    def merge(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/merge/

        Moves an anonymous cart (identified by id and token) into the
        caller's cart ``pk``.
        """
        serializer = MergeCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            target = self._accessible(request, pk)
            source = self._service.get_order(data["cart_id"])
            if source.token != data["token"]:
                raise OrderNotFound("Order not found.")
            order = self._service.merge_carts(source.pk, target.pk)
        except ShopError as exc:
            return domain_error(exc)
        return self._render(order)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/status/"""
        serializer = SetStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = SetStatusDTO(**serializer.validated_data)
        try:
            order = self._service.status_machine.set_status(
                pk,
                dto.status,
                actor=request.user,
                notes=dto.notes,
                notify=dto.notify,
                force_notify=dto.force_notify,
            )
        except ShopError as exc:
            return domain_error(exc)
        return self._render(order)

    @action(detail=True, methods=["get", "post"])
    def payments(self, request: Request, pk: str | None = None) -> Response:
        """GET / POST /api/v1/orders/{pk}/payments/"""
        if request.method == "GET":
            try:
                order = self._service.get_order(pk)
            except ShopError as exc:
                return domain_error(exc)
            return Response(PaymentSerializer(order.payments.all(), many=True).data)

        serializer = RecordPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = RecordPaymentDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        try:
            order = self._service.status_machine.record_payment(
                pk, dto, actor=request.user
            )
        except ShopError as exc:
            return domain_error(exc)
        return self._render(order, status.HTTP_201_CREATED)

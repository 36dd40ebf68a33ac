"""Catalog API views.

Exposes the ``ProductService`` via HTTP using DRF ViewSets.
Browsing and price quotes are public; variant generation is staff-only.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.catalog.dtos import GenerateVariantsDTO, PriceQuoteDTO
from modules.catalog.exceptions import InvalidOptionSelection, ProductNotFound
from modules.catalog.factory import build_product_service
from modules.catalog.filters import ProductFilter
from modules.catalog.models import Product
from modules.catalog.serializers import (
    GenerateVariantsSerializer,
    PriceBreakdownSerializer,
    PriceQuoteSerializer,
    ProductDetailSerializer,
    ProductSerializer,
    ProductVariantSerializer,
)
from modules.core.pagination import StandardResultsSetPagination

NOT_FOUND = {"detail": "Product not found."}


class ProductViewSet(GenericViewSet):
    """Read-only catalog plus price quote and variant generation actions.

    Uses ``ProductService`` with Django repositories (DIP).  Products
    hidden by the HIDE oversell policy read as 404.
    """

    filterset_class = ProductFilter
    search_fields = ["name", "sku", "description"]
    ordering_fields = ["name", "price", "created_at"]
    ordering = ["name"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    queryset = Product.objects.alive()
    serializer_class = ProductSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_product_service()

    def get_permissions(self):
        if self.action == "generate_variants":
            return [IsAdminUser()]
        return [AllowAny()]

    def get_queryset(self):
        return Product.objects.alive().filter(enabled=True)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/products/"""
        queryset = self.filter_queryset(self.get_queryset())
        visible = self._service.filter_visible(queryset)

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(visible, request)
        serializer = ProductSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/products/{pk}/"""
        try:
            product = self._service.get_visible_product(pk)
        except ProductNotFound:
            return Response(NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        return Response(ProductDetailSerializer(product).data)

    @action(detail=True, methods=["get"])
    def variants(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/products/{pk}/variants/"""
        try:
            product = self._service.get_visible_product(pk)
        except ProductNotFound:
            return Response(NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        variants = self._service.variants.variants_for(product.pk)
        return Response(ProductVariantSerializer(variants, many=True).data)

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def quote(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/products/{pk}/quote/

        Body: ``{"option_value_ids": [...], "quantity": N,
        "override_price": "12.00"}``.
        """
        serializer = PriceQuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = PriceQuoteDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            breakdown = self._service.quote(pk, dto)
        except ProductNotFound:
            return Response(NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except InvalidOptionSelection as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(PriceBreakdownSerializer(breakdown.model_dump()).data)

    # ------------------------------------------------------------------
    # Variant generation (staff)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"], url_path="generate-variants")
    def generate_variants(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/products/{pk}/generate-variants/"""
        serializer = GenerateVariantsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = GenerateVariantsDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            created = self._service.generate_variants(pk, dto)
        except ProductNotFound:
            return Response(NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except InvalidOptionSelection as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        out = ProductVariantSerializer(created, many=True)
        return Response(out.data, status=status.HTTP_201_CREATED)

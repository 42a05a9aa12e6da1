"""DRF views for vendor product options and price quotes."""

from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema, inline_serializer
from rest_framework import serializers as rf_serializers
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api import error_response
from common.choices import Market

from .options import OptionValidationError
from .serializers import QuoteRequestSerializer, QuoteSerializer, VendorOptionSerializer
from .services import get_product_options, quote_line
from .vendor import PricingUnavailable

ErrorSerializer = inline_serializer(
    name="PricingError",
    fields={"detail": rf_serializers.CharField(), "code": rf_serializers.CharField()},
)


class ProductOptionsView(APIView):
    """List a vendor product's option rows."""

    permission_classes = [AllowAny]
    throttle_scope = "pricing"

    @extend_schema(
        tags=["Pricing"],
        summary="Product options",
        parameters=[OpenApiParameter(name="market", description="US or CA", required=False, type=str)],
        responses={200: VendorOptionSerializer(many=True), 502: ErrorSerializer},
    )
    def get(self, request, product_id: int):
        market = request.query_params.get("market", Market.US)
        if market not in Market.values:
            return error_response("Unknown market.", "invalid_market", status.HTTP_400_BAD_REQUEST)
        try:
            options = get_product_options(product_id=product_id, market=market)
        except PricingUnavailable:
            return error_response(
                "Product options are temporarily unavailable.", PricingUnavailable.code, status.HTTP_502_BAD_GATEWAY
            )
        data = VendorOptionSerializer([vars(opt) for opt in options], many=True).data
        return Response(data, status=status.HTTP_200_OK)


class QuoteView(APIView):
    """Price a product configuration without touching the cart."""

    permission_classes = [AllowAny]
    throttle_scope = "pricing"

    @extend_schema(
        tags=["Pricing"],
        summary="Quote a product configuration",
        description=(
            "Validates that the option ids pick exactly one option per group (the quantity group is "
            "defaulted when omitted), asks the vendor for its cost and applies the market's markup."
        ),
        request=QuoteRequestSerializer,
        responses={200: QuoteSerializer, 400: ErrorSerializer, 502: ErrorSerializer},
        examples=[
            OpenApiExample("Request", value={"quantity": 2, "option_ids": [11, 21, 31]}, request_only=True),
            OpenApiExample(
                "Missing groups",
                value={"detail": "Every option group needs a selection.", "code": "missing_groups", "missing_groups": ["Size"]},
                response_only=True,
                status_codes=["400"],
            ),
        ],
    )
    def post(self, request, product_id: int):
        serializer = QuoteRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            quote = quote_line(product_id=product_id, **serializer.validated_data)
        except OptionValidationError as exc:
            return error_response(str(exc), exc.code, status.HTTP_400_BAD_REQUEST, **exc.details)
        except PricingUnavailable:
            return error_response(
                "Pricing is temporarily unavailable.", PricingUnavailable.code, status.HTTP_502_BAD_GATEWAY
            )
        return Response(QuoteSerializer(quote).data, status=status.HTTP_200_OK)

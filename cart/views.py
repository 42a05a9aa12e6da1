"""DRF views for cart operations.

Every endpoint works for a signed-in user or for a guest identified by the
``X-Session-Id`` header.
"""

from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema, inline_serializer
from rest_framework import serializers as rf_serializers
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api import error_response
from common.principal import SESSION_HEADER, resolve_principal
from loyalty.serializers import ApplyCreditSerializer
from loyalty.services import LoyaltyError, apply_points_to_cart, release_cart_credit
from pricing.options import OptionValidationError
from pricing.vendor import PricingUnavailable, ShippingUnavailable

from .models import Cart
from .selectors import get_open_cart
from .serializers import (
    AddLineSerializer,
    CartReadSerializer,
    ChooseShippingSerializer,
    ClaimSerializer,
    DestinationSerializer,
    ShippingRateSerializer,
    UpdateLineSerializer,
)
from .services import (
    CartError,
    add_line,
    choose_shipping,
    claim_guest_cart,
    clear_cart,
    estimate_shipping,
    remove_line,
    update_line,
)

SESSION_PARAM = OpenApiParameter(
    name=SESSION_HEADER,
    location=OpenApiParameter.HEADER,
    required=False,
    description="Guest session id; required when not signed in",
    type=str,
)

CartErrorSerializer = inline_serializer(
    name="CartError",
    fields={"detail": rf_serializers.CharField(), "code": rf_serializers.CharField()},
)

CART_ERROR_STATUS = {
    "cart_not_found": status.HTTP_404_NOT_FOUND,
    "line_not_found": status.HTTP_404_NOT_FOUND,
    "cart_closed": status.HTTP_409_CONFLICT,
}

CART_EXAMPLE = OpenApiExample(
    "Cart",
    value={
        "id": 1,
        "status": "open",
        "market": "US",
        "currency": "USD",
        "lines": [
            {
                "id": 10,
                "product_id": 42,
                "quantity": 100,
                "option_ids": [11, 21],
                "unit_price_cents": 15,
                "line_total_cents": 1500,
                "currency": "USD",
                "artwork": None,
            }
        ],
        "credits": [],
        "selected_shipping": {"carrier": "UPS", "method": "Ground", "cost": "5.00", "cost_cents": 500},
        "subtotal_cents": 1500,
        "discount_cents": 0,
        "shipping_cents": 500,
        "total_before_tax_cents": 2000,
    },
    response_only=True,
)


def cart_error_response(exc: CartError) -> Response:
    return error_response(str(exc), exc.code, CART_ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST))


def pricing_error_response(exc) -> Response:
    if isinstance(exc, OptionValidationError):
        return error_response(str(exc), exc.code, status.HTTP_400_BAD_REQUEST, **exc.details)
    return error_response("Pricing is temporarily unavailable.", exc.code, status.HTTP_502_BAD_GATEWAY)


def cart_response(cart: Cart, code: int = status.HTTP_200_OK) -> Response:
    cart = Cart.objects.get(pk=cart.pk)
    return Response(CartReadSerializer.from_cart(cart=cart).data, status=code)


class CartDetailView(APIView):
    """Return the caller's open cart, creating an empty one on first use."""

    permission_classes = [AllowAny]
    throttle_scope = "cart"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Get cart",
        parameters=[SESSION_PARAM],
        responses={200: CartReadSerializer, 400: CartErrorSerializer},
        examples=[CART_EXAMPLE],
    )
    def get(self, request):
        principal = resolve_principal(request)
        if principal.is_anonymous:
            return error_response("Sign in or send X-Session-Id.", "no_principal", status.HTTP_400_BAD_REQUEST)
        return cart_response(get_open_cart(principal=principal, create=True))


class CartLinesView(APIView):
    """Price a product configuration and add it to the cart."""

    permission_classes = [AllowAny]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Add line",
        request=AddLineSerializer,
        parameters=[SESSION_PARAM],
        responses={201: CartReadSerializer, 400: CartErrorSerializer, 502: CartErrorSerializer},
        examples=[
            OpenApiExample(
                "Business cards",
                value={"product_id": 42, "quantity": 1, "option_ids": [11, 21, 31]},
                request_only=True,
            ),
            CART_EXAMPLE,
        ],
    )
    def post(self, request):
        serializer = AddLineSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            line = add_line(principal=resolve_principal(request), **serializer.validated_data)
        except CartError as exc:
            return cart_error_response(exc)
        except (OptionValidationError, PricingUnavailable) as exc:
            return pricing_error_response(exc)
        return cart_response(line.cart, status.HTTP_201_CREATED)


class CartLineDetailView(APIView):
    """Change or remove one cart line."""

    permission_classes = [AllowAny]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Update line",
        description="Changes quantity and/or options; the line is re-priced with the vendor.",
        request=UpdateLineSerializer,
        parameters=[SESSION_PARAM],
        responses={200: CartReadSerializer, 400: CartErrorSerializer, 404: CartErrorSerializer},
    )
    def patch(self, request, line_id: int):
        serializer = UpdateLineSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            line = update_line(principal=resolve_principal(request), line_id=line_id, **serializer.validated_data)
        except CartError as exc:
            return cart_error_response(exc)
        except (OptionValidationError, PricingUnavailable) as exc:
            return pricing_error_response(exc)
        return cart_response(line.cart)

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Remove line",
        parameters=[SESSION_PARAM],
        responses={204: None, 400: CartErrorSerializer, 404: CartErrorSerializer},
    )
    def delete(self, request, line_id: int):
        try:
            remove_line(principal=resolve_principal(request), line_id=line_id)
        except CartError as exc:
            return cart_error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CartClearView(APIView):
    permission_classes = [AllowAny]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Clear cart",
        request=None,
        parameters=[SESSION_PARAM],
        responses={204: None, 400: CartErrorSerializer, 404: CartErrorSerializer},
    )
    def post(self, request):
        try:
            clear_cart(principal=resolve_principal(request))
        except CartError as exc:
            return cart_error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ShippingEstimateView(APIView):
    """Vendor shipping rates for the cart's current contents."""

    permission_classes = [AllowAny]
    throttle_scope = "cart"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Estimate shipping",
        request=DestinationSerializer,
        parameters=[SESSION_PARAM],
        responses={200: ShippingRateSerializer(many=True), 400: CartErrorSerializer, 502: CartErrorSerializer},
        examples=[
            OpenApiExample("Destination", value={"country": "US", "state": "NY", "zip": "10001"}, request_only=True)
        ],
    )
    def post(self, request):
        serializer = DestinationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            rates = estimate_shipping(principal=resolve_principal(request), destination=serializer.validated_data)
        except CartError as exc:
            return cart_error_response(exc)
        except ShippingUnavailable:
            return error_response(
                "Shipping rates are temporarily unavailable.", ShippingUnavailable.code, status.HTTP_502_BAD_GATEWAY
            )
        return Response(ShippingRateSerializer([rate.as_dict() for rate in rates], many=True).data)


class ShippingChooseView(APIView):
    """Store the shipping rate the customer picked."""

    permission_classes = [AllowAny]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Choose shipping",
        request=ChooseShippingSerializer,
        parameters=[SESSION_PARAM],
        responses={200: CartReadSerializer, 400: CartErrorSerializer, 404: CartErrorSerializer},
        examples=[
            OpenApiExample(
                "UPS Ground",
                value={"carrier": "UPS", "method": "Ground", "cost": "12.50", "days": 5, "country": "US"},
                request_only=True,
            )
        ],
    )
    def post(self, request):
        serializer = ChooseShippingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            cart = choose_shipping(principal=resolve_principal(request), **serializer.validated_data)
        except CartError as exc:
            return cart_error_response(exc)
        return cart_response(cart)


class CartCreditView(APIView):
    """Apply loyalty points to the signed-in user's cart, or take them back off."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"

    def _cart(self, request):
        return get_open_cart(principal=resolve_principal(request), create=False)

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Apply loyalty credit",
        description=(
            "Points are rounded down to the redemption step and capped at the cart subtotal. "
            "Applying again replaces the previous credit."
        ),
        request=ApplyCreditSerializer,
        responses={200: CartReadSerializer, 404: CartErrorSerializer, 409: CartErrorSerializer},
        examples=[OpenApiExample("Redeem", value={"points": 500}, request_only=True)],
    )
    def post(self, request):
        serializer = ApplyCreditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = self._cart(request)
        if cart is None:
            return error_response("Cart not found.", "cart_not_found", status.HTTP_404_NOT_FOUND)
        try:
            apply_points_to_cart(customer=request.user, cart=cart, points=serializer.validated_data["points"])
        except LoyaltyError as exc:
            return error_response(str(exc), exc.code, status.HTTP_409_CONFLICT, **exc.details)
        return cart_response(cart)

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Remove loyalty credit",
        responses={200: CartReadSerializer, 404: CartErrorSerializer},
    )
    def delete(self, request):
        cart = self._cart(request)
        if cart is None:
            return error_response("Cart not found.", "cart_not_found", status.HTTP_404_NOT_FOUND)
        release_cart_credit(customer=request.user, cart=cart)
        return cart_response(cart)


class CartClaimView(APIView):
    """Bind the guest session's cart to the signed-in user, merging if needed."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Claim guest cart",
        request=ClaimSerializer,
        parameters=[SESSION_PARAM],
        responses={200: CartReadSerializer, 400: CartErrorSerializer},
    )
    def post(self, request):
        serializer = ClaimSerializer(data=request.data or {})
        serializer.is_valid(raise_exception=True)
        session_id = serializer.validated_data.get("session_id") or resolve_principal(request).session_id
        if not session_id:
            return error_response("session_id is required.", "no_session", status.HTTP_400_BAD_REQUEST)
        try:
            cart = claim_guest_cart(user=request.user, session_id=session_id)
        except CartError as exc:
            return cart_error_response(exc)
        return cart_response(cart)

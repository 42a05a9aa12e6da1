"""Orders API endpoints: checkout, payment webhook and order history."""

import logging

import stripe
from cart.selectors import get_open_cart
from common.api import error_response
from common.principal import SESSION_HEADER, resolve_principal
from django.http import Http404
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from django_filters import rest_framework as filters
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema, inline_serializer
from rest_framework import generics, status
from rest_framework import serializers as rf_serializers
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import OrderFilterSet
from .selectors import get_order_for_principal, orders_for_principal
from .serializers import CheckoutSessionRequestSerializer, CheckoutSessionSerializer, OrderSerializer
from .services import (
    CheckoutError,
    FinalizationError,
    TotalMismatchError,
    compute_request_hash,
    finalize_free_order,
    get_gateway,
    start_checkout,
    with_idempotency,
)
from .webhooks import handle_stripe_event

logger = logging.getLogger("storefront.orders")

SESSION_PARAM = OpenApiParameter(
    name=SESSION_HEADER,
    location=OpenApiParameter.HEADER,
    required=False,
    description="Guest session id; required when not signed in",
    type=str,
)

ErrorSerializer = inline_serializer(
    name="OrdersError",
    fields={"detail": rf_serializers.CharField(), "code": rf_serializers.CharField()},
)


class DefaultPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"


class OrderListView(generics.ListAPIView):
    """List the signed-in user's orders.

    Filters:
    - `status`: one of the OrderStatus values
    - `number`: exact match of order number
    - `start`: ISO date/time string; filters `created_at >= start`
    - `end`: ISO date/time string; filters `created_at <= end`
    """

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    pagination_class = DefaultPagination
    filter_backends = [filters.DjangoFilterBackend]
    filterset_class = OrderFilterSet
    throttle_scope = "orders"

    def get_queryset(self):
        return orders_for_principal(resolve_principal(self.request))

    @extend_schema(
        tags=["Orders"],
        summary="List orders",
        description="List current user's orders with optional filters and pagination.",
        parameters=[
            OpenApiParameter(name="page", description="Page number", required=False, type=int),
            OpenApiParameter(name="page_size", description="Items per page", required=False, type=int),
        ],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class OrderDetailView(generics.RetrieveAPIView):
    """Retrieve one order owned by the caller (user, or guest session)."""

    permission_classes = [AllowAny]
    serializer_class = OrderSerializer
    throttle_scope = "orders"

    def get_object(self):
        order = get_order_for_principal(resolve_principal(self.request), self.kwargs["order_id"])
        if order is None:
            raise Http404("Not found.")
        return order

    @extend_schema(
        tags=["Orders"],
        summary="Get order detail",
        parameters=[SESSION_PARAM],
        examples=[
            OpenApiExample(
                "Placed order",
                value={
                    "id": 123,
                    "number": "ORD-000123",
                    "status": "placed",
                    "payment_status": "paid",
                    "email": "user@example.com",
                    "currency": "USD",
                    "subtotal_cents": 1500,
                    "discount_cents": 0,
                    "shipping_cents": 500,
                    "tax_cents": 120,
                    "tax_source": "stripe_tax_calculation",
                    "total_cents": 2120,
                    "shipping": {"carrier": "UPS", "method": "Ground", "cost": "5.00", "cost_cents": 500},
                    "placed_at": "2025-01-01T12:00:00Z",
                    "created_at": "2025-01-01T12:00:00Z",
                    "items": [
                        {
                            "id": 10,
                            "product_id": 42,
                            "quantity": 100,
                            "option_ids": [1, 7],
                            "unit_price_cents": 15,
                            "line_total_cents": 1500,
                            "artwork": None,
                        }
                    ],
                },
                response_only=True,
            )
        ],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class CheckoutSessionView(APIView):
    """Start payment for the caller's cart.

    Idempotent when `Idempotency-Key` is provided. Returns 409 on key reuse with different payload.
    """

    permission_classes = [AllowAny]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Checkout"],
        summary="Create checkout session",
        description=(
            "Computes cart totals, creates a tax calculation when an address is given, and a PaymentIntent "
            "for net subtotal + shipping + tax. The cart moves to `checkout` until it changes again."
        ),
        request=CheckoutSessionRequestSerializer,
        parameters=[
            SESSION_PARAM,
            OpenApiParameter(
                name="Idempotency-Key",
                location=OpenApiParameter.HEADER,
                required=False,
                description="Makes the request idempotent within scope+path+method",
                type=str,
            ),
        ],
        responses={200: CheckoutSessionSerializer, 400: ErrorSerializer, 404: ErrorSerializer, 502: ErrorSerializer},
        examples=[
            OpenApiExample(
                "With address",
                value={"address": {"country": "US", "state": "CA", "zip": "94105"}},
                request_only=True,
            ),
        ],
    )
    def post(self, request):
        principal = resolve_principal(request)
        if principal.is_anonymous:
            return error_response(
                "Sign in or send X-Session-Id.", "no_principal", status.HTTP_400_BAD_REQUEST
            )
        ser = CheckoutSessionRequestSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        address = ser.validated_data.get("address")

        def _handler():
            cart = get_open_cart(principal=principal, create=False)
            if cart is None:
                return {"detail": "Cart not found.", "code": "cart_not_found"}, 404
            try:
                data = start_checkout(cart=cart, address=address)
            except CheckoutError as exc:
                return {"detail": str(exc), "code": exc.code}, exc.status
            return CheckoutSessionSerializer(data).data, 200

        idem_key = request.headers.get("Idempotency-Key")
        if idem_key:
            body, code = with_idempotency(
                key=idem_key,
                principal=principal,
                path=str(request.path),
                method=str(request.method),
                request_hash=compute_request_hash(getattr(request, "data", None)),
                handler=_handler,
            )
            return Response(body, status=code)

        body, code = _handler()
        return Response(body, status=code)


class FreeCheckoutView(APIView):
    """Place an order that credits cover completely, with no payment step."""

    permission_classes = [AllowAny]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Checkout"],
        summary="Place a zero-total order",
        request=None,
        parameters=[SESSION_PARAM],
        responses={
            201: inline_serializer(
                name="FreeCheckoutResult",
                fields={"order_id": rf_serializers.IntegerField(), "created": rf_serializers.BooleanField()},
            ),
            400: ErrorSerializer,
            404: ErrorSerializer,
        },
    )
    def post(self, request):
        principal = resolve_principal(request)
        if principal.is_anonymous:
            return error_response(
                "Sign in or send X-Session-Id.", "no_principal", status.HTTP_400_BAD_REQUEST
            )
        cart = get_open_cart(principal=principal, create=False)
        if cart is None:
            return error_response("Cart not found.", "cart_not_found", status.HTTP_404_NOT_FOUND)
        try:
            result = finalize_free_order(cart=cart)
        except FinalizationError as exc:
            return error_response(str(exc), exc.code, status.HTTP_400_BAD_REQUEST, **exc.details)
        return Response(
            {"order_id": result.order_id, "created": result.created},
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )


@method_decorator(csrf_exempt, name="dispatch")
class StripeWebhookView(APIView):
    """Stripe webhook: verify the signature and finalize the paid cart.

    Answers 2xx for processed, duplicate, ignored and no-cart events; 400 for
    bad signatures or payloads; 409 when the charged amount is rejected; 500
    when finalization fails so Stripe retries.
    """

    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = []

    @extend_schema(
        tags=["Checkout"],
        summary="Stripe webhook",
        request=None,
        parameters=[
            OpenApiParameter(
                name="Stripe-Signature",
                location=OpenApiParameter.HEADER,
                required=True,
                description="Signature header set by Stripe",
                type=str,
            )
        ],
        responses={
            200: inline_serializer(
                name="WebhookResult",
                fields={
                    "status": rf_serializers.CharField(),
                    "order_id": rf_serializers.IntegerField(required=False),
                },
            ),
            400: ErrorSerializer,
            409: ErrorSerializer,
        },
    )
    def post(self, request):
        gateway = get_gateway()
        signature = request.headers.get("Stripe-Signature", "")
        try:
            event = gateway.construct_event(request.body, signature)
        except ValueError:
            logger.warning("webhook.invalid_payload", extra={"event": "webhook.invalid_payload"})
            return error_response("Invalid payload.", "invalid_payload", status.HTTP_400_BAD_REQUEST)
        except stripe.SignatureVerificationError:
            logger.warning("webhook.invalid_signature", extra={"event": "webhook.invalid_signature"})
            return error_response("Invalid signature.", "invalid_signature", status.HTTP_400_BAD_REQUEST)

        try:
            result = handle_stripe_event(event, gateway=gateway)
        except TotalMismatchError as exc:
            return error_response(str(exc), exc.code, status.HTTP_409_CONFLICT, **exc.details)
        except Exception:
            logger.exception(
                "webhook.finalize_failed",
                extra={"event": "webhook.finalize_failed", "stripe_event_id": event.get("id"), "type": event.get("type")},
            )
            return error_response("Finalization failed.", "finalize_failed", status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response(result, status=status.HTTP_200_OK)
